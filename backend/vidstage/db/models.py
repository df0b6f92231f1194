"""SQLAlchemy 2.0 ORM models for the stage and variant ledgers."""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    JSON,
    BigInteger,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from vidstage.orchestrator.state import (
    ContentSafetyStatus,
    JobStatus,
    VariantStatus,
    VideoStatus,
)


class Base(DeclarativeBase):
    """Base class for all ORM models."""
    pass


class VideoAsset(Base):
    """Uploaded video and its lifecycle status.

    Owned by the intake process; mutated by gates and stage handlers.
    """
    __tablename__ = "video_assets"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    title: Mapped[str] = mapped_column(Text, default="")
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    tags: Mapped[list] = mapped_column(JSON, default=list)
    language_hint: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    duration_ms: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    status: Mapped[str] = mapped_column(String(20), default=VideoStatus.UPLOADING)
    media_ref: Mapped[str] = mapped_column(String(500))
    thumbnail_path: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    master_playlist_path: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    # Set atomically by the master-playlist gate when claims are enabled
    master_playlist_claimed_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)
    owner_id: Mapped[str] = mapped_column(String(100), default="")
    allowed_group_ids: Mapped[list] = mapped_column(JSON, default=list)
    allowed_user_ids: Mapped[list] = mapped_column(JSON, default=list)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(),
        onupdate=func.now()
    )


class ProcessingJob(Base):
    """Durable per-(video, stage) state record.

    One row per stage, reset in place, which keeps at most one
    non-terminal row per (video, stage).
    """
    __tablename__ = "processing_jobs"
    __table_args__ = (UniqueConstraint("video_id", "stage", name="uq_processing_jobs_video_stage"),)

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    video_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("video_assets.id"), index=True)
    stage: Mapped[str] = mapped_column(String(40))
    status: Mapped[str] = mapped_column(String(20), default=JobStatus.PENDING)
    attempts: Mapped[int] = mapped_column(Integer, default=0)
    progress: Mapped[int] = mapped_column(Integer, default=0)
    progress_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now())
    started_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(),
        onupdate=func.now()
    )


class VideoVariant(Base):
    """Durable per-(video, quality profile) encode state."""
    __tablename__ = "video_variants"
    __table_args__ = (UniqueConstraint("video_id", "quality", name="uq_video_variants_video_quality"),)

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    video_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("video_assets.id"), index=True)
    quality: Mapped[str] = mapped_column(String(20))
    width: Mapped[int] = mapped_column(Integer)
    height: Mapped[int] = mapped_column(Integer)
    video_bitrate_kbps: Mapped[int] = mapped_column(Integer)
    audio_bitrate_kbps: Mapped[int] = mapped_column(Integer)
    status: Mapped[str] = mapped_column(String(20), default=VariantStatus.PENDING)
    progress: Mapped[int] = mapped_column(Integer, default=0)
    progress_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    playlist_path: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    segments_path: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    size_bytes: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now())
    started_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)


class TranscriptSegment(Base):
    """Timed transcript text produced by the transcription stage."""
    __tablename__ = "transcript_segments"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    video_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("video_assets.id"), index=True)
    start_ms: Mapped[int] = mapped_column(BigInteger)
    end_ms: Mapped[int] = mapped_column(BigInteger)
    text: Mapped[str] = mapped_column(Text)
    detected_language: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    speaker: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    confidence: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now())


class ModerationResult(Base):
    """Aggregated content-safety verdict and reviewer decision."""
    __tablename__ = "moderation_results"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    video_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("video_assets.id"), unique=True)
    content_safety_status: Mapped[str] = mapped_column(String(20), default=ContentSafetyStatus.PENDING)
    reasons: Mapped[list] = mapped_column(JSON, default=list)
    highest_severity: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    reviewer_decision: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    reviewer_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    reviewer_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now())
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)


class VideoHighlight(Base):
    """AI-extracted highlight. Text is English; original_text keeps the source."""
    __tablename__ = "video_highlights"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    video_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("video_assets.id"), index=True)
    text: Mapped[str] = mapped_column(Text)
    original_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    source_language: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    category: Mapped[str] = mapped_column(String(40), default="key_point")
    importance: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    timestamp_ms: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now())


class VideoSummary(Base):
    """AI-generated summary; at most one per video."""
    __tablename__ = "video_summaries"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    video_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("video_assets.id"), unique=True)
    summary: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    tldr: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    source_language: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    keywords: Mapped[list] = mapped_column(JSON, default=list)
    topics: Mapped[list] = mapped_column(JSON, default=list)
    sentiment: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now())


class SearchDocumentRow(Base):
    """Storage for the database-backed search index.

    Owned by the index, independent of transcript_segments.
    """
    __tablename__ = "search_documents"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    video_id: Mapped[uuid.UUID] = mapped_column(index=True)
    video_title: Mapped[str] = mapped_column(Text, default="")
    start_ms: Mapped[int] = mapped_column(BigInteger)
    end_ms: Mapped[int] = mapped_column(BigInteger)
    text: Mapped[str] = mapped_column(Text)
    language: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    allowed_group_ids: Mapped[list] = mapped_column(JSON, default=list)
    allowed_user_ids: Mapped[list] = mapped_column(JSON, default=list)
