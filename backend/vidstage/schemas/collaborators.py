"""Pydantic schemas exchanged with external collaborators.

These are the narrow request/response shapes the pipeline core relies on;
concrete engines translate their native payloads into them.
"""

import uuid
from enum import StrEnum
from typing import Optional

from pydantic import BaseModel, Field


class TranscribedSegment(BaseModel):
    start_ms: int
    end_ms: int
    text: str
    detected_language: Optional[str] = None
    speaker: Optional[str] = None
    confidence: Optional[float] = None


class TranscriptionResult(BaseModel):
    detected_language: Optional[str] = None
    duration_ms: Optional[int] = None
    segments: list[TranscribedSegment] = Field(default_factory=list)


class SafetySeverity(StrEnum):
    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class SafetyCategory(BaseModel):
    category: str
    severity: SafetySeverity
    score: float = 0.0


class SafetyResult(BaseModel):
    is_safe: bool
    overall_severity: SafetySeverity = SafetySeverity.NONE
    categories: list[SafetyCategory] = Field(default_factory=list)


class EncodeResult(BaseModel):
    playlist_path: str
    segments_path: str
    size_bytes: int


class PlaylistVariant(BaseModel):
    """A completed variant as referenced by the master playlist."""

    quality: str
    width: int
    height: int
    video_bitrate_kbps: int
    audio_bitrate_kbps: int
    playlist_path: str


class Highlight(BaseModel):
    text: str = Field(description="Highlight text in English")
    original_text: Optional[str] = Field(
        default=None, description="Original text in the source language, if not English"
    )
    category: str = Field(
        default="key_point",
        description="key_point | promise | announcement | statistic | quote",
    )
    importance: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    timestamp_ms: Optional[int] = None


class HighlightsResult(BaseModel):
    highlights: list[Highlight] = Field(default_factory=list)
    topics: list[str] = Field(default_factory=list)
    sentiment: Optional[str] = None
    source_language: Optional[str] = None


class SummaryResult(BaseModel):
    summary: Optional[str] = None
    tldr: Optional[str] = None
    keywords: list[str] = Field(default_factory=list)
    source_language: Optional[str] = None


class SearchDocument(BaseModel):
    """One transcript segment as submitted to the search index."""

    id: str
    video_id: uuid.UUID
    video_title: str
    start_ms: int
    end_ms: int
    text: str
    language: Optional[str] = None
    allowed_group_ids: list[str] = Field(default_factory=list)
    allowed_user_ids: list[str] = Field(default_factory=list)
