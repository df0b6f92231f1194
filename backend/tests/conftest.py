"""Shared fixtures: a temporary SQLite ledger and scripted collaborators."""

import uuid
from typing import Optional, Sequence

import pytest
import pytest_asyncio

from vidstage.config import (
    EncodingConfig,
    PipelineConfig,
    QualityProfile,
    Settings,
    StorageConfig,
)
from vidstage.db import create_engine, create_session_factory, init_database
from vidstage.orchestrator import coordinator
from vidstage.orchestrator.context import PipelineContext
from vidstage.orchestrator.queue import JobQueue
from vidstage.orchestrator.worker import JobWorker
from vidstage.schemas.collaborators import (
    EncodeResult,
    Highlight,
    HighlightsResult,
    PlaylistVariant,
    SummaryResult,
    TranscribedSegment,
    TranscriptionResult,
)
from vidstage.services.base import HighlightExtractor, TranscriptionEngine
from vidstage.services.content_store import LocalContentStore
from vidstage.services.local_engines import (
    KeywordSafetyClassifier,
    LocalPlaylistEncoder,
    PlaceholderThumbnailExtractor,
)
from vidstage.services.registry import Collaborators
from vidstage.services.search_index import InMemorySearchIndex

THREE_PROFILES = [
    QualityProfile(name="360p", width=640, height=360, video_bitrate_kbps=600, audio_bitrate_kbps=64),
    QualityProfile(name="720p", width=1280, height=720, video_bitrate_kbps=2500, audio_bitrate_kbps=128),
    QualityProfile(name="1080p", width=1920, height=1080, video_bitrate_kbps=5000, audio_bitrate_kbps=192),
]

DEFAULT_SEGMENTS = [
    TranscribedSegment(start_ms=0, end_ms=4000, text="Welcome to the quarterly update."),
    TranscribedSegment(start_ms=4000, end_ms=9000, text="Revenue grew by twelve percent."),
    TranscribedSegment(start_ms=9000, end_ms=15000, text="We will open a new office next year."),
]


class ScriptedTranscriptionEngine(TranscriptionEngine):
    """Returns fixed segments after failing the first ``fail_times`` calls."""

    def __init__(self, segments: Sequence[TranscribedSegment] = DEFAULT_SEGMENTS, fail_times: int = 0):
        self.segments = list(segments)
        self.fail_times = fail_times
        self.calls = 0

    async def transcribe(self, media_ref: str, language_hint: Optional[str] = None) -> TranscriptionResult:
        self.calls += 1
        if self.calls <= self.fail_times:
            raise ConnectionError(f"transcription backend unavailable (call {self.calls})")
        return TranscriptionResult(
            detected_language=language_hint or "en",
            duration_ms=self.segments[-1].end_ms if self.segments else None,
            segments=self.segments,
        )


class FlakyEncoder(LocalPlaylistEncoder):
    """Local encoder that fails chosen qualities and records master playlist calls."""

    def __init__(self, store, fail_qualities: Sequence[str] = (), fail_master_times: int = 0):
        super().__init__(store)
        self.fail_qualities = set(fail_qualities)
        self.fail_master_times = fail_master_times
        self.master_calls: list[list[str]] = []

    async def encode_variant(self, video_id, media_ref, profile) -> EncodeResult:
        if profile.name in self.fail_qualities:
            raise RuntimeError(f"encoder crashed on {profile.name}")
        return await super().encode_variant(video_id, media_ref, profile)

    async def generate_master_playlist(self, video_id, variants: Sequence[PlaylistVariant]) -> str:
        self.master_calls.append([v.quality for v in variants])
        if self.fail_master_times > 0:
            self.fail_master_times -= 1
            raise OSError("manifest write failed")
        return await super().generate_master_playlist(video_id, variants)


class RecordingHighlightExtractor(HighlightExtractor):
    def __init__(self, fail_highlights: bool = False):
        self.fail_highlights = fail_highlights
        self.highlight_calls: list[tuple[str, Optional[str]]] = []
        self.summary_calls: list[tuple[str, Optional[str]]] = []

    async def extract_highlights(self, text: str, language_hint: Optional[str] = None) -> HighlightsResult:
        self.highlight_calls.append((text, language_hint))
        if self.fail_highlights:
            raise TimeoutError("highlights model timed out")
        return HighlightsResult(
            highlights=[
                Highlight(text="Revenue grew by twelve percent", category="statistic", importance=0.9, timestamp_ms=4000),
                Highlight(text="New office next year", category="announcement", importance=0.7, timestamp_ms=9000),
            ],
            topics=["finance", "growth"],
            sentiment="positive",
            source_language=language_hint,
        )

    async def summarize(self, text: str, title: Optional[str] = None) -> SummaryResult:
        self.summary_calls.append((text, title))
        return SummaryResult(
            summary="A quarterly update covering revenue growth and expansion plans.",
            tldr="Revenue is up and a new office is coming.",
            keywords=[f"kw{i}" for i in range(12)],
            source_language="en",
        )


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        storage=StorageConfig(
            database_url=f"sqlite+aiosqlite:///{tmp_path}/test.db",
            content_root=tmp_path / "content",
        ),
        pipeline=PipelineConfig(retry_base_delay=0, retry_jitter=0, worker_concurrency=1),
        encoding=EncodingConfig(quality_profiles=THREE_PROFILES),
    )


@pytest.fixture
def store(settings) -> LocalContentStore:
    return LocalContentStore(settings.storage.content_root)


@pytest.fixture
def transcription() -> ScriptedTranscriptionEngine:
    return ScriptedTranscriptionEngine()


@pytest.fixture
def encoder(store) -> FlakyEncoder:
    return FlakyEncoder(store)


@pytest.fixture
def highlights() -> RecordingHighlightExtractor:
    return RecordingHighlightExtractor()


@pytest.fixture
def search_index() -> InMemorySearchIndex:
    return InMemorySearchIndex()


@pytest_asyncio.fixture
async def ctx(settings, store, transcription, encoder, highlights, search_index):
    engine = create_engine(settings.storage.database_url)
    await init_database(engine)
    context = PipelineContext(
        session_factory=create_session_factory(engine),
        queue=JobQueue(),
        collaborators=Collaborators(
            store=store,
            transcription=transcription,
            safety=KeywordSafetyClassifier(),
            thumbnails=PlaceholderThumbnailExtractor(store),
            encoder=encoder,
            highlights=highlights,
            search_index=search_index,
        ),
        settings=settings,
    )
    yield context
    await context.queue.close()
    await engine.dispose()


async def drain(ctx: PipelineContext) -> None:
    """Run the worker pool until no work remains."""
    async with JobWorker(ctx) as worker:
        await worker.run_until_idle()


async def ingest_video(ctx: PipelineContext, run: bool = True, **fields) -> uuid.UUID:
    """Upload placeholder media, register a video and (optionally) process it."""
    media_ref = f"uploads/{uuid.uuid4().hex}.mp4"
    await ctx.collaborators.store.put(media_ref, b"\x00\x00\x00\x18ftypmp42" + b"\x00" * 64)
    fields.setdefault("title", "Quarterly update")
    fields.setdefault("owner_id", "owner-1")
    video = await coordinator.register_video(ctx, media_ref, **fields)
    await coordinator.enqueue_ingest(ctx, video.id, media_ref, fields.get("language_hint"))
    if run:
        await drain(ctx)
    return video.id
