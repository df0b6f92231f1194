"""Local collaborator engines for development and tests.

None of these call out to a network service:
- StubTranscriptionEngine reads a ``<media>.transcript.json`` sidecar
- KeywordSafetyClassifier flags fixed trigger phrases
- PlaceholderThumbnailExtractor emits a 1x1 grey PNG
- LocalPlaylistEncoder writes HLS playlists into the content store
- NullHighlightExtractor returns empty highlights and summaries
"""

import base64
import json
import logging
import uuid
from typing import Mapping, Optional, Sequence

from pydantic import ValidationError

from vidstage.config import QualityProfile
from vidstage.schemas.collaborators import (
    EncodeResult,
    HighlightsResult,
    PlaylistVariant,
    SafetyCategory,
    SafetyResult,
    SafetySeverity,
    SummaryResult,
    TranscriptionResult,
)
from vidstage.services.base import (
    ContentSafetyClassifier,
    ContentStore,
    Encoder,
    HighlightExtractor,
    ThumbnailExtractor,
    TranscriptionEngine,
)

logger = logging.getLogger(__name__)

# Trigger phrases for exercising moderation (matched case-insensitively)
DEFAULT_TRIGGERS: dict[str, tuple[str, SafetySeverity]] = {
    "unsafe_test_content": ("Violence", SafetySeverity.HIGH),
    "harmful_content_test": ("SelfHarm", SafetySeverity.HIGH),
    "hate_speech_test": ("Hate", SafetySeverity.HIGH),
    "moderate_flag_test": ("Violence", SafetySeverity.MEDIUM),
    "adult_content_test": ("Sexual", SafetySeverity.MEDIUM),
    "mild_flag_test": ("Violence", SafetySeverity.LOW),
    "profanity_test": ("Profanity", SafetySeverity.LOW),
}

_SEVERITY_SCORE = {
    SafetySeverity.HIGH: 0.9,
    SafetySeverity.MEDIUM: 0.6,
    SafetySeverity.LOW: 0.3,
}

_SEVERITY_ORDER = [SafetySeverity.NONE, SafetySeverity.LOW, SafetySeverity.MEDIUM, SafetySeverity.HIGH]

# Minimal valid 1x1 PNG (grey pixel)
PLACEHOLDER_PNG = base64.b64decode(
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAQAAAC1HAwCAAAAC0lEQVR42mP8/x8AAwMBAWgm4NwAAAAASUVORK5CYII="
)

HLS_SEGMENT_SECONDS = 10


def sidecar_path(media_ref: str) -> str:
    """Return the content-store path of the transcript sidecar for media_ref."""
    return f"{media_ref}.transcript.json"


class StubTranscriptionEngine(TranscriptionEngine):
    """Transcription from a JSON sidecar stored next to the media.

    Sidecar format matches TranscriptionResult. A missing sidecar yields an
    empty transcript; a missing source file raises FileNotFoundError.
    """

    def __init__(self, store: ContentStore):
        self._store = store

    async def transcribe(
        self, media_ref: str, language_hint: Optional[str] = None
    ) -> TranscriptionResult:
        # Touch the source so a missing upload surfaces as a failure
        await self._store.fetch(media_ref)

        try:
            raw = await self._store.fetch(sidecar_path(media_ref))
        except FileNotFoundError:
            logger.info(f"No transcript sidecar for {media_ref}, returning empty transcript")
            return TranscriptionResult(detected_language=language_hint)

        try:
            result = TranscriptionResult.model_validate_json(raw)
        except ValidationError as e:
            raise ValueError(f"Malformed transcript sidecar for {media_ref}: {e}") from e

        if result.detected_language is None:
            result.detected_language = language_hint
        return result


class KeywordSafetyClassifier(ContentSafetyClassifier):
    """Flags text containing any configured trigger phrase."""

    def __init__(self, triggers: Optional[Mapping[str, tuple[str, SafetySeverity]]] = None):
        self._triggers = dict(triggers if triggers is not None else DEFAULT_TRIGGERS)

    async def analyze_text(self, text: str) -> SafetyResult:
        lowered = text.lower()
        categories = []
        overall = SafetySeverity.NONE

        for trigger, (category, severity) in self._triggers.items():
            if trigger.lower() in lowered:
                categories.append(SafetyCategory(
                    category=category,
                    severity=severity,
                    score=_SEVERITY_SCORE.get(severity, 0.0),
                ))
                if _SEVERITY_ORDER.index(severity) > _SEVERITY_ORDER.index(overall):
                    overall = severity
                logger.debug(f"Flagged '{trigger}' as {category} ({severity})")

        return SafetyResult(is_safe=not categories, overall_severity=overall, categories=categories)


class PlaceholderThumbnailExtractor(ThumbnailExtractor):
    """Returns a fixed placeholder image once the source is confirmed readable."""

    def __init__(self, store: ContentStore):
        self._store = store

    async def extract_thumbnail(self, media_ref: str) -> bytes:
        await self._store.fetch(media_ref)
        return PLACEHOLDER_PNG


def render_master_playlist(variants: Sequence[PlaylistVariant]) -> str:
    """Render an HLS master playlist listing variants in the given order."""
    lines = ["#EXTM3U", "#EXT-X-VERSION:3"]
    for v in variants:
        bandwidth = (v.video_bitrate_kbps + v.audio_bitrate_kbps) * 1000
        lines.append(
            f'#EXT-X-STREAM-INF:BANDWIDTH={bandwidth},RESOLUTION={v.width}x{v.height},NAME="{v.quality}"'
        )
        lines.append(f"{v.quality}/playlist.m3u8")
    return "\n".join(lines) + "\n"


class LocalPlaylistEncoder(Encoder):
    """Writes single-segment HLS renditions into the content store.

    No transcoding happens: the segment is a copy of the source. Useful for
    exercising the fan-out/fan-in paths without ffmpeg.
    """

    def __init__(self, store: ContentStore):
        self._store = store

    async def encode_variant(
        self, video_id: uuid.UUID, media_ref: str, profile: QualityProfile
    ) -> EncodeResult:
        source = await self._store.fetch(media_ref)

        segments_path = f"hls/{video_id}/{profile.name}"
        segment_file = f"{segments_path}/segment_000.ts"
        playlist_path = f"{segments_path}/playlist.m3u8"

        playlist = "\n".join([
            "#EXTM3U",
            "#EXT-X-VERSION:3",
            f"#EXT-X-TARGETDURATION:{HLS_SEGMENT_SECONDS}",
            "#EXT-X-PLAYLIST-TYPE:VOD",
            f"#EXTINF:{HLS_SEGMENT_SECONDS:.1f},",
            "segment_000.ts",
            "#EXT-X-ENDLIST",
        ]) + "\n"

        await self._store.put(segment_file, source)
        await self._store.put(playlist_path, playlist.encode("utf-8"))

        return EncodeResult(
            playlist_path=playlist_path,
            segments_path=segments_path,
            size_bytes=len(source),
        )

    async def generate_master_playlist(
        self, video_id: uuid.UUID, variants: Sequence[PlaylistVariant]
    ) -> str:
        master_path = f"hls/{video_id}/master.m3u8"
        await self._store.put(master_path, render_master_playlist(variants).encode("utf-8"))
        logger.info(f"Wrote master playlist for video {video_id} ({len(variants)} variants)")
        return master_path


def write_sidecar_payload(result: TranscriptionResult) -> bytes:
    """Serialize a transcript for use as a StubTranscriptionEngine sidecar."""
    return json.dumps(result.model_dump(mode="json")).encode("utf-8")


class NullHighlightExtractor(HighlightExtractor):
    """Highlight extractor used when no language model is configured.

    Returns empty results, so the AIHighlights stage completes without
    writing highlights or a summary.
    """

    async def extract_highlights(
        self, text: str, language_hint: Optional[str] = None
    ) -> HighlightsResult:
        return HighlightsResult(source_language=language_hint)

    async def summarize(self, text: str, title: Optional[str] = None) -> SummaryResult:
        return SummaryResult()
