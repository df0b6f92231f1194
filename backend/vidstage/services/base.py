"""Abstract base classes for the pipeline's external collaborators.

Defines the narrow async interfaces the stage handlers call. Concrete
engines (local, OpenAI-compatible, in-memory) live alongside and are wired
together by the registry. Implementations raise on failure; handlers decide
whether a failure is retried, recorded, or ignored.
"""

import uuid
from abc import ABC, abstractmethod
from typing import Optional, Sequence

from vidstage.config import QualityProfile
from vidstage.schemas.collaborators import (
    EncodeResult,
    HighlightsResult,
    PlaylistVariant,
    SafetyResult,
    SearchDocument,
    SummaryResult,
    TranscriptionResult,
)


class ContentStore(ABC):
    """Blob storage addressed by relative path."""

    @abstractmethod
    async def fetch(self, path: str) -> bytes:
        """Read the blob at path. Raises FileNotFoundError if absent."""
        ...

    @abstractmethod
    async def put(self, path: str, data: bytes) -> str:
        """Write data at path, overwriting any existing blob. Returns the path."""
        ...

    @abstractmethod
    async def delete(self, path: str) -> None:
        """Delete the blob at path. Missing blobs are ignored."""
        ...

    @abstractmethod
    async def move(self, src: str, dst: str) -> str:
        """Move a blob, overwriting dst. Returns the new path."""
        ...


class TranscriptionEngine(ABC):

    @abstractmethod
    async def transcribe(
        self, media_ref: str, language_hint: Optional[str] = None
    ) -> TranscriptionResult:
        """Transcribe the media at media_ref.

        Args:
            media_ref: Content-store path of the source video.
            language_hint: Optional BCP-47 language code.

        Returns:
            Detected language, duration and ordered segments.
        """
        ...


class ContentSafetyClassifier(ABC):

    @abstractmethod
    async def analyze_text(self, text: str) -> SafetyResult:
        """Classify text for safety violations."""
        ...


class ThumbnailExtractor(ABC):

    @abstractmethod
    async def extract_thumbnail(self, media_ref: str) -> bytes:
        """Return PNG bytes of a representative frame."""
        ...


class Encoder(ABC):

    @abstractmethod
    async def encode_variant(
        self, video_id: uuid.UUID, media_ref: str, profile: QualityProfile
    ) -> EncodeResult:
        """Encode one quality rendition. Output paths are overwritten."""
        ...

    @abstractmethod
    async def generate_master_playlist(
        self, video_id: uuid.UUID, variants: Sequence[PlaylistVariant]
    ) -> str:
        """Write the master manifest referencing variants in the given order.

        Must overwrite any previous manifest; it may be invoked more than once
        for the same video. Returns the manifest path.
        """
        ...


class HighlightExtractor(ABC):

    @abstractmethod
    async def extract_highlights(
        self, text: str, language_hint: Optional[str] = None
    ) -> HighlightsResult:
        ...

    @abstractmethod
    async def summarize(self, text: str, title: Optional[str] = None) -> SummaryResult:
        ...


class SearchIndex(ABC):

    @abstractmethod
    async def delete_by_video(self, video_id: uuid.UUID) -> None:
        """Remove every document previously indexed for video_id."""
        ...

    @abstractmethod
    async def index_batch(self, documents: Sequence[SearchDocument]) -> None:
        """Upsert a batch of documents."""
        ...
