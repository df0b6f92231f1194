"""Collaborator registry.

Builds the bundle of external collaborators the stage handlers call, choosing
implementations from ``settings.providers``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from vidstage.services.base import (
    ContentSafetyClassifier,
    ContentStore,
    Encoder,
    HighlightExtractor,
    SearchIndex,
    ThumbnailExtractor,
    TranscriptionEngine,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from vidstage.config import Settings
    from vidstage.services.openai_client import OpenAIClient

logger = logging.getLogger(__name__)


@dataclass
class Collaborators:
    """External collaborators injected into every handler invocation."""

    store: ContentStore
    transcription: TranscriptionEngine
    safety: ContentSafetyClassifier
    thumbnails: ThumbnailExtractor
    encoder: Encoder
    highlights: HighlightExtractor
    search_index: SearchIndex
    openai: Optional["OpenAIClient"] = None

    async def aclose(self) -> None:
        if self.openai is not None:
            await self.openai.close()


def build_collaborators(
    settings: "Settings",
    session_factory: "async_sessionmaker[AsyncSession]",
) -> Collaborators:
    """Build collaborators from provider settings.

    Routing:
    - transcription "stub"   → StubTranscriptionEngine (sidecar JSON)
    - transcription "openai" → OpenAITranscriptionEngine
    - highlights "disabled"  → NullHighlightExtractor
    - highlights "openai"    → OpenAIHighlightExtractor
    - search_index "database" → DatabaseSearchIndex
    - search_index "memory"   → InMemorySearchIndex

    Raises:
        ValueError: On an unknown provider name or a missing API key.
    """
    from vidstage.services.content_store import LocalContentStore
    from vidstage.services.local_engines import (
        KeywordSafetyClassifier,
        LocalPlaylistEncoder,
        NullHighlightExtractor,
        PlaceholderThumbnailExtractor,
        StubTranscriptionEngine,
    )
    from vidstage.services.search_index import DatabaseSearchIndex, InMemorySearchIndex

    providers = settings.providers
    store = LocalContentStore(settings.storage.content_root)

    openai = None
    if "openai" in (providers.transcription, providers.highlights):
        if not providers.openai_api_key:
            raise ValueError("providers.openai_api_key is required for openai providers")
        from vidstage.services.openai_client import OpenAIClient

        openai = OpenAIClient(
            base_url=providers.openai_base_url,
            api_key=providers.openai_api_key,
            timeout=providers.request_timeout,
        )

    if providers.transcription == "stub":
        transcription = StubTranscriptionEngine(store)
    elif providers.transcription == "openai":
        from vidstage.services.openai_client import OpenAITranscriptionEngine

        transcription = OpenAITranscriptionEngine(
            openai, store, model=providers.openai_transcription_model
        )
    else:
        raise ValueError(f"Unknown transcription provider: {providers.transcription}")

    if providers.highlights == "disabled":
        highlights = NullHighlightExtractor()
    elif providers.highlights == "openai":
        from vidstage.services.openai_client import OpenAIHighlightExtractor

        highlights = OpenAIHighlightExtractor(openai, model=providers.openai_chat_model)
    else:
        raise ValueError(f"Unknown highlights provider: {providers.highlights}")

    if providers.search_index == "database":
        search_index = DatabaseSearchIndex(session_factory)
    elif providers.search_index == "memory":
        search_index = InMemorySearchIndex()
    else:
        raise ValueError(f"Unknown search index provider: {providers.search_index}")

    logger.debug(
        "Collaborators: transcription=%s highlights=%s search_index=%s",
        providers.transcription,
        providers.highlights,
        providers.search_index,
    )
    return Collaborators(
        store=store,
        transcription=transcription,
        safety=KeywordSafetyClassifier(),
        thumbnails=PlaceholderThumbnailExtractor(store),
        encoder=LocalPlaylistEncoder(store),
        highlights=highlights,
        search_index=search_index,
        openai=openai,
    )
