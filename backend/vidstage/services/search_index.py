"""Search index implementations.

DatabaseSearchIndex keeps documents in the ``search_documents`` table of the
pipeline database. InMemorySearchIndex is a dict keyed by document id, used by
tests and the ``memory`` provider.
"""

import logging
import uuid
from typing import Sequence

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from vidstage.db.models import SearchDocumentRow
from vidstage.schemas.collaborators import SearchDocument
from vidstage.services.base import SearchIndex

logger = logging.getLogger(__name__)


class DatabaseSearchIndex(SearchIndex):
    """Search index stored in the pipeline database."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def delete_by_video(self, video_id: uuid.UUID) -> None:
        async with self._session_factory() as session:
            result = await session.execute(
                delete(SearchDocumentRow).where(SearchDocumentRow.video_id == video_id)
            )
            await session.commit()
            logger.debug(f"Deleted {result.rowcount} search documents for video {video_id}")

    async def index_batch(self, documents: Sequence[SearchDocument]) -> None:
        async with self._session_factory() as session:
            for doc in documents:
                # merge() upserts on the primary key
                await session.merge(SearchDocumentRow(**doc.model_dump()))
            await session.commit()
        logger.info(f"Indexed {len(documents)} search documents")


class InMemorySearchIndex(SearchIndex):
    """Process-local search index."""

    def __init__(self):
        self.documents: dict[str, SearchDocument] = {}

    async def delete_by_video(self, video_id: uuid.UUID) -> None:
        self.documents = {
            doc_id: doc for doc_id, doc in self.documents.items() if doc.video_id != video_id
        }

    async def index_batch(self, documents: Sequence[SearchDocument]) -> None:
        for doc in documents:
            self.documents[doc.id] = doc

    def for_video(self, video_id: uuid.UUID) -> list[SearchDocument]:
        """Return documents indexed for video_id, ordered by start time."""
        docs = [d for d in self.documents.values() if d.video_id == video_id]
        return sorted(docs, key=lambda d: d.start_ms)
