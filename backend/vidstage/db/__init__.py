"""
Database module for vidstage.

Provides the async SQLAlchemy engine with SQLite WAL mode,
session factories, and schema initialization.
"""
import logging

from sqlalchemy.ext.asyncio import AsyncEngine

from vidstage.db.engine import create_engine, create_session_factory
from vidstage.db.models import (
    Base,
    ModerationResult,
    ProcessingJob,
    SearchDocumentRow,
    TranscriptSegment,
    VideoAsset,
    VideoHighlight,
    VideoSummary,
    VideoVariant,
)

logger = logging.getLogger(__name__)


async def init_database(engine: AsyncEngine) -> None:
    """Create all tables that do not exist yet."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database schema initialized")


__all__ = [
    "Base",
    "create_engine",
    "create_session_factory",
    "init_database",
    "ModerationResult",
    "ProcessingJob",
    "SearchDocumentRow",
    "TranscriptSegment",
    "VideoAsset",
    "VideoHighlight",
    "VideoSummary",
    "VideoVariant",
]
