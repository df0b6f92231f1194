"""Explicit handles passed to every handler invocation."""

from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from vidstage.config import Settings
from vidstage.db import create_engine, create_session_factory, init_database
from vidstage.orchestrator.queue import JobQueue
from vidstage.services.registry import Collaborators, build_collaborators


@dataclass
class PipelineContext:
    session_factory: async_sessionmaker[AsyncSession]
    queue: JobQueue
    collaborators: Collaborators
    settings: Settings


@asynccontextmanager
async def open_pipeline(settings: Settings) -> AsyncIterator[PipelineContext]:
    """Create the database, collaborators and queue for one process.

    Everything is torn down on exit: delayed jobs are dropped, HTTP clients
    closed and the engine disposed.
    """
    engine = create_engine(settings.storage.database_url)
    await init_database(engine)
    session_factory = create_session_factory(engine)
    collaborators = build_collaborators(settings, session_factory)
    ctx = PipelineContext(
        session_factory=session_factory,
        queue=JobQueue(settings.pipeline.queue_max_size),
        collaborators=collaborators,
        settings=settings,
    )
    try:
        yield ctx
    finally:
        await ctx.queue.close()
        await collaborators.aclose()
        await engine.dispose()
