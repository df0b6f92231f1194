"""
Database engine configuration for vidstage.

Provides async SQLAlchemy engine with SQLite WAL mode,
crash-safe PRAGMA configuration, and session management.
"""
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)


def configure_sqlite_pragmas(dbapi_conn, connection_record):
    """
    Configure SQLite PRAGMA settings for crash safety and concurrency.

    - WAL mode: concurrent readers while a stage handler writes
    - FULL synchronous: ledger rows survive a crash
    - Foreign keys: referential integrity between assets and ledger rows
    - Busy timeout: wait up to 5s for locks held by sibling handlers
    """
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA synchronous=FULL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute("PRAGMA busy_timeout=5000")
    cursor.close()


def create_engine(database_url: str) -> AsyncEngine:
    """Create an async engine, registering PRAGMAs for SQLite URLs."""
    engine = create_async_engine(database_url, echo=False)

    if database_url.startswith("sqlite"):
        # CRITICAL: Use engine.sync_engine for aiosqlite compatibility
        event.listens_for(engine.sync_engine, "connect")(configure_sqlite_pragmas)

    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create a session factory bound to engine.

    expire_on_commit=False keeps loaded rows usable after commit without
    implicit lazy refreshes (which fail outside a greenlet).
    """
    return async_sessionmaker(
        engine,
        expire_on_commit=False,
        class_=AsyncSession,
    )
