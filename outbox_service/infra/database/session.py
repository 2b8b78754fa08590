"""Database session management with psycopg3 async driver.

The engine and session factory are created lazily on first use so that
importing the package never opens a pool (the CLI and the tests configure the
database URL before touching the engine).
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from outbox_service.core.database import Base
from outbox_service.core.settings import get_db_settings

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from outbox_service.core.settings import PostgresSettings

logger = logging.getLogger(__name__)

_engine: AsyncEngine | None = None
_sessionmaker: async_sessionmaker[AsyncSession] | None = None


def enable_sqlite_savepoints(engine: AsyncEngine) -> None:
    """Let pysqlite emit BEGIN itself so SAVEPOINT works under aiosqlite.

    The driver's own transaction handling breaks ``begin_nested()``; this is
    the workaround documented for the SQLite dialect.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _do_connect(dbapi_connection: Any, connection_record: Any) -> None:
        _ = connection_record
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _do_begin(conn: Any) -> None:
        conn.exec_driver_sql("BEGIN")


def build_engine(settings: PostgresSettings | None = None) -> AsyncEngine:
    """Create an async engine from database settings."""
    db_settings = settings or get_db_settings()
    engine = create_async_engine(db_settings.url, **db_settings.sqlalchemy_engine_kwargs())
    if db_settings.is_sqlite:
        enable_sqlite_savepoints(engine)
    return engine


def build_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


def get_engine() -> AsyncEngine:
    global _engine
    if _engine is None:
        _engine = build_engine()
    return _engine


def get_sessionmaker() -> async_sessionmaker[AsyncSession]:
    global _sessionmaker
    if _sessionmaker is None:
        _sessionmaker = build_sessionmaker(get_engine())
    return _sessionmaker


@asynccontextmanager
async def get_async_session() -> AsyncGenerator[AsyncSession]:
    """Get async database session.

    Yields:
        Database session that is automatically closed.

    Example:
            async with get_async_session() as session:
                stats = await repository.stats(session)
    """
    async with get_sessionmaker()() as session:
        try:
            yield session
        finally:
            await session.close()


async def ensure_tables(engine: AsyncEngine | None = None) -> None:
    """Create the outbox tables if migrations haven't run yet.

    Idempotent thanks to SQLAlchemy's ``checkfirst`` guard.
    """
    # Registers the outbox tables on Base.metadata
    from outbox_service.infra.outbox import models  # noqa: F401

    target = engine or get_engine()
    async with target.begin() as conn:
        await conn.run_sync(lambda sync_conn: Base.metadata.create_all(sync_conn, checkfirst=True))


async def init_database(*, create_tables: bool | None = None) -> None:
    """Verify connectivity and optionally bootstrap the schema.

    Raises:
        sqlalchemy.exc.DBAPIError: If the database cannot be reached.
    """
    db_settings = get_db_settings()
    should_create = db_settings.create_tables if create_tables is None else create_tables
    engine = get_engine()

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        if should_create:
            await ensure_tables(engine)
    except Exception as e:
        logger.error(
            "Failed to connect to database",
            extra={"url": engine.url.render_as_string(hide_password=True), "error": str(e)},
        )
        raise

    logger.info(
        "Database connection established successfully",
        extra={
            "url": engine.url.render_as_string(hide_password=True),
            "tables_ensured": should_create,
        },
    )


async def close_database() -> None:
    """Dispose the engine and forget the session factory.

    This should be called during application shutdown.
    """
    global _engine, _sessionmaker
    if _engine is None:
        return

    logger.info("Closing database connection")
    try:
        await _engine.dispose()
        logger.info("Database connection closed successfully")
    finally:
        _engine = None
        _sessionmaker = None


__all__ = [
    "build_engine",
    "build_sessionmaker",
    "close_database",
    "enable_sqlite_savepoints",
    "ensure_tables",
    "get_async_session",
    "get_engine",
    "get_sessionmaker",
    "init_database",
]
