"""Database infrastructure: lazily created async engine and session factory.

Example:
    from outbox_service.infra.database import get_async_session

    async with get_async_session() as session:
        result = await session.execute(...)
"""

from .session import (
    build_engine,
    build_sessionmaker,
    close_database,
    enable_sqlite_savepoints,
    ensure_tables,
    get_async_session,
    get_engine,
    get_sessionmaker,
    init_database,
)

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
