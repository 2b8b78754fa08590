"""Database dependencies for FastAPI route handlers.

Route handlers use ``get_db_session()`` with ``Depends``; CLI commands and the
scheduler use ``get_async_session()`` from ``outbox_service.infra.database``
directly. Both draw from the same session factory.
"""

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession

from outbox_service.infra.database import get_async_session


async def get_db_session() -> AsyncGenerator[AsyncSession]:
    """FastAPI dependency for database session.

    Yields:
        Database session that is automatically closed after request.
    """
    async with get_async_session() as session:
        yield session
