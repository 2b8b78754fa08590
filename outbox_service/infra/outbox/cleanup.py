"""Retention sweep for terminal outbox records."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import TYPE_CHECKING

from outbox_service.core.clock import SystemClock
from outbox_service.core.settings import get_outbox_settings
from outbox_service.infra.metrics.tracking import track_outbox_cleanup
from outbox_service.infra.outbox.repository import OutboxRepository

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from outbox_service.core.clock import Clock
    from outbox_service.core.settings import OutboxSettings

logger = logging.getLogger(__name__)


class OutboxCleanup:
    """Deletes COMPLETED and FAILED records older than the retention window.

    PENDING and PROCESSING records are never touched, however old. A
    retention of zero or less disables the sweep.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        settings: OutboxSettings | None = None,
        clock: Clock | None = None,
        repository: OutboxRepository | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.settings = settings or get_outbox_settings()
        self.clock = clock or SystemClock()
        self.repository = repository or OutboxRepository()

    @property
    def enabled(self) -> bool:
        return self.settings.cleanup_enabled

    async def run(self) -> int:
        """Delete expired terminal records.

        Returns:
            Number of records deleted (0 when cleanup is disabled).
        """
        if not self.enabled:
            logger.debug("Outbox cleanup disabled, skipping")
            return 0

        retention = timedelta(seconds=self.settings.cleanup_retention_seconds)
        cutoff = self.clock.now() - retention

        async with self.session_factory() as session:
            deleted = await self.repository.delete_terminal_before(session, cutoff=cutoff)
            await session.commit()

        track_outbox_cleanup(deleted)
        logger.info(
            "Outbox cleanup finished",
            extra={"deleted": deleted, "cutoff": cutoff.isoformat()},
        )
        return deleted


__all__ = ["OutboxCleanup"]
