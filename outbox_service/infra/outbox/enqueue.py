"""Enqueue notifications inside the caller's business transaction.

The outbox row becomes durable only when the caller commits. Each insert
attempt runs in a SAVEPOINT so a failed write leaves the enclosing
transaction usable for the next attempt; once attempts are exhausted the last
error propagates so the caller rolls back its business change too.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from outbox_service.core.clock import SystemClock
from outbox_service.core.settings import get_outbox_settings
from outbox_service.infra.metrics.tracking import track_outbox_enqueued
from outbox_service.infra.outbox.repository import OutboxRepository

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from outbox_service.core.clock import Clock
    from outbox_service.core.settings import OutboxSettings
    from outbox_service.infra.outbox.envelope import NotificationEnvelope
    from outbox_service.infra.outbox.models import OutboxEntry

logger = logging.getLogger(__name__)


def is_transient_write_error(exc: BaseException) -> bool:
    """Whether a failed insert is worth retrying."""
    if isinstance(exc, OperationalError | PoolTimeoutError | TimeoutError):
        return True
    return isinstance(exc, DBAPIError) and exc.connection_invalidated


class OutboxEnqueuer:
    """Writes PENDING outbox records with bounded retry on transient failures."""

    def __init__(
        self,
        settings: OutboxSettings | None = None,
        *,
        clock: Clock | None = None,
        repository: OutboxRepository | None = None,
    ) -> None:
        self.settings = settings or get_outbox_settings()
        self.clock = clock or SystemClock()
        self.repository = repository or OutboxRepository()

    async def enqueue(
        self,
        session: AsyncSession,
        event_type: str,
        destination_name: str,
        envelope: NotificationEnvelope,
        *,
        tenant_id: str | None = None,
    ) -> OutboxEntry:
        """Add one notification to the outbox within ``session``'s transaction.

        Returns:
            The flushed (not committed) outbox entry.

        Raises:
            Exception: A non-transient write error immediately, or the last
                transient error once ``enqueue_max_attempts`` is exhausted.
        """
        payload = envelope.serialize()
        max_attempts = self.settings.enqueue_max_attempts
        base_delay = self.settings.enqueue_retry_delay_seconds

        attempt = 1
        while True:
            try:
                async with session.begin_nested():
                    entry = await self.repository.insert(
                        session,
                        event_type=event_type,
                        destination_name=destination_name,
                        payload=payload,
                        now=self.clock.now(),
                        tenant_id=tenant_id,
                    )
            except Exception as e:
                if not is_transient_write_error(e) or attempt >= max_attempts:
                    logger.error(
                        "Failed to enqueue outbox record",
                        extra={
                            "event_type": event_type,
                            "destination": destination_name,
                            "attempt": attempt,
                            "max_attempts": max_attempts,
                            "error": str(e),
                        },
                    )
                    raise

                delay = base_delay * (2 ** (attempt - 1))
                logger.warning(
                    "Transient failure enqueueing outbox record, retrying",
                    extra={
                        "event_type": event_type,
                        "destination": destination_name,
                        "attempt": attempt,
                        "max_attempts": max_attempts,
                        "retry_in_seconds": delay,
                        "error": str(e),
                    },
                )
                if delay > 0:
                    await asyncio.sleep(delay)
                attempt += 1
                continue

            track_outbox_enqueued(event_type, destination_name, after_retry=attempt > 1)
            logger.debug(
                "Outbox record enqueued",
                extra={
                    "outbox_id": str(entry.id),
                    "event_type": event_type,
                    "destination": destination_name,
                    "attempt": attempt,
                },
            )
            return entry


async def enqueue(
    session: AsyncSession,
    event_type: str,
    destination_name: str,
    envelope: NotificationEnvelope,
    *,
    tenant_id: str | None = None,
) -> OutboxEntry:
    """Enqueue with the process-wide settings and the system clock."""
    return await OutboxEnqueuer().enqueue(
        session, event_type, destination_name, envelope, tenant_id=tenant_id
    )


__all__ = ["OutboxEnqueuer", "enqueue", "is_transient_write_error"]
