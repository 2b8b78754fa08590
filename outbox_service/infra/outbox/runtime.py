"""Wiring of the outbox components shared by the HTTP app and the CLI."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from outbox_service.core.clock import SystemClock
from outbox_service.core.settings import get_outbox_settings
from outbox_service.infra.database import get_sessionmaker
from outbox_service.infra.outbox.cleanup import OutboxCleanup
from outbox_service.infra.outbox.destinations import SettingsDestinationResolver
from outbox_service.infra.outbox.dispatcher import OutboxDispatcher
from outbox_service.infra.outbox.notifier import DestinationNotifier
from outbox_service.infra.outbox.scheduler import OutboxScheduler
from outbox_service.infra.resilience import CircuitBreakerRegistry

if TYPE_CHECKING:
    import httpx
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from outbox_service.core.clock import Clock
    from outbox_service.core.settings import OutboxSettings
    from outbox_service.infra.outbox.destinations import DestinationResolver

logger = logging.getLogger(__name__)

# Global runtime instance
_runtime: OutboxRuntime | None = None


@dataclass
class OutboxRuntime:
    settings: OutboxSettings
    session_factory: async_sessionmaker[AsyncSession]
    breakers: CircuitBreakerRegistry
    notifier: DestinationNotifier
    dispatcher: OutboxDispatcher
    cleanup: OutboxCleanup
    scheduler: OutboxScheduler

    async def aclose(self) -> None:
        await self.scheduler.stop()
        await self.notifier.aclose()


def build_outbox_runtime(
    *,
    settings: OutboxSettings | None = None,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    resolver: DestinationResolver | None = None,
    clock: Clock | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> OutboxRuntime:
    """Assemble dispatcher, cleanup and scheduler around one notifier and breaker registry."""
    settings = settings or get_outbox_settings()
    session_factory = session_factory or get_sessionmaker()
    clock = clock or SystemClock()

    resolver = resolver or SettingsDestinationResolver(settings.destinations)
    notifier = DestinationNotifier(
        resolver,
        timeout_seconds=settings.request_timeout_seconds,
        client=http_client,
    )
    breakers = CircuitBreakerRegistry(settings, clock=clock)
    dispatcher = OutboxDispatcher(
        session_factory,
        notifier,
        settings=settings,
        breakers=breakers,
        clock=clock,
    )
    cleanup = OutboxCleanup(session_factory, settings=settings, clock=clock)
    scheduler = OutboxScheduler(dispatcher, cleanup, settings=settings)

    return OutboxRuntime(
        settings=settings,
        session_factory=session_factory,
        breakers=breakers,
        notifier=notifier,
        dispatcher=dispatcher,
        cleanup=cleanup,
        scheduler=scheduler,
    )


def get_outbox_runtime() -> OutboxRuntime:
    """Get the global runtime, building it on first use."""
    global _runtime
    if _runtime is None:
        _runtime = build_outbox_runtime()
        logger.debug(
            "Outbox runtime created",
            extra={"worker_id": _runtime.dispatcher.worker_id, "workers": _runtime.dispatcher.workers},
        )
    return _runtime


def set_outbox_runtime(runtime: OutboxRuntime | None) -> None:
    global _runtime
    _runtime = runtime


async def close_outbox_runtime() -> None:
    """Stop the global runtime's scheduler and release its HTTP client."""
    global _runtime
    if _runtime is not None:
        await _runtime.aclose()
        _runtime = None


__all__ = [
    "OutboxRuntime",
    "build_outbox_runtime",
    "close_outbox_runtime",
    "get_outbox_runtime",
    "set_outbox_runtime",
]
