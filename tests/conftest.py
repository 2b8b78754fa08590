"""Pytest configuration and shared fixtures.

Organization:
    - Settings Fixtures: outbox settings factory and cache isolation
    - Time Fixtures: frozen clock shared by every component under test
    - Database Fixtures: file-backed SQLite engine, session factory and session
    - HTTP Fixtures: scripted destination behind ``httpx.MockTransport``
    - Outbox Fixtures: dispatcher and enqueuer factories wired to the above

A file database (not ``:memory:``) is used so that several sessions, as used
by concurrent dispatch workers, see the same data.
"""

from __future__ import annotations

import os
from typing import TYPE_CHECKING, Any

import httpx
import pytest

from outbox_service.core.clock import FrozenClock
from outbox_service.core.settings import PostgresSettings, clear_all_caches
from outbox_service.infra.database import build_engine, build_sessionmaker, ensure_tables
from outbox_service.infra.outbox import (
    DestinationNotifier,
    OutboxDispatcher,
    OutboxEnqueuer,
    SettingsDestinationResolver,
)
from outbox_service.infra.resilience import CircuitBreakerRegistry
from tests.utils import START, FakeDestination, make_settings

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, Callable, Iterator

    from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

    from outbox_service.core.settings import OutboxSettings

# Ensure tests run without external infrastructure
os.environ.setdefault("LOG_CONSOLE_ENABLED", "false")
os.environ.setdefault("LOG_USE_QUEUE", "false")


# ============================================================================
# Settings Fixtures
# ============================================================================


@pytest.fixture(autouse=True)
def _isolate_settings() -> Iterator[None]:
    """Drop cached settings so environment changes made by a test are seen."""
    clear_all_caches()
    yield
    clear_all_caches()


@pytest.fixture
def outbox_settings() -> OutboxSettings:
    """Outbox settings with short delays and one signed destination (``crm``)."""
    return make_settings()


# ============================================================================
# Time Fixtures
# ============================================================================


@pytest.fixture
def clock() -> FrozenClock:
    """Frozen clock starting at ``tests.utils.START``.

    Example:
        async def test_backoff(clock, build_dispatcher):
            clock.advance(seconds=2)
    """
    return FrozenClock(START)


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture
async def db_engine(tmp_path) -> AsyncGenerator[AsyncEngine]:
    """Async engine on a fresh SQLite file with the outbox tables created."""
    settings = PostgresSettings(dsn=f"sqlite+aiosqlite:///{tmp_path / 'outbox.db'}")
    engine = build_engine(settings)
    await ensure_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return build_sessionmaker(db_engine)


@pytest.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession]:
    async with session_factory() as session:
        yield session


# ============================================================================
# HTTP Fixtures
# ============================================================================


@pytest.fixture
def destination() -> FakeDestination:
    """Scripted receiving endpoint; answers 200 until told otherwise."""
    return FakeDestination()


@pytest.fixture
async def http_client(destination: FakeDestination) -> AsyncGenerator[httpx.AsyncClient]:
    async with httpx.AsyncClient(transport=httpx.MockTransport(destination)) as client:
        yield client


# ============================================================================
# Outbox Fixtures
# ============================================================================


@pytest.fixture
def build_dispatcher(
    session_factory: async_sessionmaker[AsyncSession],
    http_client: httpx.AsyncClient,
    clock: FrozenClock,
) -> Callable[..., OutboxDispatcher]:
    """Factory for dispatchers sharing the test database, clock and destination.

    Example:
        dispatcher = build_dispatcher(make_settings(max_attempts=2), worker_id="w1")
    """

    def _build(
        settings: OutboxSettings | None = None,
        *,
        worker_id: str | None = None,
        breakers: CircuitBreakerRegistry | None = None,
        **kwargs: Any,
    ) -> OutboxDispatcher:
        settings = settings or make_settings()
        if breakers is None:
            breakers = CircuitBreakerRegistry(settings, clock=clock)
        notifier = DestinationNotifier(
            SettingsDestinationResolver(settings.destinations),
            client=http_client,
        )
        return OutboxDispatcher(
            session_factory,
            notifier,
            settings=settings,
            breakers=breakers,
            clock=clock,
            worker_id=worker_id,
            **kwargs,
        )

    return _build


@pytest.fixture
def enqueuer(outbox_settings: OutboxSettings, clock: FrozenClock) -> OutboxEnqueuer:
    return OutboxEnqueuer(outbox_settings, clock=clock)
