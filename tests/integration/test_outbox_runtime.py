"""Tests for the shared outbox runtime wiring."""

from __future__ import annotations

from outbox_service.infra.outbox import OutboxStatus
from outbox_service.infra.outbox.runtime import build_outbox_runtime
from tests.utils import fetch_all, make_settings, seed


class TestOutboxRuntime:
    async def test_dispatcher_uses_the_runtime_breakers(
        self, session_factory, http_client, clock
    ) -> None:
        runtime = build_outbox_runtime(
            settings=make_settings(),
            session_factory=session_factory,
            clock=clock,
            http_client=http_client,
        )

        assert len(runtime.breakers) == 0
        assert runtime.dispatcher.breakers is runtime.breakers

    async def test_dispatch_registers_destination_breaker(
        self, session_factory, http_client, clock, enqueuer, destination
    ) -> None:
        await seed(session_factory, enqueuer)
        runtime = build_outbox_runtime(
            settings=make_settings(),
            session_factory=session_factory,
            clock=clock,
            http_client=http_client,
        )

        report = await runtime.dispatcher.dispatch_pending()

        assert report.completed == 1
        assert "crm" in runtime.breakers
        assert "crm" in runtime.breakers.get_metrics()
        [stored] = await fetch_all(session_factory)
        assert stored.status == OutboxStatus.COMPLETED
        assert len(destination.requests) == 1
