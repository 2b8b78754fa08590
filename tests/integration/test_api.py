"""End-to-end tests for the HTTP surface.

The app runs its real lifespan against a SQLite file; outbound notifications
go to the scripted destination.
"""

from __future__ import annotations

import json
import uuid
from typing import TYPE_CHECKING

import httpx
import pytest

from outbox_service.app.main import create_app
from outbox_service.infra.database import close_database, get_sessionmaker
from outbox_service.infra.outbox import DeadLetterEntry, OutboxEnqueuer
from outbox_service.infra.outbox.runtime import build_outbox_runtime, set_outbox_runtime
from tests.utils import CRM_SECRET, CRM_URL, EVENT_TYPE, START, employee_envelope

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

PREFIX = "/api/v1/outbox"


@pytest.fixture
async def client(tmp_path, monkeypatch, http_client) -> AsyncGenerator[httpx.AsyncClient]:
    monkeypatch.setenv("DB_DSN", f"sqlite+aiosqlite:///{tmp_path / 'api.db'}")
    monkeypatch.setenv("DB_CREATE_TABLES", "true")
    monkeypatch.setenv("OUTBOX_SCHEDULER_ENABLED", "false")
    monkeypatch.setenv("OUTBOX_WORKER_ID", "api-worker")
    monkeypatch.setenv(
        "OUTBOX_DESTINATIONS", json.dumps({"crm": {"url": CRM_URL, "secret": CRM_SECRET}})
    )

    set_outbox_runtime(build_outbox_runtime(http_client=http_client))
    app = create_app()
    try:
        async with app.router.lifespan_context(app):
            transport = httpx.ASGITransport(app=app)
            async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
                yield ac
    finally:
        set_outbox_runtime(None)
        await close_database()


async def _enqueue(count: int = 1) -> None:
    enqueuer = OutboxEnqueuer()
    async with get_sessionmaker()() as session:
        for index in range(count):
            await enqueuer.enqueue(session, EVENT_TYPE, "crm", employee_envelope(f"E-{index}"))
        await session.commit()


async def _add_dead_letter(destination_name: str = "crm") -> None:
    async with get_sessionmaker()() as session:
        session.add(
            DeadLetterEntry(
                original_id=uuid.uuid4(),
                event_type=EVENT_TYPE,
                destination_name=destination_name,
                payload=employee_envelope().serialize(),
                attempts=5,
                last_error="NotificationDeliveryError: HTTP 500",
                failed_at=START,
            )
        )
        await session.commit()


class TestHealth:
    async def test_healthy_with_scheduler_disabled(self, client) -> None:
        response = await client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["checks"] == {"database": True, "scheduler": False}


class TestMetrics:
    async def test_exposes_outbox_metrics(self, client) -> None:
        response = await client.get("/metrics")

        assert response.status_code == 200
        assert "outbox_pending" in response.text


class TestOutboxApi:
    async def test_stats(self, client) -> None:
        await _enqueue(2)
        await _add_dead_letter()

        response = await client.get(f"{PREFIX}/stats")

        assert response.status_code == 200
        body = response.json()
        assert body["pending"] == 2
        assert body["processing"] == 0
        assert body["dead_letters"] == 1

    async def test_dispatch_delivers_pending(self, client, destination) -> None:
        await _enqueue(3)

        response = await client.post(f"{PREFIX}/dispatch")

        assert response.status_code == 200
        body = response.json()
        assert body["claimed"] == 3
        assert body["completed"] == 3
        assert body["pending"] == 0
        assert len(destination.requests) == 3

        stats = (await client.get(f"{PREFIX}/stats")).json()
        assert stats["completed"] == 3
        assert "crm" in stats["circuit_breakers"]
        assert stats["circuit_breakers"]["crm"]["state"] == "closed"

    async def test_dead_letters(self, client) -> None:
        await _add_dead_letter("crm")
        await _add_dead_letter("payroll")

        everything = (await client.get(f"{PREFIX}/dead-letters")).json()
        filtered = (await client.get(f"{PREFIX}/dead-letters", params={"destination": "payroll"})).json()

        assert everything["total"] == 2
        assert len(everything["items"]) == 2
        assert [item["destination_name"] for item in filtered["items"]] == ["payroll"]
        assert filtered["items"][0]["attempts"] == 5

    async def test_invalid_limit_is_a_problem_response(self, client) -> None:
        response = await client.get(f"{PREFIX}/dead-letters", params={"limit": 0})

        assert response.status_code == 422
        assert response.headers["content-type"] == "application/problem+json"
        body = response.json()
        assert body["status"] == 422
        assert body["errors"][0]["field"] == "query.limit"
