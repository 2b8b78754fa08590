"""Shared test helpers for outbox tests."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import httpx
from sqlalchemy import select

from outbox_service.core.settings import OutboxSettings
from outbox_service.infra.metrics.prometheus import REGISTRY
from outbox_service.infra.outbox import (
    DeadLetterEntry,
    NotificationEnvelope,
    OutboxEnqueuer,
    OutboxEntry,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

START = datetime(2026, 1, 15, 12, 0, tzinfo=UTC)

EVENT_TYPE = "EMPLOYEE_CREATED"
CRM_URL = "https://crm.example.com/hooks/employees"
CRM_SECRET = "s3cret"


def make_settings(**overrides: Any) -> OutboxSettings:
    """Outbox settings tuned for tests.

    One-second base backoff, no enqueue retry delay, a breaker that does not
    trip unless a test lowers its threshold, and one destination named
    ``crm`` signed with ``CRM_SECRET``.
    """
    values: dict[str, Any] = {
        "retry_base_delay_seconds": 1.0,
        "max_attempts": 5,
        "claim_ttl_seconds": 60.0,
        "batch_size": 20,
        "dispatcher_workers": 4,
        "worker_id": "worker-a",
        "enqueue_max_attempts": 3,
        "enqueue_retry_delay_seconds": 0.0,
        "breaker_failure_threshold": 100,
        "destinations": {"crm": {"url": CRM_URL, "secret": CRM_SECRET}},
    }
    values.update(overrides)
    return OutboxSettings(**values)


class FakeDestination:
    """Callable for ``httpx.MockTransport`` recording every request.

    Answers with ``status_code`` or raises ``error`` when set. ``statuses``
    takes precedence and is consumed one response per request.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.status_code = 200
        self.statuses: list[int] = []
        self.error: Exception | None = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        status_code = self.statuses.pop(0) if self.statuses else self.status_code
        return httpx.Response(status_code, json={"accepted": status_code < 300})

    @property
    def correlation_ids(self) -> list[str]:
        return [request.headers.get("x-correlation-id", "") for request in self.requests]


def employee_envelope(employee_id: str = "E-1", **extra: Any) -> NotificationEnvelope:
    body = {
        "eventType": EVENT_TYPE,
        "endpoint": CRM_URL,
        "employees": [{"employeeId": employee_id, "firstName": "Ada", "lastName": "Lovelace"}],
        "timestamp": "2026-01-15T12:00:00.000Z",
    }
    return NotificationEnvelope(body=body, **extra)


async def seed(
    session_factory: async_sessionmaker[AsyncSession],
    enqueuer: OutboxEnqueuer,
    *,
    count: int = 1,
    destination_name: str = "crm",
    tenant_id: str | None = None,
) -> list[OutboxEntry]:
    """Enqueue and commit ``count`` notifications."""
    entries = []
    async with session_factory() as session:
        for index in range(count):
            entries.append(
                await enqueuer.enqueue(
                    session,
                    EVENT_TYPE,
                    destination_name,
                    employee_envelope(f"E-{index}"),
                    tenant_id=tenant_id,
                )
            )
        await session.commit()
    return entries


async def fetch_all(session_factory: async_sessionmaker[AsyncSession]) -> list[OutboxEntry]:
    async with session_factory() as session:
        result = await session.execute(select(OutboxEntry).order_by(OutboxEntry.id))
        return list(result.scalars().all())


async def fetch_dead_letters(
    session_factory: async_sessionmaker[AsyncSession],
) -> list[DeadLetterEntry]:
    async with session_factory() as session:
        result = await session.execute(select(DeadLetterEntry).order_by(DeadLetterEntry.failed_at))
        return list(result.scalars().all())


def sample(name: str, **labels: str) -> float:
    """Current value of a metric sample on the service registry (0 when absent)."""
    return REGISTRY.get_sample_value(name, labels) or 0.0
