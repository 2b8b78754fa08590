"""Tests for the employee-created notification producer."""

from __future__ import annotations

import json
from datetime import date

import pytest

from outbox_service.core.settings import EmployeeNotificationSettings
from outbox_service.features.employees.notifications import EmployeeNotificationService
from outbox_service.features.employees.schemas import CreatedEmployee
from outbox_service.infra.outbox import OutboxEnqueuer, OutboxStatus
from tests.utils import fetch_all, make_settings

ACME_ENDPOINT = "https://acme.example.com/employees"
GLOBEX_ENDPOINT = "https://globex.example.com/hooks"


def _employee(employee_id: str, *, client_id: str | None = "C-1", endpoint: str | None = ACME_ENDPOINT):
    return CreatedEmployee(
        employee_id=employee_id,
        first_name="Grace",
        last_name="Hopper",
        email=f"{employee_id.lower()}@example.com",
        entry_date=date(2026, 2, 1),
        status="ACTIVE",
        client_id=client_id,
        client_name="Acme" if client_id else None,
        company_id="CO-9",
        notification_endpoint=endpoint,
    )


@pytest.fixture
def service(clock) -> EmployeeNotificationService:
    settings = EmployeeNotificationSettings(destination="crm", secret="hook-secret")
    enqueuer = OutboxEnqueuer(make_settings(), clock=clock)
    return EmployeeNotificationService(settings, enqueuer=enqueuer, clock=clock)


class TestPrepareEmployeesCreated:
    def test_groups_by_endpoint_in_first_seen_order(self, service) -> None:
        envelopes = service.prepare_employees_created(
            [
                _employee("E-1"),
                _employee("E-2", client_id="C-2", endpoint=GLOBEX_ENDPOINT),
                _employee("E-3"),
            ]
        )

        assert [e.body["endpoint"] for e in envelopes] == [ACME_ENDPOINT, GLOBEX_ENDPOINT]
        assert [emp["employeeId"] for emp in envelopes[0].body["employees"]] == ["E-1", "E-3"]
        assert [emp["employeeId"] for emp in envelopes[1].body["employees"]] == ["E-2"]

    def test_body_shape(self, service) -> None:
        [envelope] = service.prepare_employees_created([_employee("E-1")])

        assert envelope.body["eventType"] == "EMPLOYEE_CREATED"
        assert envelope.body["timestamp"] == "2026-01-15T12:00:00.000Z"
        assert envelope.secret == "hook-secret"
        assert envelope.body["employees"] == [
            {
                "employeeId": "E-1",
                "firstName": "Grace",
                "lastName": "Hopper",
                "email": "e-1@example.com",
                "clientId": "C-1",
                "clientName": "Acme",
                "companyId": "CO-9",
                "entryDate": "2026-02-01",
                "status": "ACTIVE",
            }
        ]

    def test_skips_employees_without_client_or_endpoint(self, service) -> None:
        envelopes = service.prepare_employees_created(
            [
                _employee("E-1", client_id=None),
                _employee("E-2", endpoint=None),
                _employee("E-3", endpoint="   "),
            ]
        )

        assert envelopes == []

    def test_no_secret_configured(self, clock) -> None:
        service = EmployeeNotificationService(
            EmployeeNotificationSettings(destination="crm"),
            enqueuer=OutboxEnqueuer(make_settings(), clock=clock),
            clock=clock,
        )

        [envelope] = service.prepare_employees_created([_employee("E-1")])

        assert envelope.secret is None


class TestNotifyEmployeesCreated:
    async def test_enqueues_one_record_per_endpoint(self, service, session_factory) -> None:
        async with session_factory() as session:
            count = await service.notify_employees_created(
                session,
                [_employee("E-1"), _employee("E-2", endpoint=GLOBEX_ENDPOINT)],
                tenant_id="tenant-1",
            )
            await session.commit()

        assert count == 2
        stored = await fetch_all(session_factory)
        assert len(stored) == 2
        assert {entry.destination_name for entry in stored} == {"crm"}
        assert {entry.tenant_id for entry in stored} == {"tenant-1"}
        assert all(entry.status == OutboxStatus.PENDING for entry in stored)
        endpoints = {json.loads(entry.payload)["body"]["endpoint"] for entry in stored}
        assert endpoints == {ACME_ENDPOINT, GLOBEX_ENDPOINT}

    async def test_nothing_to_notify(self, service, session_factory) -> None:
        async with session_factory() as session:
            assert await service.notify_employees_created(session, [_employee("E-1", client_id=None)]) == 0

        assert await fetch_all(session_factory) == []

    async def test_unconfigured_destination_skips_enqueue(self, clock, session_factory) -> None:
        service = EmployeeNotificationService(
            EmployeeNotificationSettings(),
            enqueuer=OutboxEnqueuer(make_settings(), clock=clock),
            clock=clock,
        )

        async with session_factory() as session:
            assert await service.notify_employees_created(session, [_employee("E-1")]) == 0
            await session.commit()

        assert await fetch_all(session_factory) == []

    async def test_rollback_discards_notifications(self, service, session_factory) -> None:
        async with session_factory() as session:
            await service.notify_employees_created(session, [_employee("E-1")])
            await session.rollback()

        assert await fetch_all(session_factory) == []
