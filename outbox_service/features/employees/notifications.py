"""Employee-created notifications for third-party systems.

Created employees are grouped by their client's notification endpoint and one
outbox record is enqueued per endpoint, inside the transaction that created
the employees.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from outbox_service.core.clock import SystemClock
from outbox_service.core.settings import get_employee_notification_settings
from outbox_service.features.employees.schemas import (
    EmployeeNotificationPayload,
    EmployeesCreatedBody,
)
from outbox_service.infra.outbox.enqueue import OutboxEnqueuer
from outbox_service.infra.outbox.envelope import NotificationEnvelope

if TYPE_CHECKING:
    from collections.abc import Iterable

    from sqlalchemy.ext.asyncio import AsyncSession

    from outbox_service.core.clock import Clock
    from outbox_service.core.settings import EmployeeNotificationSettings
    from outbox_service.features.employees.schemas import CreatedEmployee

logger = logging.getLogger(__name__)


class EmployeeNotificationService:
    """Prepares and enqueues ``EMPLOYEE_CREATED`` notifications."""

    def __init__(
        self,
        settings: EmployeeNotificationSettings | None = None,
        *,
        enqueuer: OutboxEnqueuer | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.settings = settings or get_employee_notification_settings()
        self.clock = clock or SystemClock()
        self.enqueuer = enqueuer or OutboxEnqueuer(clock=self.clock)

    def prepare_employees_created(
        self, employees: Iterable[CreatedEmployee]
    ) -> list[NotificationEnvelope]:
        """Build one envelope per client notification endpoint.

        Employees without a client, or whose client has no endpoint, are
        skipped. Endpoints keep the order in which they were first seen.
        """
        grouped: dict[str, list[EmployeeNotificationPayload]] = {}
        for employee in employees:
            if not employee.client_id:
                logger.warning(
                    "Client not found for employee, skipping notification",
                    extra={"employee_id": employee.employee_id},
                )
                continue
            endpoint = (employee.notification_endpoint or "").strip()
            if not endpoint:
                continue
            grouped.setdefault(endpoint, []).append(
                EmployeeNotificationPayload.from_employee(employee)
            )

        timestamp = self.clock.now().isoformat(timespec="milliseconds").replace("+00:00", "Z")
        secret = self.settings.secret.get_secret_value() if self.settings.secret else None

        envelopes = []
        for endpoint, payloads in grouped.items():
            body = EmployeesCreatedBody(
                event_type=self.settings.event_type,
                endpoint=endpoint,
                employees=payloads,
                timestamp=timestamp,
            )
            envelopes.append(
                NotificationEnvelope(body=body.model_dump(mode="json", by_alias=True), secret=secret)
            )
        return envelopes

    async def notify_employees_created(
        self,
        session: AsyncSession,
        employees: Iterable[CreatedEmployee],
        *,
        tenant_id: str | None = None,
    ) -> int:
        """Enqueue notifications for ``employees`` in the caller's transaction.

        Returns:
            Number of outbox records enqueued.

        Raises:
            Exception: Enqueue failures propagate so the employee creation
                rolls back with them.
        """
        envelopes = self.prepare_employees_created(employees)
        if not envelopes:
            return 0

        if not self.settings.is_configured:
            logger.warning(
                "THIRD_PARTY_EMPLOYEE_DESTINATION not configured, skipping notification enqueue",
                extra={"endpoints": len(envelopes)},
            )
            return 0

        destination = (self.settings.destination or "").strip()
        for envelope in envelopes:
            await self.enqueuer.enqueue(
                session,
                self.settings.event_type,
                destination,
                envelope,
                tenant_id=tenant_id,
            )
            logger.info(
                "Enqueued employee notifications to outbox",
                extra={
                    "endpoint": envelope.body["endpoint"],
                    "employee_count": len(envelope.body["employees"]),
                },
            )
        return len(envelopes)


__all__ = ["EmployeeNotificationService"]
