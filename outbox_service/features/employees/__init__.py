"""Employee-created notification producer."""

from outbox_service.features.employees.notifications import EmployeeNotificationService
from outbox_service.features.employees.schemas import (
    CreatedEmployee,
    EmployeeNotificationPayload,
    EmployeesCreatedBody,
)

__all__ = [
    "CreatedEmployee",
    "EmployeeNotificationPayload",
    "EmployeeNotificationService",
    "EmployeesCreatedBody",
]
