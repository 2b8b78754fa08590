"""Pydantic schemas for employee-created notifications."""

from __future__ import annotations

from datetime import date

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CreatedEmployee(BaseModel):
    """An employee row just created by the business transaction, joined with its client."""

    employee_id: str = Field(..., min_length=1, max_length=100)
    first_name: str = Field(..., max_length=200)
    last_name: str = Field(..., max_length=200)
    email: str = Field(..., max_length=320)
    entry_date: date
    status: str | None = None

    client_id: str | None = Field(default=None, description="Owning client; employees without one are skipped")
    client_name: str | None = None
    company_id: str | None = None
    notification_endpoint: str | None = Field(
        default=None,
        description="Client's third-party endpoint; employees are grouped by it",
    )


class EmployeeNotificationPayload(BaseModel):
    """One employee as sent to the third party (camelCase on the wire)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    employee_id: str
    first_name: str
    last_name: str
    email: str
    client_id: str
    client_name: str | None = None
    company_id: str | None = None
    entry_date: date
    status: str | None = None

    @classmethod
    def from_employee(cls, employee: CreatedEmployee) -> EmployeeNotificationPayload:
        return cls(
            employee_id=employee.employee_id,
            first_name=employee.first_name,
            last_name=employee.last_name,
            email=employee.email,
            client_id=employee.client_id or "",
            client_name=employee.client_name,
            company_id=employee.company_id,
            entry_date=employee.entry_date,
            status=employee.status,
        )


class EmployeesCreatedBody(BaseModel):
    """Notification body for one client endpoint."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    event_type: str
    endpoint: str
    employees: list[EmployeeNotificationPayload]
    timestamp: str


__all__ = ["CreatedEmployee", "EmployeeNotificationPayload", "EmployeesCreatedBody"]
