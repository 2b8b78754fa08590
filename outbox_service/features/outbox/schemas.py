"""Pydantic schemas for the outbox operations API."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class CircuitBreakerStats(BaseModel):
    name: str
    state: str
    failure_count: int
    success_count: int
    total_failures: int
    total_successes: int
    total_rejections: int
    last_failure_time: str | None = None
    failure_rate: float


class OutboxStatsResponse(BaseModel):
    """Outbox backlog and dead letter counts.

    Example:
        ```json
        {
            "pending": 3,
            "processing": 1,
            "completed": 120,
            "failed": 0,
            "dead_letters": 2,
            "circuit_breakers": {}
        }
        ```
    """

    pending: int = Field(ge=0, description="Records waiting for their next attempt")
    processing: int = Field(ge=0, description="Records currently claimed by a worker")
    completed: int = Field(ge=0, description="Delivered records not yet cleaned up")
    failed: int = Field(ge=0, description="Records whose dead letter move is pending")
    dead_letters: int = Field(ge=0, description="Records in the dead letter table")
    circuit_breakers: dict[str, CircuitBreakerStats] = Field(
        default_factory=dict, description="Breaker state per destination seen by this process"
    )


class DeadLetterResponse(BaseModel):
    """One dead letter entry (read only)."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    original_id: UUID
    event_type: str
    destination_name: str
    payload: str
    attempts: int
    last_error: str | None = None
    failed_at: datetime
    tenant_id: str | None = None


class DeadLetterListResponse(BaseModel):
    items: list[DeadLetterResponse]
    total: int = Field(ge=0, description="Total dead letters, regardless of filters")


class DispatchReportResponse(BaseModel):
    """Result of a dispatch pass triggered through the API."""

    redriven: int
    released: int
    candidates: int
    claimed: int
    skipped: int
    completed: int
    retried: int
    dead_lettered: int
    stranded: int
    lost: int
    pending: int | None = None
    errors: list[str] = Field(default_factory=list)


__all__ = [
    "CircuitBreakerStats",
    "DeadLetterListResponse",
    "DeadLetterResponse",
    "DispatchReportResponse",
    "OutboxStatsResponse",
]
