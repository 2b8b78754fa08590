"""SQLAlchemy models for the employee notification outbox.

Records are written to ``employee_notification_outbox`` in the same
transaction as the business change that produced them. The dispatcher claims
due records, delivers them and either completes, reschedules or moves them to
``employee_notification_dlq`` once retries are exhausted.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import StrEnum

from sqlalchemy import Index, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from outbox_service.core.database import (
    Base,
    TenantMixin,
    TimestampMixin,
    UTCDateTime,
    UUIDv7PKMixin,
)

# Upper bound for persisted error descriptions
LAST_ERROR_MAX_LENGTH = 2000


class OutboxStatus(StrEnum):
    """Delivery state of an outbox record."""

    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    # Terminal failure whose move to the dead letter store has not succeeded yet
    FAILED = "FAILED"


class OutboxEntry(Base, UUIDv7PKMixin, TimestampMixin, TenantMixin):
    """One pending notification for one destination.

    Attributes:
        id: UUID v7 primary key
        event_type: Event type identifier (e.g., "EMPLOYEE_CREATED")
        destination_name: Logical destination, resolved to a URL at delivery time
        payload: JSON envelope (version, body, optional secret and headers)
        status: PENDING, PROCESSING, COMPLETED or FAILED
        attempts: Delivery attempts made so far
        next_attempt_at: Record is not claimable before this instant
        claimed_at: When the current claim was taken (PROCESSING only)
        claimed_by: Worker holding the current claim (PROCESSING only)
        last_error: Most recent failure description
        delivered_at: When the destination accepted the notification
    """

    __tablename__ = "employee_notification_outbox"

    event_type: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        comment="Event type identifier",
    )
    destination_name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Logical destination name",
    )
    payload: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="JSON notification envelope",
    )
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=OutboxStatus.PENDING.value,
        comment="PENDING, PROCESSING, COMPLETED or FAILED",
    )
    attempts: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="Delivery attempts made so far",
    )
    next_attempt_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(),
        nullable=True,
        comment="Earliest time the record may be claimed",
    )
    claimed_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(),
        nullable=True,
        comment="When the current claim was taken",
    )
    claimed_by: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        comment="Worker holding the current claim",
    )
    last_error: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
        comment="Most recent failure description",
    )
    delivered_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(),
        nullable=True,
        comment="When the destination accepted the notification",
    )

    __table_args__ = (
        # Candidate selection: due PENDING rows in next_attempt_at order
        Index("ix_employee_notification_outbox_due", "status", "next_attempt_at"),
        # Expired claim release
        Index("ix_employee_notification_outbox_claimed", "status", "claimed_at"),
        # Cleanup of terminal rows by age
        Index("ix_employee_notification_outbox_cleanup", "status", "updated_at"),
    )

    def __repr__(self) -> str:
        return (
            f"OutboxEntry("
            f"id={self.id}, "
            f"event_type={self.event_type!r}, "
            f"destination={self.destination_name!r}, "
            f"status={self.status}, "
            f"attempts={self.attempts}"
            f")"
        )


class DeadLetterEntry(Base, UUIDv7PKMixin, TenantMixin):
    """Terminal copy of an outbox record that exhausted its delivery attempts.

    Written once by the dead-letter transition and never updated.
    """

    __tablename__ = "employee_notification_dlq"

    original_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        nullable=False,
        index=True,
        comment="ID of the outbox record this entry replaced",
    )
    event_type: Mapped[str] = mapped_column(String(100), nullable=False)
    destination_name: Mapped[str] = mapped_column(String(255), nullable=False)
    payload: Mapped[str] = mapped_column(Text, nullable=False)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    failed_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
        index=True,
        comment="When the record was dead-lettered",
    )

    def __repr__(self) -> str:
        return (
            f"DeadLetterEntry(id={self.id}, original_id={self.original_id}, "
            f"destination={self.destination_name!r}, attempts={self.attempts})"
        )


__all__ = ["LAST_ERROR_MAX_LENGTH", "DeadLetterEntry", "OutboxEntry", "OutboxStatus"]
