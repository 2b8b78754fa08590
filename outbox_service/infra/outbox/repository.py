"""Repository for outbox and dead letter persistence.

Every state change after selection is a single-row conditional update keyed
by the primary key plus the values the caller last observed (status, claim
fields and tenant). An update that matches nothing means another worker got
there first; callers check the returned flag instead of assuming success.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, replace
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import and_, delete, func, or_, select, update

from outbox_service.infra.outbox.models import (
    LAST_ERROR_MAX_LENGTH,
    DeadLetterEntry,
    OutboxEntry,
    OutboxStatus,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

    from sqlalchemy.ext.asyncio import AsyncSession
    from sqlalchemy.sql.elements import ColumnElement

# Core UPDATE/DELETE statements never touch identity-map objects
_NO_SYNC = {"synchronize_session": False}


@dataclass(frozen=True, slots=True)
class OutboxRecord:
    """Immutable snapshot of an outbox row as last read or written by this worker.

    Conditional updates compare the live row against these values, so a
    snapshot doubles as the optimistic-concurrency token.
    """

    id: uuid.UUID
    event_type: str
    destination_name: str
    payload: str
    status: str
    attempts: int
    next_attempt_at: datetime | None
    claimed_at: datetime | None
    claimed_by: str | None
    last_error: str | None
    tenant_id: str | None

    @classmethod
    def from_entry(cls, entry: OutboxEntry) -> OutboxRecord:
        return cls(
            id=entry.id,
            event_type=entry.event_type,
            destination_name=entry.destination_name,
            payload=entry.payload,
            status=entry.status,
            attempts=entry.attempts,
            next_attempt_at=entry.next_attempt_at,
            claimed_at=entry.claimed_at,
            claimed_by=entry.claimed_by,
            last_error=entry.last_error,
            tenant_id=entry.tenant_id,
        )


def truncate_error(message: str) -> str:
    return message[:LAST_ERROR_MAX_LENGTH]


def _null_safe_eq(column: Any, value: Any) -> ColumnElement[bool]:
    return column.is_(None) if value is None else column == value


def _rowcount(result: Any) -> int:
    return int(result.rowcount or 0)


class OutboxRepository:
    """Data access for ``employee_notification_outbox`` and its dead letter table.

    Methods never commit; transaction boundaries belong to the caller.
    """

    # ------------------------------------------------------------------
    # Writes from the enqueue path
    # ------------------------------------------------------------------

    async def insert(
        self,
        session: AsyncSession,
        *,
        event_type: str,
        destination_name: str,
        payload: str,
        now: datetime,
        tenant_id: str | None = None,
    ) -> OutboxEntry:
        """Add a PENDING record and flush it into the current transaction."""
        entry = OutboxEntry(
            event_type=event_type,
            destination_name=destination_name,
            payload=payload,
            status=OutboxStatus.PENDING.value,
            attempts=0,
            next_attempt_at=now,
            tenant_id=tenant_id,
            created_at=now,
            updated_at=now,
        )
        session.add(entry)
        await session.flush()
        return entry

    # ------------------------------------------------------------------
    # Claim protocol
    # ------------------------------------------------------------------

    async def list_expired_claims(
        self,
        session: AsyncSession,
        *,
        cutoff: datetime,
        limit: int | None = None,
    ) -> list[OutboxRecord]:
        """PROCESSING records whose claim was taken before ``cutoff``."""
        stmt = (
            select(OutboxEntry)
            .where(
                OutboxEntry.status == OutboxStatus.PROCESSING.value,
                OutboxEntry.claimed_at < cutoff,
            )
            .order_by(OutboxEntry.claimed_at.asc())
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await session.execute(stmt)
        return [OutboxRecord.from_entry(entry) for entry in result.scalars().all()]

    async def release_claim(
        self,
        session: AsyncSession,
        record: OutboxRecord,
        *,
        now: datetime,
    ) -> bool:
        """Return an abandoned PROCESSING record to PENDING.

        ``next_attempt_at`` is left untouched; it is already in the past for
        any record that was claimable.
        """
        stmt = (
            update(OutboxEntry)
            .where(self._observed(record))
            .values(
                status=OutboxStatus.PENDING.value,
                claimed_at=None,
                claimed_by=None,
                updated_at=now,
            )
            .execution_options(**_NO_SYNC)
        )
        result = await session.execute(stmt)
        return _rowcount(result) == 1

    async def select_candidates(
        self,
        session: AsyncSession,
        *,
        now: datetime,
        claim_cutoff: datetime,
        limit: int,
    ) -> list[OutboxRecord]:
        """Due PENDING records and PROCESSING records with an expired claim.

        Ordered by ``next_attempt_at``, which is a scheduling hint rather than
        a delivery-order guarantee.
        """
        due_pending = and_(
            OutboxEntry.status == OutboxStatus.PENDING.value,
            or_(OutboxEntry.next_attempt_at.is_(None), OutboxEntry.next_attempt_at <= now),
        )
        stale_processing = and_(
            OutboxEntry.status == OutboxStatus.PROCESSING.value,
            OutboxEntry.claimed_at < claim_cutoff,
        )
        stmt = (
            select(OutboxEntry)
            .where(or_(due_pending, stale_processing))
            .order_by(OutboxEntry.next_attempt_at.asc(), OutboxEntry.id.asc())
            .limit(limit)
        )
        result = await session.execute(stmt)
        return [OutboxRecord.from_entry(entry) for entry in result.scalars().all()]

    async def claim(
        self,
        session: AsyncSession,
        record: OutboxRecord,
        *,
        worker_id: str,
        now: datetime,
    ) -> OutboxRecord | None:
        """Take exclusive ownership of ``record``.

        The update matches only if every observed field (status, claim fields,
        attempts, next_attempt_at, tenant) is unchanged since selection.

        Returns:
            The claimed snapshot, or None when another worker won the race.
        """
        stmt = (
            update(OutboxEntry)
            .where(
                self._observed(record),
                OutboxEntry.attempts == record.attempts,
                _null_safe_eq(OutboxEntry.next_attempt_at, record.next_attempt_at),
            )
            .values(
                status=OutboxStatus.PROCESSING.value,
                claimed_at=now,
                claimed_by=worker_id,
                updated_at=now,
            )
            .execution_options(**_NO_SYNC)
        )
        result = await session.execute(stmt)
        if _rowcount(result) != 1:
            return None
        return replace(
            record,
            status=OutboxStatus.PROCESSING.value,
            claimed_at=now,
            claimed_by=worker_id,
        )

    # ------------------------------------------------------------------
    # Post-delivery transitions (scoped to the claiming worker)
    # ------------------------------------------------------------------

    async def mark_completed(
        self,
        session: AsyncSession,
        record: OutboxRecord,
        *,
        now: datetime,
    ) -> bool:
        stmt = (
            update(OutboxEntry)
            .where(self._owned(record))
            .values(
                status=OutboxStatus.COMPLETED.value,
                delivered_at=now,
                claimed_at=None,
                claimed_by=None,
                next_attempt_at=None,
                last_error=None,
                updated_at=now,
            )
            .execution_options(**_NO_SYNC)
        )
        result = await session.execute(stmt)
        return _rowcount(result) == 1

    async def reschedule(
        self,
        session: AsyncSession,
        record: OutboxRecord,
        *,
        attempts: int,
        next_attempt_at: datetime,
        last_error: str,
        now: datetime,
    ) -> bool:
        """Release the claim and schedule the next attempt."""
        stmt = (
            update(OutboxEntry)
            .where(self._owned(record))
            .values(
                status=OutboxStatus.PENDING.value,
                attempts=attempts,
                next_attempt_at=next_attempt_at,
                last_error=truncate_error(last_error),
                claimed_at=None,
                claimed_by=None,
                updated_at=now,
            )
            .execution_options(**_NO_SYNC)
        )
        result = await session.execute(stmt)
        return _rowcount(result) == 1

    async def move_to_dlq(
        self,
        session: AsyncSession,
        record: OutboxRecord,
        *,
        attempts: int,
        last_error: str,
        now: datetime,
    ) -> bool:
        """Delete the outbox row and write its dead letter copy.

        Both statements run in the caller's transaction. When the delete
        matches nothing (the row changed hands) no dead letter is written and
        False is returned.
        """
        stmt = (
            delete(OutboxEntry)
            .where(self._observed(record))
            .execution_options(**_NO_SYNC)
        )
        result = await session.execute(stmt)
        if _rowcount(result) != 1:
            return False

        session.add(
            DeadLetterEntry(
                original_id=record.id,
                event_type=record.event_type,
                destination_name=record.destination_name,
                payload=record.payload,
                attempts=attempts,
                last_error=truncate_error(last_error),
                failed_at=now,
                tenant_id=record.tenant_id,
            )
        )
        await session.flush()
        return True

    async def mark_failed(
        self,
        session: AsyncSession,
        record: OutboxRecord,
        *,
        attempts: int,
        last_error: str,
        now: datetime,
    ) -> OutboxRecord | None:
        """Park a record whose dead letter move failed.

        FAILED rows are never claimed again; each dispatch pass retries the
        dead letter move for them.
        """
        stmt = (
            update(OutboxEntry)
            .where(self._observed(record))
            .values(
                status=OutboxStatus.FAILED.value,
                attempts=attempts,
                last_error=truncate_error(last_error),
                claimed_at=None,
                claimed_by=None,
                next_attempt_at=None,
                updated_at=now,
            )
            .execution_options(**_NO_SYNC)
        )
        result = await session.execute(stmt)
        if _rowcount(result) != 1:
            return None
        return replace(
            record,
            status=OutboxStatus.FAILED.value,
            attempts=attempts,
            last_error=truncate_error(last_error),
            claimed_at=None,
            claimed_by=None,
            next_attempt_at=None,
        )

    async def list_stranded(self, session: AsyncSession, *, limit: int) -> list[OutboxRecord]:
        stmt = (
            select(OutboxEntry)
            .where(OutboxEntry.status == OutboxStatus.FAILED.value)
            .order_by(OutboxEntry.updated_at.asc())
            .limit(limit)
        )
        result = await session.execute(stmt)
        return [OutboxRecord.from_entry(entry) for entry in result.scalars().all()]

    # ------------------------------------------------------------------
    # Maintenance and reporting
    # ------------------------------------------------------------------

    async def delete_terminal_before(self, session: AsyncSession, *, cutoff: datetime) -> int:
        """Delete COMPLETED and FAILED records last modified strictly before ``cutoff``."""
        stmt = (
            delete(OutboxEntry)
            .where(
                OutboxEntry.status.in_(
                    [OutboxStatus.COMPLETED.value, OutboxStatus.FAILED.value]
                ),
                OutboxEntry.updated_at < cutoff,
            )
            .execution_options(**_NO_SYNC)
        )
        result = await session.execute(stmt)
        return _rowcount(result)

    async def count_pending(self, session: AsyncSession) -> int:
        """Records still waiting for delivery (PENDING or PROCESSING)."""
        stmt = (
            select(func.count())
            .select_from(OutboxEntry)
            .where(
                OutboxEntry.status.in_(
                    [OutboxStatus.PENDING.value, OutboxStatus.PROCESSING.value]
                )
            )
        )
        result = await session.execute(stmt)
        return result.scalar_one()

    async def count_by_status(self, session: AsyncSession) -> dict[str, int]:
        """Record counts keyed by every ``OutboxStatus`` value (zero when absent)."""
        stmt = select(OutboxEntry.status, func.count()).group_by(OutboxEntry.status)
        result = await session.execute(stmt)
        counts = {status.value: 0 for status in OutboxStatus}
        for status, count in result.all():
            counts[status] = count
        return counts

    async def count_dead_letters(self, session: AsyncSession) -> int:
        result = await session.execute(select(func.count()).select_from(DeadLetterEntry))
        return result.scalar_one()

    async def list_dead_letters(
        self,
        session: AsyncSession,
        *,
        limit: int = 50,
        destination_name: str | None = None,
    ) -> Sequence[DeadLetterEntry]:
        """Most recent dead letters first."""
        stmt = select(DeadLetterEntry).order_by(DeadLetterEntry.failed_at.desc()).limit(limit)
        if destination_name is not None:
            stmt = stmt.where(DeadLetterEntry.destination_name == destination_name)
        result = await session.execute(stmt)
        return result.scalars().all()

    async def get(self, session: AsyncSession, entry_id: uuid.UUID) -> OutboxEntry | None:
        return await session.get(OutboxEntry, entry_id)

    # ------------------------------------------------------------------
    # Predicates
    # ------------------------------------------------------------------

    @staticmethod
    def _observed(record: OutboxRecord) -> ColumnElement[bool]:
        """Row still holds the status and claim the snapshot was taken with."""
        return and_(
            OutboxEntry.id == record.id,
            OutboxEntry.status == record.status,
            _null_safe_eq(OutboxEntry.claimed_at, record.claimed_at),
            _null_safe_eq(OutboxEntry.claimed_by, record.claimed_by),
            _null_safe_eq(OutboxEntry.tenant_id, record.tenant_id),
        )

    @staticmethod
    def _owned(record: OutboxRecord) -> ColumnElement[bool]:
        """Row is still PROCESSING under this worker's claim."""
        return and_(
            OutboxEntry.id == record.id,
            OutboxEntry.status == OutboxStatus.PROCESSING.value,
            _null_safe_eq(OutboxEntry.claimed_by, record.claimed_by),
            _null_safe_eq(OutboxEntry.tenant_id, record.tenant_id),
        )


__all__ = ["OutboxRecord", "OutboxRepository", "truncate_error"]
