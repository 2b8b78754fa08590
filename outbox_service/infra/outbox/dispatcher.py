"""Claim and dispatch coordinator for the notification outbox.

One dispatch pass:
1. Retries dead letter moves for stranded (FAILED) records
2. Releases PROCESSING claims older than the claim TTL, row by row
3. Selects due candidates and claims them one at a time with a conditional
   update; a lost race is a normal skip
4. Delivers the claimed records on a bounded pool of asyncio workers, each
   with its own database session
5. Refreshes the pending gauge, whatever happened above

Several dispatcher processes may run against the same table. The optimistic
claim is the only coordination between them.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import timedelta
from enum import StrEnum
from typing import TYPE_CHECKING

from outbox_service.core.clock import SystemClock
from outbox_service.core.exceptions import OutboxError, PayloadParseError
from outbox_service.core.settings import get_outbox_settings
from outbox_service.infra.logging import get_lazy_logger, log_context
from outbox_service.infra.metrics.tracking import (
    track_outbox_dead_lettered,
    track_outbox_dispatched,
    track_outbox_failed,
    update_outbox_pending,
)
from outbox_service.infra.outbox.envelope import parse_envelope
from outbox_service.infra.outbox.repository import OutboxRecord, OutboxRepository
from outbox_service.infra.outbox.retry import RetryPolicy
from outbox_service.infra.resilience import CircuitBreakerRegistry

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from outbox_service.core.clock import Clock
    from outbox_service.core.settings import OutboxSettings
    from outbox_service.infra.outbox.notifier import DestinationNotifier

logger = logging.getLogger(__name__)
lazy_logger = get_lazy_logger(__name__)


class DispatchOutcome(StrEnum):
    """What happened to one claimed record."""

    COMPLETED = "completed"
    RETRIED = "retried"
    DEAD_LETTERED = "dead_lettered"
    # Dead letter move failed; the record is parked as FAILED
    STRANDED = "stranded"
    # The post-delivery update matched nothing; another worker owns the row now
    LOST = "lost"


@dataclass
class DispatchReport:
    """Summary of one dispatch pass."""

    redriven: int = 0
    released: int = 0
    candidates: int = 0
    claimed: int = 0
    skipped: int = 0
    completed: int = 0
    retried: int = 0
    dead_lettered: int = 0
    stranded: int = 0
    lost: int = 0
    pending: int | None = None
    errors: list[str] = field(default_factory=list)

    def record(self, outcome: DispatchOutcome) -> None:
        match outcome:
            case DispatchOutcome.COMPLETED:
                self.completed += 1
            case DispatchOutcome.RETRIED:
                self.retried += 1
            case DispatchOutcome.DEAD_LETTERED:
                self.dead_lettered += 1
            case DispatchOutcome.STRANDED:
                self.stranded += 1
            case DispatchOutcome.LOST:
                self.lost += 1

    def as_dict(self) -> dict[str, object]:
        return {
            "redriven": self.redriven,
            "released": self.released,
            "candidates": self.candidates,
            "claimed": self.claimed,
            "skipped": self.skipped,
            "completed": self.completed,
            "retried": self.retried,
            "dead_lettered": self.dead_lettered,
            "stranded": self.stranded,
            "lost": self.lost,
            "pending": self.pending,
            "errors": list(self.errors),
        }


def describe_error(error: BaseException) -> str:
    message = str(error)
    return f"{type(error).__name__}: {message}" if message else type(error).__name__


class OutboxDispatcher:
    """Claims due outbox records and delivers them through per-destination breakers.

    Attributes:
        worker_id: Identity written to ``claimed_by`` for claims taken by this instance.
        workers: Size of the delivery worker pool.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        notifier: DestinationNotifier,
        *,
        settings: OutboxSettings | None = None,
        breakers: CircuitBreakerRegistry | None = None,
        retry_policy: RetryPolicy | None = None,
        clock: Clock | None = None,
        repository: OutboxRepository | None = None,
        worker_id: str | None = None,
    ) -> None:
        self.settings = settings or get_outbox_settings()
        self.session_factory = session_factory
        self.notifier = notifier
        self.clock = clock or SystemClock()
        if breakers is None:
            breakers = CircuitBreakerRegistry(self.settings, clock=self.clock)
        self.breakers = breakers
        self.retry_policy = retry_policy or RetryPolicy.from_settings(self.settings)
        self.repository = repository or OutboxRepository()
        self.worker_id = worker_id or self.settings.worker_id
        self.workers = self.settings.effective_workers
        self.claim_ttl = timedelta(seconds=self.settings.claim_ttl_seconds)

    async def dispatch_pending(self) -> DispatchReport:
        """Run one full dispatch pass.

        Store errors while releasing, selecting or claiming propagate; errors
        while delivering individual records are collected in the report.
        """
        report = DispatchReport()
        try:
            report.redriven = await self.redrive_stranded()
            report.released = await self.release_expired_claims()
            claimed = await self._claim_candidates(report)
            if claimed:
                await self._dispatch_batch(claimed, report)
        finally:
            report.pending = await self._update_pending_gauge()

        if report.claimed or report.released or report.redriven:
            logger.info(
                "Outbox dispatch pass finished",
                extra={"worker_id": self.worker_id, **report.as_dict()},
            )
        return report

    async def release_expired_claims(self) -> int:
        """Reset PROCESSING records with an expired claim back to PENDING.

        Each record is released by its own conditional update and committed
        separately.
        """
        now = self.clock.now()
        cutoff = now - self.claim_ttl
        released = 0
        async with self.session_factory() as session:
            expired = await self.repository.list_expired_claims(session, cutoff=cutoff)
            await session.commit()
            for record in expired:
                if await self.repository.release_claim(session, record, now=now):
                    released += 1
                    logger.warning(
                        "Released expired outbox claim",
                        extra={
                            "outbox_id": str(record.id),
                            "claimed_by": record.claimed_by,
                            "claimed_at": record.claimed_at.isoformat() if record.claimed_at else None,
                        },
                    )
                await session.commit()
        return released

    async def redrive_stranded(self) -> int:
        """Retry the dead letter move for records parked as FAILED."""
        moved = 0
        async with self.session_factory() as session:
            stranded = await self.repository.list_stranded(session, limit=self.settings.batch_size)
            await session.commit()
            for record in stranded:
                try:
                    ok = await self.repository.move_to_dlq(
                        session,
                        record,
                        attempts=record.attempts,
                        last_error=record.last_error or "",
                        now=self.clock.now(),
                    )
                    if not ok:
                        await session.rollback()
                        continue
                    await session.commit()
                except Exception:
                    await session.rollback()
                    logger.exception(
                        "Dead letter move for stranded outbox record failed again",
                        extra={"outbox_id": str(record.id), "destination": record.destination_name},
                    )
                    continue
                moved += 1
                track_outbox_dead_lettered(record.event_type, record.destination_name)
                logger.info(
                    "Stranded outbox record moved to dead letter store",
                    extra={"outbox_id": str(record.id), "attempts": record.attempts},
                )
        return moved

    async def _claim_candidates(self, report: DispatchReport) -> list[OutboxRecord]:
        now = self.clock.now()
        claimed: list[OutboxRecord] = []
        async with self.session_factory() as session:
            candidates = await self.repository.select_candidates(
                session,
                now=now,
                claim_cutoff=now - self.claim_ttl,
                limit=self.settings.batch_size,
            )
            await session.commit()
            report.candidates = len(candidates)

            for candidate in candidates:
                record = await self.repository.claim(
                    session, candidate, worker_id=self.worker_id, now=self.clock.now()
                )
                await session.commit()
                if record is None:
                    report.skipped += 1
                    logger.debug(
                        "Outbox record claimed by another worker, skipping",
                        extra={"outbox_id": str(candidate.id)},
                    )
                    continue
                claimed.append(record)

        report.claimed = len(claimed)
        lazy_logger.debug(
            lambda: f"dispatcher.claim: worker_id={self.worker_id}, "
            f"claimed={[str(r.id) for r in claimed]}"
        )
        return claimed

    async def _dispatch_batch(self, records: list[OutboxRecord], report: DispatchReport) -> None:
        queue: asyncio.Queue[OutboxRecord] = asyncio.Queue()
        for record in records:
            queue.put_nowait(record)

        pool_size = max(1, min(self.workers, len(records)))
        results = await asyncio.gather(
            *(self._run_worker(queue, report) for _ in range(pool_size)),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException):
                report.errors.append(describe_error(result))
                logger.error(
                    "Outbox worker crashed",
                    extra={"error": describe_error(result)},
                )

    async def _run_worker(self, queue: asyncio.Queue[OutboxRecord], report: DispatchReport) -> None:
        async with self.session_factory() as session:
            while True:
                try:
                    record = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                try:
                    outcome = await self.dispatch_one(record, session=session)
                except Exception as e:
                    await session.rollback()
                    report.errors.append(f"{record.id}: {describe_error(e)}")
                    logger.exception(
                        "Unhandled error dispatching outbox record",
                        extra={"outbox_id": str(record.id), "destination": record.destination_name},
                    )
                else:
                    report.record(outcome)
                finally:
                    queue.task_done()

    async def dispatch_one(
        self,
        record: OutboxRecord,
        *,
        session: AsyncSession | None = None,
    ) -> DispatchOutcome:
        """Deliver one claimed record and apply the resulting transition."""
        if session is None:
            async with self.session_factory() as own_session:
                return await self.dispatch_one(record, session=own_session)

        with log_context(outbox_id=str(record.id), destination=record.destination_name):
            try:
                envelope = parse_envelope(record.payload)
            except PayloadParseError as e:
                logger.error(
                    "Invalid outbox payload",
                    extra={"outbox_id": str(record.id), "error": e.detail},
                )
                return await self._handle_failure(session, record, e)

            start = time.perf_counter()
            try:
                breaker = await self.breakers.get(record.destination_name)
                await breaker.call(
                    self.notifier.dispatch,
                    record.event_type,
                    record.destination_name,
                    envelope,
                    correlation_id=str(record.id),
                )
            except Exception as e:
                return await self._handle_failure(session, record, e)
            duration = time.perf_counter() - start

            completed = await self.repository.mark_completed(session, record, now=self.clock.now())
            await session.commit()
            if not completed:
                logger.warning(
                    "Delivered outbox record no longer held by this worker",
                    extra={"outbox_id": str(record.id), "worker_id": self.worker_id},
                )
                return DispatchOutcome.LOST

            track_outbox_dispatched(record.event_type, record.destination_name, duration)
            return DispatchOutcome.COMPLETED

    async def _handle_failure(
        self,
        session: AsyncSession,
        record: OutboxRecord,
        error: BaseException,
    ) -> DispatchOutcome:
        now = self.clock.now()
        decision = self.retry_policy.decide(record.attempts, now)
        last_error = describe_error(error)
        track_outbox_failed(record.event_type, record.destination_name)

        if not decision.is_dead_letter:
            if decision.next_attempt_at is None:
                msg = f"Retry decision for outbox record {record.id} has no next attempt time"
                raise OutboxError(
                    msg, extra={"outbox_id": str(record.id), "attempts": decision.attempts}
                )
            rescheduled = await self.repository.reschedule(
                session,
                record,
                attempts=decision.attempts,
                next_attempt_at=decision.next_attempt_at,
                last_error=last_error,
                now=now,
            )
            await session.commit()
            if not rescheduled:
                return DispatchOutcome.LOST
            logger.warning(
                "Outbox delivery failed, retry scheduled",
                extra={
                    "outbox_id": str(record.id),
                    "destination": record.destination_name,
                    "attempts": decision.attempts,
                    "retry_in_seconds": decision.delay.total_seconds() if decision.delay else None,
                    "error": last_error,
                },
            )
            return DispatchOutcome.RETRIED

        try:
            moved = await self.repository.move_to_dlq(
                session, record, attempts=decision.attempts, last_error=last_error, now=now
            )
            if moved:
                await session.commit()
            else:
                await session.rollback()
        except Exception:
            await session.rollback()
            logger.exception(
                "Failed to move outbox record to dead letter store, leaving it FAILED",
                extra={"outbox_id": str(record.id), "attempts": decision.attempts},
            )
            await self.repository.mark_failed(
                session, record, attempts=decision.attempts, last_error=last_error, now=now
            )
            await session.commit()
            return DispatchOutcome.STRANDED

        if not moved:
            return DispatchOutcome.LOST

        track_outbox_dead_lettered(record.event_type, record.destination_name)
        logger.error(
            "Outbox record exhausted its attempts and was dead-lettered",
            extra={
                "outbox_id": str(record.id),
                "destination": record.destination_name,
                "attempts": decision.attempts,
                "error": last_error,
            },
        )
        return DispatchOutcome.DEAD_LETTERED

    async def _update_pending_gauge(self) -> int | None:
        try:
            async with self.session_factory() as session:
                pending = await self.repository.count_pending(session)
        except Exception:
            logger.exception("Failed to refresh outbox pending gauge")
            return None
        update_outbox_pending(pending)
        return pending


__all__ = ["DispatchOutcome", "DispatchReport", "OutboxDispatcher", "describe_error"]
