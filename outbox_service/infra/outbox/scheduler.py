"""APScheduler integration driving dispatch passes and the cleanup sweep.

Two jobs run in-process on an ``AsyncIOScheduler``:

- ``outbox_dispatch``: ``OutboxDispatcher.dispatch_pending`` every
  ``dispatch_interval_seconds``
- ``outbox_cleanup``: ``OutboxCleanup.run`` on ``cleanup_cron`` (or every
  ``cleanup_interval_seconds`` when set); not scheduled when retention is
  disabled

Every tick goes through a reentrancy guard: when the previous tick of the same
job is still running the new one is skipped, logged and counted instead of
overlapping it.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from outbox_service.core.settings import get_outbox_settings
from outbox_service.infra.metrics.tracking import track_scheduler_tick_skipped

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from outbox_service.core.settings import OutboxSettings
    from outbox_service.infra.outbox.cleanup import OutboxCleanup
    from outbox_service.infra.outbox.dispatcher import OutboxDispatcher

logger = logging.getLogger(__name__)

DISPATCH_JOB_ID = "outbox_dispatch"
CLEANUP_JOB_ID = "outbox_cleanup"


class OutboxScheduler:
    """Owns the scheduler and the in-flight ticks it started."""

    def __init__(
        self,
        dispatcher: OutboxDispatcher,
        cleanup: OutboxCleanup,
        *,
        settings: OutboxSettings | None = None,
    ) -> None:
        self.dispatcher = dispatcher
        self.cleanup = cleanup
        self.settings = settings or get_outbox_settings()
        self.scheduler = AsyncIOScheduler(
            timezone="UTC",
            job_defaults={
                "coalesce": True,  # Combine multiple pending executions into one
                # Overlap is handled by the reentrancy guard so skips get counted
                "max_instances": 2,
                "misfire_grace_time": 60,
            },
        )
        self._running: dict[str, asyncio.Task[Any]] = {}

    @property
    def running(self) -> bool:
        return bool(self.scheduler.running)

    def is_busy(self, job_id: str) -> bool:
        task = self._running.get(job_id)
        return task is not None and not task.done()

    def setup_jobs(self) -> None:
        """Register the dispatch and cleanup jobs."""
        self.scheduler.add_job(
            func=self.run_dispatch_tick,
            trigger=IntervalTrigger(seconds=self.settings.dispatch_interval_seconds),
            id=DISPATCH_JOB_ID,
            name="Dispatch pending outbox records",
            replace_existing=True,
        )

        if not self.cleanup.enabled:
            logger.info("Outbox cleanup disabled (retention <= 0), not scheduling it")
            return

        if self.settings.cleanup_interval_seconds is not None:
            cleanup_trigger: IntervalTrigger | CronTrigger = IntervalTrigger(
                seconds=self.settings.cleanup_interval_seconds
            )
        else:
            cleanup_trigger = CronTrigger.from_crontab(self.settings.cleanup_cron, timezone="UTC")

        self.scheduler.add_job(
            func=self.run_cleanup_tick,
            trigger=cleanup_trigger,
            id=CLEANUP_JOB_ID,
            name="Delete expired terminal outbox records",
            replace_existing=True,
        )

    async def start(self) -> None:
        """Register jobs and start the scheduler.

        Must be called with a running event loop.
        """
        if self.scheduler.running:
            logger.warning("Outbox scheduler is already running")
            return

        self.setup_jobs()
        self.scheduler.start()
        logger.info(
            "Outbox scheduler started",
            extra={
                "jobs": [job.id for job in self.scheduler.get_jobs()],
                "dispatch_interval_seconds": self.settings.dispatch_interval_seconds,
            },
        )

    async def stop(self) -> None:
        """Stop triggering new ticks and wait for in-flight ones to finish."""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            # AsyncIOScheduler applies the shutdown on the next loop iteration
            await asyncio.sleep(0)

        in_flight = [task for task in self._running.values() if not task.done()]
        if in_flight:
            logger.info("Waiting for in-flight outbox ticks", extra={"ticks": len(in_flight)})
            await asyncio.gather(*in_flight, return_exceptions=True)
        self._running.clear()
        logger.info("Outbox scheduler stopped")

    async def run_dispatch_tick(self) -> bool:
        """Run one dispatch pass unless the previous one is still going.

        Returns:
            True if the pass ran, False if it was skipped.
        """
        return await self._guarded(DISPATCH_JOB_ID, self.dispatcher.dispatch_pending)

    async def run_cleanup_tick(self) -> bool:
        return await self._guarded(CLEANUP_JOB_ID, self.cleanup.run)

    async def _guarded(self, job_id: str, func: Callable[[], Awaitable[Any]]) -> bool:
        if self.is_busy(job_id):
            track_scheduler_tick_skipped(job_id)
            logger.warning(
                "Previous outbox tick still running, skipping",
                extra={"job": job_id},
            )
            return False

        task = asyncio.ensure_future(func())
        self._running[job_id] = task
        try:
            await asyncio.shield(task)
        except asyncio.CancelledError:
            raise
        except Exception:
            # Tick errors must never stop the scheduler
            logger.exception("Outbox scheduler tick failed", extra={"job": job_id})
        return True


__all__ = ["CLEANUP_JOB_ID", "DISPATCH_JOB_ID", "OutboxScheduler"]
