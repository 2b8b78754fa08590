"""Tests for the outbox scheduler and its reentrancy guard."""

from __future__ import annotations

import asyncio

import pytest
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from outbox_service.infra.outbox.scheduler import CLEANUP_JOB_ID, DISPATCH_JOB_ID, OutboxScheduler
from tests.utils import make_settings, sample


class BlockingDispatcher:
    """Stand-in dispatcher whose pass runs until ``release`` is set."""

    def __init__(self) -> None:
        self.started = asyncio.Event()
        self.release = asyncio.Event()
        self.calls = 0
        self.error: Exception | None = None

    async def dispatch_pending(self) -> None:
        self.calls += 1
        self.started.set()
        await self.release.wait()
        if self.error is not None:
            raise self.error


class StubCleanup:
    def __init__(self, *, enabled: bool = True) -> None:
        self.enabled = enabled
        self.calls = 0

    async def run(self) -> int:
        self.calls += 1
        return 0


@pytest.fixture
def dispatcher() -> BlockingDispatcher:
    return BlockingDispatcher()


@pytest.fixture
def scheduler(dispatcher) -> OutboxScheduler:
    return OutboxScheduler(dispatcher, StubCleanup(), settings=make_settings())


class TestReentrancyGuard:
    async def test_overlapping_tick_is_skipped_and_counted(self, scheduler, dispatcher) -> None:
        before = sample("outbox_scheduler_ticks_skipped_total", job=DISPATCH_JOB_ID)
        first = asyncio.create_task(scheduler.run_dispatch_tick())
        await dispatcher.started.wait()

        assert scheduler.is_busy(DISPATCH_JOB_ID)
        assert await scheduler.run_dispatch_tick() is False

        dispatcher.release.set()
        assert await first is True
        assert dispatcher.calls == 1
        assert sample("outbox_scheduler_ticks_skipped_total", job=DISPATCH_JOB_ID) == before + 1

    async def test_next_tick_runs_after_previous_finished(self, scheduler, dispatcher) -> None:
        dispatcher.release.set()

        assert await scheduler.run_dispatch_tick() is True
        assert await scheduler.run_dispatch_tick() is True
        assert dispatcher.calls == 2

    async def test_jobs_are_guarded_independently(self, scheduler, dispatcher) -> None:
        first = asyncio.create_task(scheduler.run_dispatch_tick())
        await dispatcher.started.wait()

        assert await scheduler.run_cleanup_tick() is True
        assert scheduler.cleanup.calls == 1

        dispatcher.release.set()
        await first

    async def test_tick_errors_are_logged_not_raised(self, scheduler, dispatcher, caplog) -> None:
        dispatcher.error = RuntimeError("database down")
        dispatcher.release.set()

        assert await scheduler.run_dispatch_tick() is True
        assert "Outbox scheduler tick failed" in caplog.text

    async def test_stop_waits_for_in_flight_tick(self, scheduler, dispatcher) -> None:
        tick = asyncio.create_task(scheduler.run_dispatch_tick())
        await dispatcher.started.wait()

        stopping = asyncio.create_task(scheduler.stop())
        await asyncio.sleep(0.01)
        assert not stopping.done()

        dispatcher.release.set()
        await stopping
        await tick
        assert not scheduler.is_busy(DISPATCH_JOB_ID)


class TestJobSetup:
    def test_registers_dispatch_and_cron_cleanup(self, scheduler) -> None:
        scheduler.setup_jobs()

        dispatch_job = scheduler.scheduler.get_job(DISPATCH_JOB_ID)
        cleanup_job = scheduler.scheduler.get_job(CLEANUP_JOB_ID)
        assert isinstance(dispatch_job.trigger, IntervalTrigger)
        assert dispatch_job.trigger.interval.total_seconds() == 30
        assert isinstance(cleanup_job.trigger, CronTrigger)

    def test_cleanup_interval_overrides_cron(self, dispatcher) -> None:
        scheduler = OutboxScheduler(
            dispatcher, StubCleanup(), settings=make_settings(cleanup_interval_seconds=600)
        )

        scheduler.setup_jobs()

        cleanup_job = scheduler.scheduler.get_job(CLEANUP_JOB_ID)
        assert isinstance(cleanup_job.trigger, IntervalTrigger)
        assert cleanup_job.trigger.interval.total_seconds() == 600

    def test_disabled_cleanup_is_not_scheduled(self, dispatcher) -> None:
        scheduler = OutboxScheduler(dispatcher, StubCleanup(enabled=False), settings=make_settings())

        scheduler.setup_jobs()

        assert scheduler.scheduler.get_job(DISPATCH_JOB_ID) is not None
        assert scheduler.scheduler.get_job(CLEANUP_JOB_ID) is None


class TestLifecycle:
    async def test_start_and_stop(self, scheduler) -> None:
        await scheduler.start()
        assert scheduler.running

        await scheduler.stop()
        assert not scheduler.running

    async def test_can_restart_after_stop(self, scheduler) -> None:
        await scheduler.start()
        await scheduler.stop()
        assert not scheduler.running

        await scheduler.start()
        assert scheduler.running
        assert scheduler.scheduler.get_job(DISPATCH_JOB_ID) is not None

        await scheduler.stop()
        assert not scheduler.running
