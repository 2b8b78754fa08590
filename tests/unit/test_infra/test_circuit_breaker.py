"""Tests for the per-destination circuit breaker.

Tests cover:
- State transitions (CLOSED -> OPEN -> HALF_OPEN -> CLOSED)
- Failure threshold triggering
- Recovery timeout driven by an injected clock
- Success threshold and call limit in HALF_OPEN
- Per-call timeout counted as a failure
- Exception filtering (expected vs unexpected)
- Metrics and statistics tracking
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import pytest

from outbox_service.core.clock import FrozenClock
from outbox_service.infra.resilience import CircuitBreaker, CircuitOpenError, CircuitState
from tests.utils import START, sample

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable


class ServiceError(Exception):
    """Test exception for circuit breaker testing."""


class UnexpectedError(Exception):
    """Exception that should not trigger circuit breaker."""


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(START)


@pytest.fixture
def breaker(clock: FrozenClock) -> CircuitBreaker:
    """Create a circuit breaker with small thresholds for testing."""
    return CircuitBreaker(
        name="test_service",
        failure_threshold=3,
        recovery_timeout=30.0,
        success_threshold=2,
        half_open_max_calls=2,
        expected_exception=ServiceError,
        clock=clock,
    )


@pytest.fixture
def failing_func() -> Callable[[], Awaitable[None]]:
    async def func() -> None:
        msg = "Service unavailable"
        raise ServiceError(msg)

    return func


@pytest.fixture
def successful_func() -> Callable[[], Awaitable[str]]:
    async def func() -> str:
        return "success"

    return func


async def _trip(breaker: CircuitBreaker, func: Callable[[], Awaitable[None]]) -> None:
    for _ in range(breaker.failure_threshold):
        with pytest.raises(ServiceError):
            await breaker.call(func)


class TestCircuitBreakerInitialization:
    """Test circuit breaker initialization and configuration."""

    def test_initialization_with_defaults(self) -> None:
        breaker = CircuitBreaker(name="test")

        assert breaker.name == "test"
        assert breaker.failure_threshold == 5
        assert breaker.recovery_timeout == 60.0
        assert breaker.success_threshold == 2
        assert breaker.half_open_max_calls == 3
        assert breaker.call_timeout is None
        assert breaker.state == CircuitState.CLOSED
        assert breaker.total_failures == 0
        assert breaker.total_successes == 0
        assert breaker.total_rejections == 0

    def test_initialization_validates_thresholds(self) -> None:
        with pytest.raises(ValueError, match="failure_threshold must be greater than 0"):
            CircuitBreaker(name="test", failure_threshold=0)

        with pytest.raises(ValueError, match="recovery_timeout must be greater than 0"):
            CircuitBreaker(name="test", recovery_timeout=0.0)

        with pytest.raises(ValueError, match="success_threshold must be greater than 0"):
            CircuitBreaker(name="test", success_threshold=0)

        with pytest.raises(ValueError, match="half_open_max_calls must be greater than 0"):
            CircuitBreaker(name="test", half_open_max_calls=0)

        with pytest.raises(ValueError, match="call_timeout must be greater than 0"):
            CircuitBreaker(name="test", call_timeout=0)


class TestClosedState:
    async def test_successful_call_passes_result_through(self, breaker, successful_func) -> None:
        assert await breaker.call(successful_func) == "success"
        assert breaker.is_closed
        assert breaker.total_successes == 1

    async def test_opens_after_consecutive_failures(self, breaker, failing_func) -> None:
        await _trip(breaker, failing_func)

        assert breaker.is_open
        assert breaker.total_failures == 3

    async def test_success_resets_failure_count(
        self, breaker, failing_func, successful_func
    ) -> None:
        for _ in range(2):
            with pytest.raises(ServiceError):
                await breaker.call(failing_func)
        await breaker.call(successful_func)
        for _ in range(2):
            with pytest.raises(ServiceError):
                await breaker.call(failing_func)

        # Never three failures in a row
        assert breaker.is_closed

    async def test_unexpected_exception_does_not_count(self, breaker) -> None:
        async def func() -> None:
            raise UnexpectedError("boom")

        for _ in range(5):
            with pytest.raises(UnexpectedError):
                await breaker.call(func)

        assert breaker.is_closed
        assert breaker.total_failures == 0


class TestOpenState:
    async def test_rejects_without_calling(self, breaker, failing_func) -> None:
        await _trip(breaker, failing_func)
        calls = 0

        async def func() -> None:
            nonlocal calls
            calls += 1

        with pytest.raises(CircuitOpenError) as exc_info:
            await breaker.call(func)

        assert calls == 0
        assert exc_info.value.name == "test_service"
        assert breaker.total_rejections == 1

    async def test_stays_open_before_recovery_timeout(self, breaker, clock, failing_func) -> None:
        await _trip(breaker, failing_func)
        clock.advance(seconds=29)

        with pytest.raises(CircuitOpenError):
            await breaker.call(failing_func)
        assert breaker.is_open

    async def test_rejection_is_counted_in_metrics(self, clock, failing_func) -> None:
        breaker = CircuitBreaker(
            name="metrics_rejections", failure_threshold=1, expected_exception=ServiceError, clock=clock
        )
        with pytest.raises(ServiceError):
            await breaker.call(failing_func)
        before = sample("circuit_breaker_rejected_total", circuit_name="metrics_rejections")

        with pytest.raises(CircuitOpenError):
            await breaker.call(failing_func)

        assert sample("circuit_breaker_rejected_total", circuit_name="metrics_rejections") == before + 1
        assert sample("circuit_breaker_state", circuit_name="metrics_rejections") == 2


class TestHalfOpenState:
    async def test_moves_to_half_open_after_recovery_timeout(
        self, breaker, clock, failing_func, successful_func
    ) -> None:
        await _trip(breaker, failing_func)
        clock.advance(seconds=30)

        await breaker.call(successful_func)

        assert breaker.is_half_open

    async def test_closes_after_success_threshold(
        self, breaker, clock, failing_func, successful_func
    ) -> None:
        await _trip(breaker, failing_func)
        clock.advance(seconds=30)

        await breaker.call(successful_func)
        await breaker.call(successful_func)

        assert breaker.is_closed
        assert breaker.get_metrics()["last_failure_time"] is None

    async def test_failure_reopens_immediately(
        self, breaker, clock, failing_func, successful_func
    ) -> None:
        await _trip(breaker, failing_func)
        clock.advance(seconds=30)
        await breaker.call(successful_func)

        with pytest.raises(ServiceError):
            await breaker.call(failing_func)

        assert breaker.is_open

    async def test_limits_concurrent_trial_calls(self, breaker, clock, failing_func) -> None:
        await _trip(breaker, failing_func)
        clock.advance(seconds=30)
        release = asyncio.Event()

        async def slow() -> str:
            await release.wait()
            return "ok"

        trials = [asyncio.create_task(breaker.call(slow)) for _ in range(2)]
        await asyncio.sleep(0)

        with pytest.raises(CircuitOpenError, match="half-open call limit"):
            await breaker.call(slow)

        release.set()
        assert await asyncio.gather(*trials) == ["ok", "ok"]
        assert breaker.is_closed

    async def test_success_threshold_above_call_limit_still_closes(
        self, clock, failing_func, successful_func
    ) -> None:
        breaker = CircuitBreaker(
            name="patient_service",
            failure_threshold=1,
            recovery_timeout=30.0,
            success_threshold=4,
            half_open_max_calls=3,
            expected_exception=ServiceError,
            clock=clock,
        )
        await _trip(breaker, failing_func)
        clock.advance(seconds=30)

        for _ in range(3):
            await breaker.call(successful_func)
        assert breaker.is_half_open

        clock.advance(days=1)
        assert await breaker.call(successful_func) == "success"

        assert breaker.is_closed
        assert breaker.total_rejections == 0

    async def test_unexpected_error_frees_trial_slot(
        self, breaker, clock, failing_func, successful_func
    ) -> None:
        await _trip(breaker, failing_func)
        clock.advance(seconds=30)

        async def broken() -> None:
            msg = "Programming error"
            raise UnexpectedError(msg)

        for _ in range(3):
            with pytest.raises(UnexpectedError):
                await breaker.call(broken)

        assert breaker.is_half_open
        await breaker.call(successful_func)
        await breaker.call(successful_func)
        assert breaker.is_closed

    async def test_cancelled_trial_frees_slot(self, breaker, clock, failing_func) -> None:
        await _trip(breaker, failing_func)
        clock.advance(seconds=30)

        async def hang() -> None:
            await asyncio.sleep(10)

        trials = [asyncio.create_task(breaker.call(hang)) for _ in range(2)]
        await asyncio.sleep(0)
        for trial in trials:
            trial.cancel()
        await asyncio.gather(*trials, return_exceptions=True)

        async def quick() -> str:
            return "ok"

        assert await breaker.call(quick) == "ok"
        assert breaker.is_half_open


class TestCallTimeout:
    async def test_timeout_counts_as_failure(self, clock) -> None:
        breaker = CircuitBreaker(
            name="slow_destination",
            failure_threshold=1,
            call_timeout=0.01,
            expected_exception=ServiceError,
            clock=clock,
        )

        async def hang() -> None:
            await asyncio.sleep(10)

        with pytest.raises(TimeoutError):
            await breaker.call(hang)

        assert breaker.is_open
        assert breaker.total_failures == 1


class TestMetricsAndReset:
    async def test_get_metrics(self, breaker, failing_func, successful_func) -> None:
        await breaker.call(successful_func)
        with pytest.raises(ServiceError):
            await breaker.call(failing_func)

        metrics = breaker.get_metrics()

        assert metrics["name"] == "test_service"
        assert metrics["state"] == "closed"
        assert metrics["failure_count"] == 1
        assert metrics["total_successes"] == 1
        assert metrics["total_failures"] == 1
        assert metrics["failure_rate"] == 0.5
        assert metrics["last_failure_time"] == START.isoformat()

    async def test_reset_closes_and_clears(self, breaker, failing_func) -> None:
        await _trip(breaker, failing_func)

        await breaker.reset()

        assert breaker.is_closed
        assert breaker.total_failures == 0
        assert breaker.get_metrics()["failure_count"] == 0

    async def test_state_change_is_tracked(self, clock, failing_func) -> None:
        breaker = CircuitBreaker(
            name="metrics_transitions", failure_threshold=1, expected_exception=ServiceError, clock=clock
        )
        labels = {"circuit_name": "metrics_transitions", "from_state": "closed", "to_state": "open"}
        before = sample("circuit_breaker_state_changes_total", **labels)

        with pytest.raises(ServiceError):
            await breaker.call(failing_func)

        assert sample("circuit_breaker_state_changes_total", **labels) == before + 1
