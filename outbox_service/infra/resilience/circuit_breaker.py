"""Circuit breaker guarding calls to a single notification destination.

States:
    - CLOSED: Normal operation, requests pass through
    - OPEN: Failure threshold exceeded, requests fail immediately
    - HALF_OPEN: Testing recovery, limited requests allowed

Transitions:
    CLOSED -> OPEN: When consecutive failures reach the threshold
    OPEN -> HALF_OPEN: After recovery timeout
    HALF_OPEN -> CLOSED: When success threshold met
    HALF_OPEN -> OPEN: On any failure

Every protected call is additionally bounded by ``call_timeout``,
independent of state; a timed out call counts as a failure.

Example:
    >>> breaker = CircuitBreaker(name="employee-sync", failure_threshold=5)
    >>> await breaker.call(notifier.dispatch, "EMPLOYEE_CREATED", "employee-sync", envelope)
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from enum import StrEnum
from typing import TYPE_CHECKING, Any, ParamSpec, TypeVar

from outbox_service.core.clock import SystemClock
from outbox_service.infra.metrics.tracking import (
    track_circuit_breaker_failure,
    track_circuit_breaker_rejected,
    track_circuit_breaker_state_change,
    track_circuit_breaker_success,
    update_circuit_breaker_state,
)

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from outbox_service.core.clock import Clock

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


class CircuitState(StrEnum):
    """Circuit breaker states."""

    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Failing fast
    HALF_OPEN = "half_open"  # Testing recovery


class CircuitOpenError(Exception):
    """Raised when a call is rejected because the circuit is open.

    The dispatcher treats it exactly like a delivery failure, so the record is
    rescheduled with backoff instead of hammering a dead destination.
    """

    def __init__(self, message: str = "Circuit breaker is open", *, name: str | None = None) -> None:
        self.name = name
        super().__init__(message)


class CircuitBreaker:
    """Async circuit breaker for one destination.

    Attributes:
        name: Identifier for this circuit breaker instance (the destination name).
        failure_threshold: Consecutive failures before opening the circuit.
        recovery_timeout: Seconds to wait in OPEN before admitting trial calls.
        success_threshold: Successful calls needed in HALF_OPEN to close the circuit.
        half_open_max_calls: Maximum trial calls in flight at once while HALF_OPEN.
        call_timeout: Upper bound in seconds for a single protected call, or None.
        expected_exception: Exception type(s) that count as failures.
        total_failures: Total failures recorded since creation.
        total_successes: Total successes recorded since creation.
        total_rejections: Total rejected calls (when circuit was open).
    """

    def __init__(
        self,
        *,
        name: str,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        success_threshold: int = 2,
        half_open_max_calls: int = 3,
        call_timeout: float | None = None,
        expected_exception: type[Exception] | tuple[type[Exception], ...] = Exception,
        clock: Clock | None = None,
    ) -> None:
        """Initialize circuit breaker.

        Args:
            name: Unique identifier for this circuit breaker instance.
            failure_threshold: Consecutive failures before opening. Must be > 0.
            recovery_timeout: Seconds in OPEN before moving to HALF_OPEN. Must be > 0.
            success_threshold: Successes in HALF_OPEN needed to close. Must be > 0.
            half_open_max_calls: Concurrent trial calls allowed in HALF_OPEN. Must be > 0.
            call_timeout: Per-call timeout in seconds; None disables it.
            expected_exception: Exception type(s) that trip the breaker. Other
                exceptions pass through without affecting circuit state.
            clock: Time source; defaults to the system clock.

        Raises:
            ValueError: If any threshold or timeout value is invalid.
        """
        if failure_threshold <= 0:
            msg = "failure_threshold must be greater than 0"
            raise ValueError(msg)
        if recovery_timeout <= 0:
            msg = "recovery_timeout must be greater than 0"
            raise ValueError(msg)
        if success_threshold <= 0:
            msg = "success_threshold must be greater than 0"
            raise ValueError(msg)
        if half_open_max_calls <= 0:
            msg = "half_open_max_calls must be greater than 0"
            raise ValueError(msg)
        if call_timeout is not None and call_timeout <= 0:
            msg = "call_timeout must be greater than 0"
            raise ValueError(msg)

        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.success_threshold = success_threshold
        self.half_open_max_calls = half_open_max_calls
        self.call_timeout = call_timeout
        self.expected_exception = expected_exception
        self._clock: Clock = clock or SystemClock()

        # State tracking (protected with lock)
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._half_open_calls = 0
        self._last_failure_time: datetime | None = None
        self._lock = asyncio.Lock()

        # Lifetime statistics
        self.total_failures = 0
        self.total_successes = 0
        self.total_rejections = 0

        update_circuit_breaker_state(self.name, self._state.value)

        logger.info(
            f"Circuit breaker '{name}' initialized",
            extra={
                "circuit_breaker": name,
                "failure_threshold": failure_threshold,
                "recovery_timeout": recovery_timeout,
                "success_threshold": success_threshold,
                "call_timeout": call_timeout,
            },
        )

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state == CircuitState.OPEN

    @property
    def is_closed(self) -> bool:
        return self._state == CircuitState.CLOSED

    @property
    def is_half_open(self) -> bool:
        return self._state == CircuitState.HALF_OPEN

    async def call(self, func: Callable[P, Awaitable[T]], *args: P.args, **kwargs: P.kwargs) -> T:
        """Execute ``func`` with circuit breaker protection.

        Returns:
            Result returned by the function.

        Raises:
            CircuitOpenError: If circuit is open or half-open call limit reached.
            TimeoutError: If the call exceeded ``call_timeout`` (recorded as a failure).
            Exception: Any exception raised by the function (after recording failure).
        """
        await self._before_call()

        try:
            if self.call_timeout is None:
                result = await func(*args, **kwargs)
            else:
                async with asyncio.timeout(self.call_timeout):
                    result = await func(*args, **kwargs)
        except TimeoutError as e:
            await self._on_failure(e)
            raise
        except self.expected_exception as e:
            await self._on_failure(e)
            raise
        except asyncio.CancelledError:
            await self._release_trial()
            raise
        except Exception as e:
            # Unexpected exceptions don't affect circuit state
            await self._release_trial()
            logger.warning(
                f"Circuit breaker '{self.name}' caught unexpected exception",
                extra={
                    "circuit_breaker": self.name,
                    "exception_type": type(e).__name__,
                    "exception_message": str(e),
                },
            )
            raise

        await self._on_success()
        return result

    async def _before_call(self) -> None:
        async with self._lock:
            self._check_state()

            if self.is_open:
                self.total_rejections += 1
                track_circuit_breaker_rejected(self.name)
                msg = (
                    f"Circuit breaker '{self.name}' is open. "
                    f"Last failure: {self._last_failure_time}"
                )
                logger.warning(
                    msg,
                    extra={
                        "circuit_breaker": self.name,
                        "state": "open",
                        "total_rejections": self.total_rejections,
                    },
                )
                raise CircuitOpenError(msg, name=self.name)

            if self.is_half_open:
                if self._half_open_calls >= self.half_open_max_calls:
                    self.total_rejections += 1
                    track_circuit_breaker_rejected(self.name)
                    msg = f"Circuit breaker '{self.name}' half-open call limit reached"
                    logger.warning(
                        msg,
                        extra={
                            "circuit_breaker": self.name,
                            "state": "half_open",
                            "half_open_calls": self._half_open_calls,
                            "max_calls": self.half_open_max_calls,
                        },
                    )
                    raise CircuitOpenError(msg, name=self.name)
                self._half_open_calls += 1

    def _check_state(self) -> None:
        """Move OPEN to HALF_OPEN once the recovery timeout has elapsed.

        Must be called while holding the lock.
        """
        if self.is_open and self._last_failure_time:
            elapsed = self._clock.now() - self._last_failure_time
            if elapsed >= timedelta(seconds=self.recovery_timeout):
                self._transition(CircuitState.HALF_OPEN)

    async def _on_success(self) -> None:
        async with self._lock:
            self.total_successes += 1
            track_circuit_breaker_success(self.name)

            if self.is_half_open:
                self._half_open_calls = max(0, self._half_open_calls - 1)
                self._success_count += 1
                if self._success_count >= self.success_threshold:
                    self._transition(CircuitState.CLOSED)
            elif self.is_closed and self._failure_count > 0:
                logger.debug(
                    f"Circuit breaker '{self.name}' resetting failure count",
                    extra={
                        "circuit_breaker": self.name,
                        "previous_failures": self._failure_count,
                    },
                )
                self._failure_count = 0

    async def _release_trial(self) -> None:
        """Free the HALF_OPEN slot of a trial that ended without a verdict."""
        async with self._lock:
            if self.is_half_open and self._half_open_calls > 0:
                self._half_open_calls -= 1

    async def _on_failure(self, exception: BaseException) -> None:
        async with self._lock:
            self.total_failures += 1
            self._failure_count += 1
            self._last_failure_time = self._clock.now()

            track_circuit_breaker_failure(self.name)

            logger.warning(
                f"Circuit breaker '{self.name}' recorded failure",
                extra={
                    "circuit_breaker": self.name,
                    "failure_count": self._failure_count,
                    "failure_threshold": self.failure_threshold,
                    "exception_type": type(exception).__name__,
                    "exception_message": str(exception),
                },
            )

            if self.is_half_open:
                # Any failure in HALF_OPEN immediately reopens the circuit
                self._transition(CircuitState.OPEN)
            elif self.is_closed and self._failure_count >= self.failure_threshold:
                self._transition(CircuitState.OPEN)

    def _transition(self, new_state: CircuitState) -> None:
        """Switch state, reset the per-state counters and publish the change.

        Must be called while holding the lock.
        """
        old_state = self._state.value
        self._state = new_state
        self._success_count = 0
        self._half_open_calls = 0
        if new_state != CircuitState.OPEN:
            self._failure_count = 0
        if new_state == CircuitState.CLOSED:
            self._last_failure_time = None

        track_circuit_breaker_state_change(self.name, old_state, new_state.value)
        update_circuit_breaker_state(self.name, new_state.value)

        log = logger.error if new_state == CircuitState.OPEN else logger.info
        log(
            f"Circuit breaker '{self.name}' transitioned to {new_state.value.upper()}",
            extra={
                "circuit_breaker": self.name,
                "old_state": old_state,
                "new_state": new_state.value,
                "failure_count": self._failure_count,
                "recovery_timeout": self.recovery_timeout,
            },
        )

    def get_metrics(self) -> dict[str, Any]:
        """Get circuit breaker state and lifetime statistics.

        Returns:
            Dictionary with state, current counters, lifetime totals, the last
            failure time (ISO 8601 or None) and the failure rate (0.0-1.0).
        """
        total_calls = self.total_failures + self.total_successes
        failure_rate = self.total_failures / total_calls if total_calls > 0 else 0.0

        return {
            "name": self.name,
            "state": self.state.value,
            "failure_count": self._failure_count,
            "success_count": self._success_count,
            "total_failures": self.total_failures,
            "total_successes": self.total_successes,
            "total_rejections": self.total_rejections,
            "last_failure_time": (
                self._last_failure_time.isoformat() if self._last_failure_time else None
            ),
            "failure_rate": failure_rate,
        }

    async def reset(self) -> None:
        """Manually reset the circuit breaker to CLOSED and clear statistics."""
        async with self._lock:
            if not self.is_closed:
                self._transition(CircuitState.CLOSED)
            self._failure_count = 0
            self._last_failure_time = None
            self.total_failures = 0
            self.total_successes = 0
            self.total_rejections = 0
            logger.info(
                f"Circuit breaker '{self.name}' manually reset",
                extra={"circuit_breaker": self.name},
            )


__all__ = ["CircuitBreaker", "CircuitOpenError", "CircuitState"]
