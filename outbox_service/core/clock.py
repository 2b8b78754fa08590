"""Clock abstraction so time-dependent outbox logic can be tested deterministically."""

from __future__ import annotations

import time
from datetime import UTC, datetime, timedelta
from typing import Protocol


class Clock(Protocol):
    """Source of the current UTC time."""

    def now(self) -> datetime: ...

    def monotonic(self) -> float: ...


class SystemClock:
    """Production clock backed by ``datetime.now(UTC)``."""

    def now(self) -> datetime:
        return datetime.now(UTC)

    def monotonic(self) -> float:
        return time.monotonic()


class FrozenClock:
    """Test clock pinned to a fixed point in time.

    ``monotonic()`` follows the frozen wall time so circuit breaker recovery
    timeouts can be driven with ``advance()`` as well.
    """

    def __init__(self, fixed: datetime) -> None:
        if fixed.tzinfo is None:
            fixed = fixed.replace(tzinfo=UTC)
        self._fixed = fixed

    def now(self) -> datetime:
        return self._fixed

    def monotonic(self) -> float:
        return self._fixed.timestamp()

    def advance(self, **kwargs: float) -> None:
        """Advance the frozen time by the given ``timedelta`` kwargs."""
        self._fixed += timedelta(**kwargs)

    def set(self, value: datetime) -> None:
        self._fixed = value if value.tzinfo else value.replace(tzinfo=UTC)


__all__ = ["Clock", "FrozenClock", "SystemClock"]
