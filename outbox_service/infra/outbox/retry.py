"""Retry and backoff decisions for failed deliveries.

The policy is a pure function of the attempt count and the current time. The
dispatcher asks it what to do after every failure and applies the answer to
the store, so attempt counting has exactly one home.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import StrEnum

from outbox_service.core.settings import OutboxSettings

# Keeps now + delay representable when no cap is configured and attempts run high
_BACKOFF_CEILING = timedelta(days=3650)


class RetryAction(StrEnum):
    RETRY = "retry"
    DEAD_LETTER = "dead_letter"


@dataclass(frozen=True, slots=True)
class RetryDecision:
    """Outcome of one failed attempt.

    Attributes:
        action: RETRY or DEAD_LETTER.
        attempts: Attempt count after the failure (previous + 1).
        delay: Backoff before the next attempt; None when dead-lettering.
        next_attempt_at: ``now + delay``; None when dead-lettering.
    """

    action: RetryAction
    attempts: int
    delay: timedelta | None = None
    next_attempt_at: datetime | None = None

    @property
    def is_dead_letter(self) -> bool:
        return self.action is RetryAction.DEAD_LETTER


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Exponential backoff with a terminal attempt limit.

    ``delay = base_delay * 2 ** (attempts - 1)``, optionally capped by
    ``max_delay``. Once ``attempts`` reaches ``max_attempts`` the record is
    dead-lettered instead of rescheduled.
    """

    base_delay: timedelta
    max_attempts: int
    max_delay: timedelta | None = None

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            msg = "max_attempts must be at least 1"
            raise ValueError(msg)
        if self.base_delay <= timedelta(0):
            msg = "base_delay must be positive"
            raise ValueError(msg)

    @classmethod
    def from_settings(cls, settings: OutboxSettings) -> RetryPolicy:
        max_delay = (
            timedelta(seconds=settings.retry_max_delay_seconds)
            if settings.retry_max_delay_seconds is not None
            else None
        )
        return cls(
            base_delay=timedelta(seconds=settings.retry_base_delay_seconds),
            max_attempts=settings.max_attempts,
            max_delay=max_delay,
        )

    def backoff(self, attempts: int) -> timedelta:
        """Delay to wait after the ``attempts``-th failure (1-based)."""
        try:
            delay = min(self.base_delay * (2 ** (max(attempts, 1) - 1)), _BACKOFF_CEILING)
        except OverflowError:
            delay = _BACKOFF_CEILING
        if self.max_delay is not None and delay > self.max_delay:
            return self.max_delay
        return delay

    def decide(self, previous_attempts: int, now: datetime) -> RetryDecision:
        attempts = previous_attempts + 1
        if attempts >= self.max_attempts:
            return RetryDecision(action=RetryAction.DEAD_LETTER, attempts=attempts)

        delay = self.backoff(attempts)
        return RetryDecision(
            action=RetryAction.RETRY,
            attempts=attempts,
            delay=delay,
            next_attempt_at=now + delay,
        )


__all__ = ["RetryAction", "RetryDecision", "RetryPolicy"]
