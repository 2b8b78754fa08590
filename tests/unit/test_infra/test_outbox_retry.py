"""Tests for backoff and dead letter decisions."""

from __future__ import annotations

from datetime import timedelta

import pytest

from outbox_service.infra.outbox.retry import RetryAction, RetryPolicy
from tests.utils import START, make_settings


@pytest.fixture
def policy() -> RetryPolicy:
    return RetryPolicy(base_delay=timedelta(seconds=1), max_attempts=5)


class TestBackoff:
    @pytest.mark.parametrize(("attempts", "seconds"), [(1, 1), (2, 2), (3, 4), (4, 8), (10, 512)])
    def test_doubles_per_attempt(self, policy: RetryPolicy, attempts: int, seconds: int) -> None:
        assert policy.backoff(attempts) == timedelta(seconds=seconds)

    def test_cap(self) -> None:
        policy = RetryPolicy(
            base_delay=timedelta(seconds=60), max_attempts=20, max_delay=timedelta(minutes=10)
        )

        assert policy.backoff(3) == timedelta(minutes=4)
        assert policy.backoff(5) == timedelta(minutes=10)

    def test_huge_attempt_counts_do_not_overflow(self, policy: RetryPolicy) -> None:
        assert policy.backoff(10_000) == timedelta(days=3650)


class TestDecide:
    def test_retry_schedules_next_attempt(self, policy: RetryPolicy) -> None:
        decision = policy.decide(2, START)

        assert decision.action is RetryAction.RETRY
        assert decision.attempts == 3
        assert decision.delay == timedelta(seconds=4)
        assert decision.next_attempt_at == START + timedelta(seconds=4)
        assert not decision.is_dead_letter

    def test_dead_letter_when_attempts_reach_limit(self, policy: RetryPolicy) -> None:
        decision = policy.decide(4, START)

        assert decision.is_dead_letter
        assert decision.attempts == 5
        assert decision.next_attempt_at is None

    def test_single_attempt_policy_dead_letters_first_failure(self) -> None:
        policy = RetryPolicy(base_delay=timedelta(seconds=1), max_attempts=1)

        assert policy.decide(0, START).is_dead_letter


class TestConstruction:
    def test_from_settings(self) -> None:
        settings = make_settings(
            retry_base_delay_seconds=30, retry_max_delay_seconds=600, max_attempts=7
        )

        policy = RetryPolicy.from_settings(settings)

        assert policy.base_delay == timedelta(seconds=30)
        assert policy.max_delay == timedelta(seconds=600)
        assert policy.max_attempts == 7

    def test_rejects_invalid_values(self) -> None:
        with pytest.raises(ValueError, match="max_attempts"):
            RetryPolicy(base_delay=timedelta(seconds=1), max_attempts=0)
        with pytest.raises(ValueError, match="base_delay"):
            RetryPolicy(base_delay=timedelta(0), max_attempts=3)
