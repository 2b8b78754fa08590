"""Integration tests for the conditional-update claim protocol."""

from __future__ import annotations

from dataclasses import replace
from datetime import timedelta

import pytest

from outbox_service.infra.outbox import OutboxEntry, OutboxRepository, OutboxStatus
from outbox_service.infra.outbox.models import LAST_ERROR_MAX_LENGTH
from tests.utils import START, fetch_all, fetch_dead_letters, seed


@pytest.fixture
def repository() -> OutboxRepository:
    return OutboxRepository()


async def _candidates(repository, session_factory, now=START, limit=20):
    async with session_factory() as session:
        return await repository.select_candidates(
            session, now=now, claim_cutoff=now - timedelta(seconds=60), limit=limit
        )


async def _claim(repository, session_factory, record, worker_id="worker-a", now=START):
    async with session_factory() as session:
        claimed = await repository.claim(session, record, worker_id=worker_id, now=now)
        await session.commit()
        return claimed


class TestSelectCandidates:
    async def test_due_pending_records(self, repository, session_factory, enqueuer) -> None:
        await seed(session_factory, enqueuer, count=3)

        candidates = await _candidates(repository, session_factory)

        assert len(candidates) == 3
        assert all(c.status == OutboxStatus.PENDING for c in candidates)

    async def test_respects_limit(self, repository, session_factory, enqueuer) -> None:
        await seed(session_factory, enqueuer, count=5)

        assert len(await _candidates(repository, session_factory, limit=2)) == 2

    async def test_excludes_future_and_terminal_records(
        self, repository, session_factory, clock
    ) -> None:
        async with session_factory() as session:
            for status, next_attempt_at in [
                (OutboxStatus.PENDING, START + timedelta(seconds=1)),
                (OutboxStatus.COMPLETED, None),
                (OutboxStatus.FAILED, None),
                (OutboxStatus.PENDING, None),
            ]:
                session.add(
                    OutboxEntry(
                        event_type="EMPLOYEE_CREATED",
                        destination_name="crm",
                        payload="{}",
                        status=status.value,
                        attempts=0,
                        next_attempt_at=next_attempt_at,
                    )
                )
            await session.commit()

        candidates = await _candidates(repository, session_factory)

        # Only the PENDING record without a schedule is due
        assert len(candidates) == 1
        assert candidates[0].next_attempt_at is None

    async def test_includes_expired_claims(self, repository, session_factory, enqueuer) -> None:
        await seed(session_factory, enqueuer)
        [record] = await _candidates(repository, session_factory)
        await _claim(repository, session_factory, record, worker_id="crashed")

        assert await _candidates(repository, session_factory, now=START + timedelta(seconds=60)) == []
        [expired] = await _candidates(repository, session_factory, now=START + timedelta(seconds=61))
        assert expired.claimed_by == "crashed"


class TestClaim:
    async def test_only_one_of_two_racing_claims_wins(
        self, repository, session_factory, enqueuer
    ) -> None:
        await seed(session_factory, enqueuer)
        [seen_by_a] = await _candidates(repository, session_factory)
        [seen_by_b] = await _candidates(repository, session_factory)

        won = await _claim(repository, session_factory, seen_by_a, worker_id="worker-a")
        lost = await _claim(repository, session_factory, seen_by_b, worker_id="worker-b")

        assert won is not None
        assert won.status == OutboxStatus.PROCESSING
        assert won.claimed_by == "worker-a"
        assert won.claimed_at == START
        assert lost is None
        [stored] = await fetch_all(session_factory)
        assert stored.claimed_by == "worker-a"

    async def test_stale_attempt_count_loses(self, repository, session_factory, enqueuer) -> None:
        await seed(session_factory, enqueuer)
        [record] = await _candidates(repository, session_factory)

        assert await _claim(repository, session_factory, replace(record, attempts=1)) is None

    async def test_other_tenant_cannot_claim(self, repository, session_factory, enqueuer) -> None:
        await seed(session_factory, enqueuer, tenant_id="tenant-a")
        [record] = await _candidates(repository, session_factory)

        assert await _claim(repository, session_factory, replace(record, tenant_id="tenant-b")) is None
        assert await _claim(repository, session_factory, record) is not None


class TestTransitions:
    async def _claimed(self, repository, session_factory, enqueuer):
        await seed(session_factory, enqueuer)
        [record] = await _candidates(repository, session_factory)
        return await _claim(repository, session_factory, record)

    async def test_mark_completed_requires_ownership(
        self, repository, session_factory, enqueuer
    ) -> None:
        record = await self._claimed(repository, session_factory, enqueuer)

        async with session_factory() as session:
            assert not await repository.mark_completed(
                session, replace(record, claimed_by="worker-b"), now=START
            )
            assert await repository.mark_completed(session, record, now=START)
            await session.commit()

        [stored] = await fetch_all(session_factory)
        assert stored.status == OutboxStatus.COMPLETED
        assert stored.delivered_at == START
        assert stored.claimed_by is None

    async def test_reschedule_truncates_error(self, repository, session_factory, enqueuer) -> None:
        record = await self._claimed(repository, session_factory, enqueuer)

        async with session_factory() as session:
            assert await repository.reschedule(
                session,
                record,
                attempts=1,
                next_attempt_at=START + timedelta(seconds=1),
                last_error="x" * 5000,
                now=START,
            )
            await session.commit()

        [stored] = await fetch_all(session_factory)
        assert stored.status == OutboxStatus.PENDING
        assert stored.attempts == 1
        assert stored.claimed_at is None
        assert len(stored.last_error) == LAST_ERROR_MAX_LENGTH

    async def test_release_claim(self, repository, session_factory, enqueuer) -> None:
        await self._claimed(repository, session_factory, enqueuer)

        async with session_factory() as session:
            assert await repository.list_expired_claims(session, cutoff=START) == []
            [expired] = await repository.list_expired_claims(
                session, cutoff=START + timedelta(seconds=1)
            )
            assert await repository.release_claim(session, expired, now=START)
            # The same snapshot cannot release twice
            assert not await repository.release_claim(session, expired, now=START)
            await session.commit()

        [stored] = await fetch_all(session_factory)
        assert stored.status == OutboxStatus.PENDING
        assert stored.claimed_by is None

    async def test_move_to_dlq(self, repository, session_factory, enqueuer) -> None:
        record = await self._claimed(repository, session_factory, enqueuer)

        async with session_factory() as session:
            assert not await repository.move_to_dlq(
                session, replace(record, claimed_by="worker-b"), attempts=5, last_error="e", now=START
            )
            assert await repository.move_to_dlq(
                session, record, attempts=5, last_error="HTTP 500", now=START
            )
            await session.commit()

        assert await fetch_all(session_factory) == []
        [dead] = await fetch_dead_letters(session_factory)
        assert dead.original_id == record.id
        assert dead.attempts == 5
        assert dead.last_error == "HTTP 500"
        assert dead.failed_at == START
        assert dead.payload == record.payload

    async def test_mark_failed_then_list_stranded(
        self, repository, session_factory, enqueuer
    ) -> None:
        record = await self._claimed(repository, session_factory, enqueuer)

        async with session_factory() as session:
            failed = await repository.mark_failed(
                session, record, attempts=5, last_error="dlq down", now=START
            )
            await session.commit()
            [stranded] = await repository.list_stranded(session, limit=10)

        assert failed is not None
        assert stranded.id == record.id
        assert stranded.status == OutboxStatus.FAILED
        assert stranded.claimed_by is None


class TestReporting:
    async def test_count_by_status_is_zero_filled(
        self, repository, session_factory, enqueuer
    ) -> None:
        await seed(session_factory, enqueuer, count=2)

        async with session_factory() as session:
            counts = await repository.count_by_status(session)
            pending = await repository.count_pending(session)
            dead_letters = await repository.count_dead_letters(session)

        assert counts == {"PENDING": 2, "PROCESSING": 0, "COMPLETED": 0, "FAILED": 0}
        assert pending == 2
        assert dead_letters == 0
