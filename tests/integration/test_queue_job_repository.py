"""Integration tests for the job store against SQLite"""

import asyncio
from datetime import timedelta

import pytest

from applyflow.models import QueueJob, QueueJobStatus
from applyflow.models.base import utcnow


async def add_job(repository, job_type="cleanup_old_jobs", priority=1, max_attempts=3, **kwargs):
    job, created = await repository.create_job(
        job_type=job_type,
        payload=kwargs.pop("payload", {}),
        priority=priority,
        max_attempts=max_attempts,
        **kwargs
    )
    assert created
    return job


class TestCreateJob:
    """Test cases for enqueueing and deduplication"""

    @pytest.mark.asyncio
    async def test_create_pending_job(self, queue_repository):
        job, created = await queue_repository.create_job(
            job_type="analyze_job_match",
            payload={"job_listing_id": "l-1", "user_id": "u-1"},
            priority=8,
            max_attempts=3,
            user_id="u-1",
        )

        assert created is True
        stored = await queue_repository.get_by_id(job.id)
        assert stored.status == QueueJobStatus.PENDING
        assert stored.attempt_count == 0
        assert stored.payload == {"job_listing_id": "l-1", "user_id": "u-1"}
        assert stored.available_at <= utcnow()

    @pytest.mark.asyncio
    async def test_dedup_returns_active_job(self, queue_repository):
        """Test a second enqueue with a live key returns the first job"""
        first, created_first = await queue_repository.create_job(
            "user_job_scan", {"user_id": "u-1"}, 10, 2, deduplication_key="user_scan:u-1"
        )
        second, created_second = await queue_repository.create_job(
            "user_job_scan", {"user_id": "u-1"}, 10, 2, deduplication_key="user_scan:u-1"
        )

        assert created_first is True
        assert created_second is False
        assert second.id == first.id
        assert (await queue_repository.metrics())["PENDING"] == 1

    @pytest.mark.asyncio
    async def test_dedup_key_free_again_after_completion(self, queue_repository):
        first = await add_job(queue_repository, deduplication_key="schedule:cleanup_old_jobs")
        [claimed] = await queue_repository.claim_batch(1, "w1")
        assert await queue_repository.mark_completed(claimed, {"deleted": 0})

        second, created = await queue_repository.create_job(
            "cleanup_old_jobs", {}, 3, 3, deduplication_key="schedule:cleanup_old_jobs"
        )

        assert created is True
        assert second.id != first.id

    @pytest.mark.asyncio
    async def test_concurrent_dedup_creates_one_job(self, queue_repository):
        results = await asyncio.gather(*[
            queue_repository.create_job("user_job_scan", {"user_id": "u-1"}, 10, 2, deduplication_key="user_scan:u-1")
            for _ in range(5)
        ])

        assert len({job.id for job, _ in results}) == 1
        assert sum(1 for _, created in results if created) == 1

    @pytest.mark.asyncio
    async def test_jobs_without_key_never_dedup(self, queue_repository):
        await add_job(queue_repository)
        await add_job(queue_repository)

        assert (await queue_repository.metrics())["PENDING"] == 2


class TestClaimBatch:
    """Test cases for claiming"""

    @pytest.mark.asyncio
    async def test_priority_order(self, queue_repository):
        """Test jobs with priorities 3, 1, 2 are claimed as 3, 2, 1"""
        for priority in (3, 1, 2):
            await add_job(queue_repository, priority=priority)

        claimed = await queue_repository.claim_batch(3, "w1")

        assert [job.priority for job in claimed] == [3, 2, 1]
        assert all(job.status == QueueJobStatus.PROCESSING for job in claimed)
        assert all(job.locked_by == "w1" and job.locked_at is not None for job in claimed)

    @pytest.mark.asyncio
    async def test_fifo_within_priority(self, queue_repository, backdate):
        newer = await add_job(queue_repository, priority=5)
        older = await add_job(queue_repository, priority=5)
        await backdate(QueueJob, older.id, seconds=60, columns=("created_at",))

        claimed = await queue_repository.claim_batch(2, "w1")

        assert [job.id for job in claimed] == [older.id, newer.id]

    @pytest.mark.asyncio
    async def test_future_jobs_are_not_claimed(self, queue_repository):
        await add_job(queue_repository, available_at=utcnow() + timedelta(minutes=5))

        assert await queue_repository.claim_batch(10, "w1") == []

    @pytest.mark.asyncio
    async def test_limit_is_respected(self, queue_repository):
        for _ in range(4):
            await add_job(queue_repository)

        assert len(await queue_repository.claim_batch(2, "w1")) == 2
        assert len(await queue_repository.claim_batch(0, "w1")) == 0

    @pytest.mark.asyncio
    async def test_concurrent_claims_never_overlap(self, queue_repository):
        """Test each job is claimed by at most one poller"""
        for _ in range(6):
            await add_job(queue_repository)

        batches = await asyncio.gather(*[
            queue_repository.claim_batch(6, f"w{i}") for i in range(3)
        ])

        claimed_ids = [job.id for batch in batches for job in batch]
        assert len(claimed_ids) == 6
        assert len(set(claimed_ids)) == 6

    @pytest.mark.asyncio
    async def test_type_limits(self, queue_repository):
        for _ in range(3):
            await add_job(queue_repository, job_type="analyze_job_match", priority=8)
        await add_job(queue_repository, job_type="cleanup_old_jobs", priority=3)

        claimed = await queue_repository.claim_batch(4, "w1", type_limits={"analyze_job_match": 1})

        assert sorted(job.job_type for job in claimed) == ["analyze_job_match", "cleanup_old_jobs"]

    @pytest.mark.asyncio
    async def test_capped_type_flood_does_not_starve_others(self, queue_repository):
        for _ in range(10):
            await add_job(queue_repository, job_type="analyze_job_match", priority=10)
        for _ in range(3):
            await add_job(queue_repository, job_type="cleanup_old_jobs", priority=1)

        claimed = await queue_repository.claim_batch(4, "w1", type_limits={"analyze_job_match": 1})

        assert [job.job_type for job in claimed] == ["analyze_job_match"] + ["cleanup_old_jobs"] * 3
        assert all(job.status == QueueJobStatus.PROCESSING for job in claimed)

    @pytest.mark.asyncio
    async def test_exclude_types(self, queue_repository):
        await add_job(queue_repository, job_type="analyze_job_match")

        assert await queue_repository.claim_batch(5, "w1", exclude_types=["analyze_job_match"]) == []


class TestTransitions:
    """Test cases for lease-guarded state transitions"""

    @pytest.mark.asyncio
    async def test_mark_completed_stores_result(self, queue_repository):
        await add_job(queue_repository)
        [job] = await queue_repository.claim_batch(1, "w1")

        assert await queue_repository.mark_completed(job, {"deleted": 4}) is True

        stored = await queue_repository.get_by_id(job.id)
        assert stored.status == QueueJobStatus.COMPLETED
        assert stored.result == {"deleted": 4}
        assert stored.processed_at is not None
        assert stored.locked_by is None

    @pytest.mark.asyncio
    async def test_terminal_rows_do_not_move(self, queue_repository):
        await add_job(queue_repository)
        [job] = await queue_repository.claim_batch(1, "w1")
        await queue_repository.mark_completed(job)

        assert await queue_repository.mark_failed(job, "late failure", 1) is False
        assert (await queue_repository.get_by_id(job.id)).status == QueueJobStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_reschedule(self, queue_repository):
        await add_job(queue_repository)
        [job] = await queue_repository.claim_batch(1, "w1")
        later = utcnow() + timedelta(seconds=30)

        assert await queue_repository.reschedule(job, "boom", later, 1) is True

        stored = await queue_repository.get_by_id(job.id)
        assert stored.status == QueueJobStatus.PENDING
        assert stored.attempt_count == 1
        assert stored.error_message == "boom"
        assert abs((stored.available_at - later).total_seconds()) < 0.001
        assert await queue_repository.claim_batch(1, "w1") == []

    @pytest.mark.asyncio
    async def test_release_keeps_attempt_count(self, queue_repository):
        await add_job(queue_repository)
        jobs = await queue_repository.claim_batch(1, "w1")

        assert await queue_repository.release(jobs) == 1

        stored = await queue_repository.get_by_id(jobs[0].id)
        assert stored.status == QueueJobStatus.PENDING
        assert stored.attempt_count == 0


class TestLeaseRecovery:
    """Test cases for abandoned PROCESSING rows"""

    @pytest.mark.asyncio
    async def test_stale_lease_is_requeued(self, queue_repository, backdate):
        await add_job(queue_repository, max_attempts=3)
        [job] = await queue_repository.claim_batch(1, "dead-worker")
        await backdate(QueueJob, job.id, seconds=1000, columns=("locked_at",))

        requeued, failed = await queue_repository.recover_stale(visibility_timeout=900)

        assert (requeued, failed) == (1, 0)
        stored = await queue_repository.get_by_id(job.id)
        assert stored.status == QueueJobStatus.PENDING
        assert stored.attempt_count == 1
        assert "dead-worker" in stored.error_message

        # The original holder lost its lease
        assert await queue_repository.mark_completed(job) is False

    @pytest.mark.asyncio
    async def test_stale_lease_on_last_attempt_fails(self, queue_repository, backdate):
        await add_job(queue_repository, max_attempts=1)
        [job] = await queue_repository.claim_batch(1, "dead-worker")
        await backdate(QueueJob, job.id, seconds=1000, columns=("locked_at",))

        assert await queue_repository.recover_stale(visibility_timeout=900) == (0, 1)
        assert (await queue_repository.get_by_id(job.id)).status == QueueJobStatus.FAILED

    @pytest.mark.asyncio
    async def test_fresh_lease_is_left_alone(self, queue_repository):
        await add_job(queue_repository)
        await queue_repository.claim_batch(1, "w1")

        assert await queue_repository.recover_stale(visibility_timeout=900) == (0, 0)


class TestMaintenance:

    @pytest.mark.asyncio
    async def test_metrics_are_zero_filled(self, queue_repository):
        assert await queue_repository.metrics() == {"PENDING": 0, "PROCESSING": 0, "COMPLETED": 0, "FAILED": 0}

        await add_job(queue_repository)
        await add_job(queue_repository)
        await queue_repository.claim_batch(1, "w1")

        metrics = await queue_repository.metrics()
        assert metrics["PENDING"] == 1
        assert metrics["PROCESSING"] == 1

    @pytest.mark.asyncio
    async def test_cleanup_old_jobs(self, queue_repository, backdate):
        """Test only finished jobs past the window are deleted"""
        await add_job(queue_repository)
        await add_job(queue_repository)
        old_pending = await add_job(queue_repository, available_at=utcnow() + timedelta(days=1))
        done = await queue_repository.claim_batch(2, "w1")
        await queue_repository.mark_completed(done[0])
        await queue_repository.mark_failed(done[1], "boom", 3)

        await backdate(QueueJob, done[0].id, days=10)
        await backdate(QueueJob, old_pending.id, days=10)

        assert await queue_repository.cleanup_old_jobs(days_old=7) == 1
        assert await queue_repository.get_by_id(done[0].id) is None
        assert await queue_repository.get_by_id(done[1].id) is not None
        assert await queue_repository.get_by_id(old_pending.id) is not None

    @pytest.mark.asyncio
    async def test_get_recent_jobs(self, queue_repository):
        await add_job(queue_repository, job_type="cleanup_old_jobs")
        await add_job(queue_repository, job_type="send_daily_summary")

        jobs = await queue_repository.get_recent_jobs(job_type="send_daily_summary")

        assert [job.job_type for job in jobs] == ["send_daily_summary"]
