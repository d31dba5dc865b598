"""Integration tests for per-user scan scheduling"""

import pytest

from applyflow.core.config import settings
from applyflow.core.exceptions import NotFoundException, ValidationException
from applyflow.models import QueueJob, QueueJobStatus
from applyflow.services.background_job_manager import BackgroundJobManager
from applyflow.services.queue_manager import QueueManager


@pytest.fixture
def queue_manager(queue, queue_repository):
    return QueueManager(queue, queue_repository)


@pytest.fixture
def job_manager(session_factory, queue_manager):
    return BackgroundJobManager(session_factory, queue_manager)


class TestBackgroundJobManager:
    """Test cases for BackgroundJobManager"""

    @pytest.mark.asyncio
    async def test_initialize_counts_auto_scan_users(self, job_manager, make_profile):
        await make_profile("user-1")
        await make_profile("user-2", auto_scan_enabled=False)
        await make_profile("user-3", is_enabled=False)

        assert await job_manager.initialize() == 1
        assert job_manager.is_initialized is True

        job_manager.shutdown()
        assert job_manager.is_initialized is False

    @pytest.mark.asyncio
    async def test_schedule_and_unschedule(self, job_manager, make_profile):
        await make_profile(auto_scan_enabled=False)

        scheduled = await job_manager.schedule_job_scan("user-1", interval_hours=6)
        assert scheduled.auto_scan_enabled is True
        assert scheduled.scan_frequency_hours == 6

        unscheduled = await job_manager.unschedule_job_scan("user-1")
        assert unscheduled.auto_scan_enabled is False
        assert unscheduled.scan_frequency_hours == 6

    @pytest.mark.asyncio
    async def test_update_schedule_dispatches_on_enabled(self, job_manager, make_profile):
        await make_profile()

        disabled = await job_manager.update_job_scan_schedule("user-1", 8, is_enabled=False)
        assert disabled.auto_scan_enabled is False

        enabled = await job_manager.update_job_scan_schedule("user-1", 8, is_enabled=True)
        assert enabled.auto_scan_enabled is True
        assert enabled.scan_frequency_hours == 8

    @pytest.mark.asyncio
    async def test_schedule_unknown_user(self, job_manager):
        with pytest.raises(NotFoundException):
            await job_manager.schedule_job_scan("nobody")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("interval_hours", [0, -2])
    async def test_schedule_rejects_bad_interval(self, job_manager, make_profile, interval_hours):
        await make_profile()

        with pytest.raises(ValidationException):
            await job_manager.schedule_job_scan("user-1", interval_hours=interval_hours)

    @pytest.mark.asyncio
    async def test_schedule_defaults_interval(self, job_manager, make_profile):
        await make_profile(auto_scan_enabled=False)

        scheduled = await job_manager.schedule_job_scan("user-1")

        assert scheduled.scan_frequency_hours == settings.DEFAULT_SCAN_FREQUENCY_HOURS

    @pytest.mark.asyncio
    async def test_trigger_scan_enqueues_deduplicated_job(self, job_manager, queue_repository):
        first = await job_manager.trigger_scan("user-1")
        second = await job_manager.trigger_scan("user-1")

        assert first == second
        job = await queue_repository.get_by_id(first)
        assert job.job_type == "user_job_scan"
        assert job.payload == {"user_id": "user-1"}
        assert job.user_id == "user-1"
        assert job.max_attempts == 2
        assert job.deduplication_key == "user_scan:user-1"

    @pytest.mark.asyncio
    async def test_stats_and_clear_old_jobs(self, job_manager, queue_repository, backdate, session_factory):
        job_id = await job_manager.trigger_scan("user-1")
        async with session_factory() as db:
            job = await db.get(QueueJob, job_id)
            job.status = QueueJobStatus.FAILED
            await db.commit()
        await backdate(QueueJob, job_id, days=10)

        stats = await job_manager.get_job_stats()
        assert stats["failed"] == 1
        assert stats["pending"] == 0

        assert await job_manager.clear_old_jobs(7) == 1
        assert await queue_repository.get_by_id(job_id) is None
