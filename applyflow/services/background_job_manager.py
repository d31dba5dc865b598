"""Per-user scan scheduling on top of the claim-based queue"""

from typing import Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from applyflow.core.config import settings
from applyflow.core.exceptions import NotFoundException, ValidationException
from applyflow.core.logging import get_logger
from applyflow.models.profile import AutoApplySettings
from applyflow.repositories.profile_repository import ProfileRepository
from applyflow.services.queue_manager import QueueManager

logger = get_logger(__name__)


class BackgroundJobManager:
    """
    Manages per-user job scan cadence

    No timers live in this process. A user's cadence is stored on their
    auto-apply settings and the scheduled `automated_job_scan` picks up every
    user whose last scan is older than it, so schedules survive restarts and
    work across replicas.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], queue_manager: QueueManager):
        self.session_factory = session_factory
        self.queue_manager = queue_manager
        self.is_initialized = False

    async def initialize(self) -> int:
        """
        Report the users currently on automatic scanning

        Returns:
            Number of users with auto-scan enabled
        """
        async with self.session_factory() as db:
            profiles = await ProfileRepository(db).get_auto_scan_profiles()

        self.is_initialized = True
        logger.info(f"Background job manager initialized with {len(profiles)} auto-scan users")
        return len(profiles)

    async def _update(self, user_id: str, **values) -> AutoApplySettings:
        async with self.session_factory() as db:
            updated = await ProfileRepository(db).update_settings(user_id, **values)
        if updated is None:
            raise NotFoundException(f"Auto-apply settings for user {user_id} not found")
        return updated

    async def schedule_job_scan(self, user_id: str, interval_hours: int = None) -> AutoApplySettings:
        """
        Enable automatic scanning for a user

        Args:
            user_id: User to scan for
            interval_hours: Hours between scans

        Returns:
            Updated settings
        """
        if interval_hours is None:
            interval_hours = settings.DEFAULT_SCAN_FREQUENCY_HOURS
        if interval_hours < 1:
            raise ValidationException("interval_hours must be at least 1")

        updated = await self._update(user_id, auto_scan_enabled=True, scan_frequency_hours=interval_hours)
        logger.info(f"Scheduled job scan for user {user_id} every {interval_hours} hours", extra={"user_id": user_id})
        return updated

    async def unschedule_job_scan(self, user_id: str) -> AutoApplySettings:
        """Disable automatic scanning for a user"""
        updated = await self._update(user_id, auto_scan_enabled=False)
        logger.info(f"Unscheduled job scan for user {user_id}", extra={"user_id": user_id})
        return updated

    async def update_job_scan_schedule(self, user_id: str, interval_hours: int, is_enabled: bool) -> AutoApplySettings:
        if not is_enabled:
            return await self.unschedule_job_scan(user_id)
        return await self.schedule_job_scan(user_id, interval_hours)

    async def trigger_scan(self, user_id: str) -> str:
        """Queue an immediate scan for a user and return the job id"""
        return await self.queue_manager.enqueue_user_job_scan(user_id)

    async def get_job_stats(self) -> Dict[str, int]:
        return (await self.queue_manager.get_metrics()).to_dict()

    async def clear_old_jobs(self, older_than_days: Optional[int] = None) -> int:
        return await self.queue_manager.cleanup_queue(older_than_days)

    def shutdown(self) -> None:
        self.is_initialized = False
        logger.info("Background job manager shutdown")
