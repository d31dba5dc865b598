"""Idempotent sweep handlers for expired and aged-out rows"""

from datetime import timedelta
from typing import Dict, Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from applyflow.core.config import settings
from applyflow.core.logging import get_logger
from applyflow.core.task_queue import JobResult, JobType, JobHandler
from applyflow.models.base import utcnow
from applyflow.models.queue_job import QueueJob
from applyflow.repositories.job_listing_repository import JobListingRepository
from applyflow.repositories.notification_repository import NotificationRepository
from applyflow.repositories.queue_job_repository import QueueJobRepository

logger = get_logger(__name__)


class CleanupHandlers:
    """
    Sweeps that only touch rows already past their thresholds

    Each sweep is a set of conditional bulk updates or deletes, so running
    one twice, or two copies at once, converges on the same end state.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        queue_repository: Optional[QueueJobRepository] = None
    ):
        self.session_factory = session_factory
        self.queue_repository = queue_repository

    def routes(self) -> Dict[JobType, JobHandler]:
        return {
            JobType.CLEANUP_EXPIRED_REVIEWS: self.cleanup_expired_reviews,
            JobType.CLEANUP_EXPIRED_NOTIFICATIONS: self.cleanup_expired_notifications,
            JobType.CLEANUP_OLD_JOBS: self.cleanup_old_jobs,
        }

    async def cleanup_expired_reviews(self, payload: Dict[str, Any], job: Optional[QueueJob] = None) -> JobResult:
        """Expire PENDING reviews past their deadline along with their notifications"""
        async with self.session_factory() as db:
            counts = await NotificationRepository(db).expire_reviews(utcnow())

        logger.info(f"Expired {counts['reviews']} reviews and {counts['notifications']} notifications")
        return JobResult.ok(expired_reviews=counts["reviews"], expired_notifications=counts["notifications"])

    async def cleanup_expired_notifications(self, payload: Dict[str, Any], job: Optional[QueueJob] = None) -> JobResult:
        """
        Expire stale notifications, then delete long-expired ones

        A notification is expired once its deadline is more than the grace
        period in the past, and deleted once it has sat EXPIRED beyond the
        retention period.
        """
        now = utcnow()
        grace_days = payload.get("grace_days", settings.NOTIFICATION_EXPIRY_GRACE_DAYS)
        retention_days = payload.get("retention_days", settings.NOTIFICATION_RETENTION_DAYS)

        async with self.session_factory() as db:
            notifications = NotificationRepository(db)
            expired = await notifications.expire_notifications(now - timedelta(days=grace_days))
            deleted = await notifications.delete_expired(now - timedelta(days=retention_days))

        logger.info(f"Expired {expired} notifications, deleted {deleted}")
        return JobResult.ok(expired_notifications=expired, deleted_notifications=deleted)

    async def cleanup_old_jobs(self, payload: Dict[str, Any], job: Optional[QueueJob] = None) -> JobResult:
        """
        Delete listings nobody applied to once they age out

        Also prunes finished queue history when a job store is attached.
        """
        now = utcnow()
        stale_days = payload.get("stale_days", settings.STALE_LISTING_DAYS)
        processed_days = payload.get("processed_days", settings.PROCESSED_LISTING_RETENTION_DAYS)

        async with self.session_factory() as db:
            counts = await JobListingRepository(db).delete_stale(
                unprocessed_before=now - timedelta(days=stale_days),
                processed_before=now - timedelta(days=processed_days),
            )

        queue_jobs_deleted = 0
        if self.queue_repository is not None:
            queue_jobs_deleted = await self.queue_repository.cleanup_old_jobs(settings.QUEUE_HISTORY_RETENTION_DAYS)

        logger.info(
            f"Deleted {counts['unprocessed']} unprocessed and {counts['processed']} processed listings, "
            f"{queue_jobs_deleted} finished queue jobs"
        )
        return JobResult.ok(
            deleted_unprocessed_listings=counts["unprocessed"],
            deleted_processed_listings=counts["processed"],
            deleted_queue_jobs=queue_jobs_deleted,
        )
