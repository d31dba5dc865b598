"""Queue manager - the queue surface business code talks to"""

from typing import Dict, Any, Optional, Union, Mapping

from applyflow.core.config import settings
from applyflow.core.logging import get_logger
from applyflow.core.task_queue import JobQueue, JobType, JobHandler, EnqueueOptions, QueueMetrics
from applyflow.models.queue_job import QueueJob
from applyflow.repositories.queue_job_repository import QueueJobRepository
from applyflow.services.scheduler import priority_for

logger = get_logger(__name__)


# job type -> (concurrency, poll interval seconds, timeout seconds)
HANDLER_OPTIONS: Dict[JobType, tuple] = {
    JobType.USER_JOB_SCAN: (2, 1.0, 300),
    JobType.ANALYZE_JOB_MATCH: (5, 2.0, 60),
    JobType.PROCESS_APPLICATION: (3, None, 120),
    JobType.AUTOMATED_JOB_SCAN: (1, None, 600),
    JobType.CLEANUP_EXPIRED_REVIEWS: (1, None, 120),
    JobType.CLEANUP_EXPIRED_NOTIFICATIONS: (1, None, 300),
    JobType.CLEANUP_OLD_JOBS: (1, None, 300),
    JobType.SEND_DAILY_SUMMARY: (1, None, 120),
}


class QueueManager:
    """
    Registers handlers and exposes business-level enqueue helpers

    The queue implementation is injected, so swapping the database-backed
    pool for a broker only changes the composition root.
    """

    def __init__(self, queue: JobQueue, repository: Optional[QueueJobRepository] = None):
        """
        Initialize queue manager

        Args:
            queue: Queue implementation
            repository: Job store for lookups and history pruning
        """
        self.queue = queue
        self.repository = repository or getattr(queue, "repository", None) or QueueJobRepository()

    def initialize(self, handlers: Mapping[JobType, JobHandler]) -> None:
        """
        Register every handler with its concurrency, poll interval and deadline

        Args:
            handlers: Handler per job type
        """
        for job_type, handler in handlers.items():
            concurrency, poll_interval, timeout = HANDLER_OPTIONS.get(JobType(job_type), (None, None, None))
            self.queue.register_handler(
                job_type,
                handler,
                concurrency=concurrency,
                poll_interval=poll_interval,
                timeout=timeout,
            )
        logger.info(f"Queue manager initialized with {len(handlers)} handlers")

    async def start(self) -> None:
        await self.queue.start()

    async def stop(self) -> None:
        await self.queue.stop()

    async def enqueue_ai_analysis(self, job_listing_id: str, user_id: str) -> str:
        """Queue AI scoring of a newly discovered listing"""
        return await self.queue.enqueue_job(
            JobType.ANALYZE_JOB_MATCH,
            {"job_listing_id": job_listing_id, "user_id": user_id},
            EnqueueOptions(
                priority=priority_for(JobType.ANALYZE_JOB_MATCH),
                max_attempts=3,
                user_id=user_id,
                deduplication_key=f"ai_analysis:{job_listing_id}",
            )
        )

    async def enqueue_user_job_scan(self, user_id: str) -> str:
        """Queue a user-initiated scan; repeat requests collapse onto the live one"""
        return await self.queue.enqueue_job(
            JobType.USER_JOB_SCAN,
            {"user_id": user_id},
            EnqueueOptions(
                priority=priority_for(JobType.USER_JOB_SCAN),
                max_attempts=2,
                user_id=user_id,
                deduplication_key=f"user_scan:{user_id}",
            )
        )

    async def enqueue_application(self, job_listing_id: str, user_id: str) -> str:
        """Queue an automatic application to a listing"""
        return await self.queue.enqueue_job(
            JobType.PROCESS_APPLICATION,
            {"job_listing_id": job_listing_id, "user_id": user_id},
            EnqueueOptions(
                priority=priority_for(JobType.PROCESS_APPLICATION),
                max_attempts=3,
                user_id=user_id,
                deduplication_key=f"apply:{job_listing_id}",
            )
        )

    async def enqueue_with_delay(
        self,
        job_type: Union[str, JobType],
        payload: Dict[str, Any],
        delay_seconds: float,
        options: Optional[EnqueueOptions] = None
    ) -> str:
        """
        Queue a job that becomes available after a delay

        Args:
            job_type: Job type
            payload: Handler input
            delay_seconds: Seconds before the job can be claimed
            options: Other enqueue options; their delay is overridden

        Returns:
            Job id
        """
        options = options or EnqueueOptions()
        options = EnqueueOptions(
            priority=options.priority,
            delay_seconds=delay_seconds,
            max_attempts=options.max_attempts,
            user_id=options.user_id,
            deduplication_key=options.deduplication_key,
        )
        return await self.queue.enqueue_job(job_type, payload, options)

    async def enqueue(self, job_type: Union[str, JobType], payload: Dict[str, Any], options: Optional[EnqueueOptions] = None) -> str:
        return await self.queue.enqueue_job(job_type, payload, options)

    async def get_job(self, job_id: str) -> Optional[QueueJob]:
        return await self.repository.get_by_id(job_id)

    async def get_metrics(self) -> QueueMetrics:
        return await self.queue.get_metrics()

    async def health_check(self) -> Dict[str, Any]:
        """
        Health of the queue system

        Returns:
            Dictionary with `healthy`, `metrics` and the thresholds applied
        """
        thresholds = {
            "max_failed": settings.QUEUE_HEALTH_MAX_FAILED,
            "max_processing": settings.QUEUE_HEALTH_MAX_PROCESSING,
        }
        try:
            metrics = await self.get_metrics()
        except Exception as e:
            logger.error(f"Queue health check failed: {e}", exc_info=True)
            return {"healthy": False, "metrics": QueueMetrics().to_dict(), "thresholds": thresholds}

        healthy = metrics.is_healthy(thresholds["max_failed"], thresholds["max_processing"])
        return {"healthy": healthy, "metrics": metrics.to_dict(), "thresholds": thresholds}

    async def cleanup_queue(self, days_old: int = None) -> int:
        """
        Delete finished jobs older than the retention window

        Args:
            days_old: Retention in days (defaults to QUEUE_HISTORY_RETENTION_DAYS)

        Returns:
            Number of jobs deleted
        """
        days_old = settings.QUEUE_HISTORY_RETENTION_DAYS if days_old is None else days_old
        deleted = await self.repository.cleanup_old_jobs(days_old)
        logger.info(f"Cleaned up {deleted} queue jobs older than {days_old} days")
        return deleted
