"""Composition root for the queue system"""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from applyflow.core.config import settings
from applyflow.core.locks import RedisLeaderLock
from applyflow.core.logging import get_logger
from applyflow.repositories.queue_job_repository import QueueJobRepository
from applyflow.services.background_job_manager import BackgroundJobManager
from applyflow.services.cleanup_handlers import CleanupHandlers
from applyflow.services.job_handlers import JobHandlers
from applyflow.services.job_matcher import OpenAIJobMatcher
from applyflow.services.job_scanner import JobScanner
from applyflow.services.job_search import JobSearchService
from applyflow.services.queue_manager import QueueManager
from applyflow.services.scheduler import JobScheduler
from applyflow.services.worker_pool import DatabaseQueue

logger = get_logger(__name__)


@dataclass
class QueueSystem:
    """Everything a process needs to enqueue, consume and schedule jobs"""
    queue: DatabaseQueue
    queue_manager: QueueManager
    scheduler: JobScheduler
    job_manager: BackgroundJobManager
    leader_lock: Optional[RedisLeaderLock] = None

    async def start(self, with_scheduler: bool = True) -> None:
        await self.queue_manager.start()
        if with_scheduler:
            await self.scheduler.start()
        await self.job_manager.initialize()

    async def stop(self) -> None:
        """Stop scheduling first, then drain the pool"""
        await self.scheduler.stop()
        await self.queue_manager.stop()
        self.job_manager.shutdown()
        if self.leader_lock is not None:
            await self.leader_lock.disconnect()


def build_queue_system(
    session_factory: async_sessionmaker[AsyncSession] = None,
    search_service: Optional[JobSearchService] = None,
    matcher: Optional[OpenAIJobMatcher] = None,
    leader_lock: Optional[RedisLeaderLock] = None,
    **queue_options
) -> QueueSystem:
    """
    Wire the pool, handlers, scheduler and manager together

    Args:
        session_factory: Session factory for the job store and domain tables
        search_service: Job search collaborator (defaults from settings)
        matcher: AI match collaborator (defaults from settings)
        leader_lock: Scheduler lock; created from settings when enabled there
        **queue_options: Passed to DatabaseQueue (max_concurrency, poll_interval, ...)

    Returns:
        Unstarted QueueSystem
    """
    if session_factory is None:
        from applyflow.core.database import AsyncSessionLocal
        session_factory = AsyncSessionLocal

    repository = QueueJobRepository(session_factory)
    queue = DatabaseQueue(repository=repository, **queue_options)
    queue_manager = QueueManager(queue, repository)

    scanner = JobScanner(session_factory, search_service or JobSearchService(), queue_manager)
    job_handlers = JobHandlers(session_factory, scanner, matcher or OpenAIJobMatcher(), queue_manager)
    cleanup_handlers = CleanupHandlers(session_factory, repository)
    queue_manager.initialize({**job_handlers.routes(), **cleanup_handlers.routes()})

    if leader_lock is None and settings.SCHEDULER_LEADER_LOCK_ENABLED:
        leader_lock = RedisLeaderLock()

    scheduler = JobScheduler(queue, session_factory=session_factory, leader_lock=leader_lock)
    job_manager = BackgroundJobManager(session_factory, queue_manager)

    logger.info("Queue system assembled")
    return QueueSystem(
        queue=queue,
        queue_manager=queue_manager,
        scheduler=scheduler,
        job_manager=job_manager,
        leader_lock=leader_lock,
    )
