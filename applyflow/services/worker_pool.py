"""Database-backed worker pool implementing the queue contract"""

import asyncio
import functools
import os
import socket
import uuid
from collections import defaultdict
from datetime import timedelta
from typing import Dict, Any, Optional, Set, Union

from applyflow.core.config import settings
from applyflow.core.exceptions import ValidationException
from applyflow.core.logging import get_logger
from applyflow.core.task_queue import (
    JobQueue,
    JobType,
    JobHandler,
    JobResult,
    EnqueueOptions,
    HandlerRegistration,
    QueueMetrics,
)
from applyflow.models.base import utcnow
from applyflow.models.queue_job import QueueJob
from applyflow.repositories.queue_job_repository import QueueJobRepository
from applyflow.services.retry_policy import RetryPolicy

logger = get_logger(__name__)


def default_worker_id() -> str:
    return f"{socket.gethostname()}:{os.getpid()}:{uuid.uuid4().hex[:8]}"


class HandlerTimeoutError(Exception):
    """A timeout raised inside a handler, as opposed to its registered deadline"""


async def _run_handler(handler, payload: Dict[str, Any], job: QueueJob):
    try:
        return await handler(payload, job)
    except asyncio.TimeoutError as e:
        raise HandlerTimeoutError(str(e) or "operation timed out") from e


class DatabaseQueue(JobQueue):
    """
    Poll-and-claim worker pool over the job store

    One poll loop claims ready jobs up to the free concurrency headroom and
    runs each as its own asyncio task. Handler failures are contained per
    task and routed through the retry policy.
    """

    def __init__(
        self,
        repository: QueueJobRepository = None,
        retry_policy: RetryPolicy = None,
        max_concurrency: int = None,
        poll_interval: float = None,
        visibility_timeout: float = None,
        worker_id: str = None
    ):
        """
        Initialize the pool

        Args:
            repository: Job store (defaults to one over the global session factory)
            retry_policy: Backoff policy (defaults from settings)
            max_concurrency: Global cap on in-flight jobs
            poll_interval: Seconds between poll ticks
            visibility_timeout: Seconds before a PROCESSING lease is considered abandoned
            worker_id: Lease owner name stamped on claimed rows
        """
        self.repository = repository or QueueJobRepository()
        self.retry_policy = retry_policy or RetryPolicy()
        self.max_concurrency = max_concurrency or settings.QUEUE_MAX_CONCURRENCY
        self.poll_interval = poll_interval or settings.QUEUE_POLL_INTERVAL_SECONDS
        self.visibility_timeout = visibility_timeout or settings.QUEUE_VISIBILITY_TIMEOUT_SECONDS
        self.worker_id = worker_id or default_worker_id()

        self.handlers: Dict[str, HandlerRegistration] = {}
        self.is_running = False
        self._stopping = asyncio.Event()
        self._poll_task: Optional[asyncio.Task] = None
        self._active: Set[asyncio.Task] = set()
        self._active_by_type: Dict[str, int] = defaultdict(int)

    async def enqueue_job(
        self,
        job_type: Union[str, JobType],
        payload: Dict[str, Any],
        options: Optional[EnqueueOptions] = None
    ) -> str:
        """
        Add a job to the store

        Args:
            job_type: Registered job type or its string value
            payload: JSON-serializable handler input
            options: Priority, delay, attempts, owner and deduplication key

        Returns:
            Job id (the existing job's id on a deduplication hit)
        """
        job_type = JobType.parse(job_type)
        options = options or EnqueueOptions()

        if not isinstance(payload, dict):
            raise ValidationException("Job payload must be a JSON object")

        priority = settings.QUEUE_DEFAULT_PRIORITY if options.priority is None else options.priority
        max_attempts = settings.QUEUE_DEFAULT_MAX_ATTEMPTS if options.max_attempts is None else options.max_attempts
        if max_attempts < 1:
            raise ValidationException("max_attempts must be at least 1", details={"max_attempts": max_attempts})

        # An empty key means no deduplication
        deduplication_key = options.deduplication_key or None
        delay = max(options.delay_seconds or 0, 0)
        job, created = await self.repository.create_job(
            job_type=job_type.value,
            payload=payload,
            priority=priority,
            max_attempts=max_attempts,
            available_at=utcnow() + timedelta(seconds=delay),
            user_id=options.user_id,
            deduplication_key=deduplication_key,
        )

        extra = {"job_id": job.id, "job_type": job_type.value, "user_id": options.user_id}
        if created:
            logger.info(f"Enqueued {job_type.value} job {job.id} (priority {priority}, delay {delay}s)", extra=extra)
        else:
            logger.info(
                f"Deduplicated {job_type.value} enqueue onto job {job.id} (key {deduplication_key})",
                extra=extra
            )
        return job.id

    def register_handler(
        self,
        job_type: Union[str, JobType],
        handler: JobHandler,
        concurrency: Optional[int] = None,
        poll_interval: Optional[float] = None,
        timeout: Optional[float] = None
    ) -> None:
        """
        Route a job type to a handler

        Args:
            job_type: Job type to route
            handler: async handler(payload, job) returning a JobResult or dict
            concurrency: Per-type cap on in-flight jobs (None for the global cap only)
            poll_interval: Preferred tick in seconds; the pool ticks at the smallest
            timeout: Hard deadline in seconds for one handler run
        """
        job_type = JobType.parse(job_type)
        if concurrency is not None and concurrency < 1:
            raise ValidationException("concurrency must be at least 1", details={"job_type": job_type.value})

        if job_type.value in self.handlers:
            logger.warning(f"Replacing handler for job type: {job_type.value}")

        self.handlers[job_type.value] = HandlerRegistration(
            handler=handler,
            concurrency=concurrency,
            poll_interval=poll_interval,
            timeout=timeout,
        )
        logger.info(f"Registered handler for job type: {job_type.value}")

    @property
    def tick_interval(self) -> float:
        intervals = [reg.poll_interval for reg in self.handlers.values() if reg.poll_interval]
        return min([self.poll_interval, *intervals])

    @property
    def active_count(self) -> int:
        return len(self._active)

    async def start(self) -> None:
        """Start the poll loop"""
        if self.is_running:
            logger.warning("Worker pool is already running")
            return

        self.is_running = True
        self._stopping.clear()
        self._poll_task = asyncio.create_task(self._poll_loop(), name=f"queue_poller_{self.worker_id}")
        logger.info(
            f"Worker pool {self.worker_id} started "
            f"(max_concurrency={self.max_concurrency}, tick={self.tick_interval}s, "
            f"handlers={sorted(self.handlers)})"
        )

    async def stop(self) -> None:
        """Stop claiming and wait for every in-flight job to finish"""
        self._stopping.set()

        if self._poll_task is not None:
            await self._poll_task
            self._poll_task = None

        if self._active:
            logger.info(f"Draining {len(self._active)} in-flight jobs")
        await self.join()

        if self.is_running:
            logger.info(f"Worker pool {self.worker_id} stopped")
        self.is_running = False

    async def join(self) -> None:
        """Wait until no dispatched job is still running"""
        while self._active:
            await asyncio.gather(*list(self._active), return_exceptions=True)

    async def get_metrics(self) -> QueueMetrics:
        """Counts by status plus jobs in flight in this process"""
        counts = await self.repository.metrics()
        return QueueMetrics(
            pending=counts.get("PENDING", 0),
            processing=counts.get("PROCESSING", 0),
            completed=counts.get("COMPLETED", 0),
            failed=counts.get("FAILED", 0),
            workers=len(self._active),
        )

    async def _poll_loop(self) -> None:
        while not self._stopping.is_set():
            try:
                await self.poll_once()
            except Exception as e:
                logger.error(f"Poll tick failed: {e}", exc_info=True, extra={"worker_id": self.worker_id})

            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self.tick_interval)
            except asyncio.TimeoutError:
                pass

    async def poll_once(self) -> int:
        """
        Run one poll tick: recover abandoned leases, claim and dispatch

        Returns:
            Number of jobs dispatched
        """
        await self.repository.recover_stale(self.visibility_timeout)

        headroom = self.max_concurrency - len(self._active)
        if headroom <= 0 or self._stopping.is_set():
            return 0

        type_limits = {
            job_type: reg.concurrency - self._active_by_type[job_type]
            for job_type, reg in self.handlers.items()
            if reg.concurrency is not None
        }

        jobs = await self.repository.claim_batch(headroom, self.worker_id, type_limits=type_limits)
        if not jobs:
            return 0

        if self._stopping.is_set():
            released = await self.repository.release(jobs)
            logger.info(f"Released {released} jobs claimed during shutdown", extra={"worker_id": self.worker_id})
            return 0

        for job in jobs:
            self._dispatch(job)
        return len(jobs)

    def _dispatch(self, job: QueueJob) -> None:
        logger.info(
            f"Claimed {job.job_type} job {job.id}",
            extra={"job_id": job.id, "job_type": job.job_type, "worker_id": self.worker_id, "attempt": job.attempt_count}
        )
        task = asyncio.create_task(self._run_job(job), name=f"job_{job.id}")
        self._active.add(task)
        self._active_by_type[job.job_type] += 1
        task.add_done_callback(functools.partial(self._on_task_done, job.job_type))

    def _on_task_done(self, job_type: str, task: asyncio.Task) -> None:
        self._active.discard(task)
        self._active_by_type[job_type] -= 1
        if self._active_by_type[job_type] <= 0:
            del self._active_by_type[job_type]

    async def _run_job(self, job: QueueJob) -> None:
        extra = {"job_id": job.id, "job_type": job.job_type, "worker_id": self.worker_id, "attempt": job.attempt_count}
        registration = self.handlers.get(job.job_type)

        try:
            if registration is None:
                error = f"No handler registered for job type: {job.job_type}"
                await self.repository.mark_failed(job, error, job.attempt_count + 1)
                logger.error(f"Failed job {job.id}: {error}", extra=extra)
                return

            result = await self._invoke(registration, job, extra)
            await self._finish(job, result, extra)
        except Exception as e:
            # The row stays PROCESSING and is picked up by lease recovery
            logger.error(f"Could not record outcome of job {job.id}: {e}", exc_info=True, extra=extra)

    async def _invoke(self, registration: HandlerRegistration, job: QueueJob, extra: Dict[str, Any]) -> JobResult:
        payload = dict(job.payload or {})
        call = _run_handler(registration.handler, payload, job)
        try:
            if registration.timeout:
                outcome = await asyncio.wait_for(call, timeout=registration.timeout)
            else:
                outcome = await call
            return JobResult.coerce(outcome)
        except HandlerTimeoutError as e:
            logger.warning(f"Handler for job {job.id} timed out: {e}", extra=extra)
            return JobResult.failed(str(e))
        except asyncio.TimeoutError:
            # Only the registered deadline reaches here
            return JobResult.failed(f"operation timed out after {registration.timeout:g}s", retry=False)
        except Exception as e:
            logger.warning(f"Handler for job {job.id} raised: {e}", exc_info=True, extra=extra)
            return JobResult.failed(str(e) or type(e).__name__)

    async def _finish(self, job: QueueJob, result: JobResult, extra: Dict[str, Any]) -> None:
        if result.success:
            if await self.repository.mark_completed(job, result.data):
                logger.info(f"Completed job {job.id}", extra=extra)
            else:
                logger.warning(f"Lost lease on job {job.id} before completion was recorded", extra=extra)
            return

        error = result.error or "Unknown error"
        decision = self.retry_policy.decide(
            attempt_count=job.attempt_count,
            max_attempts=job.max_attempts,
            retry=result.retry,
            retry_delay=result.retry_delay,
        )

        if decision.retry:
            recorded = await self.repository.reschedule(job, error, decision.available_at, decision.attempt_count)
            if recorded:
                logger.warning(
                    f"Retrying job {job.id} in {decision.delay:g}s "
                    f"(attempt {decision.attempt_count}/{job.max_attempts}): {error}",
                    extra=extra
                )
        else:
            recorded = await self.repository.mark_failed(job, error, decision.attempt_count)
            if recorded:
                logger.error(
                    f"Job {job.id} failed permanently after {decision.attempt_count} attempts: {error}",
                    extra=extra
                )

        if not recorded:
            logger.warning(f"Lost lease on job {job.id} before failure was recorded", extra=extra)
