"""Queue contract shared by business code and queue implementations

Business code depends only on `JobQueue`; the database-backed pool in
`applyflow.services.worker_pool` is one implementation and a broker-backed
one can replace it without touching callers.
"""

import abc
import enum
from dataclasses import dataclass, field, asdict
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from applyflow.core.exceptions import ValidationException


class JobType(str, enum.Enum):
    """Every kind of background work the queue knows how to route"""
    USER_JOB_SCAN = "user_job_scan"
    AUTOMATED_JOB_SCAN = "automated_job_scan"
    ANALYZE_JOB_MATCH = "analyze_job_match"
    PROCESS_APPLICATION = "process_application"
    CLEANUP_EXPIRED_REVIEWS = "cleanup_expired_reviews"
    CLEANUP_EXPIRED_NOTIFICATIONS = "cleanup_expired_notifications"
    CLEANUP_OLD_JOBS = "cleanup_old_jobs"
    SEND_DAILY_SUMMARY = "send_daily_summary"

    @classmethod
    def parse(cls, value: Union[str, "JobType"]) -> "JobType":
        """Resolve a job type from its string value"""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise ValidationException(
                f"Unknown job type: {value}",
                details={"allowed": [member.value for member in cls]}
            )


@dataclass
class EnqueueOptions:
    """Options accepted by `JobQueue.enqueue_job`"""
    priority: Optional[int] = None
    delay_seconds: float = 0
    max_attempts: Optional[int] = None
    user_id: Optional[str] = None
    deduplication_key: Optional[str] = None


@dataclass
class JobResult:
    """
    Outcome reported by a handler

    `retry` set to False fails the job immediately; `retry_delay` (seconds)
    overrides the computed backoff.
    """
    success: bool
    data: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    retry: Optional[bool] = None
    retry_delay: Optional[float] = None

    @classmethod
    def ok(cls, **data: Any) -> "JobResult":
        return cls(success=True, data=data or None)

    @classmethod
    def failed(
        cls,
        error: str,
        retry: Optional[bool] = None,
        retry_delay: Optional[float] = None
    ) -> "JobResult":
        return cls(success=False, error=error, retry=retry, retry_delay=retry_delay)

    @classmethod
    def coerce(cls, value: Any) -> "JobResult":
        """Accept handlers that return a plain dict (or nothing) on success"""
        if isinstance(value, cls):
            return value
        if value is None:
            return cls(success=True)
        if isinstance(value, dict):
            return cls(success=True, data=value)
        raise TypeError(f"Handler returned unsupported result type: {type(value).__name__}")


@dataclass
class QueueMetrics:
    """Row counts by status plus the number of in-flight tasks in this process"""
    pending: int = 0
    processing: int = 0
    completed: int = 0
    failed: int = 0
    workers: int = 0

    def is_healthy(self, max_failed: int, max_processing: int) -> bool:
        return self.failed < max_failed and self.processing < max_processing

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


# handler(payload, job) -> JobResult | dict | None
JobHandler = Callable[[Dict[str, Any], Any], Awaitable[Any]]


@dataclass
class HandlerRegistration:
    """Process-local routing entry for one job type"""
    handler: JobHandler
    concurrency: Optional[int] = None
    poll_interval: Optional[float] = None
    timeout: Optional[float] = None
    extra: Dict[str, Any] = field(default_factory=dict)


class JobQueue(abc.ABC):
    """Queue interface - business logic should only use this"""

    @abc.abstractmethod
    async def enqueue_job(
        self,
        job_type: Union[str, JobType],
        payload: Dict[str, Any],
        options: Optional[EnqueueOptions] = None
    ) -> str:
        """Add a job and return its id (existing id on a deduplication hit)"""

    @abc.abstractmethod
    def register_handler(
        self,
        job_type: Union[str, JobType],
        handler: JobHandler,
        concurrency: Optional[int] = None,
        poll_interval: Optional[float] = None,
        timeout: Optional[float] = None
    ) -> None:
        """Route a job type to a handler; a second call replaces the first"""

    @abc.abstractmethod
    async def start(self) -> None:
        """Begin consuming jobs"""

    @abc.abstractmethod
    async def stop(self) -> None:
        """Stop consuming and wait for in-flight jobs to finish"""

    @abc.abstractmethod
    async def get_metrics(self) -> QueueMetrics:
        """Counts by status plus active workers"""
