"""Recurring enqueue of maintenance and scan jobs"""

import asyncio
from dataclasses import dataclass, field, replace
from typing import Dict, Any, Optional, List, Union

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from applyflow.core.config import settings
from applyflow.core.exceptions import ValidationException, NotFoundException
from applyflow.core.locks import RedisLeaderLock
from applyflow.core.logging import get_logger
from applyflow.core.task_queue import JobQueue, JobType, EnqueueOptions
from applyflow.models.schedule_definition import ScheduleDefinition
from applyflow.repositories.schedule_repository import ScheduleRepository

logger = get_logger(__name__)


JOB_PRIORITIES: Dict[JobType, int] = {
    JobType.USER_JOB_SCAN: 10,  # user-initiated
    JobType.ANALYZE_JOB_MATCH: 8,
    JobType.PROCESS_APPLICATION: 8,
    JobType.AUTOMATED_JOB_SCAN: 7,
    JobType.CLEANUP_EXPIRED_REVIEWS: 4,
    JobType.CLEANUP_EXPIRED_NOTIFICATIONS: 3,
    JobType.CLEANUP_OLD_JOBS: 3,
    JobType.SEND_DAILY_SUMMARY: 2,
}
DEFAULT_PRIORITY = 5


def priority_for(job_type: Union[str, JobType]) -> int:
    """Static priority of a job type; unknown types get the middle value"""
    try:
        job_type = JobType(job_type)
    except ValueError:
        return DEFAULT_PRIORITY
    return JOB_PRIORITIES.get(job_type, DEFAULT_PRIORITY)


def _step(field_value: str) -> Optional[int]:
    if not field_value.startswith("*/"):
        return None
    try:
        value = int(field_value[2:])
    except ValueError:
        return None
    return value if value > 0 else None


def cron_to_interval(expression: str) -> Optional[float]:
    """
    Reduce a cron expression to a fixed interval

    Only three shapes are understood: `*/N` in the minute field, `*/N` in the
    hour field, and a fixed daily time (`M H * * *`). Any other valid
    five-field expression runs hourly.

    Args:
        expression: Five-field cron expression

    Returns:
        Interval in seconds, or None if the expression is malformed
    """
    parts = (expression or "").split()
    if len(parts) != 5:
        return None

    minute, hour, day_of_month, month, day_of_week = parts

    minutes = _step(minute)
    if minutes is not None:
        return minutes * 60.0

    hours = _step(hour)
    if hours is not None:
        return hours * 3600.0

    if minute != "*" and hour != "*" and (day_of_month, month, day_of_week) == ("*", "*", "*"):
        return 24 * 3600.0

    return 3600.0


@dataclass
class ScheduleConfig:
    """Recurring enqueue rule for one job type"""
    job_type: JobType
    cron_expression: str
    enabled: bool = True
    payload: Dict[str, Any] = field(default_factory=dict)
    max_attempts: int = 3
    timeout: Optional[float] = None
    run_on_start: bool = False

    @property
    def interval(self) -> Optional[float]:
        return cron_to_interval(self.cron_expression)

    @classmethod
    def from_definition(cls, definition: ScheduleDefinition) -> "ScheduleConfig":
        return cls(
            job_type=JobType(definition.job_type),
            cron_expression=definition.cron_expression,
            enabled=definition.enabled,
            payload=dict(definition.payload or {}),
            max_attempts=definition.max_attempts,
            timeout=definition.timeout_seconds,
            run_on_start=definition.run_on_start,
        )

    def to_columns(self) -> Dict[str, Any]:
        return {
            "cron_expression": self.cron_expression,
            "enabled": self.enabled,
            "payload": self.payload,
            "max_attempts": self.max_attempts,
            "timeout_seconds": self.timeout,
            "run_on_start": self.run_on_start,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job_type": self.job_type.value,
            "cron_expression": self.cron_expression,
            "interval_seconds": self.interval,
            "enabled": self.enabled,
            "payload": self.payload,
            "max_attempts": self.max_attempts,
            "timeout": self.timeout,
            "run_on_start": self.run_on_start,
            "priority": priority_for(self.job_type),
        }


DEFAULT_SCHEDULES: List[ScheduleConfig] = [
    ScheduleConfig(JobType.AUTOMATED_JOB_SCAN, "0 */4 * * *", max_attempts=2, timeout=600),
    ScheduleConfig(JobType.CLEANUP_EXPIRED_REVIEWS, "0 */6 * * *", max_attempts=3, timeout=120, run_on_start=True),
    ScheduleConfig(JobType.CLEANUP_EXPIRED_NOTIFICATIONS, "0 2 * * *", max_attempts=3, timeout=300),
    ScheduleConfig(JobType.CLEANUP_OLD_JOBS, "0 3 * * *", max_attempts=3, timeout=300),
    ScheduleConfig(JobType.SEND_DAILY_SUMMARY, "0 9 * * *", enabled=False, max_attempts=2, timeout=120),
]

_UPDATABLE_FIELDS = {"cron_expression", "enabled", "payload", "max_attempts", "timeout", "run_on_start"}


class JobScheduler:
    """
    Periodically enqueues jobs of configured types

    Definitions start from the built-in defaults, are overlaid with rows from
    `schedule_definitions`, and are re-read every sync interval so that a
    change saved by any process reaches every running scheduler.
    """

    def __init__(
        self,
        queue: JobQueue,
        session_factory: async_sessionmaker[AsyncSession] = None,
        leader_lock: Optional[RedisLeaderLock] = None,
        defaults: Optional[List[ScheduleConfig]] = None,
        sync_interval: float = None
    ):
        """
        Initialize the scheduler

        Args:
            queue: Queue that scheduled jobs are enqueued on
            session_factory: Session factory for persisted schedules (None keeps them in memory)
            leader_lock: Optional cross-replica lock guarding each scheduled enqueue
            defaults: Built-in schedules (defaults to DEFAULT_SCHEDULES)
            sync_interval: Seconds between reloads of persisted schedules
        """
        self.queue = queue
        self.session_factory = session_factory
        self.leader_lock = leader_lock
        self.sync_interval = sync_interval or settings.SCHEDULE_SYNC_INTERVAL_SECONDS
        self.schedules: Dict[str, ScheduleConfig] = {
            config.job_type.value: replace(config, payload=dict(config.payload))
            for config in (DEFAULT_SCHEDULES if defaults is None else defaults)
        }
        self.is_running = False
        self._timers: Dict[str, asyncio.Task] = {}
        self._installed: Dict[str, ScheduleConfig] = {}
        self._sync_task: Optional[asyncio.Task] = None

    async def _load_persisted(self) -> Dict[str, ScheduleConfig]:
        if self.session_factory is None:
            return {}

        async with self.session_factory() as db:
            definitions = await ScheduleRepository(db).get_all()

        loaded = {}
        for definition in definitions:
            try:
                loaded[definition.job_type] = ScheduleConfig.from_definition(definition)
            except ValueError:
                logger.warning(f"Ignoring persisted schedule for unknown job type: {definition.job_type}")
        return loaded

    async def start(self) -> None:
        """Load persisted schedules and install a timer per enabled one"""
        if self.is_running:
            logger.warning("Job scheduler is already running")
            return

        self.schedules.update(await self._load_persisted())
        self.is_running = True

        for job_type, config in self.schedules.items():
            self._install(job_type, config, initial=True)

        if self.session_factory is not None:
            self._sync_task = asyncio.create_task(self._sync_loop(), name="schedule_sync")

        logger.info(f"Job scheduler started with {len(self._timers)} active schedules")

    async def stop(self) -> None:
        """Cancel every timer and the sync loop"""
        self.is_running = False

        tasks = list(self._timers.values())
        if self._sync_task is not None:
            tasks.append(self._sync_task)
            self._sync_task = None

        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        self._timers.clear()
        self._installed.clear()
        logger.info("Job scheduler stopped")

    def _uninstall(self, job_type: str) -> None:
        task = self._timers.pop(job_type, None)
        if task is not None:
            task.cancel()
        self._installed.pop(job_type, None)

    def _install(self, job_type: str, config: ScheduleConfig, initial: bool = False) -> None:
        self._uninstall(job_type)
        if not config.enabled:
            return

        interval = config.interval
        if interval is None:
            logger.warning(f"Invalid cron expression for {job_type}: {config.cron_expression}")
            return

        fire_now = initial and config.run_on_start
        self._timers[job_type] = asyncio.create_task(
            self._run_timer(config, interval, fire_now),
            name=f"schedule_{job_type}"
        )
        self._installed[job_type] = replace(config)
        logger.info(f"Scheduling {job_type} every {interval:g}s")

    async def _run_timer(self, config: ScheduleConfig, interval: float, fire_now: bool) -> None:
        if fire_now:
            await self.fire(config)
        while True:
            await asyncio.sleep(interval)
            await self.fire(config)

    async def fire(self, config: ScheduleConfig) -> Optional[str]:
        """
        Enqueue one run of a schedule

        Args:
            config: Schedule to run

        Returns:
            Job id, or None if another replica holds the lock or enqueue failed
        """
        job_type = config.job_type.value
        try:
            if self.leader_lock is not None:
                ttl = max((config.interval or 60.0) * 0.9, 1.0)
                if not await self.leader_lock.acquire(f"schedule:{job_type}", ttl):
                    logger.debug(f"Skipping {job_type}: another scheduler holds the lock")
                    return None

            job_id = await self.queue.enqueue_job(
                config.job_type,
                dict(config.payload),
                EnqueueOptions(
                    priority=priority_for(config.job_type),
                    max_attempts=config.max_attempts,
                    deduplication_key=f"schedule:{job_type}",
                )
            )
            logger.info(f"Scheduled job {job_id} of type {job_type}", extra={"job_id": job_id, "job_type": job_type})
            return job_id
        except Exception as e:
            logger.error(f"Failed to schedule job {job_type}: {e}", exc_info=True, extra={"job_type": job_type})
            return None

    async def update_schedule(self, job_type: Union[str, JobType], **changes: Any) -> ScheduleConfig:
        """
        Change a schedule, persist it and re-install its timer

        Args:
            job_type: Scheduled job type
            **changes: Any of cron_expression, enabled, payload, max_attempts,
                timeout, run_on_start

        Returns:
            The updated schedule
        """
        job_type = JobType.parse(job_type)
        unknown = set(changes) - _UPDATABLE_FIELDS
        if unknown:
            raise ValidationException(f"Unknown schedule fields: {', '.join(sorted(unknown))}")

        current = self.schedules.get(job_type.value)
        if current is None:
            if "cron_expression" not in changes:
                raise NotFoundException(f"No schedule for job type: {job_type.value}")
            current = ScheduleConfig(job_type=job_type, cron_expression=changes["cron_expression"])

        updated = replace(current, **changes)
        if updated.interval is None:
            raise ValidationException(
                f"Invalid cron expression: {updated.cron_expression}",
                details={"job_type": job_type.value}
            )
        if updated.max_attempts < 1:
            raise ValidationException("max_attempts must be at least 1", details={"job_type": job_type.value})

        if self.session_factory is not None:
            async with self.session_factory() as db:
                await ScheduleRepository(db).upsert(job_type.value, updated.to_columns())

        self.schedules[job_type.value] = updated
        if self.is_running:
            self._install(job_type.value, updated)

        logger.info(f"Updated schedule for {job_type.value}: {changes}")
        return updated

    async def reload(self) -> List[str]:
        """
        Re-read persisted schedules and re-install timers that changed

        Returns:
            Job types whose definition changed
        """
        changed = []
        for job_type, config in (await self._load_persisted()).items():
            if self.schedules.get(job_type) == config:
                continue
            self.schedules[job_type] = config
            changed.append(job_type)
            if self.is_running:
                self._install(job_type, config)

        if changed:
            logger.info(f"Reloaded schedules: {', '.join(changed)}")
        return changed

    async def _sync_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sync_interval)
            try:
                await self.reload()
            except Exception as e:
                logger.error(f"Schedule reload failed: {e}", exc_info=True)

    def get_schedules(self) -> Dict[str, Dict[str, Any]]:
        """All schedules with their derived interval and whether a timer is live"""
        return {
            job_type: {**config.to_dict(), "active": job_type in self._timers}
            for job_type, config in self.schedules.items()
        }
