"""Job store: durable queue rows and their conditional state transitions"""

from typing import Optional, List, Dict, Any, Tuple, Iterable
from datetime import datetime, timedelta
from sqlalchemy import select, update, delete, and_, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from applyflow.models.queue_job import QueueJob, QueueJobStatus, ACTIVE_STATUSES
from applyflow.models.base import utcnow
from applyflow.core.logging import get_logger
from applyflow.core.exceptions import QueueException

logger = get_logger(__name__)

# Attempts at inserting a deduplicated job before giving up on a churning key
_DEDUP_INSERT_ATTEMPTS = 3


class QueueJobRepository:
    """
    Repository for queue rows

    Every method opens its own session so that one repository can be shared
    by the poll loop and all in-flight handler tasks. Transitions out of
    PROCESSING are compare-and-swap updates keyed on the row's status and
    lease timestamp; a writer that lost its lease simply gets False back.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] = None):
        if session_factory is None:
            from applyflow.core.database import AsyncSessionLocal
            session_factory = AsyncSessionLocal
        self.session_factory = session_factory

    async def create_job(
        self,
        job_type: str,
        payload: Dict[str, Any],
        priority: int,
        max_attempts: int,
        available_at: Optional[datetime] = None,
        user_id: Optional[str] = None,
        deduplication_key: Optional[str] = None
    ) -> Tuple[QueueJob, bool]:
        """
        Insert a PENDING job

        Args:
            job_type: Handler routing key
            payload: JSON-serializable handler input
            priority: Higher values are claimed first
            max_attempts: Attempts allowed before permanent failure
            available_at: Earliest claim time (defaults to now)
            user_id: Optional owner
            deduplication_key: Optional key; at most one active job per key

        Returns:
            (job, created) where created is False on a deduplication hit
        """
        deduplication_key = deduplication_key or None
        for _ in range(_DEDUP_INSERT_ATTEMPTS):
            async with self.session_factory() as session:
                if deduplication_key:
                    existing = await self._find_active_by_key(session, deduplication_key)
                    if existing is not None:
                        return existing, False

                job = QueueJob(
                    job_type=job_type,
                    payload=payload,
                    priority=priority,
                    max_attempts=max_attempts,
                    attempt_count=0,
                    status=QueueJobStatus.PENDING,
                    available_at=available_at or utcnow(),
                    user_id=user_id,
                    deduplication_key=deduplication_key,
                )
                session.add(job)
                try:
                    await session.commit()
                except IntegrityError:
                    # Lost the race on the partial unique index
                    await session.rollback()
                    if not deduplication_key:
                        raise
                    existing = await self._find_active_by_key(session, deduplication_key)
                    if existing is not None:
                        return existing, False
                    continue

                return job, True

        raise QueueException(
            f"Could not enqueue job with deduplication key {deduplication_key!r}",
            details={"deduplication_key": deduplication_key}
        )

    async def _find_active_by_key(self, session: AsyncSession, deduplication_key: str) -> Optional[QueueJob]:
        stmt = select(QueueJob).where(
            and_(
                QueueJob.deduplication_key == deduplication_key,
                QueueJob.status.in_(ACTIVE_STATUSES)
            )
        )
        result = await session.execute(stmt)
        job = result.scalars().first()
        # Close the read transaction so SQLite does not hold the write lock
        await session.commit()
        return job

    async def get_by_id(self, job_id: str) -> Optional[QueueJob]:
        """
        Get queue job by ID

        Args:
            job_id: Job ID

        Returns:
            QueueJob instance or None if not found
        """
        async with self.session_factory() as session:
            return await session.get(QueueJob, job_id)

    async def claim_batch(
        self,
        limit: int,
        worker_id: str,
        exclude_types: Iterable[str] = (),
        type_limits: Optional[Dict[str, int]] = None
    ) -> List[QueueJob]:
        """
        Atomically move up to `limit` ready jobs from PENDING to PROCESSING

        Candidates are read in `priority desc, created_at asc` order; each is
        then claimed with an update conditional on it still being PENDING, so
        a candidate taken by another poller in between is skipped.

        Args:
            limit: Maximum number of jobs to claim
            worker_id: Lease owner stamped on claimed rows
            exclude_types: Job types that must not be claimed this round
            type_limits: Remaining headroom for capped job types

        Returns:
            Claimed jobs in claim order
        """
        if limit <= 0:
            return []

        type_limits = dict(type_limits or {})
        excluded = set(exclude_types) | {t for t, room in type_limits.items() if room <= 0}
        now = utcnow()

        async with self.session_factory() as session:
            claimed_ids = []
            while len(claimed_ids) < limit:
                wanted = limit - len(claimed_ids)
                stmt = (
                    select(QueueJob.id, QueueJob.job_type)
                    .where(
                        and_(
                            QueueJob.status == QueueJobStatus.PENDING,
                            QueueJob.available_at <= now
                        )
                    )
                    .order_by(QueueJob.priority.desc(), QueueJob.created_at.asc())
                    .limit(wanted)
                )
                if excluded:
                    stmt = stmt.where(QueueJob.job_type.notin_(excluded))

                candidates = (await session.execute(stmt)).all()

                type_filled = False
                for job_id, job_type in candidates:
                    if job_type in excluded:
                        continue

                    result = await session.execute(
                        update(QueueJob)
                        .where(
                            and_(
                                QueueJob.id == job_id,
                                QueueJob.status == QueueJobStatus.PENDING
                            )
                        )
                        .values(
                            status=QueueJobStatus.PROCESSING,
                            locked_by=worker_id,
                            locked_at=now,
                        )
                    )
                    if result.rowcount == 1:
                        claimed_ids.append(job_id)
                        if job_type in type_limits:
                            type_limits[job_type] -= 1
                            if type_limits[job_type] <= 0:
                                excluded.add(job_type)
                                type_filled = True

                # Rows of a type that filled up mid-window were skipped; fetch past them
                if not type_filled or len(candidates) < wanted:
                    break

            await session.commit()

            if not claimed_ids:
                return []

            rows = await session.execute(select(QueueJob).where(QueueJob.id.in_(claimed_ids)))
            by_id = {job.id: job for job in rows.scalars().all()}
            await session.commit()

        return [by_id[job_id] for job_id in claimed_ids if job_id in by_id]

    def _owned_by(self, job: QueueJob):
        """Predicate matching the row only while `job` still holds its lease"""
        return and_(
            QueueJob.id == job.id,
            QueueJob.status == QueueJobStatus.PROCESSING,
            QueueJob.locked_at == job.locked_at
        )

    async def _transition(self, job: QueueJob, **values: Any) -> bool:
        async with self.session_factory() as session:
            result = await session.execute(
                update(QueueJob).where(self._owned_by(job)).values(**values)
            )
            await session.commit()
            return result.rowcount == 1

    async def mark_completed(self, job: QueueJob, result: Optional[Dict[str, Any]] = None) -> bool:
        """
        Finalize a claimed job as COMPLETED

        Args:
            job: The claimed job
            result: Handler data to retain on the row

        Returns:
            True if this caller still held the lease
        """
        return await self._transition(
            job,
            status=QueueJobStatus.COMPLETED,
            result=result,
            error_message=None,
            processed_at=utcnow(),
            locked_by=None,
            locked_at=None,
        )

    async def mark_failed(self, job: QueueJob, error: str, attempt_count: int) -> bool:
        """
        Finalize a claimed job as permanently FAILED

        Args:
            job: The claimed job
            error: Error message to record
            attempt_count: Attempt count after this failure

        Returns:
            True if this caller still held the lease
        """
        return await self._transition(
            job,
            status=QueueJobStatus.FAILED,
            error_message=error,
            attempt_count=attempt_count,
            processed_at=utcnow(),
            locked_by=None,
            locked_at=None,
        )

    async def reschedule(self, job: QueueJob, error: str, available_at: datetime, attempt_count: int) -> bool:
        """
        Return a claimed job to PENDING for a later attempt

        Args:
            job: The claimed job
            error: Error message of the failed attempt
            available_at: Earliest time of the next attempt
            attempt_count: Attempt count after this failure

        Returns:
            True if this caller still held the lease
        """
        return await self._transition(
            job,
            status=QueueJobStatus.PENDING,
            error_message=error,
            available_at=available_at,
            attempt_count=attempt_count,
            locked_by=None,
            locked_at=None,
        )

    async def release(self, jobs: List[QueueJob]) -> int:
        """
        Hand claimed jobs back to PENDING without consuming an attempt

        Args:
            jobs: Jobs claimed but never started

        Returns:
            Number of rows released
        """
        released = 0
        for job in jobs:
            if await self._transition(job, status=QueueJobStatus.PENDING, locked_by=None, locked_at=None):
                released += 1
        return released

    async def recover_stale(self, visibility_timeout: float) -> Tuple[int, int]:
        """
        Reclaim PROCESSING rows whose lease is older than the visibility timeout

        The abandoned attempt counts. Rows with attempts left go back to
        PENDING, the rest become FAILED.

        Args:
            visibility_timeout: Lease length in seconds

        Returns:
            (requeued, failed) counts
        """
        now = utcnow()
        cutoff = now - timedelta(seconds=visibility_timeout)
        requeued = failed = 0

        async with self.session_factory() as session:
            stale = (await session.execute(
                select(QueueJob).where(
                    and_(
                        QueueJob.status == QueueJobStatus.PROCESSING,
                        QueueJob.locked_at < cutoff
                    )
                )
            )).scalars().all()
            await session.commit()

        for job in stale:
            attempts = job.attempt_count + 1
            error = f"lease held by {job.locked_by} expired"
            if attempts >= job.max_attempts:
                if await self.mark_failed(job, error, attempts):
                    failed += 1
                    logger.warning(
                        f"Failed abandoned job {job.id} after {attempts} attempts",
                        extra={"job_id": job.id, "job_type": job.job_type}
                    )
            elif await self.reschedule(job, error, now, attempts):
                requeued += 1
                logger.warning(
                    f"Requeued abandoned job {job.id}",
                    extra={"job_id": job.id, "job_type": job.job_type, "attempt": attempts}
                )

        return requeued, failed

    async def metrics(self) -> Dict[str, int]:
        """
        Count jobs by status

        Returns:
            Dictionary keyed by status value, zero-filled
        """
        async with self.session_factory() as session:
            rows = await session.execute(
                select(QueueJob.status, func.count(QueueJob.id)).group_by(QueueJob.status)
            )
            counts = {status.value: 0 for status in QueueJobStatus}
            for status, count in rows.all():
                key = status.value if isinstance(status, QueueJobStatus) else str(status)
                counts[key] = count
            return counts

    async def get_recent_jobs(
        self,
        limit: int = 50,
        job_type: Optional[str] = None,
        status: Optional[QueueJobStatus] = None
    ) -> List[QueueJob]:
        """
        Get recent jobs, newest first

        Args:
            limit: Maximum number of jobs to return
            job_type: Optional job type filter
            status: Optional status filter

        Returns:
            List of QueueJob instances
        """
        async with self.session_factory() as session:
            stmt = select(QueueJob).order_by(QueueJob.created_at.desc())
            if job_type:
                stmt = stmt.where(QueueJob.job_type == job_type)
            if status:
                stmt = stmt.where(QueueJob.status == status)
            result = await session.execute(stmt.limit(limit))
            return list(result.scalars().all())

    async def cleanup_old_jobs(self, days_old: int = 7) -> int:
        """
        Delete COMPLETED/FAILED jobs last touched before the cutoff

        Args:
            days_old: Retention window in days

        Returns:
            Number of jobs deleted
        """
        cutoff = utcnow() - timedelta(days=days_old)
        async with self.session_factory() as session:
            result = await session.execute(
                delete(QueueJob).where(
                    and_(
                        QueueJob.status.in_([QueueJobStatus.COMPLETED, QueueJobStatus.FAILED]),
                        QueueJob.updated_at < cutoff
                    )
                )
            )
            await session.commit()
            return result.rowcount or 0
