"""Queued background work items"""

from sqlalchemy import Column, String, Text, Integer, Index, Enum as SQLEnum, text
from applyflow.core.database import Base
from applyflow.models.base import TimestampMixin, UTCDateTime, JSONType, new_id, utcnow
import enum


class QueueJobStatus(str, enum.Enum):
    """Queue job status enumeration"""
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


ACTIVE_STATUSES = (QueueJobStatus.PENDING, QueueJobStatus.PROCESSING)

# At most one live job per deduplication key
_ACTIVE_DEDUP_PREDICATE = text("status IN ('PENDING', 'PROCESSING') AND deduplication_key IS NOT NULL")


class QueueJob(Base, TimestampMixin):
    """One unit of asynchronous work"""

    __tablename__ = "job_queue"

    id = Column(String(36), primary_key=True, default=new_id)
    job_type = Column(String(64), nullable=False, index=True)
    payload = Column(JSONType, nullable=False, default=dict)
    result = Column(JSONType, nullable=True)
    user_id = Column(String(64), nullable=True, index=True)
    status = Column(
        SQLEnum(QueueJobStatus, name="queuejobstatus", native_enum=False, length=16),
        nullable=False,
        default=QueueJobStatus.PENDING,
    )
    priority = Column(Integer, nullable=False, default=1)
    attempt_count = Column(Integer, nullable=False, default=0)
    max_attempts = Column(Integer, nullable=False, default=3)
    available_at = Column(UTCDateTime, nullable=False, default=utcnow)
    deduplication_key = Column(String(255), nullable=True)
    error_message = Column(Text, nullable=True)
    locked_by = Column(String(128), nullable=True)
    locked_at = Column(UTCDateTime, nullable=True)
    processed_at = Column(UTCDateTime, nullable=True)

    __table_args__ = (
        Index("ix_job_queue_claim", "status", "available_at", "priority"),
        Index(
            "uq_job_queue_active_dedup",
            "deduplication_key",
            unique=True,
            postgresql_where=_ACTIVE_DEDUP_PREDICATE,
            sqlite_where=_ACTIVE_DEDUP_PREDICATE,
        ),
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in (QueueJobStatus.COMPLETED, QueueJobStatus.FAILED)

    def __repr__(self):
        return f"<QueueJob(id={self.id}, job_type={self.job_type}, status={self.status})>"
