"""Persisted overrides for recurring schedules"""

from sqlalchemy import Column, String, Integer, Float, Boolean
from applyflow.core.database import Base
from applyflow.models.base import TimestampMixin, JSONType


class ScheduleDefinition(Base, TimestampMixin):
    """Recurring enqueue rule for one job type, keyed by the type itself"""

    __tablename__ = "schedule_definitions"

    job_type = Column(String(64), primary_key=True)
    cron_expression = Column(String(64), nullable=False)
    enabled = Column(Boolean, nullable=False, default=True)
    payload = Column(JSONType, nullable=False, default=dict)
    max_attempts = Column(Integer, nullable=False, default=3)
    timeout_seconds = Column(Float, nullable=True)
    run_on_start = Column(Boolean, nullable=False, default=False)

    def __repr__(self):
        return f"<ScheduleDefinition(job_type={self.job_type}, cron={self.cron_expression}, enabled={self.enabled})>"
