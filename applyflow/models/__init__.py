"""Database models"""

from applyflow.models.base import TimestampMixin
from applyflow.models.queue_job import QueueJob, QueueJobStatus, ACTIVE_STATUSES
from applyflow.models.profile import Profile, AutoApplySettings
from applyflow.models.job_listing import JobListing, Application, ApplicationStatus
from applyflow.models.notification import (
    JobNotification,
    ApplicationReview,
    NotificationStatus,
    ReviewStatus,
)
from applyflow.models.schedule_definition import ScheduleDefinition

__all__ = [
    "TimestampMixin",
    "QueueJob",
    "QueueJobStatus",
    "ACTIVE_STATUSES",
    "Profile",
    "AutoApplySettings",
    "JobListing",
    "Application",
    "ApplicationStatus",
    "JobNotification",
    "ApplicationReview",
    "NotificationStatus",
    "ReviewStatus",
    "ScheduleDefinition",
]
