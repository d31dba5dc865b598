"""Data access layer"""

from applyflow.repositories.queue_job_repository import QueueJobRepository
from applyflow.repositories.schedule_repository import ScheduleRepository
from applyflow.repositories.profile_repository import ProfileRepository
from applyflow.repositories.job_listing_repository import JobListingRepository
from applyflow.repositories.application_repository import ApplicationRepository
from applyflow.repositories.notification_repository import NotificationRepository

__all__ = [
    'QueueJobRepository',
    'ScheduleRepository',
    'ProfileRepository',
    'JobListingRepository',
    'ApplicationRepository',
    'NotificationRepository',
]
