"""Business logic services"""

from applyflow.services.retry_policy import RetryPolicy
from applyflow.services.worker_pool import DatabaseQueue
from applyflow.services.queue_manager import QueueManager
from applyflow.services.scheduler import JobScheduler
from applyflow.services.background_job_manager import BackgroundJobManager
from applyflow.services.bootstrap import QueueSystem, build_queue_system

__all__ = [
    'RetryPolicy',
    'DatabaseQueue',
    'QueueManager',
    'JobScheduler',
    'BackgroundJobManager',
    'QueueSystem',
    'build_queue_system',
]
