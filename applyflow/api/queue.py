"""Queue API endpoints"""

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import JSONResponse

from applyflow.core.config import settings
from applyflow.core.exceptions import NotFoundException, QueueException
from applyflow.core.logging import get_logger
from applyflow.core.task_queue import EnqueueOptions, JobType
from applyflow.schemas.queue import (
    EnqueueRequest,
    EnqueueResponse,
    QueueJobResponse,
    QueueMetricsResponse,
    HealthResponse,
    CleanupResponse,
    ScheduleResponse,
    ScheduleUpdateRequest,
    ScheduleListResponse,
)
from applyflow.services.bootstrap import QueueSystem

logger = get_logger(__name__)
router = APIRouter(prefix="/queue", tags=["queue"])


def get_queue_system(request: Request) -> QueueSystem:
    """Queue system attached to the application at startup"""
    queue_system = getattr(request.app.state, "queue_system", None)
    if queue_system is None:
        raise QueueException("Queue system is not initialized")
    return queue_system


@router.post("/jobs", response_model=EnqueueResponse, status_code=status.HTTP_202_ACCEPTED)
async def enqueue_job(
    request: EnqueueRequest,
    queue_system: QueueSystem = Depends(get_queue_system)
) -> EnqueueResponse:
    """
    Enqueue a job

    A request carrying the deduplication key of a job that is still pending
    or processing returns that job's id instead of creating a new one.
    """
    job_id = await queue_system.queue_manager.enqueue(
        request.job_type,
        request.payload,
        EnqueueOptions(
            priority=request.priority,
            delay_seconds=request.delay_seconds,
            max_attempts=request.max_attempts,
            user_id=request.user_id,
            deduplication_key=request.deduplication_key,
        )
    )
    return EnqueueResponse(job_id=job_id, message=f"Job {request.job_type.value} queued")


@router.get("/jobs/{job_id}", response_model=QueueJobResponse)
async def get_job(
    job_id: str,
    queue_system: QueueSystem = Depends(get_queue_system)
) -> QueueJobResponse:
    """Status, attempts and stored result of one job"""
    job = await queue_system.queue_manager.get_job(job_id)
    if job is None:
        raise NotFoundException(f"Job {job_id} not found")
    return QueueJobResponse.model_validate(job)


@router.post("/scan/{user_id}", response_model=EnqueueResponse, status_code=status.HTTP_202_ACCEPTED)
async def trigger_user_scan(
    user_id: str,
    queue_system: QueueSystem = Depends(get_queue_system)
) -> EnqueueResponse:
    job_id = await queue_system.job_manager.trigger_scan(user_id)
    return EnqueueResponse(job_id=job_id, message=f"Job scan queued for user {user_id}")


@router.get("/metrics", response_model=QueueMetricsResponse)
async def get_metrics(queue_system: QueueSystem = Depends(get_queue_system)) -> QueueMetricsResponse:
    metrics = await queue_system.queue_manager.get_metrics()
    return QueueMetricsResponse(**metrics.to_dict())


@router.get("/health", response_model=HealthResponse)
async def queue_health(queue_system: QueueSystem = Depends(get_queue_system)):
    """
    Queue health against the configured thresholds

    Returns 503 with the same body when the queue is unhealthy.
    """
    health = HealthResponse(**await queue_system.queue_manager.health_check())
    if not health.healthy:
        return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content=health.model_dump())
    return health


@router.post("/cleanup", response_model=CleanupResponse)
async def cleanup_jobs(
    days_old: int = Query(settings.QUEUE_HISTORY_RETENTION_DAYS, ge=0, description="Delete finished jobs older than this"),
    queue_system: QueueSystem = Depends(get_queue_system)
) -> CleanupResponse:
    deleted = await queue_system.queue_manager.cleanup_queue(days_old)
    return CleanupResponse(deleted_jobs=deleted, days_old=days_old)


@router.get("/schedules", response_model=ScheduleListResponse)
async def list_schedules(queue_system: QueueSystem = Depends(get_queue_system)) -> ScheduleListResponse:
    schedules = queue_system.scheduler.get_schedules()
    return ScheduleListResponse(schedules=[ScheduleResponse(**schedule) for schedule in schedules.values()])


@router.patch("/schedules/{job_type}", response_model=ScheduleResponse)
async def update_schedule(
    job_type: JobType,
    request: ScheduleUpdateRequest,
    queue_system: QueueSystem = Depends(get_queue_system)
) -> ScheduleResponse:
    """
    Change a recurring schedule

    The change is persisted; worker processes pick it up on their next
    schedule sync.
    """
    scheduler = queue_system.scheduler
    await scheduler.update_schedule(job_type, **request.model_dump(exclude_unset=True))
    logger.info(f"Schedule for {job_type.value} updated via API")
    return ScheduleResponse(**scheduler.get_schedules()[job_type.value])
