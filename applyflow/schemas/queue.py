"""Queue API schemas"""

from typing import Optional, Dict, Any, List
from datetime import datetime
from pydantic import BaseModel, Field, ConfigDict

from applyflow.core.task_queue import JobType
from applyflow.models.queue_job import QueueJobStatus


class EnqueueRequest(BaseModel):
    """Request schema for enqueueing a job"""
    job_type: JobType = Field(..., description="Type of job to enqueue")
    payload: Dict[str, Any] = Field(default_factory=dict, description="Handler input")
    priority: Optional[int] = Field(None, description="Higher values are processed first")
    delay_seconds: float = Field(0, ge=0, description="Delay before the job becomes available")
    max_attempts: Optional[int] = Field(None, ge=1, le=25, description="Attempts before permanent failure")
    user_id: Optional[str] = Field(None, description="Owner of the job")
    deduplication_key: Optional[str] = Field(
        None, min_length=1, max_length=255, description="At most one active job per key"
    )


class EnqueueResponse(BaseModel):
    """Response schema for an enqueue operation"""
    job_id: str = Field(..., description="Unique job identifier")
    message: str = Field(..., description="Success message")


class QueueJobResponse(BaseModel):
    """Response schema for a job's status and result"""
    id: str
    job_type: str
    status: QueueJobStatus
    payload: Dict[str, Any] = Field(default_factory=dict)
    result: Optional[Dict[str, Any]] = None
    user_id: Optional[str] = None
    priority: int
    attempt_count: int
    max_attempts: int
    available_at: Optional[datetime] = None
    error_message: Optional[str] = None
    processed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class QueueMetricsResponse(BaseModel):
    """Counts by status plus jobs in flight in this process"""
    pending: int
    processing: int
    completed: int
    failed: int
    workers: int


class HealthResponse(BaseModel):
    healthy: bool
    metrics: QueueMetricsResponse
    thresholds: Dict[str, int]


class CleanupResponse(BaseModel):
    """Response schema for job cleanup operation"""
    deleted_jobs: int = Field(..., description="Number of jobs deleted")
    days_old: int = Field(..., description="Age threshold for deletion")


class ScheduleResponse(BaseModel):
    job_type: str
    cron_expression: str
    interval_seconds: Optional[float] = None
    enabled: bool
    payload: Dict[str, Any] = Field(default_factory=dict)
    max_attempts: int
    timeout: Optional[float] = None
    run_on_start: bool = False
    priority: int
    active: bool = False


class ScheduleUpdateRequest(BaseModel):
    """Partial schedule change; omitted fields keep their value"""
    cron_expression: Optional[str] = Field(None, description="Five-field cron expression")
    enabled: Optional[bool] = None
    payload: Optional[Dict[str, Any]] = None
    max_attempts: Optional[int] = Field(None, ge=1, le=25)
    timeout: Optional[float] = Field(None, gt=0)
    run_on_start: Optional[bool] = None


class ScheduleListResponse(BaseModel):
    schedules: List[ScheduleResponse]
