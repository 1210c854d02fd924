"""Pydantic schemas for the job queue."""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class QueueName(str, Enum):
    """Named queues consumed by the background workers."""
    VIDEO_PROCESSING = "video-processing"
    CERTIFICATE = "certificate"


class JobStatus(str, Enum):
    """Lifecycle of a queue entry."""
    WAITING = "waiting"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


class JobHandle(BaseModel):
    """Reference to an enqueued job.

    The queue entry is disposable; the outcome of the work is recorded on
    the Video or Certificate it operates on.
    """
    id: str
    queue: Optional[QueueName] = None
    job_name: Optional[str] = None
    payload: dict[str, Any] = Field(default_factory=dict)
    status: JobStatus = JobStatus.WAITING
    attempts: int = 0
    error: Optional[str] = None


class QueueStats(BaseModel):
    """Point-in-time counts for one queue.

    Completed and failed totals are exported as the ``jobs_total`` metric
    rather than read from the broker.
    """
    queue: QueueName
    waiting: int = 0
    active: int = 0
    delayed: int = 0
    workers: int = 0
