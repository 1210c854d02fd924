"""Job queue: named queues, Celery worker tasks and the producer API."""

from app.modules.job.queue import (
    InvalidPayloadError,
    JobQueue,
    JobQueueError,
    QueueUnavailableError,
    get_job_queue,
)
from app.modules.job.schemas import JobHandle, JobStatus, QueueName
from app.modules.job.tasks import (
    QUEUES,
    QueueDefinition,
    QueueTask,
    RetryConfig,
    UnknownQueueError,
    register_handler,
)

__all__ = [
    # Schemas
    "JobHandle",
    "JobStatus",
    "QueueName",
    # Queue
    "JobQueue",
    "JobQueueError",
    "QueueUnavailableError",
    "InvalidPayloadError",
    "get_job_queue",
    # Tasks
    "QUEUES",
    "QueueDefinition",
    "QueueTask",
    "RetryConfig",
    "UnknownQueueError",
    "register_handler",
]
