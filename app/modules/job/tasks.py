"""Queue definitions and the Celery task base used by every worker.

Handlers are plain async functions taking the job payload. ``register_handler``
turns one into a Celery task routed to its queue; each invocation runs in a
fresh event loop with the job ID bound as the log correlation ID.
"""

import asyncio
import logging
import math
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from celery import Task

from app.core.celery_app import celery_app
from app.core.config import settings
from app.core.logging import correlation_scope, log_error
from app.core.metrics import JOB_DURATION_SECONDS, JOBS_TOTAL
from app.core.tracing import create_span, record_exception
from app.modules.job.schemas import QueueName

logger = logging.getLogger(__name__)


class RetryConfig:
    """Configuration for retry behavior with exponential backoff."""

    def __init__(
        self,
        max_attempts: int = 3,
        initial_delay: float = 1.0,
        max_delay: float = 300.0,
        backoff_multiplier: float = 2.0,
    ):
        self.max_attempts = max_attempts
        self.initial_delay = initial_delay
        self.max_delay = max_delay
        self.backoff_multiplier = backoff_multiplier

    def calculate_delay(self, attempt: int) -> float:
        """Calculate delay for a given attempt using exponential backoff.

        Args:
            attempt: The current attempt number (1-indexed).

        Returns:
            The delay in seconds, capped at max_delay.
        """
        if attempt < 1:
            return self.initial_delay

        delay = self.initial_delay * math.pow(self.backoff_multiplier, attempt - 1)
        return min(delay, self.max_delay)

    def should_retry(self, attempt: int) -> bool:
        """Whether another attempt is allowed after ``attempt`` failed."""
        return attempt < self.max_attempts


@dataclass(frozen=True)
class QueueDefinition:
    """A named queue, the job it carries and how its workers run."""
    name: QueueName
    job_name: str
    concurrency: int
    retry: Optional[RetryConfig] = None


# Failed jobs are recorded, not retried: the Video and Certificate state
# machines decide whether work is done.
QUEUES: dict[QueueName, QueueDefinition] = {
    QueueName.VIDEO_PROCESSING: QueueDefinition(
        name=QueueName.VIDEO_PROCESSING,
        job_name="process-video",
        concurrency=settings.VIDEO_WORKER_CONCURRENCY,
    ),
    QueueName.CERTIFICATE: QueueDefinition(
        name=QueueName.CERTIFICATE,
        job_name="generate-certificate",
        concurrency=settings.CERTIFICATE_WORKER_CONCURRENCY,
    ),
}


class UnknownQueueError(ValueError):
    """Raised for a queue name with no definition."""

    def __init__(self, queue_name: str):
        self.queue_name = queue_name
        super().__init__(f"Unknown queue: {queue_name}")


def get_queue_definition(queue_name: QueueName | str) -> QueueDefinition:
    try:
        return QUEUES[QueueName(queue_name)]
    except (KeyError, ValueError) as e:
        raise UnknownQueueError(str(queue_name)) from e


def get_queue_for_job(job_name: Optional[str]) -> Optional[QueueDefinition]:
    for definition in QUEUES.values():
        if definition.job_name == job_name:
            return definition
    return None


class QueueTask(Task):
    """Base task for queue handlers.

    ``on_completed`` and ``on_failed`` are observation hooks only; they log
    and count but never touch business state.
    """

    abstract = True
    queue_name: str = "default"

    def on_success(self, retval: Any, task_id: str, args: tuple, kwargs: dict) -> None:
        self.on_completed(task_id)

    def on_failure(self, exc: Exception, task_id: str, args: tuple, kwargs: dict, einfo: Any) -> None:
        self.on_failed(task_id, exc)

    def on_completed(self, job_id: str) -> None:
        JOBS_TOTAL.labels(queue=self.queue_name, status="completed").inc()
        logger.info(
            "Job completed",
            extra={"job_id": job_id, "queue": self.queue_name, "job_name": self.name},
        )

    def on_failed(self, job_id: str, error: BaseException) -> None:
        JOBS_TOTAL.labels(queue=self.queue_name, status="failed").inc()
        log_error(
            logger,
            "Job failed",
            exception=error,
            job_id=job_id,
            queue=self.queue_name,
            job_name=self.name,
        )


JobHandler = Callable[[dict], Awaitable[Any]]


def register_handler(queue_name: QueueName | str) -> Callable[[JobHandler], Task]:
    """Bind an async payload handler to the queue's job.

    Usage::

        @register_handler(QueueName.CERTIFICATE)
        async def generate_certificate(payload: dict) -> dict:
            ...
    """
    definition = get_queue_definition(queue_name)

    def decorator(handler: JobHandler) -> Task:
        @celery_app.task(
            bind=True,
            base=QueueTask,
            name=definition.job_name,
            queue=definition.name.value,
            queue_name=definition.name.value,
        )
        def run_job(self: QueueTask, payload: dict) -> Any:
            job_id = self.request.id or "local"
            attempt = (self.request.retries or 0) + 1

            with correlation_scope(job_id), create_span(
                f"job {definition.job_name}",
                attributes={"job.id": job_id, "job.queue": definition.name.value, "job.attempt": attempt},
            ):
                logger.info(
                    "Job started",
                    extra={"job_id": job_id, "queue": definition.name.value, "attempt": attempt},
                )
                start_time = time.perf_counter()
                try:
                    return asyncio.run(handler(payload))
                except Exception as exc:
                    record_exception(exc)
                    retry = definition.retry
                    if retry is not None and retry.should_retry(attempt):
                        raise self.retry(
                            exc=exc,
                            countdown=retry.calculate_delay(attempt),
                            max_retries=retry.max_attempts - 1,
                        )
                    raise
                finally:
                    JOB_DURATION_SECONDS.labels(queue=definition.name.value).observe(
                        time.perf_counter() - start_time
                    )

        run_job.handler = handler
        return run_job

    return decorator
