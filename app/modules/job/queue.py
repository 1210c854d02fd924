"""Producer side of the job queue.

Enqueueing never waits for the job to run. Broker connectivity problems
surface as ``QueueUnavailableError`` so routes can answer 503.
Queue stats and consumer control go through Celery's broadcast API, so
they reflect only the workers that answer within ``INSPECT_TIMEOUT``.
"""

import asyncio
import json
import logging
from functools import partial
from typing import Any, Optional

from celery import Celery
from celery.result import AsyncResult
from kombu.exceptions import ChannelError, OperationalError
from redis.exceptions import RedisError

from app.core.celery_app import celery_app
from app.core.metrics import JOBS_ENQUEUED_TOTAL
from app.modules.job.schemas import JobHandle, JobStatus, QueueName, QueueStats
from app.modules.job.tasks import QueueDefinition, get_queue_definition, get_queue_for_job

logger = logging.getLogger(__name__)


class JobQueueError(Exception):
    """Base exception for job queue errors."""
    pass


class QueueUnavailableError(JobQueueError):
    """Raised when the broker cannot accept a job."""

    def __init__(self, queue_name: str, reason: str):
        self.queue_name = queue_name
        self.reason = reason
        super().__init__(f"Queue {queue_name} is unavailable: {reason}")


class InvalidPayloadError(JobQueueError):
    """Raised when a payload cannot be serialized to JSON."""
    pass


# Celery task states mapped onto the queue's own lifecycle
CELERY_STATE_MAP = {
    "PENDING": JobStatus.WAITING,
    "RECEIVED": JobStatus.WAITING,
    "STARTED": JobStatus.ACTIVE,
    "RETRY": JobStatus.ACTIVE,
    "SUCCESS": JobStatus.COMPLETED,
    "FAILURE": JobStatus.FAILED,
    "REVOKED": JobStatus.FAILED,
}

PUBLISH_RETRY_POLICY = {
    "max_retries": 3,
    "interval_start": 0,
    "interval_step": 0.5,
    "interval_max": 2,
}


# Seconds to wait for workers to answer a broadcast
INSPECT_TIMEOUT = 1.0


def map_celery_state(state: str) -> JobStatus:
    return CELERY_STATE_MAP.get(state, JobStatus.WAITING)


class JobQueue:
    """Enqueue jobs and look up their state."""

    def __init__(self, app: Optional[Celery] = None):
        self.app = app or celery_app

    async def enqueue(self, queue_name: QueueName | str, payload: dict[str, Any]) -> JobHandle:
        """Publish a job to its queue.

        Args:
            queue_name: Target queue
            payload: JSON-serializable job payload

        Returns:
            Handle of the waiting job

        Raises:
            UnknownQueueError: If the queue has no definition
            InvalidPayloadError: If the payload is not JSON-serializable
            QueueUnavailableError: If the broker cannot be reached
        """
        definition = get_queue_definition(queue_name)

        try:
            json.dumps(payload)
        except (TypeError, ValueError) as e:
            raise InvalidPayloadError(f"Payload is not JSON-serializable: {e}") from e

        send = partial(
            self.app.send_task,
            definition.job_name,
            kwargs={"payload": payload},
            queue=definition.name.value,
            retry=True,
            retry_policy=PUBLISH_RETRY_POLICY,
        )
        loop = asyncio.get_running_loop()
        try:
            result = await loop.run_in_executor(None, send)
        except (OperationalError, RedisError, OSError) as e:
            logger.error(
                "Failed to enqueue job",
                extra={"queue": definition.name.value, "job_name": definition.job_name, "error": str(e)},
            )
            raise QueueUnavailableError(definition.name.value, str(e)) from e

        JOBS_ENQUEUED_TOTAL.labels(queue=definition.name.value).inc()
        logger.info(
            "Job enqueued",
            extra={"job_id": result.id, "queue": definition.name.value, "job_name": definition.job_name},
        )

        return JobHandle(
            id=result.id,
            queue=definition.name,
            job_name=definition.job_name,
            payload=payload,
            status=JobStatus.WAITING,
            attempts=0,
        )

    async def get_job(self, job_id: str) -> JobHandle:
        """Current state of a job as recorded by the result backend.

        Celery cannot tell an unknown ID from a job that has not started,
        so both come back as waiting.
        """
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, self._read_job, job_id)
        except (OperationalError, RedisError, OSError) as e:
            raise QueueUnavailableError("result-backend", str(e)) from e

    def _read_job(self, job_id: str) -> JobHandle:
        result = AsyncResult(job_id, app=self.app)
        status = map_celery_state(result.state)
        definition = get_queue_for_job(result.name)
        retries = result.retries or 0

        error = None
        if status == JobStatus.FAILED and result.result is not None:
            error = str(result.result)

        kwargs = result.kwargs or {}
        return JobHandle(
            id=job_id,
            queue=definition.name if definition else None,
            job_name=result.name,
            payload=kwargs.get("payload", {}),
            status=status,
            attempts=0 if status == JobStatus.WAITING else retries + 1,
            error=error,
        )

    async def get_queue_stats(self, queue_name: QueueName | str) -> QueueStats:
        """Waiting, active and delayed counts for a queue.

        Waiting covers messages still on the broker plus those prefetched
        by a worker but not started.

        Raises:
            UnknownQueueError: If the queue has no definition
            QueueUnavailableError: If the broker cannot be reached
        """
        definition = get_queue_definition(queue_name)
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, self._read_stats, definition)
        except (OperationalError, RedisError, OSError) as e:
            raise QueueUnavailableError(definition.name.value, str(e)) from e

    def _read_stats(self, definition: QueueDefinition) -> QueueStats:
        with self.app.connection_for_read() as conn:
            try:
                declared = conn.default_channel.queue_declare(queue=definition.name.value, passive=True)
                backlog = declared.message_count
            except ChannelError:
                # The broker drops empty queues
                backlog = 0

        inspect = self.app.control.inspect(timeout=INSPECT_TIMEOUT)
        active = inspect.active() or {}
        reserved = inspect.reserved() or {}
        scheduled = inspect.scheduled() or {}
        consumers = inspect.active_queues() or {}

        def count(tasks_by_worker: dict) -> int:
            return sum(
                1
                for tasks in tasks_by_worker.values()
                for task in tasks
                if task.get("name", task.get("request", {}).get("name")) == definition.job_name
            )

        workers = sum(
            1
            for queues in consumers.values()
            if any(q.get("name") == definition.name.value for q in queues)
        )
        return QueueStats(
            queue=definition.name,
            waiting=backlog + count(reserved),
            active=count(active),
            delayed=count(scheduled),
            workers=workers,
        )

    async def pause_queue(self, queue_name: QueueName | str) -> list[str]:
        """Stop every worker consuming the queue. Returns the workers that confirmed."""
        definition = get_queue_definition(queue_name)
        replies = await self._broadcast(self.app.control.cancel_consumer, definition)
        logger.warning("Queue paused", extra={"queue": definition.name.value, "workers": replies})
        return replies

    async def resume_queue(self, queue_name: QueueName | str) -> list[str]:
        """Resume consuming the queue on every worker. Returns the workers that confirmed."""
        definition = get_queue_definition(queue_name)
        replies = await self._broadcast(self.app.control.add_consumer, definition)
        logger.info("Queue resumed", extra={"queue": definition.name.value, "workers": replies})
        return replies

    async def _broadcast(self, command, definition: QueueDefinition) -> list[str]:
        send = partial(command, definition.name.value, reply=True, timeout=INSPECT_TIMEOUT)
        loop = asyncio.get_running_loop()
        try:
            replies = await loop.run_in_executor(None, send)
        except (OperationalError, RedisError, OSError) as e:
            raise QueueUnavailableError(definition.name.value, str(e)) from e
        return sorted(worker for reply in replies or [] for worker in reply)


def get_job_queue() -> JobQueue:
    """FastAPI dependency for the job queue."""
    return JobQueue()
