"""API Router for job lookups and queue administration."""

from fastapi import APIRouter, Depends, HTTPException, status

from app.core.security import CurrentUser, UserRole, get_current_user, require_roles
from app.modules.job.queue import JobQueue, QueueUnavailableError, get_job_queue
from app.modules.job.schemas import JobHandle, QueueStats
from app.modules.job.tasks import UnknownQueueError

router = APIRouter(prefix="/jobs", tags=["jobs"])

require_admin = require_roles(UserRole.ADMIN)


def _queue_error(e: Exception) -> HTTPException:
    if isinstance(e, UnknownQueueError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))


@router.get("/queues/{queue_name}/stats", response_model=QueueStats)
async def get_queue_stats(
    queue_name: str,
    queue: JobQueue = Depends(get_job_queue),
    admin: CurrentUser = Depends(require_admin),
) -> QueueStats:
    """Waiting, active and delayed jobs on a queue."""
    try:
        return await queue.get_queue_stats(queue_name)
    except (UnknownQueueError, QueueUnavailableError) as e:
        raise _queue_error(e)


@router.post("/queues/{queue_name}/pause")
async def pause_queue(
    queue_name: str,
    queue: JobQueue = Depends(get_job_queue),
    admin: CurrentUser = Depends(require_admin),
) -> dict:
    """Stop workers from taking new jobs off a queue."""
    try:
        workers = await queue.pause_queue(queue_name)
    except (UnknownQueueError, QueueUnavailableError) as e:
        raise _queue_error(e)
    return {"queue": queue_name, "paused": True, "workers": workers}


@router.post("/queues/{queue_name}/resume")
async def resume_queue(
    queue_name: str,
    queue: JobQueue = Depends(get_job_queue),
    admin: CurrentUser = Depends(require_admin),
) -> dict:
    """Let workers take jobs off a paused queue again."""
    try:
        workers = await queue.resume_queue(queue_name)
    except (UnknownQueueError, QueueUnavailableError) as e:
        raise _queue_error(e)
    return {"queue": queue_name, "paused": False, "workers": workers}


@router.get("/{job_id}", response_model=JobHandle)
async def get_job(
    job_id: str,
    queue: JobQueue = Depends(get_job_queue),
    current_user: CurrentUser = Depends(get_current_user),
) -> JobHandle:
    """Look up an enqueued job."""
    try:
        return await queue.get_job(job_id)
    except QueueUnavailableError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))
