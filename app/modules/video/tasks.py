"""Celery tasks for the video pipeline."""

import asyncio

from app.core.celery_app import celery_app
from app.core.database import task_session
from app.core.storage import get_storage
from app.modules.job.queue import JobQueue
from app.modules.job.schemas import QueueName
from app.modules.job.tasks import register_handler
from app.modules.video.processing import VideoProcessor
from app.modules.video.reconciliation import StaleVideoReconciler
from app.modules.video.repository import VideoRepository
from app.modules.video.schemas import VideoJobPayload


@register_handler(QueueName.VIDEO_PROCESSING)
async def process_video(payload: dict) -> dict:
    """Transcode an uploaded video into every ladder quality."""
    job = VideoJobPayload.model_validate(payload)
    async with task_session() as session:
        processor = VideoProcessor(VideoRepository(session), get_storage())
        result = await processor.process(job.video_id, job.output_qualities)
    return result.to_dict()


@celery_app.task(bind=True, queue=QueueName.VIDEO_PROCESSING.value)
def requeue_stale_videos(self) -> dict:
    """Periodic sweep for videos stuck in PENDING or PROCESSING."""
    return asyncio.run(_requeue_stale_videos())


async def _requeue_stale_videos() -> dict:
    async with task_session() as session:
        reconciler = StaleVideoReconciler(VideoRepository(session), JobQueue())
        requeued = await reconciler.run()
    return {"requeued": [str(video_id) for video_id in requeued]}
