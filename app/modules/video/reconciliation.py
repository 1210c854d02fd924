"""Requeue videos left unfinished by a crashed worker.

A worker that dies mid-job leaves its video PROCESSING. The stale threshold
is longer than the job time limit, so a video whose row has not changed for
that long has no live job. Such videos are put back to PENDING and enqueued
again; the next job claims them and skips qualities that already have
renditions. Videos that have already been claimed
``VIDEO_MAX_PROCESSING_ATTEMPTS`` times are marked FAILED instead.
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from app.core.config import settings
from app.modules.job.queue import JobQueue
from app.modules.job.schemas import QueueName
from app.modules.transcoding.quality import ladder_labels
from app.modules.video.models import Video
from app.modules.video.repository import VideoRepository

logger = logging.getLogger(__name__)


class StaleVideoReconciler:
    """Finds stale PENDING/PROCESSING videos and enqueues them again."""

    def __init__(
        self,
        repository: VideoRepository,
        job_queue: JobQueue,
        stale_after: Optional[timedelta] = None,
        max_attempts: Optional[int] = None,
        batch_size: int = 100,
    ):
        self.repository = repository
        self.job_queue = job_queue
        self.stale_after = stale_after or timedelta(minutes=settings.VIDEO_STALE_PROCESSING_MINUTES)
        self.max_attempts = max_attempts or settings.VIDEO_MAX_PROCESSING_ATTEMPTS
        self.batch_size = batch_size

    async def run(self, now: Optional[datetime] = None) -> list[uuid.UUID]:
        """Requeue one batch of stale videos.

        Returns:
            IDs of the videos that were requeued
        """
        cutoff = (now or datetime.now(timezone.utc)) - self.stale_after
        stale = await self.repository.get_stale(cutoff, limit=self.batch_size)

        requeued: list[uuid.UUID] = []
        for video in stale:
            if (video.processing_attempts or 0) >= self.max_attempts:
                await self._abandon(video, cutoff)
                continue

            payload = {
                "videoId": str(video.id),
                "inputPath": video.storage_key,
                "outputQualities": ladder_labels(),
            }
            job = await self.job_queue.enqueue(QueueName.VIDEO_PROCESSING, payload)
            released = await self.repository.release_stale(video.id, cutoff)
            await self.repository.commit()
            if not released:
                # Claimed by a job in the meantime; the new job will skip it
                continue
            requeued.append(video.id)
            logger.warning(
                "Requeued stale video",
                extra={
                    "video_id": str(video.id),
                    "status": video.status,
                    "attempts": video.processing_attempts,
                    "job_id": job.id,
                },
            )

        if requeued:
            logger.info("Stale video sweep finished", extra={"requeued": len(requeued)})
        return requeued

    async def _abandon(self, video: Video, cutoff: datetime) -> None:
        error = f"Processing abandoned after {video.processing_attempts} attempts"
        abandoned = await self.repository.abandon_stale(video.id, cutoff, error)
        await self.repository.commit()
        if abandoned:
            logger.error(
                "Gave up on stale video",
                extra={"video_id": str(video.id), "attempts": video.processing_attempts},
            )
