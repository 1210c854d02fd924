"""Processing progress feed.

Re-reads the persisted video state every interval and yields it as an
event. The feed ends right after a COMPLETED or FAILED event, when the
video disappears, or when the consumer stops iterating (client disconnect
cancels the generator).
"""

import asyncio
import logging
import uuid
from typing import Any, AsyncIterator, Awaitable, Callable, Optional

from sqlalchemy.exc import SQLAlchemyError

from app.core.config import settings
from app.core.database import async_session_maker
from app.core.metrics import ACTIVE_PROGRESS_FEEDS
from app.core.storage import get_storage
from app.modules.job.queue import get_job_queue
from app.modules.video.repository import VideoRepository
from app.modules.video.schemas import ProcessingStatus
from app.modules.video.service import VideoService

logger = logging.getLogger(__name__)

SnapshotLoader = Callable[[uuid.UUID], Awaitable[Optional[ProcessingStatus]]]

VIDEO_NOT_FOUND_EVENT = {"error": "Video not found"}


class ProgressChannel:
    """Async iterator of progress events for one video."""

    def __init__(
        self,
        video_id: uuid.UUID,
        load_snapshot: SnapshotLoader,
        interval: Optional[float] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.video_id = video_id
        self.load_snapshot = load_snapshot
        self.interval = settings.VIDEO_PROGRESS_POLL_INTERVAL_SECONDS if interval is None else interval
        self._sleep = sleep

    def __aiter__(self) -> AsyncIterator[dict]:
        return self._events()

    async def _events(self) -> AsyncIterator[dict]:
        ACTIVE_PROGRESS_FEEDS.inc()
        logger.debug("Progress feed opened", extra={"video_id": str(self.video_id)})
        try:
            while True:
                try:
                    snapshot = await self.load_snapshot(self.video_id)
                except SQLAlchemyError as e:
                    logger.error(
                        "Progress feed could not read video state",
                        extra={"video_id": str(self.video_id), "error": str(e)},
                    )
                    yield {"error": "Failed to read video status"}
                    return

                if snapshot is None:
                    yield dict(VIDEO_NOT_FOUND_EVENT)
                    return

                yield snapshot.model_dump(by_alias=True, mode="json")
                if snapshot.is_terminal:
                    return

                await self._sleep(self.interval)
        finally:
            ACTIVE_PROGRESS_FEEDS.dec()
            logger.debug("Progress feed closed", extra={"video_id": str(self.video_id)})


async def load_progress_snapshot(video_id: uuid.UUID) -> Optional[ProcessingStatus]:
    """Read progress in a short-lived session so each tick sees committed state."""
    async with async_session_maker() as session:
        service = VideoService(VideoRepository(session), get_storage(), get_job_queue())
        return await service.get_progress_snapshot(video_id)


def get_snapshot_loader() -> SnapshotLoader:
    """FastAPI dependency for the progress feed's state reader."""
    return load_progress_snapshot
