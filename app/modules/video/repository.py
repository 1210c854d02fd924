"""Video repository for database operations."""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import func as sql_func
from sqlalchemy import and_, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.modules.video.models import Video, VideoRendition, VideoStatus


class DuplicateRenditionError(Exception):
    """Raised when a rendition already exists for a (video, quality) pair."""

    def __init__(self, video_id: uuid.UUID, quality: str):
        self.video_id = video_id
        self.quality = quality
        super().__init__(f"Rendition {quality} already exists for video {video_id}")


class VideoRepository:
    """Repository for Video and VideoRendition rows."""

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session."""
        self.session = session

    async def create(
        self,
        original_name: str,
        filename: str,
        storage_key: str,
        mime_type: str,
        size: int,
        material_id: Optional[uuid.UUID] = None,
        uploaded_by: Optional[uuid.UUID] = None,
        video_id: Optional[uuid.UUID] = None,
    ) -> Video:
        """Create a video in PENDING state."""
        video = Video(
            id=video_id or uuid.uuid4(),
            material_id=material_id,
            uploaded_by=uploaded_by,
            original_name=original_name,
            filename=filename,
            storage_key=storage_key,
            mime_type=mime_type,
            size=size,
            status=VideoStatus.PENDING.value,
            renditions=[],
        )
        self.session.add(video)
        await self.session.flush()
        return video

    async def get_by_id(self, video_id: uuid.UUID, refresh: bool = False) -> Optional[Video]:
        """Get video by ID with its renditions.

        Args:
            video_id: Video UUID
            refresh: Overwrite any copy already in the identity map
        """
        query = select(Video).where(Video.id == video_id)
        if refresh:
            query = query.execution_options(populate_existing=True)
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def update(self, video: Video, **kwargs) -> Video:
        """Update video attributes."""
        for key, value in kwargs.items():
            if hasattr(video, key):
                setattr(video, key, value)
        await self.session.flush()
        return video

    async def list_renditions(self, video_id: uuid.UUID) -> list[VideoRendition]:
        result = await self.session.execute(
            select(VideoRendition).where(VideoRendition.video_id == video_id)
        )
        return list(result.scalars().all())

    async def get_rendition(self, video_id: uuid.UUID, quality: str) -> Optional[VideoRendition]:
        result = await self.session.execute(
            select(VideoRendition)
            .where(VideoRendition.video_id == video_id)
            .where(VideoRendition.quality == quality)
        )
        return result.scalar_one_or_none()

    async def count_renditions(self, video_id: uuid.UUID) -> int:
        result = await self.session.execute(
            select(sql_func.count(VideoRendition.id)).where(VideoRendition.video_id == video_id)
        )
        return int(result.scalar_one())

    async def add_rendition(
        self,
        video_id: uuid.UUID,
        quality: str,
        storage_key: str,
        file_size: int,
        bitrate: int,
        resolution: str,
    ) -> VideoRendition:
        """Insert a rendition row.

        Raises:
            DuplicateRenditionError: If the quality already exists for the video
        """
        if await self.get_rendition(video_id, quality) is not None:
            raise DuplicateRenditionError(video_id, quality)

        rendition = VideoRendition(
            video_id=video_id,
            quality=quality,
            storage_key=storage_key,
            file_size=file_size,
            bitrate=bitrate,
            resolution=resolution,
        )
        try:
            async with self.session.begin_nested():
                self.session.add(rendition)
        except IntegrityError as e:
            raise DuplicateRenditionError(video_id, quality) from e
        return rendition

    async def delete(self, video: Video) -> None:
        await self.session.delete(video)
        await self.session.flush()

    async def touch(self, video_id: uuid.UUID) -> None:
        """Bump ``updated_at`` so a long-running job is not seen as stale."""
        await self.session.execute(
            update(Video).where(Video.id == video_id).values(updated_at=sql_func.now())
        )

    async def claim(self, video_id: uuid.UUID, stale_before: datetime) -> bool:
        """Atomically move a video to PROCESSING for the calling job.

        A PENDING video is always claimable. A PROCESSING video is claimable
        only when its row has not changed since ``stale_before``, meaning the
        job that held it is gone. Returns False when another job holds it.
        """
        result = await self.session.execute(
            update(Video)
            .where(Video.id == video_id)
            .where(
                or_(
                    Video.status == VideoStatus.PENDING.value,
                    and_(
                        Video.status == VideoStatus.PROCESSING.value,
                        Video.updated_at < stale_before,
                    ),
                )
            )
            .values(
                status=VideoStatus.PROCESSING.value,
                processing_started_at=sql_func.now(),
                processing_error=None,
                processing_attempts=Video.processing_attempts + 1,
                updated_at=sql_func.now(),
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def release_stale(self, video_id: uuid.UUID, stale_before: datetime) -> bool:
        """Put a stale unfinished video back to PENDING. False if it moved on meanwhile."""
        result = await self.session.execute(
            self._stale_update(video_id, stale_before).values(
                status=VideoStatus.PENDING.value,
                updated_at=sql_func.now(),
            )
        )
        return result.rowcount == 1

    async def abandon_stale(self, video_id: uuid.UUID, stale_before: datetime, error: str) -> bool:
        """Mark a stale unfinished video FAILED. False if it moved on meanwhile."""
        result = await self.session.execute(
            self._stale_update(video_id, stale_before).values(
                status=VideoStatus.FAILED.value,
                processing_error=error,
                processed_at=sql_func.now(),
                updated_at=sql_func.now(),
            )
        )
        return result.rowcount == 1

    def _stale_update(self, video_id: uuid.UUID, stale_before: datetime):
        return (
            update(Video)
            .where(Video.id == video_id)
            .where(Video.status.in_([VideoStatus.PENDING.value, VideoStatus.PROCESSING.value]))
            .where(Video.updated_at < stale_before)
            .execution_options(synchronize_session=False)
        )

    async def get_stale(self, older_than: datetime, limit: int = 100) -> list[Video]:
        """Unfinished videos whose row has not changed since ``older_than``."""
        result = await self.session.execute(
            select(Video)
            .where(Video.status.in_([VideoStatus.PENDING.value, VideoStatus.PROCESSING.value]))
            .where(Video.updated_at < older_than)
            .order_by(Video.updated_at)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def commit(self) -> None:
        await self.session.commit()

    async def rollback(self) -> None:
        await self.session.rollback()
