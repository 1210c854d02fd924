"""Video service: upload, status, thumbnail and deletion.

Processing itself happens in the worker (see processing.py); this service
only persists the upload and hands it to the queue.
"""

import asyncio
import logging
import os
import uuid
from functools import partial
from typing import BinaryIO, Optional

from app.core.config import settings
from app.core.logging import log_error, log_info
from app.core.security import CurrentUser
from app.core.storage import Storage, StorageNotFoundError
from app.modules.job.queue import JobQueue, QueueUnavailableError
from app.modules.job.schemas import JobHandle, QueueName
from app.modules.transcoding.quality import ladder_labels, quality_rank
from app.modules.video.models import Video, VideoStatus
from app.modules.video.repository import VideoRepository
from app.modules.video.schemas import (
    ALLOWED_VIDEO_EXTENSIONS,
    DEFAULT_VIDEO_EXTENSION,
    ProcessingStatus,
    build_processing_status,
)

logger = logging.getLogger(__name__)

ORIGINALS_PREFIX = "videos/originals"
PROCESSED_PREFIX = "videos/processed"
THUMBNAILS_PREFIX = "videos/thumbnails"

THUMBNAIL_CONTENT_TYPES = {
    ".png": "image/png",
    ".webp": "image/webp",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
}


class VideoServiceError(Exception):
    """Base exception for video service errors."""

    pass


class VideoNotFoundError(VideoServiceError):
    """Raised when video is not found."""

    pass


class ThumbnailNotFoundError(VideoServiceError):
    """Raised when a video has no stored thumbnail."""

    pass


class InvalidFileError(VideoServiceError):
    """Raised when file validation fails."""

    pass


class FileTooLargeError(InvalidFileError):
    """Raised when an upload exceeds VIDEO_MAX_UPLOAD_SIZE."""

    pass


class VideoAccessDeniedError(VideoServiceError):
    """Raised when the caller may not modify a video."""

    pass


class VideoStorageError(VideoServiceError):
    """Raised when the source file cannot be written to storage."""

    pass


def original_key(filename: str) -> str:
    return f"{ORIGINALS_PREFIX}/{filename}"


def rendition_key(video_id: uuid.UUID, quality: str) -> str:
    return f"{PROCESSED_PREFIX}/{quality}/{video_id}.mp4"


def thumbnail_key(video_id: uuid.UUID) -> str:
    return f"{THUMBNAILS_PREFIX}/{video_id}.jpg"


def thumbnail_content_type(key: str) -> str:
    """Image MIME type inferred from the key's extension, JPEG by default."""
    ext = os.path.splitext(key)[1].lower()
    return THUMBNAIL_CONTENT_TYPES.get(ext, "image/jpeg")


def validate_video_file(filename: Optional[str], content_type: Optional[str], file_size: int) -> None:
    """Validate an uploaded video.

    Raises:
        InvalidFileError: If the file is missing, empty or not a video
        FileTooLargeError: If the file exceeds the upload limit
    """
    if not filename:
        raise InvalidFileError("No file provided")

    if not content_type or not content_type.lower().startswith("video/"):
        raise InvalidFileError("Invalid file type. Only video files are allowed")

    if file_size <= 0:
        raise InvalidFileError("File is empty")

    if file_size > settings.VIDEO_MAX_UPLOAD_SIZE:
        raise FileTooLargeError(
            f"File size exceeds maximum of {settings.VIDEO_MAX_UPLOAD_SIZE} bytes"
        )


def storage_extension(filename: str) -> str:
    ext = os.path.splitext(filename)[1].lower()
    return ext if ext in ALLOWED_VIDEO_EXTENSIONS else DEFAULT_VIDEO_EXTENSION


def _stream_size(fileobj: BinaryIO) -> int:
    fileobj.seek(0, os.SEEK_END)
    size = fileobj.tell()
    fileobj.seek(0)
    return size


class VideoService:
    """Service for video uploads and their lifecycle."""

    def __init__(self, repository: VideoRepository, storage: Storage, job_queue: JobQueue):
        self.repository = repository
        self.storage = storage
        self.job_queue = job_queue

    async def _run_blocking(self, func, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, partial(func, *args))

    async def upload_video(
        self,
        fileobj: Optional[BinaryIO],
        filename: Optional[str],
        content_type: Optional[str],
        user: CurrentUser,
        material_id: Optional[uuid.UUID] = None,
    ) -> tuple[Video, JobHandle]:
        """Store an upload and enqueue its processing job.

        Returns:
            The PENDING video and the enqueued job

        Raises:
            InvalidFileError: If validation fails
            VideoStorageError: If the source cannot be stored
            QueueUnavailableError: If the job cannot be enqueued; the video
                is left FAILED
        """
        if fileobj is None:
            raise InvalidFileError("No file provided")

        size = _stream_size(fileobj)
        validate_video_file(filename, content_type, size)

        video_id = uuid.uuid4()
        stored_name = f"{video_id}{storage_extension(filename)}"
        key = original_key(stored_name)

        result = await self._run_blocking(self.storage.upload_fileobj, fileobj, key, content_type)
        if not result.success:
            log_error(logger, "Failed to store uploaded video", key=key, error=result.error_message)
            raise VideoStorageError(result.error_message or "Failed to store video")

        video = await self.repository.create(
            video_id=video_id,
            original_name=filename,
            filename=stored_name,
            storage_key=key,
            mime_type=content_type,
            size=result.file_size or size,
            material_id=material_id,
            uploaded_by=user.user_id,
        )
        await self.repository.commit()

        payload = {
            "videoId": str(video.id),
            "inputPath": key,
            "outputQualities": ladder_labels(),
        }
        try:
            job = await self.job_queue.enqueue(QueueName.VIDEO_PROCESSING, payload)
        except QueueUnavailableError as e:
            await self.repository.update(
                video,
                status=VideoStatus.FAILED.value,
                processing_error=f"Failed to enqueue processing job: {e.reason}",
            )
            await self.repository.commit()
            raise

        log_info(logger, "Video uploaded", video_id=str(video.id), size=video.size, job_id=job.id)
        return video, job

    async def get_video(self, video_id: uuid.UUID) -> Video:
        video = await self.repository.get_by_id(video_id)
        if not video:
            raise VideoNotFoundError(f"Video {video_id} not found")
        return video

    async def get_progress_snapshot(self, video_id: uuid.UUID) -> Optional[ProcessingStatus]:
        """Freshly read processing state, or None if the video is gone."""
        video = await self.repository.get_by_id(video_id, refresh=True)
        if not video:
            return None
        renditions = await self.repository.list_renditions(video_id)
        qualities = sorted((r.quality for r in renditions), key=quality_rank)
        return build_processing_status(video.status, qualities, video.processing_error)

    async def get_processing_status(self, video_id: uuid.UUID) -> ProcessingStatus:
        snapshot = await self.get_progress_snapshot(video_id)
        if snapshot is None:
            raise VideoNotFoundError(f"Video {video_id} not found")
        return snapshot

    async def get_thumbnail(self, video_id: uuid.UUID) -> tuple[bytes, str]:
        """Thumbnail bytes and content type.

        Raises:
            VideoNotFoundError: If the video does not exist
            ThumbnailNotFoundError: If no thumbnail was produced
        """
        video = await self.get_video(video_id)
        if not video.thumbnail_key:
            raise ThumbnailNotFoundError(f"Video {video_id} has no thumbnail")

        try:
            data = await self._run_blocking(self.storage.read_bytes, video.thumbnail_key)
        except StorageNotFoundError as e:
            raise ThumbnailNotFoundError(f"Thumbnail for video {video_id} is missing from storage") from e
        return data, thumbnail_content_type(video.thumbnail_key)

    async def delete_video(self, video_id: uuid.UUID, user: CurrentUser) -> None:
        """Delete a video with its original, renditions and thumbnail.

        Raises:
            VideoNotFoundError: If the video does not exist
            VideoAccessDeniedError: If the caller is neither owner nor admin
        """
        video = await self.get_video(video_id)
        if not user.is_admin and video.uploaded_by != user.user_id:
            raise VideoAccessDeniedError("Only the uploader or an admin can delete this video")

        keys = [video.storage_key]
        keys.extend(r.storage_key for r in await self.repository.list_renditions(video_id))
        if video.thumbnail_key:
            keys.append(video.thumbnail_key)

        for key in keys:
            if not await self._run_blocking(self.storage.delete, key):
                logger.warning("Storage object already absent", extra={"video_id": str(video_id), "key": key})

        await self.repository.delete(video)
        await self.repository.commit()
        log_info(logger, "Video deleted", video_id=str(video_id), deleted_by=str(user.user_id))
