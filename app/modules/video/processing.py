"""Video processing worker logic.

State machine per video::

    PENDING -> PROCESSING -> COMPLETED
                          -> FAILED

A quality step is transcode, upload, then insert the rendition row. If any
part fails the uploaded file is removed and the error recorded, and the
remaining qualities are still attempted. The video ends COMPLETED when at
least one rendition exists and FAILED otherwise. A missing source file
fails the video immediately.

Jobs may be delivered more than once. A job first claims the video with a
conditional update, so only one job works on a video at a time; qualities
that already have a rendition are skipped and terminal videos are left
untouched.
"""

import asyncio
import logging
import os
import tempfile
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from functools import partial
from typing import Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError

from app.core.config import settings
from app.core.logging import log_error, log_info, log_warning
from app.core.metrics import VIDEO_PROCESSING_OUTCOMES_TOTAL, VIDEO_RENDITIONS_TOTAL
from app.core.storage import Storage
from app.core.tracing import create_span
from app.modules.transcoding.ffmpeg import FFmpegError, FFmpegTranscoder
from app.modules.transcoding.quality import QUALITY_LADDER, QualityProfile, parse_quality
from app.modules.video.models import Video, VideoStatus
from app.modules.video.repository import DuplicateRenditionError, VideoRepository
from app.modules.video.service import VideoNotFoundError, rendition_key, thumbnail_key

logger = logging.getLogger(__name__)


@dataclass
class ProcessingResult:
    """Outcome of one processing run."""
    video_id: uuid.UUID
    status: VideoStatus
    completed_qualities: list[str] = field(default_factory=list)
    failed_qualities: dict[str, str] = field(default_factory=dict)
    error: Optional[str] = None
    skipped: bool = False

    def to_dict(self) -> dict:
        return {
            "videoId": str(self.video_id),
            "status": self.status.value,
            "completedQualities": self.completed_qualities,
            "failedQualities": self.failed_qualities,
            "error": self.error,
            "skipped": self.skipped,
        }


def select_profiles(qualities: Optional[Sequence[str]] = None) -> list[QualityProfile]:
    """Ladder rungs to render, ascending. Unknown labels are ignored."""
    if not qualities:
        return list(QUALITY_LADDER)
    wanted = set()
    for label in qualities:
        try:
            wanted.add(parse_quality(label))
        except ValueError:
            logger.warning("Ignoring unknown quality in job payload", extra={"quality": label})
    return [profile for profile in QUALITY_LADDER if profile.quality in wanted]


def summarize_errors(errors: dict[str, str]) -> str:
    return "; ".join(f"{quality}: {message}" for quality, message in errors.items())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class VideoProcessor:
    """Transcodes a video into every ladder quality and records the outcome."""

    def __init__(
        self,
        repository: VideoRepository,
        storage: Storage,
        transcoder: Optional[FFmpegTranscoder] = None,
        work_dir: Optional[str] = None,
        thumbnail_timestamp: Optional[float] = None,
        stale_after: Optional[timedelta] = None,
    ):
        self.repository = repository
        self.storage = storage
        self.transcoder = transcoder or FFmpegTranscoder()
        self.work_dir = work_dir
        self.stale_after = stale_after or timedelta(minutes=settings.VIDEO_STALE_PROCESSING_MINUTES)
        self.thumbnail_timestamp = (
            settings.VIDEO_THUMBNAIL_TIMESTAMP_SECONDS if thumbnail_timestamp is None else thumbnail_timestamp
        )

    async def _run_blocking(self, func, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, partial(func, *args))

    async def process(self, video_id: uuid.UUID, qualities: Optional[Sequence[str]] = None) -> ProcessingResult:
        """Run the processing state machine for one video.

        The video is never left PROCESSING when this returns or raises.

        Raises:
            VideoNotFoundError: If the video does not exist
        """
        video = await self.repository.get_by_id(video_id)
        if video is None:
            raise VideoNotFoundError(f"Video {video_id} not found")

        if video.is_terminal():
            log_info(
                logger,
                "Video already processed, skipping duplicate job",
                video_id=str(video_id),
                status=video.status,
            )
            return await self._skipped(video)

        if not await self.repository.claim(video_id, _utcnow() - self.stale_after):
            await self.repository.rollback()
            log_info(
                logger,
                "Video is held by another job, skipping duplicate job",
                video_id=str(video_id),
                status=video.status,
            )
            return await self._skipped(video)
        await self.repository.commit()

        video = await self.repository.get_by_id(video_id, refresh=True)
        if video is None:
            raise VideoNotFoundError(f"Video {video_id} was deleted during processing")

        with create_span("video.process", attributes={"video.id": str(video_id)}):
            try:
                return await self._process(video, select_profiles(qualities))
            except Exception as exc:
                await self._fail_after_error(video_id, exc)
                raise

    async def _skipped(self, video: Video) -> ProcessingResult:
        renditions = await self.repository.list_renditions(video.id)
        return ProcessingResult(
            video_id=video.id,
            status=VideoStatus(video.status),
            completed_qualities=[r.quality for r in renditions],
            error=video.processing_error,
            skipped=True,
        )

    async def _process(self, video: Video, profiles: list[QualityProfile]) -> ProcessingResult:
        video_id = video.id
        source_key = video.storage_key
        source_ext = os.path.splitext(video.filename)[1] or ".mp4"

        log_info(
            logger,
            "Video processing started",
            video_id=str(video_id),
            attempt=video.processing_attempts,
        )

        with tempfile.TemporaryDirectory(prefix=f"video-{video_id}-", dir=self.work_dir) as work_dir:
            source_path = os.path.join(work_dir, f"source{source_ext}")
            found = await self._run_blocking(self.storage.download, source_key, source_path)
            if not found:
                message = f"Source file not found in storage: {source_key}"
                log_error(logger, "Video source missing", video_id=str(video_id), key=source_key)
                return await self._finish(video_id, [], {}, fatal_error=message)

            duration = await self._run_blocking(self.transcoder.get_duration, source_path)

            existing = {r.quality for r in await self.repository.list_renditions(video_id)}
            completed: list[str] = []
            errors: dict[str, str] = {}

            for profile in profiles:
                quality = profile.quality.value
                if quality in existing:
                    logger.info(
                        "Rendition already exists, skipping",
                        extra={"video_id": str(video_id), "quality": quality},
                    )
                    completed.append(quality)
                    continue

                error = await self._process_quality(video_id, profile, source_path, work_dir)
                if error is None:
                    completed.append(quality)
                    VIDEO_RENDITIONS_TOTAL.labels(quality=quality, outcome="success").inc()
                else:
                    errors[quality] = error
                    VIDEO_RENDITIONS_TOTAL.labels(quality=quality, outcome="failure").inc()
                    log_warning(
                        logger,
                        "Quality rendition failed",
                        video_id=str(video_id),
                        quality=quality,
                        error=error,
                    )

                await self.repository.touch(video_id)
                await self.repository.commit()

            warnings: list[str] = []
            thumb_key = None
            if completed:
                thumb_key = await self._extract_thumbnail(video_id, source_path, work_dir)
                if thumb_key is None:
                    warnings.append("Thumbnail extraction failed")

        return await self._finish(video_id, completed, errors, warnings, thumb_key, duration)

    async def _process_quality(
        self,
        video_id: uuid.UUID,
        profile: QualityProfile,
        source_path: str,
        work_dir: str,
    ) -> Optional[str]:
        """Render, upload and record one quality. Returns an error message on failure."""
        quality = profile.quality.value
        output_path = os.path.join(work_dir, f"{quality}.mp4")
        key = rendition_key(video_id, quality)

        try:
            try:
                with create_span("video.transcode", attributes={"video.id": str(video_id), "video.quality": quality}):
                    output = await self._run_blocking(
                        self.transcoder.transcode, source_path, output_path, profile.quality
                    )
            except (FFmpegError, OSError, ValueError) as e:
                return f"Transcode failed: {e}"
            if not output.success:
                return f"Transcode failed: {output.error_message}"

            try:
                upload = await self._run_blocking(self.storage.upload, output_path, key, "video/mp4")
            except OSError as e:
                await self._run_blocking(self.storage.delete, key)
                return f"Upload failed: {e}"
            if not upload.success:
                await self._run_blocking(self.storage.delete, key)
                return f"Upload failed: {upload.error_message}"

            try:
                await self.repository.add_rendition(
                    video_id=video_id,
                    quality=quality,
                    storage_key=key,
                    file_size=upload.file_size or output.file_size,
                    bitrate=output.bitrate,
                    resolution=profile.resolution,
                )
                await self.repository.commit()
            except DuplicateRenditionError:
                # A concurrent delivery recorded the same key first
                await self.repository.rollback()
                logger.info(
                    "Rendition recorded by another delivery",
                    extra={"video_id": str(video_id), "quality": quality},
                )
                return None
            except SQLAlchemyError as e:
                await self.repository.rollback()
                await self._run_blocking(self.storage.delete, key)
                return f"Failed to record rendition: {e}"

            log_info(
                logger,
                "Rendition created",
                video_id=str(video_id),
                quality=quality,
                file_size=upload.file_size,
                bitrate=output.bitrate,
            )
            return None
        finally:
            if os.path.exists(output_path):
                os.remove(output_path)

    async def _extract_thumbnail(self, video_id: uuid.UUID, source_path: str, work_dir: str) -> Optional[str]:
        output_path = os.path.join(work_dir, "thumbnail.jpg")
        ok = await self._run_blocking(
            self.transcoder.extract_thumbnail, source_path, output_path, self.thumbnail_timestamp
        )
        if not ok:
            log_warning(logger, "Thumbnail extraction failed", video_id=str(video_id))
            return None

        key = thumbnail_key(video_id)
        upload = await self._run_blocking(self.storage.upload, output_path, key, "image/jpeg")
        if not upload.success:
            log_warning(logger, "Thumbnail upload failed", video_id=str(video_id), error=upload.error_message)
            return None
        return key

    async def _finish(
        self,
        video_id: uuid.UUID,
        completed: list[str],
        errors: dict[str, str],
        warnings: Optional[list[str]] = None,
        thumb_key: Optional[str] = None,
        duration: Optional[float] = None,
        fatal_error: Optional[str] = None,
    ) -> ProcessingResult:
        video = await self.repository.get_by_id(video_id, refresh=True)
        if video is None:
            raise VideoNotFoundError(f"Video {video_id} was deleted during processing")

        if fatal_error or not completed:
            status = VideoStatus.FAILED
            error = fatal_error or summarize_errors(errors) or "No renditions were produced"
        else:
            status = VideoStatus.COMPLETED
            notes = [summarize_errors(errors)] if errors else []
            notes.extend(warnings or [])
            error = f"Completed with warnings: {'; '.join(notes)}" if notes else None

        updates = {
            "status": status.value,
            "processing_error": error,
            "processed_at": _utcnow(),
        }
        if thumb_key:
            updates["thumbnail_key"] = thumb_key
        if duration is not None:
            updates["duration"] = duration

        await self.repository.update(video, **updates)
        await self.repository.commit()
        VIDEO_PROCESSING_OUTCOMES_TOTAL.labels(status=status.value).inc()

        log_info(
            logger,
            "Video processing finished",
            video_id=str(video_id),
            status=status.value,
            completed_qualities=completed,
            failed_qualities=list(errors),
        )
        return ProcessingResult(
            video_id=video_id,
            status=status,
            completed_qualities=completed,
            failed_qualities=errors,
            error=error,
        )

    async def _fail_after_error(self, video_id: uuid.UUID, exc: Exception) -> None:
        """Mark the video FAILED after an unexpected error."""
        log_error(logger, "Video processing crashed", exception=exc, video_id=str(video_id))
        try:
            await self.repository.rollback()
            video = await self.repository.get_by_id(video_id, refresh=True)
            if video is not None and not video.is_terminal():
                await self.repository.update(
                    video,
                    status=VideoStatus.FAILED.value,
                    processing_error=f"Processing error: {exc}",
                    processed_at=_utcnow(),
                )
                await self.repository.commit()
                VIDEO_PROCESSING_OUTCOMES_TOTAL.labels(status=VideoStatus.FAILED.value).inc()
        except SQLAlchemyError as mark_error:
            log_error(
                logger,
                "Could not mark video as failed",
                exception=mark_error,
                video_id=str(video_id),
            )
