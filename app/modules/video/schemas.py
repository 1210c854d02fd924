"""Pydantic schemas for video module.

Defines response schemas for upload, metadata and processing status.
"""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from app.modules.transcoding.quality import TARGET_QUALITY_COUNT
from app.modules.video.models import Video, VideoStatus


# Extensions accepted for uploads; the MIME type must also be video/*
ALLOWED_VIDEO_EXTENSIONS = {".mp4", ".mov", ".avi", ".mkv", ".webm", ".m4v", ".mpeg", ".mpg"}
DEFAULT_VIDEO_EXTENSION = ".mp4"


class VideoRenditionResponse(BaseModel):
    """One available quality."""

    model_config = ConfigDict(from_attributes=True)

    quality: str
    file_size: int
    bitrate: int
    resolution: str


class VideoUploadResponse(BaseModel):
    """Response after a video upload is accepted."""

    id: uuid.UUID
    filename: str
    original_name: str
    size: int
    status: VideoStatus
    job_id: Optional[str] = None


class VideoResponse(BaseModel):
    """Video metadata."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    material_id: Optional[uuid.UUID] = None
    uploaded_by: Optional[uuid.UUID] = None
    original_name: str
    filename: str
    mime_type: str
    size: int
    duration: Optional[float] = None
    status: VideoStatus
    processing_error: Optional[str] = None
    has_thumbnail: bool = False
    renditions: list[VideoRenditionResponse] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None

    @classmethod
    def from_video(cls, video: Video) -> "VideoResponse":
        return cls(
            id=video.id,
            material_id=video.material_id,
            uploaded_by=video.uploaded_by,
            original_name=video.original_name,
            filename=video.filename,
            mime_type=video.mime_type,
            size=video.size,
            duration=video.duration,
            status=VideoStatus(video.status),
            processing_error=video.processing_error,
            has_thumbnail=video.thumbnail_key is not None,
            renditions=[VideoRenditionResponse.model_validate(r) for r in video.sorted_renditions()],
            created_at=video.created_at,
            processed_at=video.processed_at,
        )


class ProcessingStatus(BaseModel):
    """Snapshot of a video's processing, shared by the status endpoint and the progress feed."""

    model_config = ConfigDict(populate_by_name=True)

    status: VideoStatus
    progress: float
    completed_qualities: int = Field(alias="completedQualities")
    target_qualities: int = Field(default=TARGET_QUALITY_COUNT, alias="targetQualities")
    qualities: list[str] = Field(default_factory=list)
    error: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal


def calculate_progress(completed: int, target: int = TARGET_QUALITY_COUNT) -> float:
    """Percentage of the ladder rendered, capped at 100."""
    if target <= 0:
        return 100.0
    return min(completed / target * 100, 100.0)


def build_processing_status(status: VideoStatus | str, qualities: list[str], error: Optional[str]) -> ProcessingStatus:
    completed = len(qualities)
    return ProcessingStatus(
        status=VideoStatus(status),
        progress=calculate_progress(completed),
        completed_qualities=completed,
        target_qualities=TARGET_QUALITY_COUNT,
        qualities=qualities,
        error=error,
    )


class VideoJobPayload(BaseModel):
    """Payload of a ``process-video`` job."""

    model_config = ConfigDict(populate_by_name=True)

    video_id: uuid.UUID = Field(alias="videoId")
    input_path: str = Field(alias="inputPath")
    output_qualities: list[str] = Field(default_factory=list, alias="outputQualities")
