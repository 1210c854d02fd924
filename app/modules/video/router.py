"""Video API router.

Upload, metadata, processing status and progress feed, range-aware
streaming and thumbnails.
"""

import json
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Header, HTTPException, Query, Response, UploadFile, status
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession
from sse_starlette.sse import EventSourceResponse

from app.core.database import get_db
from app.core.security import CurrentUser, get_current_user
from app.core.storage import Storage, get_storage
from app.modules.job.queue import JobQueue, QueueUnavailableError, get_job_queue
from app.modules.video.progress import ProgressChannel, SnapshotLoader, get_snapshot_loader
from app.modules.video.repository import VideoRepository
from app.modules.video.schemas import ProcessingStatus, VideoResponse, VideoUploadResponse
from app.modules.video.service import (
    FileTooLargeError,
    InvalidFileError,
    ThumbnailNotFoundError,
    VideoAccessDeniedError,
    VideoNotFoundError,
    VideoService,
    VideoStorageError,
)
from app.modules.video.streaming import (
    InvalidQualityError,
    InvalidRangeError,
    QualityNotFoundError,
    RangeNotSatisfiableError,
    StreamingService,
    get_stream_response,
)

router = APIRouter(prefix="/videos", tags=["videos"])

THUMBNAIL_CACHE_CONTROL = "public, max-age=31536000, immutable"


def get_video_service(
    db: AsyncSession = Depends(get_db),
    storage: Storage = Depends(get_storage),
    job_queue: JobQueue = Depends(get_job_queue),
) -> VideoService:
    """Dependency to get VideoService instance."""
    return VideoService(VideoRepository(db), storage, job_queue)


def get_streaming_service(
    db: AsyncSession = Depends(get_db),
    storage: Storage = Depends(get_storage),
) -> StreamingService:
    """Dependency to get StreamingService instance."""
    return StreamingService(VideoRepository(db), storage)


def _not_found(e: Exception) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


def _progress_response(video_id: uuid.UUID, load_snapshot: SnapshotLoader) -> EventSourceResponse:
    channel = ProgressChannel(video_id, load_snapshot)

    async def event_stream():
        async for event in channel:
            yield {"data": json.dumps(event)}

    return EventSourceResponse(
        event_stream(),
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )


@router.post("", response_model=VideoUploadResponse, status_code=status.HTTP_201_CREATED)
async def upload_video(
    file: Optional[UploadFile] = File(None),
    material_id: Optional[uuid.UUID] = Form(None, alias="materialId"),
    current_user: CurrentUser = Depends(get_current_user),
    service: VideoService = Depends(get_video_service),
) -> VideoUploadResponse:
    """Upload a video and queue it for processing."""
    try:
        video, job = await service.upload_video(
            fileobj=file.file if file else None,
            filename=file.filename if file else None,
            content_type=file.content_type if file else None,
            user=current_user,
            material_id=material_id,
        )
    except FileTooLargeError as e:
        raise HTTPException(status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, detail=str(e))
    except InvalidFileError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except VideoStorageError as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))
    except QueueUnavailableError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))

    return VideoUploadResponse(
        id=video.id,
        filename=video.filename,
        original_name=video.original_name,
        size=video.size,
        status=video.status,
        job_id=job.id,
    )


@router.get("/upload-progress")
async def upload_progress(
    video_id: Optional[uuid.UUID] = Query(None, alias="videoId"),
    current_user: CurrentUser = Depends(get_current_user),
    load_snapshot: SnapshotLoader = Depends(get_snapshot_loader),
) -> EventSourceResponse:
    """Server-Sent Events progress feed addressed by query parameter."""
    if video_id is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Video ID required")
    return _progress_response(video_id, load_snapshot)


@router.get("/{video_id}", response_model=VideoResponse)
async def get_video(
    video_id: uuid.UUID,
    service: VideoService = Depends(get_video_service),
) -> VideoResponse:
    """Get video metadata and available qualities."""
    try:
        video = await service.get_video(video_id)
    except VideoNotFoundError as e:
        raise _not_found(e)
    return VideoResponse.from_video(video)


@router.delete("/{video_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_video(
    video_id: uuid.UUID,
    current_user: CurrentUser = Depends(get_current_user),
    service: VideoService = Depends(get_video_service),
) -> Response:
    """Delete a video, its renditions and thumbnail."""
    try:
        await service.delete_video(video_id, current_user)
    except VideoNotFoundError as e:
        raise _not_found(e)
    except VideoAccessDeniedError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{video_id}/status", response_model=ProcessingStatus)
async def get_processing_status(
    video_id: uuid.UUID,
    service: VideoService = Depends(get_video_service),
) -> ProcessingStatus:
    """One-shot processing snapshot."""
    try:
        return await service.get_processing_status(video_id)
    except VideoNotFoundError as e:
        raise _not_found(e)


@router.get("/{video_id}/progress")
async def video_progress(
    video_id: uuid.UUID,
    current_user: CurrentUser = Depends(get_current_user),
    load_snapshot: SnapshotLoader = Depends(get_snapshot_loader),
) -> EventSourceResponse:
    """Server-Sent Events progress feed."""
    return _progress_response(video_id, load_snapshot)


@router.get("/{video_id}/stream")
@router.get("/{video_id}/quality", include_in_schema=False)
async def stream_video(
    video_id: uuid.UUID,
    quality: Optional[str] = Query(None, description="Quality label, e.g. 720p"),
    speed: Optional[float] = Query(None, gt=0, description="Connection speed hint in Mbps"),
    range_header: Optional[str] = Header(None, alias="Range"),
    service: StreamingService = Depends(get_streaming_service),
) -> StreamingResponse:
    """Stream a rendition, honoring a single byte range."""
    try:
        info = await service.stream_video(video_id, quality, range_header, speed)
    except (VideoNotFoundError, QualityNotFoundError) as e:
        raise _not_found(e)
    except (InvalidQualityError, InvalidRangeError) as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except RangeNotSatisfiableError as e:
        raise HTTPException(
            status_code=status.HTTP_416_REQUESTED_RANGE_NOT_SATISFIABLE,
            detail=str(e),
            headers={"Content-Range": e.content_range, "Accept-Ranges": "bytes"},
        )

    headers, status_code = get_stream_response(info)
    return StreamingResponse(info.stream, status_code=status_code, headers=headers)


@router.get("/{video_id}/thumbnail")
async def get_thumbnail(
    video_id: uuid.UUID,
    service: VideoService = Depends(get_video_service),
) -> Response:
    """Thumbnail image with long-lived cache headers."""
    try:
        data, content_type = await service.get_thumbnail(video_id)
    except (VideoNotFoundError, ThumbnailNotFoundError) as e:
        raise _not_found(e)
    return Response(
        content=data,
        media_type=content_type,
        headers={"Cache-Control": THUMBNAIL_CACHE_CONTROL},
    )
