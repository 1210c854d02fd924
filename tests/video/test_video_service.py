"""Tests for uploads, status, thumbnails and deletion."""

import io
import uuid

import pytest

from app.core.config import settings
from app.modules.job.queue import QueueUnavailableError
from app.modules.video.models import VideoStatus
from app.modules.video.service import (
    FileTooLargeError,
    InvalidFileError,
    ThumbnailNotFoundError,
    VideoAccessDeniedError,
    VideoNotFoundError,
    VideoService,
    thumbnail_content_type,
    validate_video_file,
)
from tests.fakes import FakeJobQueue


class TestValidateVideoFile:
    """Upload validation."""

    def test_accepts_video(self) -> None:
        validate_video_file("lecture.mp4", "video/mp4", 1024)

    def test_rejects_non_video(self) -> None:
        with pytest.raises(InvalidFileError, match="Only video files are allowed"):
            validate_video_file("notes.pdf", "application/pdf", 1024)

    def test_rejects_missing_file(self) -> None:
        with pytest.raises(InvalidFileError, match="No file provided"):
            validate_video_file(None, None, 0)

    def test_rejects_empty_file(self) -> None:
        with pytest.raises(InvalidFileError):
            validate_video_file("empty.mp4", "video/mp4", 0)

    def test_rejects_oversized_file(self, monkeypatch) -> None:
        monkeypatch.setattr(settings, "VIDEO_MAX_UPLOAD_SIZE", 100)
        with pytest.raises(FileTooLargeError):
            validate_video_file("big.mp4", "video/mp4", 101)


class TestUpload:
    """Uploads persist a PENDING video and enqueue one job."""

    @pytest.mark.asyncio
    async def test_upload_enqueues_processing(self, video_repo, storage, job_queue, student, video_bytes) -> None:
        service = VideoService(video_repo, storage, job_queue)
        material_id = uuid.uuid4()

        video, job = await service.upload_video(video_bytes, "Intro Lecture.MOV", "video/quicktime", student, material_id)

        assert video.status == VideoStatus.PENDING.value
        assert video.original_name == "Intro Lecture.MOV"
        assert video.filename == f"{video.id}.mov"
        assert video.storage_key == f"videos/originals/{video.id}.mov"
        assert video.uploaded_by == student.user_id
        assert video.material_id == material_id
        assert storage.objects[video.storage_key] == video_bytes.getvalue()
        assert job.id == "job-1"
        queue_name, payload = job_queue.jobs[0]
        assert queue_name == "video-processing"
        assert payload == {
            "videoId": str(video.id),
            "inputPath": video.storage_key,
            "outputQualities": ["360p", "480p", "720p", "1080p"],
        }

    @pytest.mark.asyncio
    async def test_unknown_extension_stored_as_mp4(self, video_repo, storage, job_queue, student, video_bytes) -> None:
        video, _ = await VideoService(video_repo, storage, job_queue).upload_video(
            video_bytes, "clip", "video/mp4", student
        )
        assert video.filename.endswith(".mp4")

    @pytest.mark.asyncio
    async def test_non_video_rejected_without_side_effects(self, video_repo, storage, job_queue, student) -> None:
        with pytest.raises(InvalidFileError):
            await VideoService(video_repo, storage, job_queue).upload_video(
                io.BytesIO(b"%PDF-1.7"), "notes.pdf", "application/pdf", student
            )
        assert storage.objects == {}
        assert video_repo.videos == {}
        assert job_queue.jobs == []

    @pytest.mark.asyncio
    async def test_queue_unavailable_marks_video_failed(self, video_repo, storage, student, video_bytes) -> None:
        service = VideoService(video_repo, storage, FakeJobQueue(unavailable=True))

        with pytest.raises(QueueUnavailableError):
            await service.upload_video(video_bytes, "lecture.mp4", "video/mp4", student)

        (video,) = video_repo.videos.values()
        assert video.status == VideoStatus.FAILED.value
        assert "enqueue" in video.processing_error


class TestStatusAndThumbnail:
    """Status snapshots and thumbnails."""

    @pytest.mark.asyncio
    async def test_processing_status(self, video_repo, storage, job_queue) -> None:
        video = video_repo.add_video(status=VideoStatus.PROCESSING)
        video_repo.add_existing_rendition(video.id, "720p")
        video_repo.add_existing_rendition(video.id, "360p")

        status = await VideoService(video_repo, storage, job_queue).get_processing_status(video.id)

        assert status.status == VideoStatus.PROCESSING
        assert status.progress == 50.0
        assert status.qualities == ["360p", "720p"]

    @pytest.mark.asyncio
    async def test_status_of_missing_video(self, video_repo, storage, job_queue) -> None:
        with pytest.raises(VideoNotFoundError):
            await VideoService(video_repo, storage, job_queue).get_processing_status(uuid.uuid4())

    @pytest.mark.asyncio
    async def test_thumbnail(self, video_repo, storage, job_queue) -> None:
        video = video_repo.add_video(status=VideoStatus.COMPLETED, thumbnail_key="videos/thumbnails/x.jpg")
        storage.objects["videos/thumbnails/x.jpg"] = b"\xff\xd8jpeg"

        data, content_type = await VideoService(video_repo, storage, job_queue).get_thumbnail(video.id)

        assert data == b"\xff\xd8jpeg"
        assert content_type == "image/jpeg"

    @pytest.mark.asyncio
    async def test_thumbnail_missing(self, video_repo, storage, job_queue) -> None:
        video = video_repo.add_video(status=VideoStatus.FAILED)
        with pytest.raises(ThumbnailNotFoundError):
            await VideoService(video_repo, storage, job_queue).get_thumbnail(video.id)

    @pytest.mark.parametrize(
        "key,expected",
        [("a.png", "image/png"), ("a.webp", "image/webp"), ("a.JPEG", "image/jpeg"), ("a", "image/jpeg")],
    )
    def test_thumbnail_content_type(self, key: str, expected: str) -> None:
        assert thumbnail_content_type(key) == expected


class TestDelete:
    """Only the uploader or an admin may delete a video."""

    @pytest.mark.asyncio
    async def test_owner_deletes_video_and_files(self, video_repo, storage, job_queue, student) -> None:
        video = video_repo.add_video(status=VideoStatus.COMPLETED, uploaded_by=student.user_id)
        rendition = video_repo.add_existing_rendition(video.id, "360p")
        storage.objects[video.storage_key] = b"src"
        storage.objects[rendition.storage_key] = b"r"

        await VideoService(video_repo, storage, job_queue).delete_video(video.id, student)

        assert video.id not in video_repo.videos
        assert storage.objects == {}

    @pytest.mark.asyncio
    async def test_other_student_denied(self, video_repo, storage, job_queue, student) -> None:
        video = video_repo.add_video(uploaded_by=uuid.uuid4())
        with pytest.raises(VideoAccessDeniedError):
            await VideoService(video_repo, storage, job_queue).delete_video(video.id, student)

    @pytest.mark.asyncio
    async def test_admin_may_delete(self, video_repo, storage, job_queue, admin) -> None:
        video = video_repo.add_video(uploaded_by=uuid.uuid4())
        await VideoService(video_repo, storage, job_queue).delete_video(video.id, admin)
        assert video.id not in video_repo.videos
