"""HTTP tests for the video routes with service dependencies overridden."""

import json
import uuid

import pytest
from fastapi.testclient import TestClient

from app.core.config import settings
from app.core.metrics import REGISTRY
from app.core.security import create_access_token
from app.main import app
from app.modules.video.models import VideoStatus
from app.modules.video.progress import get_snapshot_loader
from app.modules.video.router import get_streaming_service, get_video_service
from app.modules.video.schemas import build_processing_status
from app.modules.video.service import VideoService
from app.modules.video.streaming import StreamingService
from tests.fakes import FakeJobQueue, FakeStorage, FakeVideoRepository

PREFIX = "/api/v1/videos"
BODY = bytes(range(250)) * 4  # 1000 bytes


@pytest.fixture
def fakes():
    repo = FakeVideoRepository()
    storage = FakeStorage()
    queue = FakeJobQueue()
    app.dependency_overrides[get_video_service] = lambda: VideoService(repo, storage, queue)
    app.dependency_overrides[get_streaming_service] = lambda: StreamingService(repo, storage, chunk_size=64)
    yield repo, storage, queue
    app.dependency_overrides.clear()


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


@pytest.fixture
def auth_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(uuid.uuid4())}"}


def _completed_video(repo, storage, qualities=("360p", "480p", "720p")):
    video = repo.add_video(status=VideoStatus.COMPLETED)
    for quality in qualities:
        rendition = repo.add_existing_rendition(video.id, quality)
        storage.objects[rendition.storage_key] = BODY
    return video


class TestStreamEndpoint:
    """Range-aware streaming."""

    def test_full_stream(self, client, fakes) -> None:
        repo, storage, _ = fakes
        video = _completed_video(repo, storage)

        response = client.get(f"{PREFIX}/{video.id}/stream")

        assert response.status_code == 200
        assert response.headers["accept-ranges"] == "bytes"
        assert response.headers["content-length"] == "1000"
        assert response.headers["x-video-quality"] == "720p"
        assert response.content == BODY

    def test_partial_stream(self, client, fakes) -> None:
        repo, storage, _ = fakes
        video = _completed_video(repo, storage)

        response = client.get(f"{PREFIX}/{video.id}/stream", headers={"Range": "bytes=100-199"})

        assert response.status_code == 206
        assert response.headers["content-range"] == "bytes 100-199/1000"
        assert response.headers["content-length"] == "100"
        assert response.content == BODY[100:200]

    def test_range_past_end(self, client, fakes) -> None:
        repo, storage, _ = fakes
        video = _completed_video(repo, storage)

        response = client.get(f"{PREFIX}/{video.id}/stream", headers={"Range": "bytes=2000-"})

        assert response.status_code == 416
        assert response.headers["content-range"] == "bytes */1000"

    def test_malformed_range(self, client, fakes) -> None:
        repo, storage, _ = fakes
        video = _completed_video(repo, storage)

        response = client.get(f"{PREFIX}/{video.id}/stream", headers={"Range": "bytes=0-1,5-9"})

        assert response.status_code == 400

    def test_missing_quality(self, client, fakes) -> None:
        repo, storage, _ = fakes
        video = _completed_video(repo, storage)

        response = client.get(f"{PREFIX}/{video.id}/stream", params={"quality": "1080p"})

        assert response.status_code == 404

    def test_explicit_quality(self, client, fakes) -> None:
        repo, storage, _ = fakes
        video = _completed_video(repo, storage)

        response = client.get(f"{PREFIX}/{video.id}/quality", params={"quality": "480p"})

        assert response.status_code == 200
        assert response.headers["x-video-quality"] == "480p"

    def test_speed_hint(self, client, fakes) -> None:
        repo, storage, _ = fakes
        video = _completed_video(repo, storage)

        response = client.get(f"{PREFIX}/{video.id}/stream", params={"speed": 1.5})

        assert response.status_code == 200
        assert response.headers["x-video-quality"] == "360p"

    def test_unknown_video(self, client, fakes) -> None:
        response = client.get(f"{PREFIX}/{uuid.uuid4()}/stream")
        assert response.status_code == 404


class TestStatusAndThumbnail:
    """Status snapshot and thumbnail routes."""

    def test_status(self, client, fakes) -> None:
        repo, storage, _ = fakes
        video = repo.add_video(status=VideoStatus.PROCESSING)
        repo.add_existing_rendition(video.id, "360p")

        response = client.get(f"{PREFIX}/{video.id}/status")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "PROCESSING"
        assert body["progress"] == 25.0
        assert body["completedQualities"] == 1
        assert body["targetQualities"] == 4

    def test_thumbnail_cache_headers(self, client, fakes) -> None:
        repo, storage, _ = fakes
        video = repo.add_video(status=VideoStatus.COMPLETED, thumbnail_key="videos/thumbnails/t.jpg")
        storage.objects["videos/thumbnails/t.jpg"] = b"\xff\xd8\xff"

        response = client.get(f"{PREFIX}/{video.id}/thumbnail")

        assert response.status_code == 200
        assert response.headers["content-type"] == "image/jpeg"
        assert "immutable" in response.headers["cache-control"]
        assert response.content == b"\xff\xd8\xff"

    def test_thumbnail_missing(self, client, fakes) -> None:
        repo, _, _ = fakes
        video = repo.add_video(status=VideoStatus.PROCESSING)
        assert client.get(f"{PREFIX}/{video.id}/thumbnail").status_code == 404

    def test_metadata(self, client, fakes) -> None:
        repo, storage, _ = fakes
        video = _completed_video(repo, storage, qualities=("720p", "360p"))

        response = client.get(f"{PREFIX}/{video.id}")

        assert response.status_code == 200
        assert [r["quality"] for r in response.json()["renditions"]] == ["360p", "720p"]


class TestUploadEndpoint:
    """Multipart uploads."""

    def test_requires_authentication(self, client, fakes) -> None:
        response = client.post(PREFIX, files={"file": ("a.mp4", b"data", "video/mp4")})
        assert response.status_code == 401

    def test_rejects_non_video(self, client, fakes, auth_headers) -> None:
        response = client.post(
            PREFIX,
            files={"file": ("notes.pdf", b"%PDF-1.7", "application/pdf")},
            headers=auth_headers,
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid file type. Only video files are allowed"

    def test_rejects_missing_file(self, client, fakes, auth_headers) -> None:
        response = client.post(PREFIX, data={}, headers=auth_headers)
        assert response.status_code == 400
        assert response.json()["detail"] == "No file provided"

    def test_accepts_video(self, client, fakes, auth_headers) -> None:
        repo, storage, queue = fakes

        response = client.post(
            PREFIX,
            files={"file": ("lecture.mp4", b"\x00" * 64, "video/mp4")},
            headers=auth_headers,
        )

        assert response.status_code == 201
        body = response.json()
        assert body["status"] == "PENDING"
        assert body["original_name"] == "lecture.mp4"
        assert body["job_id"] == "job-1"
        assert len(queue.jobs) == 1

    def test_broker_down_returns_503(self, client, fakes, auth_headers) -> None:
        repo, storage, _ = fakes
        app.dependency_overrides[get_video_service] = lambda: VideoService(repo, storage, FakeJobQueue(unavailable=True))

        response = client.post(
            PREFIX,
            files={"file": ("lecture.mp4", b"\x00" * 64, "video/mp4")},
            headers=auth_headers,
        )

        assert response.status_code == 503


class TestProgressEndpoint:
    """Server-Sent Events progress feed."""

    def test_feed_ends_after_terminal_event(self, client, fakes, auth_headers, monkeypatch) -> None:
        monkeypatch.setattr(settings, "VIDEO_PROGRESS_POLL_INTERVAL_SECONDS", 0)
        snapshots = [
            build_processing_status(VideoStatus.PROCESSING, ["360p"], None),
            build_processing_status(VideoStatus.COMPLETED, ["360p", "480p", "720p", "1080p"], None),
        ]
        calls: list[uuid.UUID] = []

        async def load(video_id: uuid.UUID):
            calls.append(video_id)
            return snapshots[min(len(calls), len(snapshots)) - 1]

        app.dependency_overrides[get_snapshot_loader] = lambda: load
        video_id = uuid.uuid4()

        response = client.get(f"{PREFIX}/{video_id}/progress", headers=auth_headers)

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert response.headers["cache-control"] == "no-cache"
        events = [
            json.loads(line[len("data: "):])
            for line in response.text.splitlines()
            if line.startswith("data: ")
        ]
        assert [event["status"] for event in events] == ["PROCESSING", "COMPLETED"]
        assert events[-1]["progress"] == 100.0
        assert calls == [video_id, video_id]


def _sent_bytes(quality: str) -> float:
    return REGISTRY.get_sample_value("stream_bytes_total", {"quality": quality}) or 0.0


class TestStreamByteCount:
    """Only bytes handed to the client are counted."""

    @pytest.mark.asyncio
    async def test_abandoned_stream_counts_delivered_chunks(self) -> None:
        repo, storage = FakeVideoRepository(), FakeStorage()
        video = _completed_video(repo, storage, qualities=("480p",))
        service = StreamingService(repo, storage, chunk_size=64)
        before = _sent_bytes("480p")

        info = await service.stream_video(video.id)
        assert _sent_bytes("480p") == before

        next(info.stream)
        next(info.stream)
        info.stream.close()

        assert _sent_bytes("480p") - before == 64

    def test_full_stream_counts_every_byte(self, client, fakes) -> None:
        repo, storage, _ = fakes
        video = _completed_video(repo, storage, qualities=("360p",))
        before = _sent_bytes("360p")

        response = client.get(f"{PREFIX}/{video.id}/stream", headers={"Range": "bytes=0-299"})

        assert response.status_code == 206
        assert _sent_bytes("360p") - before == 300
