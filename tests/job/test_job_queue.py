"""Tests for enqueueing jobs, reading their state and administering queues."""

import uuid
from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient
from kombu.exceptions import ChannelError, OperationalError

from app.core.security import UserRole, create_access_token
from app.main import app as api
from app.modules.job.queue import (
    InvalidPayloadError,
    JobQueue,
    QueueUnavailableError,
    get_job_queue,
    map_celery_state,
)
from app.modules.job.schemas import JobStatus, QueueName
from app.modules.job.tasks import UnknownQueueError
from app.worker import build_worker_argv

JOBS = "/api/v1/jobs"


def _celery_app(task_id: str = "job-123") -> MagicMock:
    app = MagicMock()
    app.send_task.return_value = MagicMock(id=task_id)
    return app


class TestEnqueue:
    """Tests for JobQueue.enqueue."""

    @pytest.mark.asyncio
    async def test_enqueue_publishes_to_named_queue(self) -> None:
        app = _celery_app()
        queue = JobQueue(app=app)
        payload = {"videoId": "abc", "inputPath": "videos/originals/abc.mp4", "outputQualities": ["360p"]}

        job = await queue.enqueue(QueueName.VIDEO_PROCESSING, payload)

        assert job.id == "job-123"
        assert job.status == JobStatus.WAITING
        assert job.attempts == 0
        assert job.queue == QueueName.VIDEO_PROCESSING
        args, kwargs = app.send_task.call_args
        assert args[0] == "process-video"
        assert kwargs["queue"] == "video-processing"
        assert kwargs["kwargs"] == {"payload": payload}

    @pytest.mark.asyncio
    async def test_enqueue_accepts_string_queue_name(self) -> None:
        app = _celery_app()
        job = await JobQueue(app=app).enqueue("certificate", {"enrollmentId": "e"})
        assert job.job_name == "generate-certificate"

    @pytest.mark.asyncio
    async def test_broker_failure_raises_queue_unavailable(self) -> None:
        app = MagicMock()
        app.send_task.side_effect = OperationalError("Connection refused")

        with pytest.raises(QueueUnavailableError) as exc_info:
            await JobQueue(app=app).enqueue(QueueName.CERTIFICATE, {"enrollmentId": "e"})

        assert exc_info.value.queue_name == "certificate"
        assert "Connection refused" in exc_info.value.reason

    @pytest.mark.asyncio
    async def test_non_json_payload_rejected_before_publishing(self) -> None:
        app = _celery_app()
        with pytest.raises(InvalidPayloadError):
            await JobQueue(app=app).enqueue(QueueName.CERTIFICATE, {"when": object()})
        app.send_task.assert_not_called()


class TestGetJob:
    """Tests for JobQueue.get_job."""

    @pytest.mark.asyncio
    async def test_failed_job_reports_error(self) -> None:
        result = MagicMock(
            state="FAILURE",
            retries=0,
            result=RuntimeError("ffmpeg missing"),
            kwargs={"payload": {"videoId": "abc"}},
        )
        result.name = "process-video"
        with patch("app.modules.job.queue.AsyncResult", return_value=result):
            job = await JobQueue(app=MagicMock()).get_job("job-1")

        assert job.status == JobStatus.FAILED
        assert job.error == "ffmpeg missing"
        assert job.queue == QueueName.VIDEO_PROCESSING
        assert job.payload == {"videoId": "abc"}
        assert job.attempts == 1

    @pytest.mark.asyncio
    async def test_unknown_job_reads_as_waiting(self) -> None:
        result = MagicMock(state="PENDING", retries=None, result=None, kwargs=None)
        result.name = None
        with patch("app.modules.job.queue.AsyncResult", return_value=result):
            job = await JobQueue(app=MagicMock()).get_job("missing")

        assert job.status == JobStatus.WAITING
        assert job.attempts == 0
        assert job.queue is None


class TestStateMapping:
    """Celery states map onto waiting/active/completed/failed."""

    @pytest.mark.parametrize(
        "state,expected",
        [
            ("PENDING", JobStatus.WAITING),
            ("STARTED", JobStatus.ACTIVE),
            ("RETRY", JobStatus.ACTIVE),
            ("SUCCESS", JobStatus.COMPLETED),
            ("FAILURE", JobStatus.FAILED),
            ("REVOKED", JobStatus.FAILED),
            ("SOMETHING-NEW", JobStatus.WAITING),
        ],
    )
    def test_map_celery_state(self, state: str, expected: JobStatus) -> None:
        assert map_celery_state(state) == expected


class TestWorkerArgv:
    """Each worker consumes exactly one queue."""

    def test_video_worker_argv(self) -> None:
        argv = build_worker_argv("video-processing")
        assert argv[0] == "worker"
        assert "--queues=video-processing" in argv
        assert "--prefetch-multiplier=1" in argv
        assert any(arg.startswith("--concurrency=") for arg in argv)

    def test_certificate_worker_argv(self) -> None:
        argv = build_worker_argv("certificate", loglevel="DEBUG")
        assert "--queues=certificate" in argv
        assert "--loglevel=DEBUG" in argv


def _inspecting_app(backlog: int = 0) -> MagicMock:
    app = MagicMock()
    conn = app.connection_for_read.return_value.__enter__.return_value
    conn.default_channel.queue_declare.return_value = MagicMock(message_count=backlog)
    inspect = app.control.inspect.return_value
    inspect.active.return_value = {
        "video@a": [{"id": "1", "name": "process-video"}, {"id": "2", "name": "generate-certificate"}],
    }
    inspect.reserved.return_value = {"video@a": [{"id": "3", "name": "process-video"}]}
    inspect.scheduled.return_value = {
        "video@a": [{"eta": "2026-01-01T00:00:00", "request": {"id": "4", "name": "process-video"}}],
    }
    inspect.active_queues.return_value = {
        "video@a": [{"name": "video-processing"}],
        "video@b": [{"name": "video-processing"}],
        "cert@a": [{"name": "certificate"}],
    }
    return app


class TestQueueStats:
    """Tests for JobQueue.get_queue_stats and consumer control."""

    @pytest.mark.asyncio
    async def test_counts_only_the_queues_job(self) -> None:
        stats = await JobQueue(app=_inspecting_app(backlog=5)).get_queue_stats(QueueName.VIDEO_PROCESSING)

        assert stats.queue == QueueName.VIDEO_PROCESSING
        assert stats.waiting == 6
        assert stats.active == 1
        assert stats.delayed == 1
        assert stats.workers == 2

    @pytest.mark.asyncio
    async def test_no_workers_answering(self) -> None:
        app = _inspecting_app(backlog=2)
        inspect = app.control.inspect.return_value
        for method in (inspect.active, inspect.reserved, inspect.scheduled, inspect.active_queues):
            method.return_value = None

        stats = await JobQueue(app=app).get_queue_stats("certificate")

        assert stats.waiting == 2
        assert stats.active == 0
        assert stats.workers == 0

    @pytest.mark.asyncio
    async def test_queue_unknown_to_broker_is_empty(self) -> None:
        app = _inspecting_app()
        conn = app.connection_for_read.return_value.__enter__.return_value
        conn.default_channel.queue_declare.side_effect = ChannelError("NOT_FOUND - no queue")

        stats = await JobQueue(app=app).get_queue_stats(QueueName.VIDEO_PROCESSING)

        assert stats.waiting == 1

    @pytest.mark.asyncio
    async def test_broker_down_raises_queue_unavailable(self) -> None:
        app = MagicMock()
        app.connection_for_read.side_effect = OperationalError("Connection refused")

        with pytest.raises(QueueUnavailableError):
            await JobQueue(app=app).get_queue_stats(QueueName.CERTIFICATE)

    @pytest.mark.asyncio
    async def test_unknown_queue(self) -> None:
        with pytest.raises(UnknownQueueError):
            await JobQueue(app=MagicMock()).get_queue_stats("emails")

    @pytest.mark.asyncio
    async def test_pause_and_resume_broadcast_to_workers(self) -> None:
        app = MagicMock()
        app.control.cancel_consumer.return_value = [{"video@b": {"ok": "no longer consuming"}}, {"video@a": {"ok": "x"}}]
        app.control.add_consumer.return_value = [{"video@a": {"ok": "already consuming"}}]
        queue = JobQueue(app=app)

        paused = await queue.pause_queue(QueueName.VIDEO_PROCESSING)
        resumed = await queue.resume_queue("video-processing")

        assert paused == ["video@a", "video@b"]
        assert resumed == ["video@a"]
        assert app.control.cancel_consumer.call_args.args == ("video-processing",)
        assert app.control.cancel_consumer.call_args.kwargs["reply"] is True
        assert app.control.add_consumer.call_args.args == ("video-processing",)


class TestQueueAdminRoutes:
    """Queue administration is admin-only."""

    @pytest.fixture
    def client(self):
        app = _inspecting_app(backlog=3)
        api.dependency_overrides[get_job_queue] = lambda: JobQueue(app=app)
        yield TestClient(api)
        api.dependency_overrides.clear()

    @staticmethod
    def _headers(role: UserRole) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(uuid.uuid4(), role=role)}"}

    def test_admin_reads_stats(self, client) -> None:
        response = client.get(f"{JOBS}/queues/video-processing/stats", headers=self._headers(UserRole.ADMIN))

        assert response.status_code == 200
        assert response.json() == {"queue": "video-processing", "waiting": 4, "active": 1, "delayed": 1, "workers": 2}

    def test_student_forbidden(self, client) -> None:
        response = client.get(f"{JOBS}/queues/video-processing/stats", headers=self._headers(UserRole.STUDENT))
        assert response.status_code == 403

    def test_unknown_queue_404(self, client) -> None:
        response = client.post(f"{JOBS}/queues/emails/pause", headers=self._headers(UserRole.ADMIN))
        assert response.status_code == 404
