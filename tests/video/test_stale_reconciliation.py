"""Tests for requeueing videos stuck by a crashed worker."""

from datetime import datetime, timedelta, timezone

import pytest

from app.core.config import settings
from app.modules.job.queue import QueueUnavailableError
from app.modules.video.models import VideoStatus
from app.modules.video.processing import VideoProcessor
from app.modules.video.reconciliation import StaleVideoReconciler
from tests.fakes import FakeJobQueue, FakeTranscoder

NOW = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


class TestStaleVideoReconciler:
    """Only unfinished videos older than the threshold are requeued."""

    @pytest.mark.asyncio
    async def test_requeues_stale_unfinished_videos(self, video_repo, job_queue) -> None:
        stuck = video_repo.add_video(
            status=VideoStatus.PROCESSING, updated_at=NOW - timedelta(hours=2), processing_attempts=1
        )
        waiting = video_repo.add_video(status=VideoStatus.PENDING, updated_at=NOW - timedelta(hours=3))
        video_repo.add_video(status=VideoStatus.PROCESSING, updated_at=NOW - timedelta(minutes=5))
        video_repo.add_video(status=VideoStatus.FAILED, updated_at=NOW - timedelta(days=1))

        reconciler = StaleVideoReconciler(video_repo, job_queue, stale_after=timedelta(hours=1))
        requeued = await reconciler.run(now=NOW)

        assert requeued == [waiting.id, stuck.id]
        assert [payload["videoId"] for _, payload in job_queue.jobs] == [str(waiting.id), str(stuck.id)]
        assert all(queue == "video-processing" for queue, _ in job_queue.jobs)
        assert stuck.status == VideoStatus.PENDING.value
        assert waiting.status == VideoStatus.PENDING.value
        assert stuck.processing_attempts == 1

    @pytest.mark.asyncio
    async def test_nothing_stale(self, video_repo, job_queue) -> None:
        video_repo.add_video(status=VideoStatus.PROCESSING, updated_at=NOW)
        assert await StaleVideoReconciler(video_repo, job_queue).run(now=NOW) == []
        assert job_queue.jobs == []

    @pytest.mark.asyncio
    async def test_broker_down_propagates(self, video_repo) -> None:
        stuck = video_repo.add_video(status=VideoStatus.PROCESSING, updated_at=NOW - timedelta(days=1))
        reconciler = StaleVideoReconciler(video_repo, FakeJobQueue(unavailable=True), stale_after=timedelta(hours=1))

        with pytest.raises(QueueUnavailableError):
            await reconciler.run(now=NOW)
        assert stuck.status == VideoStatus.PROCESSING.value

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self, video_repo, job_queue) -> None:
        hopeless = video_repo.add_video(
            status=VideoStatus.PROCESSING, updated_at=NOW - timedelta(hours=2), processing_attempts=3
        )

        reconciler = StaleVideoReconciler(video_repo, job_queue, stale_after=timedelta(hours=1), max_attempts=3)
        requeued = await reconciler.run(now=NOW)

        assert requeued == []
        assert job_queue.jobs == []
        assert hopeless.status == VideoStatus.FAILED.value
        assert hopeless.processing_error == "Processing abandoned after 3 attempts"
        assert hopeless.processed_at is not None

    @pytest.mark.asyncio
    async def test_video_claimed_meanwhile_is_not_released(self, video_repo, job_queue) -> None:
        stuck = video_repo.add_video(status=VideoStatus.PROCESSING, updated_at=NOW - timedelta(hours=2))

        class ClaimingQueue(FakeJobQueue):
            async def enqueue(self, queue_name, payload):
                handle = await super().enqueue(queue_name, payload)
                await video_repo.claim(stuck.id, NOW - timedelta(hours=1))
                return handle

        reconciler = StaleVideoReconciler(video_repo, ClaimingQueue(), stale_after=timedelta(hours=1))
        requeued = await reconciler.run(now=NOW)

        assert requeued == []
        assert stuck.status == VideoStatus.PROCESSING.value
        assert stuck.processing_attempts == 1

    @pytest.mark.asyncio
    async def test_requeued_video_is_claimed_by_the_next_job(self, video_repo, storage, job_queue) -> None:
        stuck = video_repo.add_video(
            status=VideoStatus.PROCESSING, updated_at=NOW - timedelta(hours=2), processing_attempts=1
        )
        storage.objects[stuck.storage_key] = b"source-bytes"

        await StaleVideoReconciler(video_repo, job_queue, stale_after=timedelta(hours=1)).run(now=NOW)
        processor = VideoProcessor(video_repo, storage, transcoder=FakeTranscoder(), thumbnail_timestamp=1.0)
        result = await processor.process(stuck.id)

        assert result.status == VideoStatus.COMPLETED
        assert stuck.processing_attempts == 2


class TestStaleThreshold:
    """A live job must never look stale."""

    def test_threshold_outlives_job_time_limit(self) -> None:
        assert settings.VIDEO_STALE_PROCESSING_MINUTES * 60 > settings.JOB_TIME_LIMIT_SECONDS
