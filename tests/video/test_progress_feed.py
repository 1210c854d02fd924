"""Tests for processing progress snapshots and the SSE progress feed."""

import uuid

import pytest
from hypothesis import given, settings, strategies as st
from sqlalchemy.exc import OperationalError

from app.modules.video.models import VideoStatus
from app.modules.video.progress import ProgressChannel
from app.modules.video.schemas import build_processing_status, calculate_progress


async def _no_sleep(seconds: float) -> None:
    return None


def _loader(snapshots):
    calls = {"count": 0}
    remaining = list(snapshots)

    async def load(video_id):
        calls["count"] += 1
        return remaining.pop(0) if len(remaining) > 1 else remaining[0]

    return load, calls


class TestProgressArithmetic:
    """Progress is completed renditions over the four-rung ladder."""

    @given(completed=st.integers(min_value=0, max_value=10))
    @settings(max_examples=100)
    def test_progress_bounded(self, completed: int) -> None:
        progress = calculate_progress(completed)
        assert 0.0 <= progress <= 100.0
        assert progress == min(completed * 25.0, 100.0)

    def test_snapshot_aliases(self) -> None:
        snapshot = build_processing_status(VideoStatus.PROCESSING, ["360p", "480p"], None)
        data = snapshot.model_dump(by_alias=True, mode="json")
        assert data["status"] == "PROCESSING"
        assert data["progress"] == 50.0
        assert data["completedQualities"] == 2
        assert data["targetQualities"] == 4
        assert data["qualities"] == ["360p", "480p"]


class TestProgressChannel:
    """The feed polls until a terminal state."""

    @pytest.mark.asyncio
    async def test_closes_after_completed(self) -> None:
        load, calls = _loader([
            build_processing_status(VideoStatus.PENDING, [], None),
            build_processing_status(VideoStatus.PROCESSING, ["360p"], None),
            build_processing_status(VideoStatus.COMPLETED, ["360p", "480p", "720p", "1080p"], None),
            build_processing_status(VideoStatus.COMPLETED, ["360p", "480p", "720p", "1080p"], None),
        ])

        events = [event async for event in ProgressChannel(uuid.uuid4(), load, interval=0, sleep=_no_sleep)]

        assert [e["status"] for e in events] == ["PENDING", "PROCESSING", "COMPLETED"]
        assert events[-1]["progress"] == 100.0
        assert calls["count"] == 3

    @pytest.mark.asyncio
    async def test_closes_after_failed(self) -> None:
        load, _ = _loader([build_processing_status(VideoStatus.FAILED, [], "Source file not found")])

        events = [event async for event in ProgressChannel(uuid.uuid4(), load, interval=0, sleep=_no_sleep)]

        assert len(events) == 1
        assert events[0]["error"] == "Source file not found"

    @pytest.mark.asyncio
    async def test_missing_video_sends_error_and_closes(self) -> None:
        async def load(video_id):
            return None

        events = [event async for event in ProgressChannel(uuid.uuid4(), load, interval=0, sleep=_no_sleep)]

        assert events == [{"error": "Video not found"}]

    @pytest.mark.asyncio
    async def test_database_error_closes_feed(self) -> None:
        async def load(video_id):
            raise OperationalError("SELECT", {}, Exception("gone"))

        events = [event async for event in ProgressChannel(uuid.uuid4(), load, interval=0, sleep=_no_sleep)]

        assert events == [{"error": "Failed to read video status"}]

    @pytest.mark.asyncio
    async def test_sleeps_between_polls(self) -> None:
        slept = []

        async def record_sleep(seconds: float) -> None:
            slept.append(seconds)

        load, _ = _loader([
            build_processing_status(VideoStatus.PROCESSING, [], None),
            build_processing_status(VideoStatus.COMPLETED, ["360p"], None),
        ])

        events = [event async for event in ProgressChannel(uuid.uuid4(), load, interval=2.0, sleep=record_sleep)]

        assert len(events) == 2
        assert slept == [2.0]
