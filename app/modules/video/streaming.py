"""Range-aware streaming of video renditions.

Stateless and read-only: renditions are immutable once written, so any
number of callers can stream the same video concurrently.
"""

import asyncio
import logging
import re
import uuid
from dataclasses import dataclass
from functools import partial
from typing import Iterable, Iterator, Optional, Protocol

from app.core.config import settings
from app.core.metrics import STREAM_BYTES_TOTAL
from app.core.storage import Storage, StorageNotFoundError
from app.modules.transcoding.quality import parse_quality, quality_rank
from app.modules.video.repository import VideoRepository
from app.modules.video.service import VideoNotFoundError

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "video/mp4"

_RANGE_RE = re.compile(r"^bytes\s*=\s*(\d*)\s*-\s*(\d*)$", re.IGNORECASE)


class StreamingError(Exception):
    """Base exception for streaming errors."""
    pass


class InvalidRangeError(StreamingError):
    """Raised for a malformed or multi-part Range header."""
    pass


class RangeNotSatisfiableError(StreamingError):
    """Raised when the requested range starts past the end of the file."""

    def __init__(self, total_size: int, range_header: str):
        self.total_size = total_size
        self.range_header = range_header
        super().__init__(f"Range {range_header!r} not satisfiable for {total_size} bytes")

    @property
    def content_range(self) -> str:
        return f"bytes */{self.total_size}"


class QualityNotFoundError(StreamingError):
    """Raised when the requested quality was never produced for the video."""
    pass


class InvalidQualityError(StreamingError):
    """Raised for a quality label that is not on the ladder."""
    pass


class RenditionLike(Protocol):
    quality: str
    bitrate: int
    storage_key: str


def parse_range_header(range_header: str, total_size: int) -> tuple[int, int]:
    """Parse a single ``bytes=`` range into inclusive offsets.

    Supports ``start-end``, ``start-`` and suffix ``-N`` forms. ``end`` is
    clamped to the last byte.

    Raises:
        InvalidRangeError: If the header is malformed or names several ranges
        RangeNotSatisfiableError: If no byte of the range lies in the file
    """
    header = range_header.strip()
    if "," in header:
        raise InvalidRangeError("Multiple ranges are not supported")

    match = _RANGE_RE.match(header)
    if not match:
        raise InvalidRangeError(f"Malformed Range header: {range_header!r}")

    start_text, end_text = match.groups()
    if not start_text and not end_text:
        raise InvalidRangeError(f"Malformed Range header: {range_header!r}")

    if not start_text:
        # Suffix range: the last N bytes
        suffix = int(end_text)
        if suffix == 0 or total_size == 0:
            raise RangeNotSatisfiableError(total_size, range_header)
        return max(total_size - suffix, 0), total_size - 1

    start = int(start_text)
    if end_text:
        end = int(end_text)
        if end < start:
            raise InvalidRangeError(f"Range end precedes start: {range_header!r}")
    else:
        end = total_size - 1

    if start >= total_size:
        raise RangeNotSatisfiableError(total_size, range_header)

    return start, min(end, total_size - 1)


def select_quality(
    renditions: Iterable[RenditionLike],
    requested: Optional[str] = None,
    speed_mbps: Optional[float] = None,
    headroom: Optional[float] = None,
) -> RenditionLike:
    """Pick the rendition to serve.

    An explicit quality must exist; it is never substituted. Otherwise, with
    a connection speed hint, the highest rendition whose bitrate fits within
    the headroom-adjusted speed is chosen, falling back to the lowest. With
    no hint the highest available rendition wins.

    Raises:
        InvalidQualityError: If ``requested`` is not a ladder label
        QualityNotFoundError: If the requested quality, or any rendition, is missing
    """
    ordered = sorted(renditions, key=lambda r: quality_rank(r.quality))
    if not ordered:
        raise QualityNotFoundError("No renditions are available for this video")

    if requested:
        try:
            wanted = parse_quality(requested).value
        except ValueError as e:
            raise InvalidQualityError(str(e)) from e
        for rendition in ordered:
            if rendition.quality == wanted:
                return rendition
        raise QualityNotFoundError(f"Quality {wanted} is not available for this video")

    if speed_mbps is not None:
        factor = settings.STREAM_SPEED_HEADROOM if headroom is None else headroom
        threshold = speed_mbps * 1_000_000 * factor
        fitting = [r for r in ordered if r.bitrate <= threshold]
        return fitting[-1] if fitting else ordered[0]

    return ordered[-1]


@dataclass
class StreamInfo:
    """Everything needed to answer a stream request."""
    stream: Iterator[bytes]
    total_size: int
    start: int
    end: int
    quality: str
    content_type: str = DEFAULT_CONTENT_TYPE
    content_range: Optional[str] = None

    @property
    def content_length(self) -> int:
        return max(self.end - self.start + 1, 0)

    @property
    def is_partial(self) -> bool:
        return self.content_range is not None


def count_sent_bytes(stream: Iterable[bytes], quality: str) -> Iterator[bytes]:
    """Pass chunks through, counting only those actually handed to the client."""
    sent = STREAM_BYTES_TOTAL.labels(quality=quality)
    for chunk in stream:
        yield chunk
        sent.inc(len(chunk))


def get_stream_response(info: StreamInfo) -> tuple[dict[str, str], int]:
    """Response headers and status code for a stream."""
    headers = {
        "Content-Type": info.content_type,
        "Accept-Ranges": "bytes",
        "Content-Length": str(info.content_length),
        "X-Video-Quality": info.quality,
    }
    if info.is_partial:
        headers["Content-Range"] = info.content_range
        return headers, 206
    return headers, 200


class StreamingService:
    """Resolves a video, quality and range into a byte stream."""

    def __init__(
        self,
        repository: VideoRepository,
        storage: Storage,
        chunk_size: Optional[int] = None,
    ):
        self.repository = repository
        self.storage = storage
        self.chunk_size = chunk_size or settings.STREAM_CHUNK_SIZE

    async def _run_blocking(self, func, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, partial(func, *args))

    async def stream_video(
        self,
        video_id: uuid.UUID,
        requested_quality: Optional[str] = None,
        range_header: Optional[str] = None,
        speed_mbps: Optional[float] = None,
    ) -> StreamInfo:
        """Open a stream over the selected rendition.

        Raises:
            VideoNotFoundError: If the video does not exist
            InvalidQualityError, QualityNotFoundError: See ``select_quality``
            InvalidRangeError, RangeNotSatisfiableError: See ``parse_range_header``
        """
        video = await self.repository.get_by_id(video_id)
        if video is None:
            raise VideoNotFoundError(f"Video {video_id} not found")

        renditions = await self.repository.list_renditions(video_id)
        rendition = select_quality(renditions, requested_quality, speed_mbps)

        try:
            total_size = await self._run_blocking(self.storage.get_size, rendition.storage_key)
        except StorageNotFoundError as e:
            logger.error(
                "Rendition file missing from storage",
                extra={"video_id": str(video_id), "quality": rendition.quality, "key": rendition.storage_key},
            )
            raise QualityNotFoundError(f"Quality {rendition.quality} is not available for this video") from e

        content_range = None
        if range_header:
            start, end = parse_range_header(range_header, total_size)
            content_range = f"bytes {start}-{end}/{total_size}"
        else:
            start, end = 0, total_size - 1

        if total_size == 0:
            stream: Iterator[bytes] = iter(())
        else:
            stream = await self._run_blocking(
                self.storage.open_range, rendition.storage_key, start, end, self.chunk_size
            )

        info = StreamInfo(
            stream=count_sent_bytes(stream, rendition.quality),
            total_size=total_size,
            start=start,
            end=end,
            quality=rendition.quality,
            content_range=content_range,
        )
        return info
