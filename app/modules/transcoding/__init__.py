"""Quality ladder and FFmpeg wrappers used by the video worker."""

from app.modules.transcoding.ffmpeg import FFmpegError, FFmpegTranscoder, TranscodeOutput
from app.modules.transcoding.quality import (
    QUALITY_LADDER,
    TARGET_QUALITY_COUNT,
    QualityProfile,
    VideoQuality,
    get_quality_profile,
    parse_quality,
)

__all__ = [
    "FFmpegError",
    "FFmpegTranscoder",
    "TranscodeOutput",
    "QUALITY_LADDER",
    "TARGET_QUALITY_COUNT",
    "QualityProfile",
    "VideoQuality",
    "get_quality_profile",
    "parse_quality",
]
