"""FFmpeg transcoding utilities.

Wraps the ffmpeg and ffprobe binaries for producing quality renditions
and extracting thumbnails.
"""

import json
import logging
import os
import subprocess
from dataclasses import dataclass
from typing import Optional

from app.core.config import settings
from app.modules.transcoding.quality import QualityProfile, VideoQuality, get_quality_profile

logger = logging.getLogger(__name__)


class FFmpegError(Exception):
    """Raised when ffprobe cannot read a file."""
    pass


@dataclass
class TranscodeOutput:
    """Result of transcoding operation."""
    success: bool
    output_path: str
    quality: VideoQuality
    width: int
    height: int
    file_size: int
    duration: float
    bitrate: int
    error_message: Optional[str] = None


class FFmpegTranscoder:
    """FFmpeg-based video transcoder."""

    # Keep stderr tails short enough to store in processing_error
    MAX_ERROR_LENGTH = 2000

    def __init__(
        self,
        ffmpeg_path: Optional[str] = None,
        ffprobe_path: Optional[str] = None,
        preset: str = "medium",
        keyframe_interval: int = 2,
    ):
        """Initialize transcoder.

        Args:
            ffmpeg_path: Path to ffmpeg binary
            ffprobe_path: Path to ffprobe binary
            preset: x264 preset
            keyframe_interval: Seconds between keyframes
        """
        self.ffmpeg_path = ffmpeg_path or settings.FFMPEG_PATH
        self.ffprobe_path = ffprobe_path or settings.FFPROBE_PATH
        self.preset = preset
        self.keyframe_interval = keyframe_interval

    def get_video_info(self, input_path: str) -> dict:
        """Get video information using ffprobe.

        Raises:
            FFmpegError: If ffprobe fails or its output is not JSON
        """
        cmd = [
            self.ffprobe_path,
            "-v", "quiet",
            "-print_format", "json",
            "-show_format",
            "-show_streams",
            input_path,
        ]

        try:
            result = subprocess.run(cmd, capture_output=True, text=True, errors="replace", check=True)
            return json.loads(result.stdout)
        except (subprocess.CalledProcessError, json.JSONDecodeError, OSError) as e:
            raise FFmpegError(f"ffprobe failed for {input_path}: {e}") from e

    def get_duration(self, input_path: str) -> Optional[float]:
        """Duration in seconds, or None if it cannot be read."""
        try:
            info = self.get_video_info(input_path)
        except FFmpegError as e:
            logger.warning("Could not read duration", extra={"path": input_path, "error": str(e)})
            return None
        try:
            return float(info.get("format", {}).get("duration"))
        except (TypeError, ValueError):
            return None

    def build_transcode_command(self, input_path: str, output_path: str, profile: QualityProfile) -> list[str]:
        """Build the FFmpeg command for one rendition.

        The output is letterboxed to the profile's exact dimensions.
        """
        width, height = profile.width, profile.height
        bitrate = profile.video_bitrate

        return [
            self.ffmpeg_path,
            "-y",  # Overwrite output
            "-i", input_path,
            # Video settings
            "-c:v", "libx264",
            "-preset", self.preset,
            "-b:v", str(bitrate),
            "-maxrate", str(int(bitrate * 1.5)),
            "-bufsize", str(int(bitrate * 2)),
            "-vf", f"scale={width}:{height}:force_original_aspect_ratio=decrease,pad={width}:{height}:(ow-iw)/2:(oh-ih)/2",
            "-g", str(self.keyframe_interval * 30),
            # Audio settings
            "-c:a", "aac",
            "-b:a", str(profile.audio_bitrate),
            "-ar", "48000",
            "-ac", "2",
            # Progressive playback needs the moov atom first
            "-movflags", "+faststart",
            "-f", "mp4",
            output_path,
        ]

    def transcode(self, input_path: str, output_path: str, quality: VideoQuality | str) -> TranscodeOutput:
        """Transcode a source file into one quality rendition.

        Never raises for ffmpeg failures; check ``success``.
        """
        profile = get_quality_profile(quality)
        cmd = self.build_transcode_command(input_path, output_path, profile)

        def failed(message: str) -> TranscodeOutput:
            return TranscodeOutput(
                success=False,
                output_path=output_path,
                quality=profile.quality,
                width=profile.width,
                height=profile.height,
                file_size=0,
                duration=0.0,
                bitrate=0,
                error_message=message[-self.MAX_ERROR_LENGTH:],
            )

        try:
            process = subprocess.run(cmd, capture_output=True, text=True, errors="replace")
        except OSError as e:
            return failed(str(e))

        if process.returncode != 0:
            return failed(process.stderr or f"ffmpeg exited with {process.returncode}")

        if not os.path.exists(output_path):
            return failed("ffmpeg produced no output file")

        file_size = os.path.getsize(output_path)
        try:
            output_info = self.get_video_info(output_path)
        except FFmpegError:
            output_info = {}

        output_format = output_info.get("format", {})
        try:
            duration = float(output_format.get("duration", 0) or 0)
        except (TypeError, ValueError):
            duration = 0.0
        try:
            bitrate = int(output_format.get("bit_rate") or profile.total_bitrate)
        except (TypeError, ValueError):
            bitrate = profile.total_bitrate

        return TranscodeOutput(
            success=True,
            output_path=output_path,
            quality=profile.quality,
            width=profile.width,
            height=profile.height,
            file_size=file_size,
            duration=duration,
            bitrate=bitrate,
        )

    def build_thumbnail_command(self, input_path: str, output_path: str, timestamp: float) -> list[str]:
        return [
            self.ffmpeg_path,
            "-y",
            "-ss", str(timestamp),
            "-i", input_path,
            "-vframes", "1",
            "-vf", "scale=640:-1",
            output_path,
        ]

    def extract_thumbnail(self, input_path: str, output_path: str, timestamp: float = 1.0) -> bool:
        """Grab a single frame as an image.

        Falls back to the first frame when the video is shorter than
        ``timestamp``.
        """
        for ts in (timestamp, 0.0) if timestamp > 0 else (0.0,):
            cmd = self.build_thumbnail_command(input_path, output_path, ts)
            try:
                result = subprocess.run(cmd, capture_output=True, text=True, errors="replace", timeout=60)
            except (OSError, subprocess.TimeoutExpired) as e:
                logger.warning("Thumbnail extraction failed", extra={"path": input_path, "error": str(e)})
                return False
            if result.returncode == 0 and os.path.exists(output_path) and os.path.getsize(output_path) > 0:
                return True
        return False
