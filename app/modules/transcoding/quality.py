"""Quality ladder.

Every upload is transcoded into each rung of the ladder, lowest first.
"""

from dataclasses import dataclass
from enum import Enum


class VideoQuality(str, Enum):
    """Quality labels, ascending by resolution."""
    Q360P = "360p"
    Q480P = "480p"
    Q720P = "720p"
    Q1080P = "1080p"


@dataclass(frozen=True)
class QualityProfile:
    """Encoding targets for one rung of the ladder."""
    quality: VideoQuality
    width: int
    height: int
    video_bitrate: int  # bits per second
    audio_bitrate: int = 128_000

    @property
    def resolution(self) -> str:
        return f"{self.width}x{self.height}"

    @property
    def total_bitrate(self) -> int:
        return self.video_bitrate + self.audio_bitrate


QUALITY_LADDER: tuple[QualityProfile, ...] = (
    QualityProfile(VideoQuality.Q360P, 640, 360, 800_000),
    QualityProfile(VideoQuality.Q480P, 854, 480, 1_400_000),
    QualityProfile(VideoQuality.Q720P, 1280, 720, 2_800_000),
    QualityProfile(VideoQuality.Q1080P, 1920, 1080, 5_000_000),
)

_PROFILES = {profile.quality: profile for profile in QUALITY_LADDER}

TARGET_QUALITY_COUNT = len(QUALITY_LADDER)


def get_quality_profile(quality: VideoQuality | str) -> QualityProfile:
    return _PROFILES[parse_quality(quality)]


def parse_quality(label: VideoQuality | str) -> VideoQuality:
    """Parse a quality label such as ``"720p"``.

    Raises:
        ValueError: If the label is not on the ladder
    """
    if isinstance(label, VideoQuality):
        return label
    try:
        return VideoQuality(label.strip().lower())
    except ValueError:
        raise ValueError(f"Unknown quality: {label}") from None


def quality_rank(quality: VideoQuality | str) -> int:
    """Position of a quality on the ladder, 0 for the lowest."""
    return QUALITY_LADDER.index(get_quality_profile(quality))


def ladder_labels() -> list[str]:
    return [profile.quality.value for profile in QUALITY_LADDER]
