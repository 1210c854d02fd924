"""Video models.

A Video is created on upload and then mutated only by the processing
worker. Renditions are added one quality at a time and are immutable
once written.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import BigInteger, DateTime, Float, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from app.core.database import Base
from app.modules.transcoding.quality import quality_rank


class VideoStatus(str, Enum):
    """Processing status of a video."""

    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (VideoStatus.COMPLETED, VideoStatus.FAILED)


class Video(Base):
    """Uploaded source video and its processing state."""

    __tablename__ = "videos"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    material_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), nullable=True, index=True
    )
    uploaded_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    # Source file
    original_name: Mapped[str] = mapped_column(String(255), nullable=False)
    filename: Mapped[str] = mapped_column(String(255), nullable=False)
    storage_key: Mapped[str] = mapped_column(String(512), nullable=False)
    mime_type: Mapped[str] = mapped_column(String(100), nullable=False)
    size: Mapped[int] = mapped_column(BigInteger, nullable=False)
    duration: Mapped[Optional[float]] = mapped_column(Float, nullable=True)  # in seconds

    # Processing state
    status: Mapped[str] = mapped_column(
        String(20), default=VideoStatus.PENDING.value, nullable=False, index=True
    )
    processing_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    processing_attempts: Mapped[int] = mapped_column(Integer, default=0, server_default="0", nullable=False)
    thumbnail_key: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    processing_started_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    processed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    renditions: Mapped[list["VideoRendition"]] = relationship(
        "VideoRendition",
        back_populates="video",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def video_status(self) -> VideoStatus:
        return VideoStatus(self.status)

    def is_terminal(self) -> bool:
        """Check if processing has finished, successfully or not."""
        return self.video_status.is_terminal

    def sorted_renditions(self) -> list["VideoRendition"]:
        """Renditions ordered by ladder position, lowest first."""
        return sorted(self.renditions, key=lambda r: quality_rank(r.quality))

    def __repr__(self) -> str:
        return f"<Video(id={self.id}, filename={self.filename}, status={self.status})>"


class VideoRendition(Base):
    """One transcoded quality of a video."""

    __tablename__ = "video_renditions"
    __table_args__ = (
        UniqueConstraint("video_id", "quality", name="uq_video_renditions_video_quality"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    video_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("videos.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    quality: Mapped[str] = mapped_column(String(10), nullable=False)
    storage_key: Mapped[str] = mapped_column(String(512), nullable=False)
    file_size: Mapped[int] = mapped_column(BigInteger, nullable=False)
    bitrate: Mapped[int] = mapped_column(Integer, nullable=False)  # bits per second
    resolution: Mapped[str] = mapped_column(String(20), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    video: Mapped["Video"] = relationship("Video", back_populates="renditions")

    def __repr__(self) -> str:
        return f"<VideoRendition(video_id={self.video_id}, quality={self.quality})>"
