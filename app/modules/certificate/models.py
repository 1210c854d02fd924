"""Certificate model.

The metadata snapshot is captured at issuance so later profile or course
edits never change an issued certificate.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import JSON, DateTime, ForeignKey, Index, String, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from app.core.database import Base


class CertificateStatus(str, Enum):
    """Status of a certificate."""

    ISSUED = "ISSUED"
    REVOKED = "REVOKED"


class Certificate(Base):
    """Certificate of course completion."""

    __tablename__ = "certificates"
    __table_args__ = (
        # At most one live certificate per student and course
        Index(
            "uq_certificates_user_course_issued",
            "user_id",
            "course_id",
            unique=True,
            postgresql_where=text("status = 'ISSUED'"),
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    course_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("courses.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    certificate_number: Mapped[str] = mapped_column(
        String(32), unique=True, nullable=False, index=True
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=CertificateStatus.ISSUED.value
    )
    issued_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    revoked_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    metadata_snapshot: Mapped[dict] = mapped_column("metadata", JSON, nullable=False, default=dict)

    def is_valid(self) -> bool:
        return self.status == CertificateStatus.ISSUED.value

    def __repr__(self) -> str:
        return f"<Certificate(id={self.id}, number={self.certificate_number}, status={self.status})>"
