"""Pydantic schemas for certificates."""

import uuid
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from app.modules.certificate.models import Certificate, CertificateStatus
from app.modules.job.schemas import JobHandle


class CertificateJobPayload(BaseModel):
    """Payload of a ``generate-certificate`` job. No other fields are accepted."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid", frozen=True)

    enrollment_id: uuid.UUID = Field(alias="enrollmentId")
    user_id: uuid.UUID = Field(alias="userId")
    course_id: uuid.UUID = Field(alias="courseId")

    def to_job_payload(self) -> dict[str, str]:
        return {
            "enrollmentId": str(self.enrollment_id),
            "userId": str(self.user_id),
            "courseId": str(self.course_id),
        }


class CertificateJobResult(BaseModel):
    """Outcome of a certificate job."""

    certificate_id: uuid.UUID
    certificate_number: str
    created: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": True,
            "certificateId": str(self.certificate_id),
            "certificateNumber": self.certificate_number,
            "created": self.created,
        }


class CertificateResponse(BaseModel):
    """Certificate details."""

    id: uuid.UUID
    user_id: uuid.UUID
    course_id: uuid.UUID
    certificate_number: str
    status: CertificateStatus
    issued_at: datetime
    metadata: dict = Field(default_factory=dict)

    @classmethod
    def from_certificate(cls, certificate: Certificate) -> "CertificateResponse":
        return cls(
            id=certificate.id,
            user_id=certificate.user_id,
            course_id=certificate.course_id,
            certificate_number=certificate.certificate_number,
            status=CertificateStatus(certificate.status),
            issued_at=certificate.issued_at,
            metadata=certificate.metadata_snapshot or {},
        )


class CertificateRequestResponse(BaseModel):
    """Answer to a certificate request: already issued, or queued."""

    status: str  # "issued" or "queued"
    certificate_id: Optional[uuid.UUID] = None
    job: Optional[JobHandle] = None


class CertificateVerification(BaseModel):
    """Public verification result."""

    valid: bool
    message: str
    certificate_number: str
    status: Optional[CertificateStatus] = None
    issued_at: Optional[datetime] = None
    student_name: Optional[str] = None
    course_name: Optional[str] = None
    completed_at: Optional[str] = None
