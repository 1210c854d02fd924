"""Certificate service: request, read and public verification."""

import logging
import uuid

from app.core.security import CurrentUser
from app.modules.certificate.models import Certificate
from app.modules.certificate.repository import CertificateRepository
from app.modules.certificate.schemas import (
    CertificateJobPayload,
    CertificateRequestResponse,
    CertificateVerification,
)
from app.modules.course.models import Enrollment
from app.modules.course.repository import EnrollmentRepository
from app.modules.job.queue import JobQueue
from app.modules.job.schemas import QueueName

logger = logging.getLogger(__name__)


class CertificateServiceError(Exception):
    """Base exception for certificate service errors."""
    pass


class CertificateNotFoundError(CertificateServiceError):
    """Raised when a certificate does not exist."""
    pass


class EnrollmentNotFoundError(CertificateServiceError):
    """Raised when an enrollment does not exist."""
    pass


class EnrollmentNotCompletedError(CertificateServiceError):
    """Raised when a certificate is requested before the course is finished."""
    pass


class CertificateAccessDeniedError(CertificateServiceError):
    """Raised when a user asks for someone else's certificate."""
    pass


class CertificateService:
    """Service for certificate requests and lookups."""

    def __init__(
        self,
        certificates: CertificateRepository,
        enrollments: EnrollmentRepository,
        job_queue: JobQueue,
    ):
        self.certificates = certificates
        self.enrollments = enrollments
        self.job_queue = job_queue

    async def _get_owned_enrollment(self, enrollment_id: uuid.UUID, user: CurrentUser) -> Enrollment:
        enrollment = await self.enrollments.get_by_id(enrollment_id)
        if enrollment is None:
            raise EnrollmentNotFoundError(f"Enrollment {enrollment_id} not found")
        if enrollment.user_id != user.user_id and not user.is_admin:
            raise CertificateAccessDeniedError("You do not have access to this enrollment")
        return enrollment

    async def request_certificate(
        self,
        enrollment_id: uuid.UUID,
        user: CurrentUser,
    ) -> CertificateRequestResponse:
        """Queue certificate generation for a completed enrollment.

        Returns the existing certificate instead when one is already linked.

        Raises:
            EnrollmentNotFoundError: If the enrollment does not exist
            CertificateAccessDeniedError: If the enrollment belongs to someone else
            EnrollmentNotCompletedError: If the course is not finished
            QueueUnavailableError: If the job cannot be published
        """
        enrollment = await self._get_owned_enrollment(enrollment_id, user)
        if not enrollment.is_completed():
            raise EnrollmentNotCompletedError("Course must be completed before requesting a certificate")

        if enrollment.certificate_id is not None:
            return CertificateRequestResponse(status="issued", certificate_id=enrollment.certificate_id)

        payload = CertificateJobPayload(
            enrollment_id=enrollment.id,
            user_id=enrollment.user_id,
            course_id=enrollment.course_id,
        )
        job = await self.job_queue.enqueue(QueueName.CERTIFICATE, payload.to_job_payload())
        logger.info(
            "Certificate generation queued",
            extra={"enrollment_id": str(enrollment.id), "job_id": job.id},
        )
        return CertificateRequestResponse(status="queued", job=job)

    async def get_certificate(self, certificate_id: uuid.UUID) -> Certificate:
        certificate = await self.certificates.get_by_id(certificate_id)
        if certificate is None:
            raise CertificateNotFoundError(f"Certificate {certificate_id} not found")
        return certificate

    async def get_by_enrollment(self, enrollment_id: uuid.UUID, user: CurrentUser) -> Certificate:
        enrollment = await self._get_owned_enrollment(enrollment_id, user)
        if enrollment.certificate_id is None:
            raise CertificateNotFoundError(f"No certificate for enrollment {enrollment_id}")
        return await self.get_certificate(enrollment.certificate_id)

    async def verify(self, certificate_number: str) -> CertificateVerification:
        """Public lookup by certificate number. Unknown numbers are reported as invalid."""
        certificate = await self.certificates.get_by_number(certificate_number)
        if certificate is None:
            return CertificateVerification(
                valid=False,
                message="Certificate not found",
                certificate_number=certificate_number,
            )

        snapshot = certificate.metadata_snapshot or {}
        valid = certificate.is_valid()
        return CertificateVerification(
            valid=valid,
            message="Certificate is valid" if valid else "Certificate has been revoked",
            certificate_number=certificate.certificate_number,
            status=certificate.status,
            issued_at=certificate.issued_at,
            student_name=snapshot.get("studentName"),
            course_name=snapshot.get("courseName"),
            completed_at=snapshot.get("completedAt"),
        )
