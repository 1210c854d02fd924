"""Certificate generation worker logic.

Jobs may be delivered more than once. An enrollment that already has a
certificate, or a student who already holds a live certificate for the
course, gets the existing one back instead of a second row.
"""

import logging
import secrets
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from app.core.config import settings
from app.core.logging import log_error, log_info
from app.core.metrics import CERTIFICATES_ISSUED_TOTAL
from app.modules.certificate.models import Certificate
from app.modules.certificate.repository import CertificateRepository
from app.modules.certificate.schemas import CertificateJobPayload, CertificateJobResult
from app.modules.course.models import Enrollment
from app.modules.course.repository import EnrollmentRepository
from app.modules.notification.service import NotificationService

logger = logging.getLogger(__name__)

MAX_NUMBER_ATTEMPTS = 3


class CertificateGenerationError(Exception):
    """Base exception for certificate generation."""
    pass


class EnrollmentNotFoundError(CertificateGenerationError):
    """Raised when the job's enrollment does not exist."""
    pass


class EnrollmentMismatchError(CertificateGenerationError):
    """Raised when the payload's user or course does not match the enrollment."""
    pass


def generate_certificate_number(now: Optional[datetime] = None) -> str:
    """``CERT-<YYYYMMDD>-<8 uppercase hex>``."""
    now = now or datetime.now(timezone.utc)
    return f"CERT-{now:%Y%m%d}-{secrets.token_hex(4).upper()}"


def certificate_url(certificate_id: uuid.UUID) -> str:
    return f"{settings.APP_URL.rstrip('/')}/certificates/{certificate_id}"


def build_metadata_snapshot(enrollment: Enrollment) -> dict:
    """Names and dates frozen onto the certificate."""
    course = enrollment.course
    mentor = course.mentor if course is not None else None
    return {
        "courseName": course.title if course is not None else None,
        "studentName": enrollment.user.name if enrollment.user is not None else None,
        "mentorName": mentor.name if mentor is not None else None,
        "completedAt": enrollment.completed_at.isoformat() if enrollment.completed_at else None,
    }


class CertificateGenerator:
    """Processes ``generate-certificate`` jobs."""

    def __init__(
        self,
        certificates: CertificateRepository,
        enrollments: EnrollmentRepository,
        notifications: NotificationService,
    ):
        self.certificates = certificates
        self.enrollments = enrollments
        self.notifications = notifications

    async def process_job(self, payload: CertificateJobPayload | dict) -> CertificateJobResult:
        """Issue the certificate for a completed enrollment.

        Raises:
            EnrollmentNotFoundError: If the enrollment does not exist
            EnrollmentMismatchError: If the payload disagrees with the enrollment
        """
        job = payload if isinstance(payload, CertificateJobPayload) else CertificateJobPayload.model_validate(payload)
        enrollment_id = job.enrollment_id

        log_info(logger, "Generating certificate", enrollment_id=str(enrollment_id))

        enrollment = await self.enrollments.get_by_id(enrollment_id)
        if enrollment is None:
            raise EnrollmentNotFoundError(f"Enrollment {enrollment_id} not found")
        if enrollment.user_id != job.user_id or enrollment.course_id != job.course_id:
            raise EnrollmentMismatchError(
                f"Enrollment {enrollment_id} does not belong to user {job.user_id} and course {job.course_id}"
            )

        if enrollment.certificate_id is not None:
            existing = await self.certificates.get_by_id(enrollment.certificate_id)
            if existing is not None:
                log_info(
                    logger,
                    "Certificate already exists for enrollment",
                    enrollment_id=str(enrollment_id),
                    certificate_id=str(existing.id),
                )
                return self._result(existing, created=False)

        existing = await self.certificates.get_issued_for(job.user_id, job.course_id)
        if existing is not None:
            await self._link(enrollment_id, existing)
            return self._result(existing, created=False)

        # Read everything the notification needs before any rollback can expire it
        snapshot = build_metadata_snapshot(enrollment)
        student_name = snapshot["studentName"] or ""
        student_email = enrollment.user.email
        course_title = snapshot["courseName"] or ""

        certificate = await self._create(job, enrollment_id, snapshot)
        if certificate is None:
            existing = await self.certificates.get_issued_for(job.user_id, job.course_id)
            if existing is None:
                raise CertificateGenerationError(
                    f"Could not allocate a unique certificate number for enrollment {enrollment_id}"
                )
            await self._link(enrollment_id, existing)
            return self._result(existing, created=False)

        CERTIFICATES_ISSUED_TOTAL.inc()
        log_info(
            logger,
            "Certificate generated",
            certificate_id=str(certificate.id),
            certificate_number=certificate.certificate_number,
            enrollment_id=str(enrollment_id),
        )

        await self._notify(job, certificate, student_name, student_email, course_title)
        return self._result(certificate, created=True)

    async def _create(
        self,
        job: CertificateJobPayload,
        enrollment_id: uuid.UUID,
        snapshot: dict,
    ) -> Optional[Certificate]:
        """Insert the certificate and link it. Returns None if another delivery won."""
        for attempt in range(1, MAX_NUMBER_ATTEMPTS + 1):
            try:
                certificate = await self.certificates.create(
                    user_id=job.user_id,
                    course_id=job.course_id,
                    certificate_number=generate_certificate_number(),
                    issued_at=datetime.now(timezone.utc),
                    metadata_snapshot=snapshot,
                )
                await self.enrollments.link_certificate(enrollment_id, certificate.id)
                await self.certificates.commit()
                return certificate
            except IntegrityError:
                await self.certificates.rollback()
                if await self.certificates.get_issued_for(job.user_id, job.course_id) is not None:
                    return None
                logger.warning(
                    "Certificate number collision, retrying",
                    extra={"enrollment_id": str(enrollment_id), "attempt": attempt},
                )
        return None

    async def _link(self, enrollment_id: uuid.UUID, certificate: Certificate) -> None:
        await self.enrollments.link_certificate(enrollment_id, certificate.id)
        await self.certificates.commit()
        log_info(
            logger,
            "Linked existing certificate to enrollment",
            enrollment_id=str(enrollment_id),
            certificate_id=str(certificate.id),
        )

    async def _notify(
        self,
        job: CertificateJobPayload,
        certificate: Certificate,
        student_name: str,
        student_email: str,
        course_title: str,
    ) -> None:
        """Send the email and inbox notification; failures do not fail the job."""
        try:
            await self.notifications.notify_certificate_issued(
                user_id=job.user_id,
                user_name=student_name,
                user_email=student_email,
                course_title=course_title,
                certificate_id=certificate.id,
                certificate_url=certificate_url(certificate.id),
            )
            await self.certificates.commit()
        except SQLAlchemyError as e:
            await self.certificates.rollback()
            log_error(
                logger,
                "Failed to record certificate notification",
                exception=e,
                certificate_id=str(certificate.id),
            )

    @staticmethod
    def _result(certificate: Certificate, created: bool) -> CertificateJobResult:
        return CertificateJobResult(
            certificate_id=certificate.id,
            certificate_number=certificate.certificate_number,
            created=created,
        )
