"""Celery tasks for certificate generation."""

from app.core.database import task_session
from app.modules.certificate.generator import CertificateGenerator
from app.modules.certificate.repository import CertificateRepository
from app.modules.course.repository import EnrollmentRepository
from app.modules.job.schemas import QueueName
from app.modules.job.tasks import register_handler
from app.modules.notification.repository import NotificationRepository
from app.modules.notification.service import NotificationService


@register_handler(QueueName.CERTIFICATE)
async def generate_certificate(payload: dict) -> dict:
    """Issue a certificate for a completed enrollment."""
    async with task_session() as session:
        generator = CertificateGenerator(
            CertificateRepository(session),
            EnrollmentRepository(session),
            NotificationService(NotificationRepository(session)),
        )
        result = await generator.process_job(payload)
    return result.to_dict()
