"""Notification fan-out: in-app inbox rows and email."""

import html
import logging
import uuid
from dataclasses import dataclass
from typing import Optional

from app.core.logging import log_info, log_warning
from app.modules.notification.channels import EmailChannel
from app.modules.notification.models import NotificationType
from app.modules.notification.repository import NotificationRepository

logger = logging.getLogger(__name__)

CERTIFICATE_EMAIL_SUBJECT = "Your Certificate is Ready"


@dataclass
class NotificationOutcome:
    """What was delivered for one event."""
    notification_id: uuid.UUID
    email_sent: bool
    email_error: Optional[str] = None


def render_certificate_email(user_name: str, course_title: str, certificate_url: str) -> tuple[str, str]:
    """Plain text and HTML bodies of the certificate email."""
    text = (
        f"Hi {user_name},\n\n"
        f"Congratulations! You've completed {course_title}.\n"
        f"Your certificate is ready to download: {certificate_url}\n"
    )
    name, course, url = html.escape(user_name), html.escape(course_title), html.escape(certificate_url, quote=True)
    body = f"""
    <html>
    <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
        <h2>Certificate Ready!</h2>
        <p>Hi {name},</p>
        <p>Congratulations! You've completed <strong>{course}</strong>.</p>
        <p>Your certificate is ready to download.</p>
        <p><a href="{url}">Download Certificate</a></p>
    </body>
    </html>
    """
    return text, body


class NotificationService:
    """Writes in-app notifications and sends the matching emails."""

    def __init__(self, repository: NotificationRepository, email_channel: Optional[EmailChannel] = None):
        self.repository = repository
        self.email_channel = email_channel or EmailChannel()

    async def notify_certificate_issued(
        self,
        user_id: uuid.UUID,
        user_name: str,
        user_email: str,
        course_title: str,
        certificate_id: uuid.UUID,
        certificate_url: str,
    ) -> NotificationOutcome:
        """Tell a student their certificate has been issued.

        The inbox row is flushed in the caller's session; committing it is
        the caller's responsibility. Email failures are logged and reported
        in the outcome.
        """
        notification = await self.repository.create(
            user_id=user_id,
            type=NotificationType.CERTIFICATE_ISSUED.value,
            title="Certificate Issued",
            message=f"Your certificate for {course_title} is ready.",
            data={"certificateId": str(certificate_id), "url": certificate_url},
        )

        text, body = render_certificate_email(user_name, course_title, certificate_url)
        result = await self.email_channel.deliver(user_email, CERTIFICATE_EMAIL_SUBJECT, text, body)
        if result.success:
            log_info(logger, "Certificate email sent", certificate_id=str(certificate_id), user_id=str(user_id))
        else:
            log_warning(
                logger,
                "Certificate email not sent",
                certificate_id=str(certificate_id),
                user_id=str(user_id),
                error=result.error,
            )

        return NotificationOutcome(
            notification_id=notification.id,
            email_sent=result.success,
            email_error=result.error,
        )
