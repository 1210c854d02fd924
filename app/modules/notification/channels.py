"""Email delivery channel."""

import asyncio
import logging
import smtplib
from dataclasses import dataclass
from datetime import datetime, timezone
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

from app.core.config import settings

logger = logging.getLogger(__name__)


@dataclass
class ChannelDeliveryResult:
    """Result of a channel delivery attempt."""
    success: bool
    channel: str
    recipient: str
    delivered_at: Optional[datetime] = None
    error: Optional[str] = None


class EmailChannel:
    """Email channel using SMTP.

    smtplib is blocking, so sends run in the default executor.
    """

    channel_name = "email"

    @property
    def is_configured(self) -> bool:
        return bool(settings.SMTP_HOST and settings.SMTP_FROM_EMAIL)

    async def deliver(
        self,
        recipient: str,
        subject: str,
        text: str,
        html: Optional[str] = None,
    ) -> ChannelDeliveryResult:
        """Send one email. Failures are reported in the result, not raised."""
        if not self.is_configured:
            return self._failure(recipient, "SMTP not configured")

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = settings.SMTP_FROM_EMAIL
        msg["To"] = recipient
        msg.attach(MIMEText(text, "plain"))
        if html:
            msg.attach(MIMEText(html, "html"))

        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self._send_smtp, recipient, msg)
        except (smtplib.SMTPException, OSError) as e:
            logger.warning("Email delivery failed", extra={"recipient": recipient, "error": str(e)})
            return self._failure(recipient, str(e))

        return ChannelDeliveryResult(
            success=True,
            channel=self.channel_name,
            recipient=recipient,
            delivered_at=datetime.now(timezone.utc),
        )

    def _send_smtp(self, recipient: str, msg: MIMEMultipart) -> None:
        """Send email via SMTP (blocking operation)."""
        with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT) as server:
            if settings.SMTP_TLS:
                server.starttls()

            if settings.SMTP_USER and settings.SMTP_PASSWORD:
                server.login(settings.SMTP_USER, settings.SMTP_PASSWORD)

            server.sendmail(settings.SMTP_FROM_EMAIL, recipient, msg.as_string())

    def _failure(self, recipient: str, error: str) -> ChannelDeliveryResult:
        return ChannelDeliveryResult(
            success=False,
            channel=self.channel_name,
            recipient=recipient,
            error=error,
        )
