"""Notification module: in-app inbox rows and email delivery."""

from app.modules.notification.channels import ChannelDeliveryResult, EmailChannel
from app.modules.notification.models import Notification, NotificationType
from app.modules.notification.repository import NotificationRepository
from app.modules.notification.service import NotificationOutcome, NotificationService

__all__ = [
    "ChannelDeliveryResult",
    "EmailChannel",
    "Notification",
    "NotificationType",
    "NotificationRepository",
    "NotificationOutcome",
    "NotificationService",
]
