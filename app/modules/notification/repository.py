"""Notification repository for database operations."""

import uuid
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.modules.notification.models import Notification


class NotificationRepository:
    """Repository for in-app notifications."""

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session."""
        self.session = session

    async def create(
        self,
        user_id: uuid.UUID,
        type: str,
        title: str,
        message: str,
        data: Optional[dict] = None,
    ) -> Notification:
        notification = Notification(
            user_id=user_id,
            type=type,
            title=title,
            message=message,
            data=data,
        )
        self.session.add(notification)
        await self.session.flush()
        return notification
