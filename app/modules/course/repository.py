"""Enrollment lookups for the certificate flow."""

import uuid
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.modules.course.models import Enrollment


class EnrollmentRepository:
    """Repository for Enrollment reads and certificate linking."""

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session."""
        self.session = session

    async def get_by_id(self, enrollment_id: uuid.UUID) -> Optional[Enrollment]:
        """Get an enrollment with its user, course and mentor loaded."""
        result = await self.session.execute(
            select(Enrollment).where(Enrollment.id == enrollment_id)
        )
        return result.unique().scalar_one_or_none()

    async def link_certificate(self, enrollment_id: uuid.UUID, certificate_id: uuid.UUID) -> None:
        await self.session.execute(
            update(Enrollment)
            .where(Enrollment.id == enrollment_id)
            .values(certificate_id=certificate_id)
        )
