"""Certificate repository for database operations."""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.modules.certificate.models import Certificate, CertificateStatus


class CertificateRepository:
    """Repository for Certificate rows."""

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session."""
        self.session = session

    async def create(
        self,
        user_id: uuid.UUID,
        course_id: uuid.UUID,
        certificate_number: str,
        issued_at: datetime,
        metadata_snapshot: dict,
    ) -> Certificate:
        certificate = Certificate(
            id=uuid.uuid4(),
            user_id=user_id,
            course_id=course_id,
            certificate_number=certificate_number,
            status=CertificateStatus.ISSUED.value,
            issued_at=issued_at,
            metadata_snapshot=metadata_snapshot,
        )
        self.session.add(certificate)
        await self.session.flush()
        return certificate

    async def get_by_id(self, certificate_id: uuid.UUID) -> Optional[Certificate]:
        result = await self.session.execute(
            select(Certificate).where(Certificate.id == certificate_id)
        )
        return result.scalar_one_or_none()

    async def get_by_number(self, certificate_number: str) -> Optional[Certificate]:
        result = await self.session.execute(
            select(Certificate).where(Certificate.certificate_number == certificate_number)
        )
        return result.scalar_one_or_none()

    async def get_issued_for(self, user_id: uuid.UUID, course_id: uuid.UUID) -> Optional[Certificate]:
        """The non-revoked certificate for a student and course, if any."""
        result = await self.session.execute(
            select(Certificate)
            .where(Certificate.user_id == user_id)
            .where(Certificate.course_id == course_id)
            .where(Certificate.status == CertificateStatus.ISSUED.value)
        )
        return result.scalar_one_or_none()

    async def commit(self) -> None:
        await self.session.commit()

    async def rollback(self) -> None:
        await self.session.rollback()
