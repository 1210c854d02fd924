"""Certificate API router."""

import uuid

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.security import CurrentUser, get_current_user
from app.modules.certificate.repository import CertificateRepository
from app.modules.certificate.schemas import (
    CertificateRequestResponse,
    CertificateResponse,
    CertificateVerification,
)
from app.modules.certificate.service import (
    CertificateAccessDeniedError,
    CertificateNotFoundError,
    CertificateService,
    EnrollmentNotCompletedError,
    EnrollmentNotFoundError,
)
from app.modules.course.repository import EnrollmentRepository
from app.modules.job.queue import JobQueue, QueueUnavailableError, get_job_queue

router = APIRouter(tags=["certificates"])


def get_certificate_service(
    db: AsyncSession = Depends(get_db),
    job_queue: JobQueue = Depends(get_job_queue),
) -> CertificateService:
    """Dependency to get CertificateService instance."""
    return CertificateService(CertificateRepository(db), EnrollmentRepository(db), job_queue)


@router.post(
    "/enrollments/{enrollment_id}/certificate",
    response_model=CertificateRequestResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def request_certificate(
    enrollment_id: uuid.UUID,
    response: Response,
    current_user: CurrentUser = Depends(get_current_user),
    service: CertificateService = Depends(get_certificate_service),
) -> CertificateRequestResponse:
    """Queue certificate generation, or return the already issued certificate."""
    try:
        result = await service.request_certificate(enrollment_id, current_user)
    except EnrollmentNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except CertificateAccessDeniedError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    except EnrollmentNotCompletedError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except QueueUnavailableError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))

    if result.status == "issued":
        response.status_code = status.HTTP_200_OK
    return result


@router.get("/enrollments/{enrollment_id}/certificate", response_model=CertificateResponse)
async def get_enrollment_certificate(
    enrollment_id: uuid.UUID,
    current_user: CurrentUser = Depends(get_current_user),
    service: CertificateService = Depends(get_certificate_service),
) -> CertificateResponse:
    try:
        certificate = await service.get_by_enrollment(enrollment_id, current_user)
    except (EnrollmentNotFoundError, CertificateNotFoundError) as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except CertificateAccessDeniedError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    return CertificateResponse.from_certificate(certificate)


@router.get("/certificates/verify/{certificate_number}", response_model=CertificateVerification)
async def verify_certificate(
    certificate_number: str,
    service: CertificateService = Depends(get_certificate_service),
) -> CertificateVerification:
    """Public certificate verification."""
    return await service.verify(certificate_number)


@router.get("/certificates/{certificate_id}", response_model=CertificateResponse)
async def get_certificate(
    certificate_id: uuid.UUID,
    service: CertificateService = Depends(get_certificate_service),
) -> CertificateResponse:
    try:
        certificate = await service.get_certificate(certificate_id)
    except CertificateNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return CertificateResponse.from_certificate(certificate)
