"""Tests for certificate requests, lookups and verification."""

import uuid
from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from app.core.security import CurrentUser, UserRole, create_access_token
from app.main import app
from app.modules.certificate.models import CertificateStatus
from app.modules.certificate.router import get_certificate_service
from app.modules.certificate.service import (
    CertificateAccessDeniedError,
    CertificateNotFoundError,
    CertificateService,
    EnrollmentNotCompletedError,
    EnrollmentNotFoundError,
)
from app.modules.course.models import EnrollmentStatus
from tests.fakes import FakeCertificateRepository, FakeEnrollmentRepository, FakeJobQueue


@pytest.fixture
def certificates() -> FakeCertificateRepository:
    return FakeCertificateRepository()


@pytest.fixture
def enrollments() -> FakeEnrollmentRepository:
    return FakeEnrollmentRepository()


@pytest.fixture
def service(certificates, enrollments, job_queue) -> CertificateService:
    return CertificateService(certificates, enrollments, job_queue)


def _owner(enrollment) -> CurrentUser:
    return CurrentUser(user_id=enrollment.user_id, role=UserRole.STUDENT)


async def _issue(certificates, enrollment, number="CERT-20260301-ABCDEF01"):
    certificate = await certificates.create(
        user_id=enrollment.user_id,
        course_id=enrollment.course_id,
        certificate_number=number,
        issued_at=datetime(2026, 3, 2, tzinfo=timezone.utc),
        metadata_snapshot={"studentName": "Ada Lovelace", "courseName": "Analytical Engines 101", "completedAt": "2026-03-01T00:00:00+00:00"},
    )
    enrollment.certificate_id = certificate.id
    return certificate


class TestRequestCertificate:
    """Requests enqueue one job for a completed enrollment."""

    @pytest.mark.asyncio
    async def test_completed_enrollment_is_queued(self, service, enrollments, job_queue) -> None:
        enrollment = enrollments.add_enrollment()

        response = await service.request_certificate(enrollment.id, _owner(enrollment))

        assert response.status == "queued"
        assert response.job.id == "job-1"
        queue_name, payload = job_queue.jobs[0]
        assert queue_name == "certificate"
        assert payload == {
            "enrollmentId": str(enrollment.id),
            "userId": str(enrollment.user_id),
            "courseId": str(enrollment.course_id),
        }

    @pytest.mark.asyncio
    async def test_already_issued_is_not_queued(self, service, certificates, enrollments, job_queue) -> None:
        enrollment = enrollments.add_enrollment()
        certificate = await _issue(certificates, enrollment)

        response = await service.request_certificate(enrollment.id, _owner(enrollment))

        assert response.status == "issued"
        assert response.certificate_id == certificate.id
        assert job_queue.jobs == []

    @pytest.mark.asyncio
    async def test_incomplete_enrollment_rejected(self, service, enrollments) -> None:
        enrollment = enrollments.add_enrollment(status=EnrollmentStatus.ACTIVE)
        with pytest.raises(EnrollmentNotCompletedError):
            await service.request_certificate(enrollment.id, _owner(enrollment))

    @pytest.mark.asyncio
    async def test_other_student_denied(self, service, enrollments, student) -> None:
        enrollment = enrollments.add_enrollment()
        with pytest.raises(CertificateAccessDeniedError):
            await service.request_certificate(enrollment.id, student)

    @pytest.mark.asyncio
    async def test_unknown_enrollment(self, service, student) -> None:
        with pytest.raises(EnrollmentNotFoundError):
            await service.request_certificate(uuid.uuid4(), student)


class TestLookups:
    """Reading and verifying certificates."""

    @pytest.mark.asyncio
    async def test_get_by_enrollment(self, service, certificates, enrollments) -> None:
        enrollment = enrollments.add_enrollment()
        certificate = await _issue(certificates, enrollment)

        assert (await service.get_by_enrollment(enrollment.id, _owner(enrollment))).id == certificate.id

    @pytest.mark.asyncio
    async def test_get_by_enrollment_without_certificate(self, service, enrollments) -> None:
        enrollment = enrollments.add_enrollment()
        with pytest.raises(CertificateNotFoundError):
            await service.get_by_enrollment(enrollment.id, _owner(enrollment))

    @pytest.mark.asyncio
    async def test_verify_valid(self, service, certificates, enrollments) -> None:
        enrollment = enrollments.add_enrollment()
        await _issue(certificates, enrollment)

        result = await service.verify("CERT-20260301-ABCDEF01")

        assert result.valid is True
        assert result.student_name == "Ada Lovelace"
        assert result.course_name == "Analytical Engines 101"
        assert result.status == CertificateStatus.ISSUED

    @pytest.mark.asyncio
    async def test_verify_revoked(self, service, certificates, enrollments) -> None:
        enrollment = enrollments.add_enrollment()
        certificate = await _issue(certificates, enrollment)
        certificate.status = CertificateStatus.REVOKED.value

        result = await service.verify(certificate.certificate_number)

        assert result.valid is False
        assert result.message == "Certificate has been revoked"

    @pytest.mark.asyncio
    async def test_verify_unknown(self, service) -> None:
        result = await service.verify("CERT-19990101-00000000")
        assert result.valid is False
        assert result.message == "Certificate not found"


class TestCertificateEndpoints:
    """HTTP mapping of certificate outcomes."""

    @pytest.fixture
    def client(self, service):
        app.dependency_overrides[get_certificate_service] = lambda: service
        yield TestClient(app)
        app.dependency_overrides.clear()

    def test_request_returns_202(self, client, enrollments) -> None:
        enrollment = enrollments.add_enrollment()
        token = create_access_token(enrollment.user_id)

        response = client.post(
            f"/api/v1/enrollments/{enrollment.id}/certificate",
            headers={"Authorization": f"Bearer {token}"},
        )

        assert response.status_code == 202
        assert response.json()["status"] == "queued"

    def test_request_for_incomplete_course_returns_400(self, client, enrollments) -> None:
        enrollment = enrollments.add_enrollment(status=EnrollmentStatus.ACTIVE)
        token = create_access_token(enrollment.user_id)

        response = client.post(
            f"/api/v1/enrollments/{enrollment.id}/certificate",
            headers={"Authorization": f"Bearer {token}"},
        )

        assert response.status_code == 400

    def test_request_requires_auth(self, client, enrollments) -> None:
        enrollment = enrollments.add_enrollment()
        assert client.post(f"/api/v1/enrollments/{enrollment.id}/certificate").status_code == 401

    def test_verify_is_public(self, client) -> None:
        response = client.get("/api/v1/certificates/verify/CERT-19990101-00000000")
        assert response.status_code == 200
        assert response.json()["valid"] is False

    def test_get_unknown_certificate(self, client) -> None:
        assert client.get(f"/api/v1/certificates/{uuid.uuid4()}").status_code == 404

    def test_queue_down_returns_503(self, certificates, enrollments) -> None:
        enrollment = enrollments.add_enrollment()
        app.dependency_overrides[get_certificate_service] = lambda: CertificateService(
            certificates, enrollments, FakeJobQueue(unavailable=True)
        )
        try:
            response = TestClient(app).post(
                f"/api/v1/enrollments/{enrollment.id}/certificate",
                headers={"Authorization": f"Bearer {create_access_token(enrollment.user_id)}"},
            )
        finally:
            app.dependency_overrides.clear()

        assert response.status_code == 503
