"""Tests for bearer token verification."""

import uuid
from datetime import timedelta

from app.core.security import UserRole, create_access_token, decode_token, verify_token


class TestTokens:
    """Access tokens resolve to the caller's identity and role."""

    def test_round_trip(self) -> None:
        user_id = uuid.uuid4()
        token = create_access_token(user_id, role=UserRole.MENTOR)

        user = verify_token(token)

        assert user is not None
        assert user.user_id == user_id
        assert user.role == UserRole.MENTOR
        assert user.is_admin is False

    def test_expired_token_rejected(self) -> None:
        token = create_access_token(uuid.uuid4(), expires_delta=timedelta(seconds=-5))
        assert verify_token(token) is None

    def test_tampered_token_rejected(self) -> None:
        token = create_access_token(uuid.uuid4())
        assert decode_token(token[:-2] + ("AA" if not token.endswith("AA") else "BB")) is None

    def test_garbage_rejected(self) -> None:
        assert verify_token("not-a-jwt") is None
