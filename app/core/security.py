"""JWT bearer token verification.

Tokens are issued by the platform's session service; this module only
verifies them and exposes the caller's identity and role to route handlers.
"""

import uuid
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from pydantic import BaseModel

from app.core.config import settings


class UserRole(str, Enum):
    """Platform roles carried in the token."""
    STUDENT = "STUDENT"
    MENTOR = "MENTOR"
    ADMIN = "ADMIN"


class TokenPayload(BaseModel):
    """JWT token payload structure."""

    sub: str  # User ID
    role: UserRole
    exp: datetime
    type: str  # "access"


class CurrentUser(BaseModel):
    """Authenticated caller."""

    user_id: uuid.UUID
    role: UserRole

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


def create_access_token(
    user_id: uuid.UUID,
    role: UserRole = UserRole.STUDENT,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """Create a signed access token.

    Args:
        user_id: User UUID
        role: Role claim
        expires_delta: Lifetime, defaults to ACCESS_TOKEN_EXPIRE_MINUTES

    Returns:
        Encoded JWT
    """
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    payload = {
        "sub": str(user_id),
        "role": role.value,
        "exp": expire,
        "iat": now,
        "type": "access",
        "jti": str(uuid.uuid4()),
    }
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> Optional[TokenPayload]:
    """Decode and validate a JWT token.

    Returns:
        The payload, or None when the signature, expiry or claims are invalid
    """
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
        token_payload = TokenPayload(
            sub=payload["sub"],
            role=payload.get("role", UserRole.STUDENT.value),
            exp=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
            type=payload.get("type", "access"),
        )
    except (JWTError, KeyError, ValueError):
        return None

    if token_payload.type != "access":
        return None
    return token_payload


def verify_token(token: str) -> Optional[CurrentUser]:
    """Resolve a bearer token to the caller's identity."""
    payload = decode_token(token)
    if payload is None:
        return None
    try:
        return CurrentUser(user_id=uuid.UUID(payload.sub), role=payload.role)
    except ValueError:
        return None


security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> CurrentUser:
    """FastAPI dependency returning the authenticated caller.

    Raises:
        HTTPException: 401 if the bearer token is missing or invalid
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = verify_token(credentials.credentials)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


def require_roles(*roles: UserRole):
    """Dependency factory restricting a route to the given roles."""

    async def checker(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if user.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return user

    return checker
