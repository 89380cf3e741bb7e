"""
JWT access token verification.

Tokens are issued by the auth provider; this service only verifies them and
reads the subject (user ID). create_access_token exists for local tooling and tests.
"""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt
from pydantic import BaseModel

from professorprep.config import get_settings


class AccessTokenPayload(BaseModel):
    """JWT access token payload."""

    sub: str  # User ID
    role: str = "student"
    exp: datetime
    iat: Optional[datetime] = None
    jti: Optional[str] = None


def create_access_token(
    user_id: str,
    role: str = "student",
    expires_delta: Optional[timedelta] = None,
) -> str:
    """Create a signed access token for user_id."""
    settings = get_settings()
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "role": role,
        "exp": now + (expires_delta or timedelta(minutes=30)),
        "iat": now,
        "jti": str(uuid.uuid4()),
        "type": "access",
    }
    return jwt.encode(payload, settings.secret_key, algorithm=settings.algorithm)


def verify_access_token(token: str) -> Optional[AccessTokenPayload]:
    """Return the payload of a valid, unexpired access token, else None."""
    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        return None
    if payload.get("type", "access") != "access" or not payload.get("sub"):
        return None
    return AccessTokenPayload(**payload)
