"""
FastAPI dependencies for authentication, database sessions and engines.
"""

from typing import Annotated, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from professorprep.database import get_db
from professorprep.engines.mastery.mastery_service import MasteryService
from professorprep.engines.rate_limit.limiter import RateLimiter, get_rate_limiter
from professorprep.kernel.identity.jwt import AccessTokenPayload, verify_access_token
from professorprep.logging_config import bind_user_id


# Security scheme
security = HTTPBearer(auto_error=False)

PROFESSOR_ROLE = "professor"

DbSession = Annotated[AsyncSession, Depends(get_db)]


async def get_current_user(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
) -> AccessTokenPayload:
    """Verified token payload of the authenticated caller, or 401."""
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload = verify_access_token(credentials.credentials)
    if not payload:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    bind_user_id(payload.sub)
    return payload


CurrentUser = Annotated[AccessTokenPayload, Depends(get_current_user)]


async def get_current_user_id(user: CurrentUser) -> str:
    """User ID (token subject) of the authenticated caller."""
    return user.sub


CurrentUserId = Annotated[str, Depends(get_current_user_id)]


async def require_professor(user: CurrentUser) -> AccessTokenPayload:
    """Require the caller's token to carry the professor role."""
    if user.role != PROFESSOR_ROLE:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Professor access required",
        )
    return user


ProfessorUser = Annotated[AccessTokenPayload, Depends(require_professor)]

Limiter = Annotated[RateLimiter, Depends(get_rate_limiter)]


async def get_mastery_service(db: DbSession) -> MasteryService:
    return MasteryService(db)


Mastery = Annotated[MasteryService, Depends(get_mastery_service)]


def get_request_id(request: Request) -> Optional[str]:
    """Get request correlation ID (set by RequestIdMiddleware)."""
    return getattr(request.state, "request_id", None)


def get_client_ip(request: Request) -> str:
    """Client IP from X-Forwarded-For or the direct peer."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"
