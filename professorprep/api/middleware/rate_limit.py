"""
API Gateway Rate Limiting - global request cap per user (or per IP when anonymous).

Per-feature AI quotas are enforced by the quota endpoints; this middleware only
applies the coarse "api" scope to every /api/v1 request.
"""

import json
import math
import time
from typing import Callable

from fastapi import Request, Response, status
from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware

from professorprep.api.deps import get_client_ip
from professorprep.config import get_settings
from professorprep.engines.rate_limit.limiter import get_rate_limiter
from professorprep.engines.rate_limit.quotas import FeatureKey
from professorprep.engines.rate_limit.store import InMemoryRateLimitStore, RateLimitStoreError
from professorprep.kernel.identity.jwt import verify_access_token
from professorprep.logging_config import get_logger

logger = get_logger(__name__)

CLEANUP_INTERVAL_SECONDS = 60
_last_cleanup = 0.0


def _identifier(request: Request) -> str:
    """Token subject if a valid bearer token is present, else the client IP."""
    auth = request.headers.get("authorization") or ""
    if auth.lower().startswith("bearer "):
        payload = verify_access_token(auth[7:].strip())
        if payload:
            return f"user:{payload.sub}"
    return f"ip:{get_client_ip(request)}"


def _json_response(status_code: int, detail: str, retry_after: float) -> Response:
    return Response(
        content=json.dumps({"detail": detail}),
        status_code=status_code,
        media_type="application/json",
        headers={"Retry-After": str(max(1, math.ceil(retry_after)))},
    )


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Apply the global "api" quota to every request under the API prefix."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        global _last_cleanup

        settings = get_settings()
        if not settings.rate_limit_enabled:
            return await call_next(request)

        path = request.url.path or ""
        if not path.startswith(settings.api_v1_prefix):
            return await call_next(request)

        limiter = get_rate_limiter()
        now = time.monotonic()
        if isinstance(limiter.store, InMemoryRateLimitStore) and now - _last_cleanup > CLEANUP_INTERVAL_SECONDS:
            _last_cleanup = now
            limiter.store.cleanup_old(max_age_seconds=7200)

        try:
            decision = await run_in_threadpool(
                limiter.check_and_consume, _identifier(request), FeatureKey.API.value
            )
        except RateLimitStoreError:
            return _json_response(
                status.HTTP_503_SERVICE_UNAVAILABLE,
                "Rate limiting is temporarily unavailable. Please try again shortly.",
                retry_after=5,
            )

        if not decision.admitted:
            return _json_response(
                status.HTTP_429_TOO_MANY_REQUESTS,
                "Too many requests. Please try again later.",
                retry_after=decision.retry_after_seconds,
            )
        return await call_next(request)
