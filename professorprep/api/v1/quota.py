"""
AI feature quota endpoints.

Feature handlers call consume before invoking the LLM; a 429 means the call
must not be made.
"""

import math

from fastapi import APIRouter

from professorprep.api.deps import CurrentUserId, Limiter
from professorprep.engines.rate_limit.limiter import RateLimitDecision
from professorprep.engines.rate_limit.quotas import FeatureKey
from professorprep.schemas.common import ErrorResponse
from professorprep.schemas.quota import QuotaDecisionResponse, QuotaUsageResponse

router = APIRouter()


def _decision_to_response(d: RateLimitDecision) -> QuotaDecisionResponse:
    return QuotaDecisionResponse(
        feature_key=d.feature_key,
        admitted=d.admitted,
        limit=d.limit,
        remaining=d.remaining,
        retry_after_seconds=math.ceil(d.retry_after_seconds),
        reset_after_seconds=math.ceil(d.reset_after_seconds),
    )


# Sync handlers: FastAPI runs them in the threadpool, so a Redis round trip never blocks the loop
@router.post(
    "/{feature_key}/consume",
    response_model=QuotaDecisionResponse,
    responses={
        404: {"model": ErrorResponse},
        429: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
)
def consume_quota(feature_key: str, user_id: CurrentUserId, limiter: Limiter):
    """Count one use of an AI feature; 429 (QuotaExceeded) when the window is exhausted."""
    return _decision_to_response(limiter.enforce(user_id, feature_key))


@router.get("", response_model=QuotaUsageResponse)
def get_quota_usage(user_id: CurrentUserId, limiter: Limiter):
    """Remaining quota for every AI feature in the current window."""
    features = [k for k in limiter.quotas if k != FeatureKey.API.value]
    return QuotaUsageResponse(
        features=[_decision_to_response(limiter.usage(user_id, k)) for k in features]
    )
