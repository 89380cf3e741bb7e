"""
Pydantic schemas for API request/response validation.
"""

from professorprep.schemas.common import ErrorResponse, HealthResponse
from professorprep.schemas.mastery import (
    EvaluationResultResponse,
    EvaluationSubmitRequest,
    MasteryProgressResponse,
    MasteryRecordResponse,
    NextFocusResponse,
    ObjectiveCreate,
    ObjectiveCreateRequest,
    ObjectiveProgressResponse,
    ObjectiveResponse,
)
from professorprep.schemas.quota import QuotaDecisionResponse, QuotaUsageResponse

__all__ = [
    "ErrorResponse",
    "HealthResponse",
    "EvaluationResultResponse",
    "EvaluationSubmitRequest",
    "MasteryProgressResponse",
    "MasteryRecordResponse",
    "NextFocusResponse",
    "ObjectiveCreate",
    "ObjectiveCreateRequest",
    "ObjectiveProgressResponse",
    "ObjectiveResponse",
    "QuotaDecisionResponse",
    "QuotaUsageResponse",
]
