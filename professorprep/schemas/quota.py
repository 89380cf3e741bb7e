"""
Pydantic schemas for AI feature quota API.
"""

from typing import List

from pydantic import BaseModel


class QuotaDecisionResponse(BaseModel):
    """Admission decision (or current usage) for one feature."""

    feature_key: str
    admitted: bool
    limit: int
    remaining: int
    retry_after_seconds: int = 0
    reset_after_seconds: int = 0


class QuotaUsageResponse(BaseModel):
    """Current window for every configured feature."""

    features: List[QuotaDecisionResponse]
