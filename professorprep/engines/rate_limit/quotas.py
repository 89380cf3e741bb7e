"""
Per-feature quota table for AI-backed features.

Limits are per authenticated user. Rough cost reasoning (GPT-4o-mini):
- practice_test: ~1000-2000 tokens per test, 15/hour ~ $0.30/hour per user
- ai_chat: ~500-1500 tokens per message, 50/hour ~ $0.75/hour per user
- flashcards: ~1000-2000 tokens per set, 15/hour ~ $0.30/hour per user
- learning_objectives: ~500-1000 tokens per generation, 30/hour (professors batch process)
"""

from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, Field

from professorprep.config import Settings, get_settings


class FeatureKey(str, Enum):
    """Rate-limited features."""
    PRACTICE_TEST = "practice_test"
    AI_CHAT = "ai_chat"
    FLASHCARDS = "flashcards"
    LEARNING_OBJECTIVES = "learning_objectives"
    API = "api"  # global request cap applied by middleware


class FeatureQuota(BaseModel):
    """Fixed-window quota: at most max_requests per window_seconds."""

    max_requests: int = Field(ge=0)
    window_seconds: float = Field(gt=0)
    message: str = "Too many requests. Please try again later."


def build_quota_table(settings: Optional[Settings] = None) -> Dict[str, FeatureQuota]:
    """Quota per feature key, from settings."""
    settings = settings or get_settings()
    hour = 60 * 60
    return {
        FeatureKey.PRACTICE_TEST.value: FeatureQuota(
            max_requests=settings.rate_limit_practice_test_per_hour,
            window_seconds=hour,
            message="You've generated too many practice tests. Please try again in an hour.",
        ),
        FeatureKey.AI_CHAT.value: FeatureQuota(
            max_requests=settings.rate_limit_ai_chat_per_hour,
            window_seconds=hour,
            message="You've sent too many chat messages. Please try again in an hour.",
        ),
        FeatureKey.FLASHCARDS.value: FeatureQuota(
            max_requests=settings.rate_limit_flashcards_per_hour,
            window_seconds=hour,
            message="You've generated too many flashcard sets. Please try again in an hour.",
        ),
        FeatureKey.LEARNING_OBJECTIVES.value: FeatureQuota(
            max_requests=settings.rate_limit_learning_objectives_per_hour,
            window_seconds=hour,
            message="You've generated too many learning objectives. Please try again in an hour.",
        ),
        FeatureKey.API.value: FeatureQuota(
            max_requests=settings.rate_limit_api_per_minute,
            window_seconds=60,
        ),
    }
