"""
Rate Limit Engine - per-user, per-feature fixed-window quotas for AI features.
"""

from professorprep.engines.rate_limit.quotas import FeatureKey, FeatureQuota, build_quota_table
from professorprep.engines.rate_limit.store import (
    InMemoryRateLimitStore,
    RateLimitStore,
    RateLimitStoreError,
    RedisRateLimitStore,
    WindowSnapshot,
)
from professorprep.engines.rate_limit.limiter import (
    QuotaExceeded,
    RateLimitDecision,
    RateLimiter,
    UnknownFeatureError,
    build_store,
    get_rate_limiter,
    reset_rate_limiter,
)

__all__ = [
    "FeatureKey",
    "FeatureQuota",
    "build_quota_table",
    "InMemoryRateLimitStore",
    "RateLimitStore",
    "RateLimitStoreError",
    "RedisRateLimitStore",
    "WindowSnapshot",
    "QuotaExceeded",
    "RateLimitDecision",
    "RateLimiter",
    "UnknownFeatureError",
    "build_store",
    "get_rate_limiter",
    "reset_rate_limiter",
]
