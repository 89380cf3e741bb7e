"""
Rate Limiter - fixed-window quotas per (user, feature).

Fixed windows allow a burst of up to 2x max_requests straddling a window
boundary. That is accepted: the limits exist to cap AI spend, not to
guarantee fairness.
"""

from dataclasses import dataclass
from typing import Dict, Mapping, Optional

from professorprep.config import Settings, get_settings
from professorprep.engines.rate_limit.quotas import FeatureQuota, build_quota_table
from professorprep.engines.rate_limit.store import (
    InMemoryRateLimitStore,
    RateLimitStore,
    RateLimitStoreError,
    RedisRateLimitStore,
    WindowSnapshot,
)
from professorprep.logging_config import get_logger

logger = get_logger(__name__)


class UnknownFeatureError(KeyError):
    """No quota is configured for the feature key."""


@dataclass
class RateLimitDecision:
    """Outcome of an admission check."""
    admitted: bool
    user_id: str
    feature_key: str
    limit: int
    remaining: int
    retry_after_seconds: float  # 0 when admitted
    reset_after_seconds: float


class QuotaExceeded(Exception):
    """The user has used up the feature's quota for the current window."""

    def __init__(self, decision: RateLimitDecision, message: str):
        super().__init__(message)
        self.decision = decision
        self.message = message

    @property
    def feature_key(self) -> str:
        return self.decision.feature_key

    @property
    def retry_after_seconds(self) -> float:
        return self.decision.retry_after_seconds


class RateLimiter:
    """
    Gates requests by (user_id, feature_key) against per-feature quotas.

    Store failures fail closed (RateLimitStoreError propagates) unless
    fail_open is set, in which case the request is admitted and logged.
    """

    def __init__(
        self,
        store: RateLimitStore,
        quotas: Mapping[str, FeatureQuota],
        fail_open: bool = False,
        enabled: bool = True,
    ):
        self.store = store
        self.quotas: Dict[str, FeatureQuota] = dict(quotas)
        self.fail_open = fail_open
        self.enabled = enabled

    @staticmethod
    def counter_key(user_id: str, feature_key: str) -> str:
        return f"{feature_key}:{user_id}"

    def quota_for(self, feature_key: str, quota: Optional[FeatureQuota] = None) -> FeatureQuota:
        if quota is not None:
            return quota
        try:
            return self.quotas[feature_key]
        except KeyError:
            raise UnknownFeatureError(feature_key) from None

    @staticmethod
    def _decision(
        user_id: str,
        feature_key: str,
        quota: FeatureQuota,
        snapshot: WindowSnapshot,
        admitted: bool,
    ) -> RateLimitDecision:
        elapsed = snapshot.now - snapshot.window_start
        reset_after = max(0.0, quota.window_seconds - elapsed)
        return RateLimitDecision(
            admitted=admitted,
            user_id=user_id,
            feature_key=feature_key,
            limit=quota.max_requests,
            remaining=max(0, quota.max_requests - snapshot.count),
            retry_after_seconds=0.0 if admitted else reset_after,
            reset_after_seconds=reset_after,
        )

    def _unmetered(self, user_id: str, feature_key: str, quota: FeatureQuota) -> RateLimitDecision:
        return RateLimitDecision(
            admitted=True,
            user_id=user_id,
            feature_key=feature_key,
            limit=quota.max_requests,
            remaining=quota.max_requests,
            retry_after_seconds=0.0,
            reset_after_seconds=0.0,
        )

    def check_and_consume(
        self,
        user_id: str,
        feature_key: str,
        quota: Optional[FeatureQuota] = None,
    ) -> RateLimitDecision:
        """Admit and count one request, or reject with a retry hint."""
        quota = self.quota_for(feature_key, quota)
        if not self.enabled:
            return self._unmetered(user_id, feature_key, quota)

        key = self.counter_key(user_id, feature_key)
        try:
            snapshot = self.store.consume(key, quota.max_requests, quota.window_seconds)
        except RateLimitStoreError:
            if self.fail_open:
                logger.warning(
                    "Rate limit store unavailable; admitting without metering",
                    extra={"user_id": user_id, "feature": feature_key},
                    exc_info=True,
                )
                return self._unmetered(user_id, feature_key, quota)
            logger.error(
                "Rate limit store unavailable; rejecting request",
                extra={"user_id": user_id, "feature": feature_key},
                exc_info=True,
            )
            raise

        decision = self._decision(user_id, feature_key, quota, snapshot, snapshot.admitted)
        if decision.admitted:
            logger.info(
                "Feature usage admitted",
                extra={
                    "user_id": user_id,
                    "feature": feature_key,
                    "remaining": decision.remaining,
                },
            )
        else:
            logger.warning(
                "Feature quota exceeded",
                extra={
                    "user_id": user_id,
                    "feature": feature_key,
                    "retry_after_seconds": round(decision.retry_after_seconds, 1),
                },
            )
        return decision

    def enforce(
        self,
        user_id: str,
        feature_key: str,
        quota: Optional[FeatureQuota] = None,
    ) -> RateLimitDecision:
        """check_and_consume, raising QuotaExceeded on rejection."""
        quota = self.quota_for(feature_key, quota)
        decision = self.check_and_consume(user_id, feature_key, quota)
        if not decision.admitted:
            raise QuotaExceeded(decision, quota.message)
        return decision

    def usage(self, user_id: str, feature_key: str) -> RateLimitDecision:
        """Current window for the user without consuming anything."""
        quota = self.quota_for(feature_key)
        if not self.enabled:
            return self._unmetered(user_id, feature_key, quota)
        snapshot = self.store.peek(
            self.counter_key(user_id, feature_key), quota.max_requests, quota.window_seconds
        )
        return self._decision(user_id, feature_key, quota, snapshot, snapshot.admitted)


def build_store(settings: Optional[Settings] = None) -> RateLimitStore:
    """Store selected by settings.rate_limit_backend."""
    settings = settings or get_settings()
    backend = settings.rate_limit_backend.lower()
    if backend == "redis":
        return RedisRateLimitStore.from_url(settings.redis_url)
    if backend == "memory":
        return InMemoryRateLimitStore()
    raise ValueError(f"Unknown rate_limit_backend: {settings.rate_limit_backend}")


# Module-level limiter (single process unless backed by Redis)
_limiter: Optional[RateLimiter] = None


def get_rate_limiter() -> RateLimiter:
    global _limiter
    if _limiter is None:
        settings = get_settings()
        _limiter = RateLimiter(
            store=build_store(settings),
            quotas=build_quota_table(settings),
            fail_open=settings.rate_limit_fail_open,
            enabled=settings.rate_limit_enabled,
        )
    return _limiter


def reset_rate_limiter() -> None:
    """Drop the cached limiter so the next call rebuilds it from current settings."""
    global _limiter
    _limiter = None
