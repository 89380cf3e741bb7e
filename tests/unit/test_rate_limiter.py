"""Unit tests for fixed-window per-feature quotas."""

import threading
from unittest.mock import MagicMock

import pytest

from professorprep.config import Settings
from professorprep.engines.rate_limit.limiter import (
    QuotaExceeded,
    RateLimiter,
    UnknownFeatureError,
    build_store,
)
from professorprep.engines.rate_limit.quotas import FeatureKey, FeatureQuota, build_quota_table
from professorprep.engines.rate_limit.store import (
    InMemoryRateLimitStore,
    RateLimitStoreError,
    RedisRateLimitStore,
)


QUOTAS = {
    "practice_test": FeatureQuota(max_requests=2, window_seconds=60, message="Too many practice tests."),
    "ai_chat": FeatureQuota(max_requests=3, window_seconds=60, message="Too many chat messages."),
}


@pytest.fixture
def store(clock) -> InMemoryRateLimitStore:
    return InMemoryRateLimitStore(clock=clock)


@pytest.fixture
def limiter(store) -> RateLimiter:
    return RateLimiter(store, QUOTAS)


class TestFixedWindow:
    """Window accounting on a single (user, feature) counter."""

    def test_window_reset(self, limiter, clock):
        """2 per 60s: third call at t=10 waits ~50s; t=61 starts a new window."""
        assert limiter.check_and_consume("u1", "practice_test").admitted
        assert limiter.check_and_consume("u1", "practice_test").admitted

        clock.advance(10)
        rejected = limiter.check_and_consume("u1", "practice_test")
        assert rejected.admitted is False
        assert rejected.retry_after_seconds == pytest.approx(50)
        assert rejected.remaining == 0

        clock.advance(51)
        admitted = limiter.check_and_consume("u1", "practice_test")
        assert admitted.admitted is True
        assert admitted.remaining == 1
        assert admitted.retry_after_seconds == 0

    def test_rejection_does_not_extend_window(self, limiter, clock):
        limiter.check_and_consume("u1", "practice_test")
        limiter.check_and_consume("u1", "practice_test")
        clock.advance(30)
        limiter.check_and_consume("u1", "practice_test")
        clock.advance(30)
        assert limiter.check_and_consume("u1", "practice_test").admitted is True

    def test_zero_quota_rejects_everything(self, store):
        limiter = RateLimiter(store, {"ai_chat": FeatureQuota(max_requests=0, window_seconds=60)})
        decision = limiter.check_and_consume("u1", "ai_chat")
        assert decision.admitted is False
        assert decision.retry_after_seconds == pytest.approx(60)

    def test_quota_override(self, limiter):
        """An explicit quota replaces the configured one for that call."""
        quota = FeatureQuota(max_requests=1, window_seconds=5)
        assert limiter.check_and_consume("u1", "ai_chat", quota).admitted
        assert not limiter.check_and_consume("u1", "ai_chat", quota).admitted


class TestIndependence:
    """Counters are keyed by (user, feature)."""

    def test_features_are_independent(self, limiter):
        for _ in range(2):
            limiter.check_and_consume("u1", "practice_test")
        assert not limiter.check_and_consume("u1", "practice_test").admitted
        assert limiter.check_and_consume("u1", "ai_chat").admitted

    def test_users_are_independent(self, limiter):
        for _ in range(2):
            limiter.check_and_consume("u1", "practice_test")
        assert limiter.check_and_consume("u2", "practice_test").admitted


class TestConcurrency:
    """Read-modify-write is serialised per key."""

    def test_concurrent_consume_admits_exactly_limit(self):
        n = 50
        limiter = RateLimiter(
            InMemoryRateLimitStore(),
            {"ai_chat": FeatureQuota(max_requests=n, window_seconds=3600)},
        )
        threads = 2 * n
        barrier = threading.Barrier(threads)
        results = []
        results_lock = threading.Lock()

        def worker():
            barrier.wait()
            decision = limiter.check_and_consume("u1", "ai_chat")
            with results_lock:
                results.append(decision.admitted)

        pool = [threading.Thread(target=worker) for _ in range(threads)]
        for t in pool:
            t.start()
        for t in pool:
            t.join()

        assert results.count(True) == n
        assert results.count(False) == n


class TestEnforce:
    """enforce raises QuotaExceeded with a retry hint."""

    def test_raises_after_limit(self, limiter, clock):
        limiter.enforce("u1", "practice_test")
        limiter.enforce("u1", "practice_test")
        clock.advance(15)
        with pytest.raises(QuotaExceeded) as exc_info:
            limiter.enforce("u1", "practice_test")
        assert exc_info.value.feature_key == "practice_test"
        assert exc_info.value.retry_after_seconds == pytest.approx(45)
        assert exc_info.value.message == "Too many practice tests."

    def test_unknown_feature(self, limiter):
        with pytest.raises(UnknownFeatureError):
            limiter.enforce("u1", "image_generation")

    def test_disabled_limiter_admits(self, store):
        limiter = RateLimiter(store, QUOTAS, enabled=False)
        for _ in range(5):
            assert limiter.enforce("u1", "practice_test").admitted


class TestStoreFailure:
    """Counter store outages are distinct from an exhausted quota."""

    def _broken_store(self):
        broken = MagicMock()
        broken.consume.side_effect = RateLimitStoreError("connection refused")
        return broken

    def test_fail_closed_by_default(self):
        limiter = RateLimiter(self._broken_store(), QUOTAS)
        with pytest.raises(RateLimitStoreError):
            limiter.check_and_consume("u1", "ai_chat")

    def test_fail_closed_is_not_quota_exceeded(self):
        limiter = RateLimiter(self._broken_store(), QUOTAS)
        with pytest.raises(RateLimitStoreError):
            limiter.enforce("u1", "ai_chat")

    def test_fail_open_admits(self):
        limiter = RateLimiter(self._broken_store(), QUOTAS, fail_open=True)
        decision = limiter.check_and_consume("u1", "ai_chat")
        assert decision.admitted is True
        assert decision.limit == 3


class TestUsage:
    """usage() reads the window without consuming."""

    def test_usage_does_not_consume(self, limiter):
        limiter.check_and_consume("u1", "ai_chat")
        for _ in range(3):
            usage = limiter.usage("u1", "ai_chat")
        assert usage.remaining == 2
        assert usage.admitted is True

    def test_usage_of_exhausted_feature(self, limiter, clock):
        limiter.check_and_consume("u1", "practice_test")
        limiter.check_and_consume("u1", "practice_test")
        clock.advance(20)
        usage = limiter.usage("u1", "practice_test")
        assert usage.admitted is False
        assert usage.retry_after_seconds == pytest.approx(40)

    def test_usage_of_fresh_user(self, limiter):
        usage = limiter.usage("nobody", "practice_test")
        assert usage.remaining == 2
        assert usage.admitted is True


class TestInMemoryStore:
    """Store housekeeping."""

    def test_cleanup_old_removes_stale_windows(self, store, clock):
        store.consume("practice_test:u1", 2, 60)
        clock.advance(100)
        store.consume("practice_test:u2", 2, 60)
        clock.advance(100)
        removed = store.cleanup_old(max_age_seconds=150)
        assert removed == 1
        assert store.peek("practice_test:u2", 2, 60).count == 0  # window elapsed, but kept
        assert "practice_test:u1" not in store._data


class TestQuotaTable:
    """Quota table built from settings."""

    def test_defaults(self):
        table = build_quota_table(Settings(
            rate_limit_practice_test_per_hour=15,
            rate_limit_ai_chat_per_hour=50,
            rate_limit_flashcards_per_hour=15,
            rate_limit_learning_objectives_per_hour=30,
            rate_limit_api_per_minute=100,
        ))
        assert table[FeatureKey.PRACTICE_TEST.value].max_requests == 15
        assert table[FeatureKey.AI_CHAT.value].max_requests == 50
        assert table[FeatureKey.FLASHCARDS.value].max_requests == 15
        assert table[FeatureKey.LEARNING_OBJECTIVES.value].max_requests == 30
        assert table[FeatureKey.API.value].window_seconds == 60
        assert all(table[k].window_seconds == 3600 for k in ("practice_test", "ai_chat", "flashcards"))
        assert "practice tests" in table["practice_test"].message

    def test_build_store(self):
        assert isinstance(build_store(Settings(rate_limit_backend="memory")), InMemoryRateLimitStore)
        assert isinstance(
            build_store(Settings(rate_limit_backend="redis", redis_url="redis://localhost:6379/15")),
            RedisRateLimitStore,
        )
        with pytest.raises(ValueError):
            build_store(Settings(rate_limit_backend="memcached"))
