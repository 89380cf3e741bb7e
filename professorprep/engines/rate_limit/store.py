"""
Counter stores for fixed-window rate limiting.

Each store exposes one atomic primitive, consume(): reset the window if it has
elapsed, then admit and increment if the count is under the limit. The
read-modify-write of (count, window_start) is serialised per key.
"""

import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

import redis
from redis.exceptions import RedisError


class RateLimitStoreError(Exception):
    """The counter store could not be reached or returned garbage."""


@dataclass
class WindowSnapshot:
    """Counter state for one key right after a consume or peek."""
    admitted: bool
    count: int
    window_start: float
    now: float


class RateLimitStore(ABC):
    """Key -> (count, window_start) with atomic increment-or-reset."""

    @abstractmethod
    def consume(self, key: str, max_requests: int, window_seconds: float) -> WindowSnapshot:
        """Admit and increment if under max_requests in the current window."""

    @abstractmethod
    def peek(self, key: str, max_requests: int, window_seconds: float) -> WindowSnapshot:
        """Current window without consuming. admitted tells whether a consume would pass."""


class InMemoryRateLimitStore(RateLimitStore):
    """
    Fixed-window in-memory store (single process).

    Keys hash onto a fixed set of striped locks, so the same key always takes
    the same lock and locks never need to be created or dropped per key.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic, stripes: int = 64):
        self._data: Dict[str, Tuple[int, float]] = {}
        self._locks = [threading.Lock() for _ in range(stripes)]
        self._clock = clock

    def _lock_for(self, key: str) -> threading.Lock:
        return self._locks[hash(key) % len(self._locks)]

    def consume(self, key: str, max_requests: int, window_seconds: float) -> WindowSnapshot:
        with self._lock_for(key):
            now = self._clock()
            entry = self._data.get(key)
            if entry is None or now - entry[1] >= window_seconds:
                count, start = 0, now
            else:
                count, start = entry

            if count >= max_requests:
                self._data[key] = (count, start)
                return WindowSnapshot(admitted=False, count=count, window_start=start, now=now)

            count += 1
            self._data[key] = (count, start)
            return WindowSnapshot(admitted=True, count=count, window_start=start, now=now)

    def peek(self, key: str, max_requests: int, window_seconds: float) -> WindowSnapshot:
        with self._lock_for(key):
            now = self._clock()
            entry = self._data.get(key)
            if entry is None or now - entry[1] >= window_seconds:
                return WindowSnapshot(admitted=max_requests > 0, count=0, window_start=now, now=now)
            count, start = entry
            return WindowSnapshot(admitted=count < max_requests, count=count, window_start=start, now=now)

    def cleanup_old(self, max_age_seconds: float = 3600) -> int:
        """Remove windows older than max_age_seconds to avoid unbounded growth."""
        now = self._clock()
        stale = [k for k, (_, start) in list(self._data.items()) if now - start > max_age_seconds]
        removed = 0
        for key in stale:
            with self._lock_for(key):
                entry = self._data.get(key)
                if entry is not None and now - entry[1] > max_age_seconds:
                    del self._data[key]
                    removed += 1
        return removed


# KEYS[1] = counter hash; ARGV = now, max_requests, window_seconds
_CONSUME_LUA = """
local now = tonumber(ARGV[1])
local max_requests = tonumber(ARGV[2])
local window = tonumber(ARGV[3])
local start = tonumber(redis.call('HGET', KEYS[1], 'window_start'))
local count = tonumber(redis.call('HGET', KEYS[1], 'count'))
if (not start) or (not count) or (now - start >= window) then
  start = now
  count = 0
end
local admitted = 0
if count < max_requests then
  count = count + 1
  admitted = 1
end
redis.call('HSET', KEYS[1], 'window_start', tostring(start), 'count', tostring(count))
local ttl_ms = math.ceil((start + window - now) * 1000)
if ttl_ms < 1 then ttl_ms = 1 end
redis.call('PEXPIRE', KEYS[1], ttl_ms)
return {admitted, count, tostring(start)}
"""


class RedisRateLimitStore(RateLimitStore):
    """
    Shared store for multi-worker deployments.
    consume() runs as one Lua script, so Redis serialises it per key.
    Uses wall-clock time since workers do not share a monotonic clock.
    """

    def __init__(
        self,
        client: redis.Redis,
        prefix: str = "ratelimit",
        clock: Callable[[], float] = time.time,
    ):
        self._client = client
        self._prefix = prefix
        self._clock = clock
        self._consume_script = client.register_script(_CONSUME_LUA)

    @classmethod
    def from_url(cls, url: str, **kwargs) -> "RedisRateLimitStore":
        client = redis.Redis.from_url(url, decode_responses=True, socket_timeout=1.0)
        return cls(client, **kwargs)

    def _key(self, key: str) -> str:
        return f"{self._prefix}:{key}"

    def consume(self, key: str, max_requests: int, window_seconds: float) -> WindowSnapshot:
        now = self._clock()
        try:
            admitted, count, start = self._consume_script(
                keys=[self._key(key)],
                args=[repr(now), max_requests, repr(float(window_seconds))],
            )
            return WindowSnapshot(
                admitted=bool(int(admitted)),
                count=int(count),
                window_start=float(start),
                now=now,
            )
        except RedisError as exc:
            raise RateLimitStoreError(f"Rate limit store unavailable: {exc}") from exc
        except (TypeError, ValueError) as exc:
            raise RateLimitStoreError(f"Unexpected rate limit store reply: {exc}") from exc

    def peek(self, key: str, max_requests: int, window_seconds: float) -> WindowSnapshot:
        now = self._clock()
        try:
            reply = self._client.hmget(self._key(key), "window_start", "count")
        except RedisError as exc:
            raise RateLimitStoreError(f"Rate limit store unavailable: {exc}") from exc

        try:
            start_raw, count_raw = reply
            start: Optional[float] = float(start_raw) if start_raw is not None else None
            count = int(count_raw) if count_raw is not None else 0
        except (TypeError, ValueError) as exc:
            raise RateLimitStoreError(f"Unexpected rate limit store reply: {exc}") from exc

        if start is None or count_raw is None or now - start >= window_seconds:
            return WindowSnapshot(admitted=max_requests > 0, count=0, window_start=now, now=now)
        return WindowSnapshot(admitted=count < max_requests, count=count, window_start=start, now=now)
