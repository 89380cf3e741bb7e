"""Unit tests for the Redis-backed counter store (client mocked)."""

from unittest.mock import MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from professorprep.engines.rate_limit.store import RateLimitStoreError, RedisRateLimitStore


@pytest.fixture
def client():
    client = MagicMock()
    client.register_script.return_value = MagicMock()
    return client


@pytest.fixture
def store(client, clock):
    clock.advance(1000)
    return RedisRateLimitStore(client, prefix="test", clock=clock)


class TestRedisConsume:
    """consume() delegates to the Lua script and parses its reply."""

    def test_registers_script_once(self, client, store):
        client.register_script.assert_called_once()

    def test_parses_admitted_reply(self, client, store):
        script = client.register_script.return_value
        script.return_value = [1, 2, "990.0"]

        snapshot = store.consume("ai_chat:u1", 50, 3600)

        assert snapshot.admitted is True
        assert snapshot.count == 2
        assert snapshot.window_start == 990.0
        assert snapshot.now == 1000
        kwargs = script.call_args.kwargs
        assert kwargs["keys"] == ["test:ai_chat:u1"]
        assert kwargs["args"][1] == 50

    def test_parses_rejected_reply(self, client, store):
        client.register_script.return_value.return_value = [0, 50, "1000"]
        snapshot = store.consume("ai_chat:u1", 50, 3600)
        assert snapshot.admitted is False
        assert snapshot.count == 50

    def test_connection_error(self, client, store):
        client.register_script.return_value.side_effect = RedisConnectionError("refused")
        with pytest.raises(RateLimitStoreError, match="unavailable"):
            store.consume("ai_chat:u1", 50, 3600)

    def test_garbage_reply(self, client, store):
        client.register_script.return_value.return_value = [1, "not-a-number", "1000"]
        with pytest.raises(RateLimitStoreError, match="Unexpected"):
            store.consume("ai_chat:u1", 50, 3600)


class TestRedisPeek:
    """peek() reads the hash without running the script."""

    def test_missing_key(self, client, store):
        client.hmget.return_value = [None, None]
        snapshot = store.peek("ai_chat:u1", 50, 3600)
        assert snapshot.count == 0
        assert snapshot.admitted is True

    def test_current_window(self, client, store):
        client.hmget.return_value = ["900.0", "50"]
        snapshot = store.peek("ai_chat:u1", 50, 3600)
        assert snapshot.count == 50
        assert snapshot.admitted is False
        assert snapshot.window_start == 900.0
        client.hmget.assert_called_once_with("test:ai_chat:u1", "window_start", "count")

    def test_elapsed_window(self, client, store):
        client.hmget.return_value = ["100.0", "50"]
        snapshot = store.peek("ai_chat:u1", 50, 60)
        assert snapshot.count == 0

    def test_connection_error(self, client, store):
        client.hmget.side_effect = RedisConnectionError("refused")
        with pytest.raises(RateLimitStoreError):
            store.peek("ai_chat:u1", 50, 3600)

    @pytest.mark.parametrize(
        "reply", [["x", "1"], ["900.0", "many"], ["900.0"]], ids=["bad-start", "bad-count", "short"]
    )
    def test_malformed_reply(self, client, store, reply):
        client.hmget.return_value = reply
        with pytest.raises(RateLimitStoreError):
            store.peek("ai_chat:u1", 50, 3600)
