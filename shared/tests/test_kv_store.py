"""
Unit tests for the Redis key-value store and the in-memory test store.
"""

import pytest
import redis.exceptions
from unittest.mock import AsyncMock, MagicMock

from shared.errors import BackendUnavailableError
from shared.kv_store import RedisKeyValueStore
from shared.test_helpers import FakeClock, InMemoryKeyValueStore


def _scan_iter(keys):
    async def scan_iter(match=None):
        for key in keys:
            yield key
    return scan_iter


class TestRedisKeyValueStore:
    """Test cases for RedisKeyValueStore."""

    @pytest.fixture
    def mock_redis(self):
        client = AsyncMock()
        client.scan_iter = MagicMock(side_effect=_scan_iter([]))
        return client

    @pytest.fixture
    def store(self, mock_redis):
        return RedisKeyValueStore(redis_client=mock_redis)

    def test_requires_url_or_client(self):
        with pytest.raises(ValueError):
            RedisKeyValueStore()

    @pytest.mark.asyncio
    async def test_start_raises_when_unreachable(self, store, mock_redis):
        mock_redis.ping.side_effect = redis.exceptions.ConnectionError("refused")

        with pytest.raises(BackendUnavailableError):
            await store.start()

    @pytest.mark.asyncio
    async def test_set_with_ttl_uses_setex(self, store, mock_redis):
        await store.set("k", {"a": 1}, 60)
        mock_redis.setex.assert_awaited_once_with("k", 60, '{"a": 1}')

    @pytest.mark.asyncio
    async def test_set_without_ttl(self, store, mock_redis):
        await store.set("k", "ok")
        mock_redis.set.assert_awaited_once_with("k", '"ok"')

    @pytest.mark.asyncio
    async def test_get_decodes_json(self, store, mock_redis):
        mock_redis.get.return_value = '{"id": 7}'
        assert await store.get("k") == {"id": 7}

    @pytest.mark.asyncio
    async def test_get_returns_raw_text_when_not_json(self, store, mock_redis):
        mock_redis.get.return_value = b"plain"
        assert await store.get("k") == "plain"

    @pytest.mark.asyncio
    async def test_get_missing(self, store, mock_redis):
        mock_redis.get.return_value = None
        assert await store.get("k") is None

    @pytest.mark.asyncio
    async def test_get_propagates_backend_errors(self, store, mock_redis):
        mock_redis.get.side_effect = redis.exceptions.ConnectionError("refused")
        with pytest.raises(redis.exceptions.ConnectionError):
            await store.get("k")

    @pytest.mark.asyncio
    async def test_delete_pattern_unlinks_in_chunks(self, store, mock_redis):
        keys = [f"casecache:portal:hot:{n}" for n in range(3)]
        mock_redis.scan_iter = MagicMock(side_effect=_scan_iter(keys))
        mock_redis.unlink.return_value = 2
        store.SCAN_CHUNK_SIZE = 2

        deleted = await store.delete_pattern("casecache:portal:hot:*")

        assert deleted == 4
        assert mock_redis.unlink.await_count == 2
        mock_redis.unlink.assert_any_await(keys[0], keys[1])
        mock_redis.unlink.assert_any_await(keys[2])

    @pytest.mark.asyncio
    async def test_count_keys(self, store, mock_redis):
        mock_redis.scan_iter = MagicMock(side_effect=_scan_iter(["a", "b"]))
        assert await store.count_keys("*") == 2

    @pytest.mark.asyncio
    async def test_publish_returns_receivers(self, store, mock_redis):
        mock_redis.publish.return_value = 3
        assert await store.publish("chan", "payload") == 3

    @pytest.mark.asyncio
    async def test_close(self, store, mock_redis):
        await store.close()
        mock_redis.aclose.assert_awaited_once()
        with pytest.raises(BackendUnavailableError):
            store.client


class TestInMemoryKeyValueStore:
    """Test cases for the in-memory store used across the test suite."""

    @pytest.mark.asyncio
    async def test_ttl_expiry(self):
        clock = FakeClock()
        store = InMemoryKeyValueStore(clock=clock)

        await store.set("k", 1, 60)
        clock.advance(59)
        assert await store.get("k") == 1
        clock.advance(1)
        assert await store.get("k") is None

    @pytest.mark.asyncio
    async def test_delete_pattern_matches_glob(self):
        store = InMemoryKeyValueStore()
        await store.set("ns:portal:hot:5", [])
        await store.set("ns:portal:hot:10", [])
        await store.set("ns:portal:latest:5", [])

        assert await store.delete_pattern("ns:portal:hot:*") == 2
        assert list(store.data) == ["ns:portal:latest:5"]

    @pytest.mark.asyncio
    async def test_injected_failure(self):
        store = InMemoryKeyValueStore()
        store.fail_with(ConnectionError("down"), operations=["get"])

        await store.set("k", 1)
        with pytest.raises(ConnectionError):
            await store.get("k")
