"""
Unit tests for PortalCacheStore.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock

from service_portal.app.cache.portal_cache_store import PortalCacheStore
from shared.test_helpers import InMemoryKeyValueStore, TestDataFactory


class TestPortalCacheStore:
    """Test cases for PortalCacheStore."""

    @pytest.fixture
    def store(self):
        return InMemoryKeyValueStore()

    @pytest.fixture
    def cache(self, store):
        return PortalCacheStore(store)

    @pytest.mark.asyncio
    async def test_keys(self, cache):
        assert cache.category_list_key() == "casecache:portal:category:list"
        assert cache.detail_key(42) == "casecache:portal:detail:42"
        assert cache.hot_key(10) == "casecache:portal:hot:10"
        assert cache.latest_key(5) == "casecache:portal:latest:5"

    @pytest.mark.asyncio
    async def test_set_and_get(self, cache):
        case = TestDataFactory.create_case(42)

        assert await cache.set_case_detail(42, case)
        assert await cache.get_case_detail(42) == case
        assert await cache.set_hot_cases(10, [case])
        assert await cache.get_hot_cases(10) == [case]
        assert await cache.get_hot_cases(5) is None

    @pytest.mark.asyncio
    async def test_del_hot_cache_removes_every_size(self, cache, store):
        await cache.set_hot_cases(5, [])
        await cache.set_hot_cases(10, [])
        await cache.set_latest_cases(5, [])

        assert await cache.del_hot_cache()

        assert await cache.get_hot_cases(5) is None
        assert await cache.get_hot_cases(10) is None
        assert await cache.get_latest_cases(5) == []

    @pytest.mark.asyncio
    async def test_del_all_cache(self, cache, store):
        await cache.set_category_list(TestDataFactory.create_categories())
        await cache.set_case_detail(1, TestDataFactory.create_case(1))
        await cache.set_hot_cases(10, [])
        await cache.set_latest_cases(10, [])
        await store.set("casecache:admin:data:1", {})
        store.reset_calls()

        assert await cache.del_all_cache()

        assert store.calls_for("delete") == ["casecache:portal:category:list"]
        assert sorted(store.calls_for("delete_pattern")) == [
            "casecache:portal:detail:*",
            "casecache:portal:hot:*",
            "casecache:portal:latest:*",
        ]
        assert list(store.data) == ["casecache:admin:data:1"]

    @pytest.mark.asyncio
    async def test_delete_errors_are_contained(self, cache, store):
        store.fail_with(ConnectionError("down"), operations=["delete_pattern"])

        assert await cache.del_category_cache() is True
        assert await cache.del_hot_cache() is False
        assert await cache.del_all_cache() is False
        # Every family is still attempted
        assert len(store.calls_for("delete_pattern")) == 4

    @pytest.mark.asyncio
    async def test_read_errors_are_misses(self, cache, store):
        store.fail_with(ConnectionError("down"))
        assert await cache.get_category_list() is None
        assert await cache.set_category_list([]) is False

    @pytest.mark.asyncio
    async def test_read_through_loads_once(self, cache):
        loader = AsyncMock(return_value={"id": 3})
        key = cache.detail_key(3)

        assert await cache.read_through(key, loader) == {"id": 3}
        assert await cache.read_through(key, loader) == {"id": 3}
        assert loader.await_count == 1

    @pytest.mark.asyncio
    async def test_read_through_sync_loader_and_ttl(self, cache, store):
        loader = MagicMock(return_value=[1, 2])
        key = cache.latest_key(2)

        assert await cache.read_through(key, loader, ttl_seconds=30) == [1, 2]
        assert store.data[key][1] is not None
        loader.assert_called_once()

    @pytest.mark.asyncio
    async def test_read_through_does_not_cache_none(self, cache, store):
        loader = MagicMock(return_value=None)

        assert await cache.read_through(cache.detail_key(404), loader) is None
        assert store.calls_for("set") == []

    @pytest.mark.asyncio
    async def test_read_through_propagates_loader_errors(self, cache):
        loader = AsyncMock(side_effect=LookupError("no such case"))
        with pytest.raises(LookupError):
            await cache.read_through(cache.detail_key(1), loader)
