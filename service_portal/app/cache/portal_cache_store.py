"""
Portal-local cached views.

Sets happen through read-through population; deletes happen when an
invalidation message arrives. Every backend error is logged and swallowed at
this boundary: invalidation deletes are best-effort and a cache miss falls
back to the system of record.
"""

import inspect
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from shared.keyspace import DEFAULT_NAMESPACE, PortalResource, Role, build_key, build_pattern
from shared.kv_store import KeyValueStore
from shared.logging import get_logger

Loader = Callable[[], Union[Any, Awaitable[Any]]]


class PortalCacheStore:
    """Read/write/delete surface for the portal's own key namespace."""

    def __init__(self, store: KeyValueStore, namespace: str = DEFAULT_NAMESPACE,
                 default_ttl_seconds: int = 86400, entity_ttl_seconds: int = 3600):
        self.store = store
        self.namespace = namespace
        self.default_ttl_seconds = default_ttl_seconds
        self.entity_ttl_seconds = entity_ttl_seconds
        self.logger = get_logger("cache_sync.portal_cache")

    # Keys

    def category_list_key(self) -> str:
        return build_key(Role.PORTAL, PortalResource.CATEGORY_LIST, namespace=self.namespace)

    def detail_key(self, case_id: Any) -> str:
        return build_key(Role.PORTAL, PortalResource.DETAIL, case_id, namespace=self.namespace)

    def hot_key(self, size: int) -> str:
        return build_key(Role.PORTAL, PortalResource.HOT, size, namespace=self.namespace)

    def latest_key(self, size: int) -> str:
        return build_key(Role.PORTAL, PortalResource.LATEST, size, namespace=self.namespace)

    def _pattern(self, resource_kind: str) -> str:
        return build_pattern(Role.PORTAL, resource_kind, namespace=self.namespace)

    # Reads and writes

    async def _safe_get(self, key: str) -> Optional[Any]:
        """Safely get cached data, handling errors."""
        try:
            return await self.store.get(key)
        except Exception as exc:
            self.logger.error("Cache fetch error", key=key, error=str(exc))
            return None

    async def _safe_set(self, key: str, value: Any, ttl_seconds: Optional[int]) -> bool:
        try:
            await self.store.set(key, value, ttl_seconds)
            return True
        except Exception as exc:
            self.logger.error("Cache write error", key=key, error=str(exc))
            return False

    async def get_category_list(self) -> Optional[List[Dict[str, Any]]]:
        return await self._safe_get(self.category_list_key())

    async def set_category_list(self, categories: List[Dict[str, Any]]) -> bool:
        return await self._safe_set(self.category_list_key(), categories, self.default_ttl_seconds)

    async def get_case_detail(self, case_id: Any) -> Optional[Dict[str, Any]]:
        return await self._safe_get(self.detail_key(case_id))

    async def set_case_detail(self, case_id: Any, case: Dict[str, Any]) -> bool:
        return await self._safe_set(self.detail_key(case_id), case, self.entity_ttl_seconds)

    async def get_hot_cases(self, size: int) -> Optional[List[Dict[str, Any]]]:
        return await self._safe_get(self.hot_key(size))

    async def set_hot_cases(self, size: int, cases: List[Dict[str, Any]]) -> bool:
        return await self._safe_set(self.hot_key(size), cases, self.default_ttl_seconds)

    async def get_latest_cases(self, size: int) -> Optional[List[Dict[str, Any]]]:
        return await self._safe_get(self.latest_key(size))

    async def set_latest_cases(self, size: int, cases: List[Dict[str, Any]]) -> bool:
        return await self._safe_set(self.latest_key(size), cases, self.default_ttl_seconds)

    async def read_through(self, key: str, loader: Loader, ttl_seconds: Optional[int] = None) -> Optional[Any]:
        """Return the cached value for ``key``, loading and caching it on a miss.

        ``loader`` may be a plain callable or a coroutine function. ``None``
        results are not cached. Loader errors propagate to the caller.
        """
        cached = await self._safe_get(key)
        if cached is not None:
            return cached

        value = loader()
        if inspect.isawaitable(value):
            value = await value

        if value is not None:
            await self._safe_set(key, value, ttl_seconds or self.default_ttl_seconds)
        return value

    # Deletes

    async def _safe_delete(self, key: str) -> bool:
        try:
            await self.store.delete(key)
            return True
        except Exception as exc:
            self.logger.error("Cache delete error", key=key, error=str(exc))
            return False

    async def _safe_delete_pattern(self, pattern: str) -> bool:
        try:
            await self.store.delete_pattern(pattern)
            return True
        except Exception as exc:
            self.logger.error("Cache pattern delete error", pattern=pattern, error=str(exc))
            return False

    async def del_category_cache(self) -> bool:
        return await self._safe_delete(self.category_list_key())

    async def del_case_detail(self, case_id: Any) -> bool:
        return await self._safe_delete(self.detail_key(case_id))

    async def del_hot_cache(self) -> bool:
        """Delete every hot list variant."""
        return await self._safe_delete_pattern(self._pattern(PortalResource.HOT))

    async def del_latest_cache(self) -> bool:
        """Delete every latest list variant."""
        return await self._safe_delete_pattern(self._pattern(PortalResource.LATEST))

    async def del_all_detail_cache(self) -> bool:
        return await self._safe_delete_pattern(self._pattern(PortalResource.DETAIL))

    async def del_all_cache(self) -> bool:
        """Delete every portal cache family; each delete is attempted independently."""
        results = [
            await self.del_category_cache(),
            await self.del_hot_cache(),
            await self.del_latest_cache(),
            await self.del_all_detail_cache(),
        ]
        ok = all(results)
        if ok:
            self.logger.info("All portal caches cleared")
        else:
            self.logger.warning("Portal cache clear incomplete", failed=results.count(False))
        return ok
