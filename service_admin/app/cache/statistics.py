"""
Cache key statistics for operators.
"""

import time
from typing import Any, Callable, Dict

from shared.keyspace import (
    DEFAULT_NAMESPACE,
    AdminResource,
    PortalResource,
    WILDCARD,
    Role,
    build_key,
    build_pattern,
    rate_limit_pattern,
)
from shared.kv_store import KeyValueStore
from shared.logging import get_logger


class CacheStatistics:
    """Counts live cache keys per family."""

    def __init__(self, store: KeyValueStore, namespace: str = DEFAULT_NAMESPACE,
                 clock: Callable[[], float] = time.time):
        self.store = store
        self.namespace = namespace
        self.clock = clock
        self.logger = get_logger("cache_sync.statistics")

    def _prefix(self, role: Role, resource_kind: str, suffix: str = WILDCARD) -> str:
        return build_key(role, resource_kind, namespace=self.namespace) + suffix

    def _families(self) -> Dict[str, Dict[str, str]]:
        ns = self.namespace
        # Entity ids are numeric; list keys share the same prefix
        return {
            "admin": {
                "category": self._prefix(Role.ADMIN, AdminResource.CATEGORY, ":[0-9]*"),
                "data": self._prefix(Role.ADMIN, AdminResource.DATA, ":[0-9]*"),
                "hot": self._prefix(Role.ADMIN, AdminResource.DATA_HOT),
                "latest": self._prefix(Role.ADMIN, AdminResource.DATA_LATEST),
            },
            "portal": {
                "category": self._prefix(Role.PORTAL, PortalResource.CATEGORY_LIST),
                "detail": build_pattern(Role.PORTAL, PortalResource.DETAIL, namespace=ns),
                "hot": build_pattern(Role.PORTAL, PortalResource.HOT, namespace=ns),
                "latest": build_pattern(Role.PORTAL, PortalResource.LATEST, namespace=ns),
            },
        }

    async def _count(self, pattern: str) -> int:
        try:
            return await self.store.count_keys(pattern)
        except Exception as e:
            self.logger.error("Failed to count cache keys", pattern=pattern, error=str(e))
            return 0

    async def collect(self) -> Dict[str, Any]:
        """Snapshot of key counts per cache family."""
        stats: Dict[str, Any] = {}
        for role, families in self._families().items():
            stats[role] = {name: await self._count(pattern) for name, pattern in families.items()}

        stats["rate_limit"] = {"active": await self._count(rate_limit_pattern(self.namespace))}
        stats["timestamp"] = int(self.clock() * 1000)
        return stats
