"""
Redis key-value backend and publish transport for Case Cache Sync.

``RedisKeyValueStore`` is a thin JSON-encoding layer over ``redis.asyncio``.
It does not swallow backend errors: callers decide whether a failure degrades
(failure monitor), fails soft (portal deletes) or fails open (rate limiting).
"""

import json
from typing import Any, List, Optional, Protocol

import redis.asyncio as redis

from shared.errors import BackendUnavailableError
from shared.logging import get_logger


class KeyValueStore(Protocol):
    """Backend operations the invalidation protocol relies on."""

    async def get(self, key: str) -> Optional[Any]:
        ...

    async def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        ...

    async def delete(self, key: str) -> int:
        ...

    async def delete_pattern(self, pattern: str) -> int:
        ...

    async def count_keys(self, pattern: str) -> int:
        ...

    async def publish(self, channel: str, payload: str) -> int:
        ...

    async def ping(self) -> bool:
        ...

    async def close(self) -> None:
        ...


class RedisKeyValueStore:
    """JSON key-value store and pub/sub publisher backed by Redis."""

    SCAN_CHUNK_SIZE = 500

    def __init__(self, redis_url: Optional[str] = None, redis_client: Optional[redis.Redis] = None):
        if redis_url is None and redis_client is None:
            raise ValueError("redis_url or redis_client is required")
        self.redis_url = redis_url
        self.logger = get_logger("cache_sync.kv_store")
        self._redis: Optional[redis.Redis] = redis_client

    async def start(self) -> None:
        """Connect and verify the backend."""
        if self._redis is None:
            self._redis = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                health_check_interval=30
            )

        try:
            await self._redis.ping()
        except redis.RedisError as e:
            self.logger.error("Failed to connect to Redis", error=str(e))
            raise BackendUnavailableError(str(e), {"redis_url": self.redis_url})

        self.logger.info("Redis key-value store started")

    @property
    def client(self) -> redis.Redis:
        if self._redis is None:
            raise BackendUnavailableError("Redis key-value store not started")
        return self._redis

    async def get(self, key: str) -> Optional[Any]:
        raw = await self.client.get(key)
        if raw is None:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        try:
            return json.loads(raw)
        except ValueError:
            return raw

    async def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        payload = json.dumps(value)
        if ttl_seconds:
            await self.client.setex(key, ttl_seconds, payload)
        else:
            await self.client.set(key, payload)

    async def delete(self, key: str) -> int:
        return int(await self.client.delete(key) or 0)

    async def delete_pattern(self, pattern: str) -> int:
        """Delete keys matching a glob pattern using SCAN + batched UNLINK."""
        deleted = 0
        chunk: List[str] = []
        async for key in self.client.scan_iter(match=pattern):
            chunk.append(key)
            if len(chunk) >= self.SCAN_CHUNK_SIZE:
                deleted += await self._unlink(chunk)
                chunk = []
        if chunk:
            deleted += await self._unlink(chunk)

        if deleted:
            self.logger.debug("Deleted keys by pattern", pattern=pattern, count=deleted)
        return deleted

    async def _unlink(self, keys: List[str]) -> int:
        return int(await self.client.unlink(*keys) or 0)

    async def count_keys(self, pattern: str) -> int:
        count = 0
        async for _ in self.client.scan_iter(match=pattern):
            count += 1
        return count

    async def publish(self, channel: str, payload: str) -> int:
        """Publish a payload; returns the number of receiving subscribers."""
        return int(await self.client.publish(channel, payload) or 0)

    async def ping(self) -> bool:
        return bool(await self.client.ping())

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
            self.logger.info("Redis key-value store stopped")
