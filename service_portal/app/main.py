"""
Portal service for Case Cache Sync.
"""

from typing import Dict, Optional

from shared.base_service import BaseService
from shared.config import ServiceConfig
from shared.kv_store import RedisKeyValueStore
from shared.metrics import MetricsCollector

from .cache.portal_cache_store import PortalCacheStore
from .listener.invalidation_consumer import InvalidationConsumer
from .pubsub.subscriber import InvalidationSubscriber
from .startup import run_startup_cache_clear


class PortalService(BaseService):
    """Portal service implementation."""

    def __init__(self,
                 config: Optional[ServiceConfig] = None,
                 store: Optional[RedisKeyValueStore] = None,
                 metrics: Optional[MetricsCollector] = None):
        super().__init__("portal", config, metrics)

        self.store = store if store is not None else RedisKeyValueStore(self.config.redis_url)
        self.cache = PortalCacheStore(
            self.store,
            namespace=self.config.cache_namespace,
            default_ttl_seconds=self.config.default_ttl_seconds,
            entity_ttl_seconds=self.config.entity_ttl_seconds
        )
        self.consumer = InvalidationConsumer(
            self.cache,
            channel=self.config.invalidation_channel,
            max_length=self.config.message_max_length,
            max_age_seconds=self.config.message_max_age_seconds,
            metrics=self.metrics
        )
        self.subscriber: Optional[InvalidationSubscriber] = None

    async def _check_dependencies(self) -> Dict[str, str]:
        dependencies = {}
        try:
            dependencies["redis"] = "ok" if await self.store.ping() else "error"
        except Exception as e:
            self.logger.error("Redis health check failed", error=str(e))
            dependencies["redis"] = "error"

        dependencies["subscriber"] = "ok" if self.subscriber and self.subscriber.running else "stopped"
        return dependencies

    async def start(self):
        """Start portal service components."""
        await super().start()
        await self.store.start()

        if self.config.clear_on_startup:
            await run_startup_cache_clear(self.cache, self.config.clear_types)

        self.subscriber = InvalidationSubscriber(
            self.store.client,
            self.config.invalidation_channel,
            self.consumer.on_message
        )
        await self.subscriber.start()

        self.logger.info("Portal service components started")

    async def stop(self):
        """Stop portal service components."""
        if self.subscriber:
            await self.subscriber.stop()
        await self.store.close()

        self.logger.info("Portal service components stopped")


def create_service() -> PortalService:
    """Create portal service from the environment."""
    return PortalService()


def main():
    create_service().run()


if __name__ == "__main__":
    main()
