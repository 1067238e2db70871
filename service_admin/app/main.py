"""
Admin service for Case Cache Sync.
"""

from typing import Dict, Any, Optional

from shared.availability import AvailabilityState
from shared.base_service import BaseService
from shared.config import ServiceConfig
from shared.kv_store import RedisKeyValueStore
from shared.metrics import MetricsCollector
from shared.retry import RetryConfig

from .cache.cache_store import CacheStore
from .cache.statistics import CacheStatistics
from .monitoring.failure_monitor import FailureMonitor
from .security.guard import PermissionPolicy, SecurityGuard


class AdminService(BaseService):
    """Admin service implementation."""

    def __init__(self,
                 config: Optional[ServiceConfig] = None,
                 store: Optional[RedisKeyValueStore] = None,
                 permission_policy: Optional[PermissionPolicy] = None,
                 metrics: Optional[MetricsCollector] = None):
        super().__init__("admin", config, metrics)

        self.store = store if store is not None else RedisKeyValueStore(self.config.redis_url)
        namespace = self.config.cache_namespace

        self.availability = AvailabilityState()
        self.guard = SecurityGuard(
            self.store,
            namespace=namespace,
            per_minute=self.config.rate_limit_per_minute,
            per_hour=self.config.rate_limit_per_hour,
            availability=self.availability,
            permission_policy=permission_policy,
            metrics=self.metrics
        )
        self.monitor = FailureMonitor(
            self.store,
            self.availability,
            self.guard,
            namespace=namespace,
            health_check_interval=self.config.health_check_interval_seconds,
            recovery_check_interval=self.config.recovery_check_interval_seconds,
            probe_ttl_seconds=self.config.health_probe_ttl_seconds,
            retry_config=RetryConfig.fixed(
                self.config.recovery_max_attempts,
                self.config.recovery_retry_delay_seconds
            ),
            shutdown_timeout=self.config.shutdown_timeout_seconds,
            metrics=self.metrics
        )
        self.cache = CacheStore(
            self.store,
            self.guard,
            self.monitor,
            namespace=namespace,
            channel=self.config.invalidation_channel,
            default_ttl_seconds=self.config.default_ttl_seconds,
            entity_ttl_seconds=self.config.entity_ttl_seconds,
            metrics=self.metrics
        )
        self.statistics = CacheStatistics(self.store, namespace=namespace)

    async def _check_dependencies(self) -> Dict[str, str]:
        """Report cache backend availability as seen by the failure monitor."""
        return {"redis": "ok" if self.monitor.is_available() else "degraded"}

    async def cache_status(self) -> Dict[str, Any]:
        """Health report plus key statistics."""
        return {
            "health": self.monitor.health_report(),
            "statistics": await self.statistics.collect()
        }

    async def start(self):
        """Start admin service components."""
        await super().start()
        await self.store.start()
        await self.monitor.start()

        self.logger.info("Admin service components started")

    async def stop(self):
        """Stop admin service components."""
        await self.monitor.stop()
        await self.store.close()

        self.logger.info("Admin service components stopped")


def create_service() -> AdminService:
    """Create admin service from the environment."""
    return AdminService()


def main():
    create_service().run()


if __name__ == "__main__":
    main()
