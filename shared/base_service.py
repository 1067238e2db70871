"""
Base service class for Case Cache Sync services.
"""

import asyncio
import signal
import time
from typing import Dict, Any, Optional

from shared.config import ServiceConfig, get_config
from shared.errors import ConfigurationError
from shared.logging import configure_logging, get_logger
from shared.metrics import MetricsCollector, get_metrics_collector


class BaseService:
    """Base service class with common functionality."""

    def __init__(self, service_name: str, config: Optional[ServiceConfig] = None,
                 metrics: Optional[MetricsCollector] = None):
        self.service_name = service_name
        self.config = config if config is not None else get_config(service_name)
        self._validate_config()

        # Configure logging
        configure_logging(service_name, self.config.log_level)
        self.logger = get_logger(service_name)
        self.metrics = metrics if metrics is not None else get_metrics_collector(service_name)

        self._start_time: Optional[float] = None
        self._stop_event: Optional[asyncio.Event] = None

    def _validate_config(self):
        """Reject configurations the protocol cannot run with."""
        if not self.config.cache_namespace or not self.config.cache_namespace.strip():
            raise ConfigurationError("cache_namespace must not be empty")
        if ":" in self.config.cache_namespace:
            raise ConfigurationError(
                "cache_namespace must not contain the key delimiter",
                {"cache_namespace": self.config.cache_namespace}
            )
        if not self.config.invalidation_channel:
            raise ConfigurationError("invalidation_channel must not be empty")
        if self.config.rate_limit_per_minute < 1 or self.config.rate_limit_per_hour < 1:
            raise ConfigurationError(
                "rate limits must be positive",
                {
                    "rate_limit_per_minute": self.config.rate_limit_per_minute,
                    "rate_limit_per_hour": self.config.rate_limit_per_hour
                }
            )

    async def start(self):
        """Start service components. Override in subclasses."""
        self._start_time = time.time()

    async def stop(self):
        """Stop service components. Override in subclasses."""

    async def health(self) -> Dict[str, Any]:
        """Service health summary."""
        dependencies = await self._check_dependencies()
        status = "ok" if all(v == "ok" for v in dependencies.values()) else "degraded"
        return {
            "service": self.service_name,
            "status": status,
            "uptime_seconds": self._get_uptime(),
            "dependencies": dependencies,
            "version": "1.0.0"
        }

    async def _check_dependencies(self) -> Dict[str, str]:
        """Check service dependencies. Override in subclasses."""
        return {}

    def _get_uptime(self) -> float:
        """Get service uptime in seconds."""
        if self._start_time is None:
            return 0.0
        return time.time() - self._start_time

    def request_shutdown(self):
        if self._stop_event is not None:
            self._stop_event.set()

    async def serve(self):
        """Start, block until a shutdown signal arrives, then stop."""
        self._stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.request_shutdown)
            except NotImplementedError:
                # Signal handlers are unavailable on some platforms
                pass

        if self.config.metrics_port:
            self.metrics.start_metrics_server(self.config.metrics_port)

        await self.start()
        self.logger.info("Service started", env=self.config.env)
        try:
            await self._stop_event.wait()
        finally:
            await self.stop()
            self.logger.info("Service stopped")

    def run(self):
        """Run the service."""
        asyncio.run(self.serve())
