"""
Shared metrics configuration for Case Cache Sync.
"""

from prometheus_client import Counter, Gauge, Info, CollectorRegistry, start_http_server
from typing import Dict, Any, Optional
import threading

from shared.logging import get_logger


class MetricsCollector:
    """Centralized metrics collector for services."""

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry if registry is not None else CollectorRegistry()
        self.logger = get_logger(f"{service_name}.metrics")
        self._metrics: Dict[str, Any] = {}
        self._lock = threading.Lock()
        self._setup_metrics()

    def _setup_metrics(self):
        """Set up common metrics for the service."""

        self._metrics["service_info"] = Info(
            "service_info",
            "Service information",
            registry=self.registry
        )
        self._metrics["service_info"].info({
            "service": self.service_name,
            "version": "1.0.0"
        })

        self._metrics["cache_operations_total"] = Counter(
            "cache_operations_total",
            "Total guarded cache operations",
            ["operation", "result"],
            registry=self.registry
        )

        self._metrics["security_events_total"] = Counter(
            "security_events_total",
            "Total security events",
            ["event_type"],
            registry=self.registry
        )

        if self.service_name == "admin":
            self._setup_admin_metrics()
        elif self.service_name == "portal":
            self._setup_portal_metrics()

    def _setup_admin_metrics(self):
        """Set up publisher-side metrics."""
        self._metrics["rate_limit_rejections_total"] = Counter(
            "rate_limit_rejections_total",
            "Total operations rejected by rate limiting",
            ["window"],
            registry=self.registry
        )

        self._metrics["rate_limit_errors_total"] = Counter(
            "rate_limit_errors_total",
            "Total rate-limit checks that failed on storage errors",
            registry=self.registry
        )

        self._metrics["cache_backend_available"] = Gauge(
            "cache_backend_available",
            "Cache backend availability (1 available, 0 degraded)",
            registry=self.registry
        )
        self._metrics["cache_backend_available"].set(1)

        self._metrics["health_checks_total"] = Counter(
            "health_checks_total",
            "Total cache backend health probes",
            ["result"],
            registry=self.registry
        )

        self._metrics["availability_transitions_total"] = Counter(
            "availability_transitions_total",
            "Total cache backend availability transitions",
            ["to_state"],
            registry=self.registry
        )

        self._metrics["invalidation_messages_published_total"] = Counter(
            "invalidation_messages_published_total",
            "Total invalidation messages published",
            ["action", "result"],
            registry=self.registry
        )

    def _setup_portal_metrics(self):
        """Set up consumer-side metrics."""
        self._metrics["invalidation_messages_consumed_total"] = Counter(
            "invalidation_messages_consumed_total",
            "Total invalidation messages received",
            ["outcome"],
            registry=self.registry
        )

    def start_metrics_server(self, port: int = 9090):
        """Start the Prometheus metrics server."""
        start_http_server(port, registry=self.registry)

    def increment_counter(self, metric_name: str, **labels):
        """Increment a counter metric."""
        metric = self._metrics.get(metric_name)
        if metric is None:
            return
        try:
            with self._lock:
                if labels:
                    metric.labels(**labels).inc()
                else:
                    metric.inc()
        except Exception as exc:
            self.logger.debug("Failed to record counter", metric=metric_name, error=str(exc))

    def set_gauge(self, metric_name: str, value: float, **labels):
        """Set a gauge metric value."""
        metric = self._metrics.get(metric_name)
        if metric is None:
            return
        try:
            with self._lock:
                if labels:
                    metric.labels(**labels).set(value)
                else:
                    metric.set(value)
        except Exception as exc:
            self.logger.debug("Failed to record gauge", metric=metric_name, error=str(exc))

    def sample(self, metric_name: str, **labels) -> Optional[float]:
        """Read the current value of a metric sample from this collector's registry."""
        return self.registry.get_sample_value(metric_name, labels or None)


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get a metrics collector for a service."""
    return MetricsCollector(service_name, registry)
