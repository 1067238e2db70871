"""
Security guard for cache-mutating admin operations.

Authorizes operators, applies fixed-window rate limits stored in the cache
backend, shape-checks outgoing invalidation payloads and emits audit events.
No method raises past its boundary.
"""

import time
from typing import Callable, Optional, Protocol

from shared.availability import AvailabilityState
from shared.keyspace import DEFAULT_NAMESPACE, build_rate_limit_key
from shared.kv_store import KeyValueStore
from shared.logging import get_logger
from shared.metrics import MetricsCollector


class Operation:
    """Guarded operation names."""
    CASE_CREATE = "CASE_CREATE"
    CASE_UPDATE = "CASE_UPDATE"
    CASE_DELETE = "CASE_DELETE"
    CASE_BATCH_DELETE = "CASE_BATCH_DELETE"
    CASE_STATUS_UPDATE = "CASE_STATUS_UPDATE"
    MESSAGE_PUBLISH = "MESSAGE_PUBLISH"


class SecurityEventType:
    """Audit event types."""
    PERMISSION_DENIED = "PERMISSION_DENIED"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    INVALID_MESSAGE = "INVALID_MESSAGE"
    OPERATION_FAILED = "OPERATION_FAILED"
    SYSTEM_EVENT = "SYSTEM_EVENT"
    ADMIN_OPERATION = "ADMIN_OPERATION"


MINUTE_WINDOW = "minute"
HOUR_WINDOW = "hour"
MINUTE_MILLIS = 60 * 1000
HOUR_MILLIS = 60 * 60 * 1000

REQUIRED_MESSAGE_MARKERS = ("action", "resourceType", "timestamp")


class PermissionPolicy(Protocol):
    """Authorization decision point for guarded operations."""

    async def is_permitted(self, operator_id: str, operation: str) -> bool:
        ...


class AllowIdentifiedOperators:
    """Permits every operation for any identified operator."""

    async def is_permitted(self, operator_id: str, operation: str) -> bool:
        return True


class SecurityGuard:
    """Permission, rate-limit and message-shape checks for the admin publisher."""

    def __init__(self,
                 store: KeyValueStore,
                 namespace: str = DEFAULT_NAMESPACE,
                 per_minute: int = 60,
                 per_hour: int = 1000,
                 availability: Optional[AvailabilityState] = None,
                 permission_policy: Optional[PermissionPolicy] = None,
                 metrics: Optional[MetricsCollector] = None,
                 clock: Callable[[], float] = time.time):
        self.store = store
        self.namespace = namespace
        self.per_minute = per_minute
        self.per_hour = per_hour
        self.availability = availability
        self.permission_policy = permission_policy or AllowIdentifiedOperators()
        self.metrics = metrics
        self.clock = clock
        self.logger = get_logger("cache_sync.security_guard")
        self.audit_logger = get_logger("cache_sync.security")

    async def check_permission(self, operator_id: Optional[str], operation: str) -> bool:
        """Return True when ``operator_id`` may perform ``operation``."""
        if not isinstance(operator_id, str) or not operator_id.strip():
            self.logger.warning("Permission check without operator", operation=operation)
            return False

        try:
            return bool(await self.permission_policy.is_permitted(operator_id, operation))
        except Exception as e:
            self.logger.error(
                "Permission policy failed",
                operator=operator_id,
                operation=operation,
                error=str(e)
            )
            return False

    async def check_rate_limit(self, operator_id: Optional[str], operation: str) -> bool:
        """Count this call against the minute and hour windows.

        Returns False once either window is at its cap; a rejected call is not
        counted. Storage errors fail open while the backend is considered
        available and fail closed once it has been marked unavailable.
        """
        if self.availability is not None and not self.availability.is_available():
            self.logger.warning(
                "Rate limit check skipped, cache backend unavailable",
                operator=operator_id,
                operation=operation
            )
            self._record_rejection("backend_unavailable")
            return False

        now_ms = int(self.clock() * 1000)
        minute_key = build_rate_limit_key(
            operator_id, operation, MINUTE_WINDOW, now_ms // MINUTE_MILLIS, namespace=self.namespace
        )
        hour_key = build_rate_limit_key(
            operator_id, operation, HOUR_WINDOW, now_ms // HOUR_MILLIS, namespace=self.namespace
        )

        try:
            minute_count = self._as_count(await self.store.get(minute_key))
            if minute_count >= self.per_minute:
                self.logger.warning(
                    "Minute rate limit exceeded",
                    operator=operator_id,
                    operation=operation,
                    current_count=minute_count,
                    limit=self.per_minute
                )
                self._record_rejection(MINUTE_WINDOW)
                return False

            hour_count = self._as_count(await self.store.get(hour_key))
            if hour_count >= self.per_hour:
                self.logger.warning(
                    "Hour rate limit exceeded",
                    operator=operator_id,
                    operation=operation,
                    current_count=hour_count,
                    limit=self.per_hour
                )
                self._record_rejection(HOUR_WINDOW)
                return False

            await self.store.set(minute_key, minute_count + 1, 60)
            await self.store.set(hour_key, hour_count + 1, 3600)
            return True

        except Exception as e:
            self.logger.error(
                "Rate limit check error, allowing operation",
                operator=operator_id,
                operation=operation,
                error=str(e)
            )
            if self.metrics:
                self.metrics.increment_counter("rate_limit_errors_total")
            return True

    def validate_message_source(self, raw_message: Optional[str]) -> bool:
        """Structural check of a serialized invalidation message.

        Only confirms the payload looks like an invalidation message. It does
        not authenticate the publisher.
        """
        if not isinstance(raw_message, str) or not raw_message.strip():
            return False
        return all(marker in raw_message for marker in REQUIRED_MESSAGE_MARKERS)

    def log_security_event(self, operator_id: Optional[str], operation: str,
                           event_type: str, description: str) -> None:
        """Emit an audit event. Never raises."""
        try:
            self.audit_logger.warning(
                "Security event",
                event_type=event_type,
                operator=operator_id,
                operation=operation,
                description=description,
                timestamp=int(self.clock() * 1000)
            )
            if self.metrics:
                self.metrics.increment_counter("security_events_total", event_type=event_type)
        except Exception:
            # Audit emission must not affect the caller
            pass

    def _record_rejection(self, window: str) -> None:
        if self.metrics:
            self.metrics.increment_counter("rate_limit_rejections_total", window=window)

    @staticmethod
    def _as_count(value) -> int:
        if value is None:
            return 0
        return int(value)
