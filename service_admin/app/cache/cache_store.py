"""
Admin-side case cache.

Read paths are plain pass-throughs to the key-value store. Mutation paths
(``clear_for_*``) are permission-checked and rate-limited, delete the admin
keys affected by the mutation, then publish one invalidation message so every
portal instance can drop its own copies. A cache failure never propagates to
the caller: the data mutation has already committed.
"""

from typing import Any, Dict, List, Optional, Sequence

from shared.errors import ErrorKind, OperationResult, SerializationError
from shared.keyspace import DEFAULT_NAMESPACE, AdminResource, Role, build_key, build_pattern
from shared.kv_store import KeyValueStore
from shared.logging import bind_operator, get_logger
from shared.messages import InvalidationAction, InvalidationMessage, ResourceType
from shared.metrics import MetricsCollector

from ..monitoring.failure_monitor import FailureMonitor
from ..security.guard import Operation, SecurityEventType, SecurityGuard

DEFAULT_CHANNEL = "casecache:cache:update"


class CacheStore:
    """Admin cache entries and the invalidation publisher."""

    def __init__(self,
                 store: KeyValueStore,
                 guard: SecurityGuard,
                 monitor: FailureMonitor,
                 namespace: str = DEFAULT_NAMESPACE,
                 channel: str = DEFAULT_CHANNEL,
                 default_ttl_seconds: int = 86400,
                 entity_ttl_seconds: int = 3600,
                 metrics: Optional[MetricsCollector] = None):
        self.store = store
        self.guard = guard
        self.monitor = monitor
        self.namespace = namespace
        self.channel = channel
        self.default_ttl_seconds = default_ttl_seconds
        self.entity_ttl_seconds = entity_ttl_seconds
        self.metrics = metrics
        self.logger = get_logger("cache_sync.admin_cache")

    # Keys

    def _key(self, resource_kind: str, *params: Any) -> str:
        return build_key(Role.ADMIN, resource_kind, *params, namespace=self.namespace)

    def _pattern(self, resource_kind: str) -> str:
        return build_pattern(Role.ADMIN, resource_kind, namespace=self.namespace)

    def category_key(self, category_id: Any) -> str:
        return self._key(AdminResource.CATEGORY, category_id)

    def category_list_key(self) -> str:
        return self._key(AdminResource.CATEGORY_LIST)

    def case_key(self, case_id: Any) -> str:
        return self._key(AdminResource.DATA, case_id)

    def case_list_key(self, page: Any, size: Any) -> str:
        return self._key(AdminResource.DATA_LIST, page, size)

    def hot_key(self) -> str:
        return self._key(AdminResource.DATA_HOT)

    def latest_key(self) -> str:
        return self._key(AdminResource.DATA_LATEST)

    # Read paths

    async def _safe_get(self, key: str) -> Optional[Any]:
        """Safely get cached data, handling errors."""
        try:
            return await self.store.get(key)
        except Exception as exc:
            self.monitor.report_failure(exc, f"get:{key}")
            return None

    async def _safe_set(self, key: str, value: Any, ttl_seconds: int) -> bool:
        try:
            await self.store.set(key, value, ttl_seconds)
            return True
        except Exception as exc:
            self.monitor.report_failure(exc, f"set:{key}")
            return False

    async def _safe_delete(self, key: str) -> bool:
        try:
            await self.store.delete(key)
            return True
        except Exception as exc:
            self.monitor.report_failure(exc, f"delete:{key}")
            return False

    async def get_category(self, category_id: Any) -> Optional[Any]:
        return await self._safe_get(self.category_key(category_id))

    async def set_category(self, category_id: Any, category: Any) -> bool:
        return await self._safe_set(self.category_key(category_id), category, self.default_ttl_seconds)

    async def delete_category(self, category_id: Any) -> bool:
        return await self._safe_delete(self.category_key(category_id))

    async def get_category_list(self) -> Optional[List[Any]]:
        return await self._safe_get(self.category_list_key())

    async def set_category_list(self, categories: List[Any]) -> bool:
        return await self._safe_set(self.category_list_key(), categories, self.default_ttl_seconds)

    async def get_case(self, case_id: Any) -> Optional[Dict[str, Any]]:
        return await self._safe_get(self.case_key(case_id))

    async def set_case(self, case_id: Any, case: Dict[str, Any]) -> bool:
        return await self._safe_set(self.case_key(case_id), case, self.entity_ttl_seconds)

    async def delete_case(self, case_id: Any) -> bool:
        return await self._safe_delete(self.case_key(case_id))

    async def get_case_list(self, page: Any, size: Any) -> Optional[Any]:
        return await self._safe_get(self.case_list_key(page, size))

    async def set_case_list(self, page: Any, size: Any, cases: Any) -> bool:
        return await self._safe_set(self.case_list_key(page, size), cases, self.default_ttl_seconds)

    async def get_hot_cases(self) -> Optional[List[Any]]:
        return await self._safe_get(self.hot_key())

    async def set_hot_cases(self, cases: List[Any]) -> bool:
        return await self._safe_set(self.hot_key(), cases, self.default_ttl_seconds)

    async def get_latest_cases(self) -> Optional[List[Any]]:
        return await self._safe_get(self.latest_key())

    async def set_latest_cases(self, cases: List[Any]) -> bool:
        return await self._safe_set(self.latest_key(), cases, self.default_ttl_seconds)

    # Mutation paths

    async def clear_for_create(self, case_id: Any, operator: Optional[str]) -> OperationResult:
        """A new case changes category counts and the latest list."""
        return await self._clear(
            Operation.CASE_CREATE, InvalidationAction.CREATE, case_id, operator,
            keys=[self.category_list_key(), self.latest_key()]
        )

    async def clear_for_update(self, case_id: Any, operator: Optional[str]) -> OperationResult:
        return await self._clear(
            Operation.CASE_UPDATE, InvalidationAction.UPDATE, case_id, operator,
            keys=[self.case_key(case_id), self.hot_key(), self.latest_key()],
            patterns=[self._pattern(AdminResource.DATA_LIST)]
        )

    async def clear_for_delete(self, case_id: Any, operator: Optional[str]) -> OperationResult:
        return await self._clear(
            Operation.CASE_DELETE, InvalidationAction.DELETE, case_id, operator,
            keys=[self.case_key(case_id), self.category_list_key(), self.hot_key(), self.latest_key()],
            patterns=[self._pattern(AdminResource.DATA_LIST)]
        )

    async def clear_for_batch_delete(self, case_ids: Sequence[Any], operator: Optional[str]) -> OperationResult:
        """Drop every deleted case plus all list caches; one message for the batch."""
        ids = list(case_ids)
        return await self._clear(
            Operation.CASE_BATCH_DELETE, InvalidationAction.BATCH_DELETE, ids, operator,
            keys=[self.case_key(case_id) for case_id in ids] + [self.category_list_key(), self.hot_key(), self.latest_key()],
            patterns=[self._pattern(AdminResource.DATA_LIST)]
        )

    async def clear_for_status_update(self, case_id: Any, operator: Optional[str]) -> OperationResult:
        return await self._clear(
            Operation.CASE_STATUS_UPDATE, InvalidationAction.STATUS_UPDATE, case_id, operator,
            keys=[self.case_key(case_id), self.hot_key(), self.latest_key()],
            patterns=[self._pattern(AdminResource.DATA_LIST)]
        )

    async def clear_list_caches(self, operator: Optional[str]) -> OperationResult:
        """Drop every admin list cache without notifying portals."""
        if not await self._authorize(operator, Operation.CASE_UPDATE):
            return OperationResult.failed(ErrorKind.POLICY_DENIED, "list cache clear denied")

        result = await self._delete_all(
            keys=[self.category_list_key(), self.hot_key(), self.latest_key()],
            patterns=[self._pattern(AdminResource.DATA_LIST)]
        )
        self.logger.info("Admin list caches cleared", operator=operator, success=result.success)
        return result

    async def _authorize(self, operator: Optional[str], operation: str) -> bool:
        if not await self.guard.check_permission(operator, operation):
            self.guard.log_security_event(
                operator, operation, SecurityEventType.PERMISSION_DENIED,
                "Operator is not permitted to perform this operation"
            )
            return False

        if not await self.guard.check_rate_limit(operator, operation):
            description = (
                "Operation rate limit exceeded" if self.monitor.is_available()
                else "Rate limit not verifiable while cache backend is unavailable"
            )
            self.guard.log_security_event(
                operator, operation, SecurityEventType.RATE_LIMIT_EXCEEDED, description
            )
            return False

        return True

    async def _clear(self,
                     operation: str,
                     action: InvalidationAction,
                     resource_id: Any,
                     operator: Optional[str],
                     keys: List[str],
                     patterns: Optional[List[str]] = None) -> OperationResult:
        bind_operator(operator)

        if not await self._authorize(operator, operation):
            return OperationResult.failed(ErrorKind.POLICY_DENIED, f"{operation} denied")

        patterns = patterns or []
        deleted = await self._delete_all(keys, patterns)

        self.logger.info(
            "Admin cache cleared",
            operation=operation,
            resource_id=str(resource_id),
            keys=len(keys),
            patterns=len(patterns),
            success=deleted.success
        )

        published = await self.publish_invalidation(
            action, ResourceType.CASE, resource_id, keys + patterns, operator
        )
        if not deleted:
            return deleted
        return published

    async def _delete_all(self, keys: List[str], patterns: List[str]) -> OperationResult:
        first_failure: Optional[OperationResult] = None

        for key in keys:
            result = await self.monitor.safe_operation(
                lambda k=key: self.store.delete(k), f"delete:{key}"
            )
            if not result and first_failure is None:
                first_failure = result

        for pattern in patterns:
            result = await self.monitor.safe_operation(
                lambda p=pattern: self.store.delete_pattern(p), f"delete_pattern:{pattern}"
            )
            if not result and first_failure is None:
                first_failure = result

        return first_failure if first_failure is not None else OperationResult.ok()

    async def publish_invalidation(self,
                                   action: InvalidationAction,
                                   resource_type: ResourceType,
                                   resource_id: Any,
                                   cache_keys: List[str],
                                   operator: Optional[str]) -> OperationResult:
        """Publish one invalidation message through the guarded pipeline."""
        if not await self._authorize(operator, Operation.MESSAGE_PUBLISH):
            self._record_publish(action, "denied")
            return OperationResult.failed(ErrorKind.POLICY_DENIED, "message publish denied")

        message = InvalidationMessage.create(
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            cache_keys=cache_keys,
            operator=operator
        )

        try:
            payload = message.to_json()
        except SerializationError as e:
            self.logger.error("Invalidation message serialization failed", error=str(e))
            self.guard.log_security_event(
                operator, Operation.MESSAGE_PUBLISH, SecurityEventType.OPERATION_FAILED,
                f"Message serialization failed: {e}"
            )
            self._record_publish(action, "serialization_failed")
            return OperationResult.failed(ErrorKind.SERIALIZATION_FAILED, str(e))

        if not self.guard.validate_message_source(payload):
            self.guard.log_security_event(
                operator, Operation.MESSAGE_PUBLISH, SecurityEventType.INVALID_MESSAGE,
                "Outgoing invalidation message failed shape validation"
            )
            self._record_publish(action, "invalid")
            return OperationResult.failed(ErrorKind.MALFORMED_INPUT, "invalid message shape")

        result = await self.monitor.safe_message_publish(self.channel, payload)
        if result:
            self.logger.info(
                "Invalidation message published",
                action=action.value,
                resource_id=message.resource_id,
                channel=self.channel
            )
        else:
            self.logger.warning(
                "Invalidation message not published",
                action=action.value,
                resource_id=message.resource_id,
                error_kind=result.error_kind.value if result.error_kind else None
            )
        self._record_publish(action, "ok" if result else "failed")
        return result

    def _record_publish(self, action: InvalidationAction, result: str) -> None:
        if self.metrics:
            self.metrics.increment_counter(
                "invalidation_messages_published_total", action=action.value, result=result
            )
