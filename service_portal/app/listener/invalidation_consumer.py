"""
Invalidation message consumer for the Portal service.

Each inbound payload goes through channel, size, schema and staleness checks
before its action is mapped to portal cache deletes. Rejections are logged and
counted; nothing raises out of ``on_message``, so one bad payload never stops
the subscription loop. Applying the same message twice is harmless.
"""

import time
from typing import Callable, Iterable, List, Optional

from shared.errors import ErrorKind, MessageValidationError, OperationResult, UnsupportedMessageError
from shared.logging import bind_message, clear_context, get_logger
from shared.messages import InvalidationAction, InvalidationMessage, ResourceType
from shared.metrics import MetricsCollector

from ..cache.portal_cache_store import PortalCacheStore

DEFAULT_CHANNEL = "casecache:cache:update"


class InvalidationConsumer:
    """Applies invalidation messages to the portal cache."""

    def __init__(self,
                 cache: PortalCacheStore,
                 channel: str = DEFAULT_CHANNEL,
                 max_length: int = 10000,
                 max_age_seconds: int = 300,
                 resource_types: Iterable[ResourceType] = (ResourceType.CASE,),
                 metrics: Optional[MetricsCollector] = None,
                 clock: Callable[[], float] = time.time):
        self.cache = cache
        self.channel = channel
        self.max_length = max_length
        self.max_age_ms = max_age_seconds * 1000
        self.resource_types = frozenset(resource_types)
        self.metrics = metrics
        self.clock = clock
        self.logger = get_logger("cache_sync.invalidation_consumer")

    async def on_message(self, payload: Optional[str], channel: Optional[str]) -> OperationResult:
        """Handle one delivered ``(payload, channel)`` pair. Never raises."""
        try:
            return await self._process(payload, channel)
        except Exception as e:
            self.logger.error("Invalidation message handling failed", channel=channel, error=str(e))
            self._record("error")
            return OperationResult.failed(ErrorKind.OPERATION_FAILED, str(e))
        finally:
            clear_context()

    def _reject(self, outcome: str, detail: str, **fields) -> OperationResult:
        self.logger.warning("Invalidation message rejected", reason=detail, **fields)
        self._record(outcome)
        return OperationResult.failed(ErrorKind.MALFORMED_INPUT, detail)

    async def _process(self, payload: Optional[str], channel: Optional[str]) -> OperationResult:
        if channel != self.channel:
            return self._reject("wrong_channel", "unexpected channel", channel=channel)

        if payload is None or not payload.strip():
            return self._reject("empty", "empty payload")

        if len(payload) > self.max_length:
            return self._reject("oversized", "payload too large", length=len(payload))

        try:
            message = InvalidationMessage.from_json(payload)
        except UnsupportedMessageError as e:
            self.logger.info("Ignoring invalidation with unsupported values", **e.details)
            self._record("ignored")
            return OperationResult.failed(ErrorKind.IGNORED, "unsupported action or resource type")
        except MessageValidationError as e:
            return self._reject("malformed", "unparseable payload", error=e.message)

        bind_message(message.message_id)

        age_ms = message.age_ms(int(self.clock() * 1000))
        if age_ms is not None and age_ms > self.max_age_ms:
            return self._reject("stale", "stale message", age_ms=age_ms)

        if message.resource_type not in self.resource_types:
            self.logger.debug("Ignoring invalidation for unhandled resource type",
                              resource_type=message.resource_type.value)
            self._record("ignored")
            return OperationResult.failed(ErrorKind.IGNORED, "resource type not cached here")

        return await self._dispatch(message)

    async def _dispatch(self, message: InvalidationMessage) -> OperationResult:
        action = message.action

        try:
            if action == InvalidationAction.CREATE:
                results = [
                    await self.cache.del_category_cache(),
                    await self.cache.del_latest_cache(),
                ]
            elif action in (InvalidationAction.UPDATE, InvalidationAction.STATUS_UPDATE):
                case_id = self._case_id(message)
                results = [
                    await self.cache.del_case_detail(case_id),
                    await self.cache.del_hot_cache(),
                    await self.cache.del_latest_cache(),
                ]
            elif action == InvalidationAction.DELETE:
                case_id = self._case_id(message)
                results = [
                    await self.cache.del_case_detail(case_id),
                    await self.cache.del_category_cache(),
                    await self.cache.del_hot_cache(),
                    await self.cache.del_latest_cache(),
                ]
            elif action == InvalidationAction.BATCH_DELETE:
                # Ids are not parsed; a full flush covers every entry
                results = [await self.cache.del_all_cache()]
            else:
                self.logger.warning("Unhandled invalidation action", action=action.value)
                self._record("ignored")
                return OperationResult.failed(ErrorKind.IGNORED, f"unhandled action {action.value}")
        except (TypeError, ValueError) as e:
            return self._reject("bad_resource_id", "invalid resource id",
                                resource_id=message.resource_id, error=str(e))

        return self._applied(message, results)

    @staticmethod
    def _case_id(message: InvalidationMessage) -> int:
        return int(message.resource_id)

    def _applied(self, message: InvalidationMessage, results: List[bool]) -> OperationResult:
        if all(results):
            self.logger.info(
                "Invalidation applied",
                action=message.action.value,
                resource_id=message.resource_id,
                operator=message.operator
            )
            self._record("applied")
            return OperationResult.ok(message.action.value)

        self.logger.warning(
            "Invalidation partially applied",
            action=message.action.value,
            resource_id=message.resource_id,
            failed=results.count(False)
        )
        self._record("partial")
        return OperationResult.failed(ErrorKind.OPERATION_FAILED, "some cache deletes failed")

    def _record(self, outcome: str) -> None:
        if self.metrics:
            self.metrics.increment_counter("invalidation_messages_consumed_total", outcome=outcome)
