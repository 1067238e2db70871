"""
Cache backend failure monitor.

Keeps the shared ``AvailabilityState`` current through two periodic tasks:

- health check (every ``health_check_interval`` seconds): writes a short-TTL
  probe key and reads it back
- recovery check (every ``recovery_check_interval`` seconds, only while the
  backend is unavailable): writes a probe key with bounded retries

Guarded operations that fail with a connection-like error flip the state to
unavailable immediately. Events are emitted on transitions only.
"""

import asyncio
import inspect
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, Set

from shared.availability import AvailabilityState
from shared.errors import ErrorKind, OperationResult, is_connection_error
from shared.keyspace import (
    DEFAULT_NAMESPACE,
    Role,
    build_health_probe_key,
    build_recovery_probe_key,
    role_pattern,
)
from shared.kv_store import KeyValueStore
from shared.logging import get_logger
from shared.metrics import MetricsCollector
from shared.retry import RetryConfig, RetryError, retry_on_exception

from ..security.guard import SecurityEventType

SYSTEM_OPERATOR = "SYSTEM"
HEALTH_PROBE_VALUE = "ok"
RECOVERY_PROBE_VALUE = "test"
RECOVERY_PROBE_TTL_SECONDS = 5


class SecurityEventSink(Protocol):
    def log_security_event(self, operator_id: Optional[str], operation: str,
                           event_type: str, description: str) -> None:
        ...


class FailureMonitor:
    """Health probing, degraded-mode gating and recovery for the cache backend."""

    def __init__(self,
                 store: KeyValueStore,
                 state: AvailabilityState,
                 event_sink: SecurityEventSink,
                 namespace: str = DEFAULT_NAMESPACE,
                 health_check_interval: float = 30.0,
                 recovery_check_interval: float = 60.0,
                 probe_ttl_seconds: int = 10,
                 retry_config: Optional[RetryConfig] = None,
                 shutdown_timeout: float = 10.0,
                 metrics: Optional[MetricsCollector] = None,
                 clock: Callable[[], float] = time.time,
                 sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep):
        self.store = store
        self.state = state
        self.event_sink = event_sink
        self.namespace = namespace
        self.health_check_interval = health_check_interval
        self.recovery_check_interval = recovery_check_interval
        self.probe_ttl_seconds = probe_ttl_seconds
        self.retry_config = retry_config or RetryConfig.fixed(3, 5.0)
        self.shutdown_timeout = shutdown_timeout
        self.metrics = metrics
        self.clock = clock
        self.logger = get_logger("cache_sync.failure_monitor")

        self._sleep = sleep
        self._recovery_listeners: List[Callable[[], Any]] = []
        self._tasks: List[asyncio.Task] = []
        self._listener_tasks: Set[asyncio.Future] = set()
        self._stop_event: Optional[asyncio.Event] = None

    # Lifecycle

    async def start(self) -> None:
        """Start the health-check and recovery-check loops."""
        if self._tasks:
            return

        self._stop_event = asyncio.Event()
        self._tasks = [
            asyncio.create_task(
                self._run_periodic("health_check", self.health_check_interval, self.check_health)
            ),
            asyncio.create_task(
                self._run_periodic("recovery_check", self.recovery_check_interval, self._recovery_tick)
            ),
        ]
        self.logger.info(
            "Failure monitor started",
            health_check_interval=self.health_check_interval,
            recovery_check_interval=self.recovery_check_interval
        )

    async def stop(self) -> None:
        """Stop scheduling ticks; cancel in-flight ticks after the grace period."""
        await self._cancel_listener_tasks()
        if not self._tasks:
            return

        self._stop_event.set()
        done, pending = await asyncio.wait(self._tasks, timeout=self.shutdown_timeout)
        if pending:
            self.logger.warning("Forcing cancellation of monitor tasks", pending=len(pending))
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

        self._tasks = []
        self.logger.info("Failure monitor stopped")

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    async def _run_periodic(self, name: str, interval: float,
                            tick: Callable[[], Awaitable[Any]]) -> None:
        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=interval)
                break
            except asyncio.TimeoutError:
                pass

            try:
                await tick()
            except Exception as e:
                self.logger.error("Monitor tick failed", task=name, error=str(e))

    async def _recovery_tick(self) -> None:
        if self.state.is_available():
            return
        await self.attempt_recovery()

    # Probes

    async def check_health(self) -> bool:
        """Run one health probe; return True when the backend answered correctly."""
        now_ms = int(self.clock() * 1000)
        probe_key = build_health_probe_key(now_ms, namespace=self.namespace)

        try:
            await self.store.set(probe_key, HEALTH_PROBE_VALUE, self.probe_ttl_seconds)
            healthy = await self.store.get(probe_key) == HEALTH_PROBE_VALUE

            if healthy:
                self._mark_available("Health check passed")
            else:
                self._mark_unavailable("Health check probe value mismatch")

            self.state.mark_checked(now_ms)
            self._record_health_check("ok" if healthy else "mismatch")
            return healthy

        except Exception as e:
            self.logger.error("Health check failed", error=str(e))
            self._record_health_check("error")
            self._mark_unavailable(f"Health check error: {e}")
            return False

    async def attempt_recovery(self) -> bool:
        """Probe the backend with bounded retries; mark available on success."""
        probe = retry_on_exception(
            exceptions=(Exception,),
            config=self.retry_config,
            sleep=self._sleep
        )(self._write_recovery_probe)

        try:
            await probe()
        except RetryError as e:
            self.logger.warning(
                "Recovery attempt failed",
                attempts=e.attempts,
                error=str(e.last_exception)
            )
            return False

        self._mark_available("Recovery probe succeeded")
        return True

    async def _write_recovery_probe(self) -> None:
        await self.store.set(
            build_recovery_probe_key(namespace=self.namespace),
            RECOVERY_PROBE_VALUE,
            RECOVERY_PROBE_TTL_SECONDS
        )

    # Guarded operations

    async def safe_operation(self, op: Callable[[], Any], label: str) -> OperationResult:
        """Run ``op`` unless the backend is unavailable. Never raises."""
        if not self.state.is_available():
            self.logger.debug("Skipping cache operation in degraded mode", operation=label)
            self._record_operation(label, "skipped")
            return OperationResult.failed(ErrorKind.DEGRADED, "cache backend unavailable")

        try:
            result = op()
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            kind = self.report_failure(e, label)
            self._record_operation(label, "error")
            return OperationResult.failed(kind, str(e))

        self._record_operation(label, "ok")
        return OperationResult.ok()

    async def safe_message_publish(self, channel: str, message: str) -> OperationResult:
        """Publish ``message`` on ``channel`` under the same contract as safe_operation."""
        return await self.safe_operation(
            lambda: self.store.publish(channel, message),
            f"publish:{channel}"
        )

    def report_failure(self, exc: BaseException, label: str) -> ErrorKind:
        """Classify a failed cache operation; connection errors degrade immediately."""
        if is_connection_error(exc):
            self.logger.error("Cache backend connection failure", operation=label, error=str(exc))
            self._mark_unavailable(f"Connection failure during {label}: {exc}")
            return ErrorKind.BACKEND_UNAVAILABLE

        self.logger.error("Cache operation failed", operation=label, error=str(exc))
        return ErrorKind.OPERATION_FAILED

    # Observability

    def is_available(self) -> bool:
        return self.state.is_available()

    def last_health_check_time(self) -> int:
        return self.state.last_check_time()

    def health_report(self) -> Dict[str, Any]:
        """Availability summary for operators."""
        snapshot = self.state.snapshot()
        return {
            "available": snapshot["available"],
            "status": "healthy" if snapshot["available"] else "degraded",
            "last_health_check_time": snapshot["last_check_time"],
            "running": self.running
        }

    def add_recovery_listener(self, callback: Callable[[], Any]) -> None:
        """Register a callback invoked when the backend comes back."""
        self._recovery_listeners.append(callback)

    # Manual escape hatch

    async def emergency_clear(self, operator: Optional[str]) -> OperationResult:
        """Delete every admin and portal cache key regardless of availability."""
        self.logger.warning("Emergency cache clear requested", operator=operator)
        try:
            deleted = 0
            for role in (Role.ADMIN, Role.PORTAL):
                deleted += await self.store.delete_pattern(role_pattern(role, namespace=self.namespace))
        except Exception as e:
            self.logger.error("Emergency cache clear failed", operator=operator, error=str(e))
            self.event_sink.log_security_event(
                operator, "EMERGENCY_CLEAR", SecurityEventType.OPERATION_FAILED,
                f"Emergency cache clear failed: {e}"
            )
            return OperationResult.failed(ErrorKind.OPERATION_FAILED, str(e))

        self.event_sink.log_security_event(
            operator, "EMERGENCY_CLEAR", SecurityEventType.ADMIN_OPERATION,
            f"Emergency cache clear removed {deleted} keys"
        )
        return OperationResult.ok(f"deleted {deleted} keys")

    # Transitions

    def _mark_available(self, reason: str) -> None:
        if not self.state.transition(True):
            return

        self.logger.info("Cache backend recovered", reason=reason)
        self._record_transition(True)
        self.event_sink.log_security_event(
            SYSTEM_OPERATOR, "REDIS_RECOVERY", SecurityEventType.SYSTEM_EVENT, reason
        )
        for callback in list(self._recovery_listeners):
            try:
                result = callback()
                if inspect.isawaitable(result):
                    task = asyncio.ensure_future(result)
                    self._listener_tasks.add(task)
                    task.add_done_callback(self._listener_done)
            except Exception as e:
                self.logger.error("Recovery listener failed", error=str(e))

    def _listener_done(self, task: asyncio.Future) -> None:
        self._listener_tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            self.logger.error("Recovery listener failed", error=str(error))

    async def _cancel_listener_tasks(self) -> None:
        pending = [task for task in self._listener_tasks if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._listener_tasks.clear()

    def _mark_unavailable(self, reason: str) -> None:
        if not self.state.transition(False):
            return

        self.logger.error("Cache backend unavailable, entering degraded mode", reason=reason)
        self._record_transition(False)
        self.event_sink.log_security_event(
            SYSTEM_OPERATOR, "REDIS_FAILURE", SecurityEventType.SYSTEM_EVENT, reason
        )

    def _record_transition(self, available: bool) -> None:
        if self.metrics:
            self.metrics.set_gauge("cache_backend_available", 1 if available else 0)
            self.metrics.increment_counter(
                "availability_transitions_total",
                to_state="available" if available else "unavailable"
            )

    def _record_health_check(self, result: str) -> None:
        if self.metrics:
            self.metrics.increment_counter("health_checks_total", result=result)

    def _record_operation(self, label: str, result: str) -> None:
        if self.metrics:
            self.metrics.increment_counter("cache_operations_total", operation=label, result=result)
