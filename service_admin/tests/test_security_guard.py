"""
Unit tests for the admin SecurityGuard.
"""

import pytest
from unittest.mock import patch

from service_admin.app.security.guard import (
    Operation,
    SecurityEventType,
    SecurityGuard,
)
from shared.availability import AvailabilityState
from shared.metrics import MetricsCollector
from shared.test_helpers import FakeClock, InMemoryKeyValueStore


class DenyDeletes:
    """Policy that only refuses delete operations."""

    async def is_permitted(self, operator_id, operation):
        return operation != Operation.CASE_DELETE


class ExplodingPolicy:
    async def is_permitted(self, operator_id, operation):
        raise RuntimeError("directory unavailable")


class TestSecurityGuard:
    """Test cases for SecurityGuard."""

    @pytest.fixture
    def clock(self):
        # Start exactly on an hour boundary so minute rollovers stay in one hour
        return FakeClock(1_700_002_800.0)

    @pytest.fixture
    def store(self, clock):
        return InMemoryKeyValueStore(clock=clock)

    @pytest.fixture
    def metrics(self):
        return MetricsCollector("admin")

    @pytest.fixture
    def availability(self):
        return AvailabilityState()

    @pytest.fixture
    def guard(self, store, clock, metrics, availability):
        return SecurityGuard(store, availability=availability, metrics=metrics, clock=clock)

    # Permissions

    @pytest.mark.asyncio
    @pytest.mark.parametrize("operator", [None, "", "  ", 123])
    async def test_permission_denied_without_operator(self, guard, operator):
        assert await guard.check_permission(operator, Operation.CASE_UPDATE) is False

    @pytest.mark.asyncio
    async def test_permission_granted_for_identified_operator(self, guard):
        assert await guard.check_permission("user", Operation.CASE_UPDATE) is True

    @pytest.mark.asyncio
    async def test_custom_policy_is_consulted(self, store):
        guard = SecurityGuard(store, permission_policy=DenyDeletes())

        assert await guard.check_permission("admin1", Operation.CASE_UPDATE) is True
        assert await guard.check_permission("admin1", Operation.CASE_DELETE) is False

    @pytest.mark.asyncio
    async def test_policy_errors_fail_closed(self, store):
        guard = SecurityGuard(store, permission_policy=ExplodingPolicy())
        assert await guard.check_permission("admin1", Operation.CASE_UPDATE) is False

    # Rate limiting

    @pytest.mark.asyncio
    async def test_minute_limit(self, guard, clock):
        results = [await guard.check_rate_limit("admin1", Operation.CASE_UPDATE) for _ in range(61)]

        assert all(results[:60])
        assert results[60] is False
        assert await guard.check_rate_limit("admin1", Operation.CASE_UPDATE) is False

        clock.advance(60)
        assert await guard.check_rate_limit("admin1", Operation.CASE_UPDATE) is True

    @pytest.mark.asyncio
    async def test_rejected_calls_are_not_counted(self, guard, store, clock):
        for _ in range(65):
            await guard.check_rate_limit("admin1", Operation.CASE_UPDATE)

        minute_keys = [k for k in store.data if ":minute:" in k]
        hour_keys = [k for k in store.data if ":hour:" in k]
        assert [store.data[k][0] for k in minute_keys] == [60]
        assert [store.data[k][0] for k in hour_keys] == [60]

    @pytest.mark.asyncio
    async def test_counters_expire_with_window(self, guard, store, clock):
        await guard.check_rate_limit("admin1", Operation.CASE_UPDATE)

        expiries = sorted(expires_at - clock() for _, expires_at in store.data.values())
        assert expiries == [60, 3600]

    @pytest.mark.asyncio
    async def test_limits_are_per_operator_and_operation(self, store, clock):
        guard = SecurityGuard(store, per_minute=1, clock=clock)

        assert await guard.check_rate_limit("admin1", Operation.CASE_UPDATE) is True
        assert await guard.check_rate_limit("admin1", Operation.CASE_UPDATE) is False
        assert await guard.check_rate_limit("admin2", Operation.CASE_UPDATE) is True
        assert await guard.check_rate_limit("admin1", Operation.MESSAGE_PUBLISH) is True

    @pytest.mark.asyncio
    async def test_hour_limit(self, store, clock, metrics):
        guard = SecurityGuard(store, per_minute=100, per_hour=3, metrics=metrics, clock=clock)

        for _ in range(3):
            assert await guard.check_rate_limit("admin1", Operation.CASE_UPDATE) is True
            clock.advance(60)

        assert await guard.check_rate_limit("admin1", Operation.CASE_UPDATE) is False
        assert metrics.sample("rate_limit_rejections_total", window="hour") == 1.0

    @pytest.mark.asyncio
    async def test_minute_checked_before_hour(self, store, clock, metrics):
        guard = SecurityGuard(store, per_minute=1, per_hour=1, metrics=metrics, clock=clock)

        await guard.check_rate_limit("admin1", Operation.CASE_UPDATE)
        assert await guard.check_rate_limit("admin1", Operation.CASE_UPDATE) is False

        assert metrics.sample("rate_limit_rejections_total", window="minute") == 1.0
        assert metrics.sample("rate_limit_rejections_total", window="hour") is None

    @pytest.mark.asyncio
    async def test_storage_error_fails_open(self, guard, store, metrics):
        store.fail_with(RuntimeError("WRONGTYPE"))

        assert await guard.check_rate_limit("admin1", Operation.CASE_UPDATE) is True
        assert metrics.sample("rate_limit_errors_total") == 1.0

    @pytest.mark.asyncio
    async def test_fails_closed_when_backend_unavailable(self, guard, store, availability):
        availability.transition(False)

        assert await guard.check_rate_limit("admin1", Operation.CASE_UPDATE) is False
        assert store.calls == []

    # Message shape

    @pytest.mark.parametrize("raw,expected", [
        ('{"action":"DELETE","resourceType":"CASE","timestamp":1}', True),
        ('{"action":"DELETE","resourceType":"CASE"}', False),
        ("", False),
        ("   ", False),
        (None, False),
        (123, False),
        (b"{}", False),
    ])
    def test_validate_message_source(self, guard, raw, expected):
        assert guard.validate_message_source(raw) is expected

    # Audit

    def test_log_security_event_counts(self, guard, metrics):
        guard.log_security_event("admin1", Operation.CASE_DELETE, SecurityEventType.PERMISSION_DENIED, "denied")
        assert metrics.sample("security_events_total", event_type="PERMISSION_DENIED") == 1.0

    def test_log_security_event_never_raises(self, guard):
        with patch.object(guard.audit_logger, "warning", side_effect=RuntimeError("log sink down")):
            guard.log_security_event("admin1", Operation.CASE_DELETE, SecurityEventType.OPERATION_FAILED, "x")

