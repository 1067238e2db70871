"""
Unit tests for errors, availability state, configuration and metrics.
"""

import asyncio
import threading

import pytest
import redis.exceptions

from shared.availability import AvailabilityState
from shared.base_service import BaseService
from shared.config import get_config
from shared.errors import (
    BackendUnavailableError,
    ConfigurationError,
    ErrorKind,
    OperationResult,
    is_connection_error,
)
from shared.metrics import MetricsCollector
from shared.test_helpers import FakeClock


class TestOperationResult:
    """Test cases for OperationResult."""

    def test_ok_is_truthy(self):
        result = OperationResult.ok()
        assert result
        assert result.error_kind is None

    def test_failure_is_falsy(self):
        result = OperationResult.failed(ErrorKind.DEGRADED, "down")
        assert not result
        assert result.to_dict() == {"success": False, "error_kind": "degraded", "detail": "down"}


class TestConnectionErrorClassification:
    """Test cases for is_connection_error."""

    @pytest.mark.parametrize("exc", [
        redis.exceptions.ConnectionError("refused"),
        redis.exceptions.TimeoutError("slow"),
        ConnectionRefusedError(),
        asyncio.TimeoutError(),
        RuntimeError("Unable to connect to Redis"),
        RuntimeError("read timeout"),
        RuntimeError("Connection reset by peer"),
    ])
    def test_connection_like(self, exc):
        assert is_connection_error(exc) is True

    @pytest.mark.parametrize("exc", [
        ValueError("bad value"),
        KeyError("missing"),
        RuntimeError(""),
    ])
    def test_not_connection_like(self, exc):
        assert is_connection_error(exc) is False

    def test_exception_payload(self):
        error = BackendUnavailableError("down", {"redis_url": "redis://x"})
        assert error.to_dict() == {
            "code": "BACKEND_UNAVAILABLE",
            "message": "down",
            "details": {"redis_url": "redis://x"}
        }


class TestAvailabilityState:
    """Test cases for AvailabilityState."""

    def test_transition_reports_change_only(self):
        state = AvailabilityState()
        assert state.transition(True) is False
        assert state.transition(False) is True
        assert state.transition(False) is False
        assert state.is_available() is False

    def test_mark_checked(self):
        clock = FakeClock(100.0)
        state = AvailabilityState(clock=clock)
        assert state.last_check_time() == 100000

        clock.advance(2.5)
        state.mark_checked()
        assert state.snapshot() == {"available": True, "last_check_time": 102500}

    def test_concurrent_transitions_report_one_change(self):
        state = AvailabilityState()
        changes = []

        def flip():
            changes.append(state.transition(False))

        threads = [threading.Thread(target=flip) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert changes.count(True) == 1


class TestConfig:
    """Test cases for configuration loading."""

    def test_defaults(self):
        config = get_config("admin")
        assert config.service_name == "admin"
        assert config.cache_namespace == "casecache"
        assert config.rate_limit_per_minute == 60
        assert config.rate_limit_per_hour == 1000
        assert config.message_max_length == 10000
        assert config.message_max_age_seconds == 300

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("CASECACHE_CACHE_NAMESPACE", "staging")
        monkeypatch.setenv("CASECACHE_RATE_LIMIT_PER_MINUTE", "5")
        config = get_config("portal")
        assert config.cache_namespace == "staging"
        assert config.rate_limit_per_minute == 5

    @pytest.mark.parametrize("overrides", [
        {"cache_namespace": ""},
        {"cache_namespace": "a:b"},
        {"invalidation_channel": ""},
        {"rate_limit_per_minute": 0},
    ])
    def test_base_service_rejects_invalid_config(self, overrides):
        with pytest.raises(ConfigurationError):
            BaseService("admin", get_config("admin", **overrides))


class TestMetricsCollector:
    """Test cases for MetricsCollector."""

    def test_collectors_are_independent(self):
        first = MetricsCollector("admin")
        second = MetricsCollector("admin")

        first.increment_counter("security_events_total", event_type="PERMISSION_DENIED")

        assert first.sample("security_events_total", event_type="PERMISSION_DENIED") == 1.0
        assert second.sample("security_events_total", event_type="PERMISSION_DENIED") is None

    def test_unknown_metric_is_ignored(self):
        metrics = MetricsCollector("portal")
        metrics.increment_counter("does_not_exist")
        metrics.set_gauge("cache_backend_available", 0)
        assert metrics.sample("invalidation_messages_consumed_total", outcome="applied") is None

    def test_admin_gauge_starts_available(self):
        metrics = MetricsCollector("admin")
        assert metrics.sample("cache_backend_available") == 1.0
