from unittest.mock import Mock

import pytest

from ado_sync import telemetry
from ado_sync.config import TelemetryConfig
from ado_sync.telemetry import (
    TelemetryManager,
    get_telemetry_manager,
    initialize_telemetry,
    shutdown_telemetry,
)


@pytest.fixture(autouse=True)
def reset_global_manager(monkeypatch):
    monkeypatch.setattr(telemetry, "_telemetry_manager", None)


class TestDisabledTelemetry:
    def test_disabled_manager_is_a_no_op(self):
        manager = TelemetryManager(TelemetryConfig(enabled=False))

        with manager.trace_api_call("get_work_item", work_item_id=1) as span:
            assert span is None

        manager.record_sync_outcome("push", "create", True)
        manager.record_rate_limit_wait(3.0, "window")
        manager.shutdown()
        assert not manager.initialized

    def test_errors_propagate_through_disabled_trace(self):
        manager = TelemetryManager(TelemetryConfig(enabled=False))

        with pytest.raises(ValueError):
            with manager.trace_api_call("op"):
                raise ValueError("boom")


class TestMetrics:
    def test_sync_outcomes_are_counted(self):
        manager = TelemetryManager(TelemetryConfig(enabled=False))
        manager._initialized = True
        manager._sync_item_counter = Mock()
        manager._rate_limit_wait_counter = Mock()

        manager.record_sync_outcome("pull", "update", False)
        manager.record_rate_limit_wait(12.7, "retry_after")

        manager._sync_item_counter.add.assert_called_once_with(
            1, {"operation": "pull", "action": "update", "success": "false"}
        )
        manager._rate_limit_wait_counter.add.assert_called_once_with(
            1, {"reason": "retry_after", "seconds": 12}
        )


class TestGlobalManager:
    def test_get_creates_disabled_singleton(self):
        first = get_telemetry_manager()

        assert first is get_telemetry_manager()
        assert first.config.enabled is False

    def test_initialize_replaces_singleton(self):
        manager = initialize_telemetry(TelemetryConfig(enabled=False, service_name="custom"))

        assert get_telemetry_manager() is manager
        assert manager.config.service_name == "custom"

    def test_shutdown_clears_singleton(self):
        first = get_telemetry_manager()

        shutdown_telemetry()

        assert get_telemetry_manager() is not first
