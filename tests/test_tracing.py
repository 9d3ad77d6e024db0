"""Tests for the optional MLflow tracing integration."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

import storyboard_mcp.tracing as mod


def _make_config(**overrides):
    defaults = {
        "tracing_enabled": True,
        "mlflow_tracking_uri": "http://127.0.0.1:5001",
        "mlflow_experiment_name": "video-storyboard-mcp",
    }
    defaults.update(overrides)
    cfg = MagicMock()
    for k, v in defaults.items():
        setattr(cfg, k, v)
    return cfg


@pytest.fixture()
def fake_mlflow(monkeypatch):
    """Pretend mlflow-tracing is installed and enabled."""
    fake = MagicMock()
    monkeypatch.setattr(mod, "_HAS_MLFLOW", True)
    monkeypatch.setattr(mod, "mlflow", fake, raising=False)
    with patch("storyboard_mcp.config.get_config", return_value=_make_config()):
        yield fake


class TestIsEnabled:
    def test_true_when_installed_and_enabled(self, fake_mlflow):
        assert mod.is_enabled() is True

    def test_false_when_not_installed(self, monkeypatch):
        monkeypatch.setattr(mod, "_HAS_MLFLOW", False)
        assert mod.is_enabled() is False

    def test_false_when_config_disabled(self, monkeypatch):
        monkeypatch.setattr(mod, "_HAS_MLFLOW", True)
        with patch("storyboard_mcp.config.get_config", return_value=_make_config(tracing_enabled=False)):
            assert mod.is_enabled() is False


class TestTrace:
    def test_identity_when_disabled(self, monkeypatch):
        monkeypatch.setattr(mod, "_HAS_MLFLOW", False)

        async def tool():
            return 1

        assert mod.trace(tool) is tool
        assert mod.trace(name="x", span_type="TOOL")(tool) is tool

    def test_delegates_to_mlflow(self, fake_mlflow):
        def tool():
            return 1

        mod.trace(tool, name="storyboard_start", span_type="TOOL")
        fake_mlflow.trace.assert_called_once_with(tool, name="storyboard_start", span_type="TOOL")

    def test_default_span_name_is_function_name(self, fake_mlflow):
        @mod.trace(span_type="CHAIN")
        async def storyboard_analysis():
            return 1

        fake_mlflow.trace.assert_called_once()
        assert fake_mlflow.trace.call_args.kwargs == {"name": "storyboard_analysis", "span_type": "CHAIN"}


class TestSetupShutdown:
    def test_setup_configures_tracking(self, fake_mlflow):
        mod.setup()
        fake_mlflow.set_tracking_uri.assert_called_once_with("http://127.0.0.1:5001")
        fake_mlflow.set_experiment.assert_called_once_with("video-storyboard-mcp")
        fake_mlflow.gemini.autolog.assert_called_once()

    def test_setup_failure_is_logged(self, fake_mlflow, caplog):
        fake_mlflow.set_tracking_uri.side_effect = RuntimeError("unreachable")
        mod.setup()
        assert "tracing setup failed" in caplog.text

    def test_noop_when_disabled(self, monkeypatch):
        fake = MagicMock()
        monkeypatch.setattr(mod, "_HAS_MLFLOW", False)
        monkeypatch.setattr(mod, "mlflow", fake, raising=False)
        mod.setup()
        mod.shutdown()
        fake.set_tracking_uri.assert_not_called()
        fake.flush_trace_async_logging.assert_not_called()

    def test_shutdown_flushes(self, fake_mlflow):
        mod.shutdown()
        fake_mlflow.flush_trace_async_logging.assert_called_once()

    def test_setup_reports_whether_enabled(self, fake_mlflow, monkeypatch):
        assert mod.setup() is True
        fake_mlflow.set_experiment.side_effect = RuntimeError("no store")
        assert mod.setup() is False
        monkeypatch.setattr(mod, "_HAS_MLFLOW", False)
        assert mod.setup() is False


class TestTagCurrentTrace:
    def test_tags_are_stringified(self, fake_mlflow):
        mod.tag_current_trace(generation=3, mode="remix")
        fake_mlflow.update_current_trace.assert_called_once_with(
            tags={"generation": "3", "mode": "remix"},
        )

    def test_failure_outside_trace_is_ignored(self, fake_mlflow):
        fake_mlflow.update_current_trace.side_effect = RuntimeError("no active trace")
        mod.tag_current_trace(generation=1)

    def test_noop_when_disabled(self, monkeypatch):
        fake = MagicMock()
        monkeypatch.setattr(mod, "_HAS_MLFLOW", False)
        monkeypatch.setattr(mod, "mlflow", fake, raising=False)
        mod.tag_current_trace(generation=1)
        fake.update_current_trace.assert_not_called()
