"""Tests for the Prometheus metrics module."""

import pytest
from prometheus_client import REGISTRY

from tinyagent.metrics import MetricsCollector, get_metrics_collector


@pytest.fixture(autouse=True)
def metrics_collector(isolated_metrics_collector: MetricsCollector) -> MetricsCollector:
    """Provide a fresh metrics collector for each test."""
    return isolated_metrics_collector


def value(name: str, **labels: str) -> float:
    return REGISTRY.get_sample_value(name, labels) or 0.0


class TestMetricsCollector:
    """Test MetricsCollector functionality."""

    def test_singleton_pattern(self, metrics_collector: MetricsCollector) -> None:
        """Test that every accessor returns the same collector."""
        assert MetricsCollector() is metrics_collector
        assert get_metrics_collector() is metrics_collector

    def test_agent_metrics(self, metrics_collector: MetricsCollector) -> None:
        """Test run, iteration and token counters."""
        metrics_collector.increment_agent_run("researcher", "stop")
        metrics_collector.increment_agent_iteration("researcher")
        metrics_collector.increment_agent_iteration("researcher")
        metrics_collector.record_agent_tokens("researcher", 120)
        metrics_collector.record_agent_tokens("researcher", 0)

        assert value("tinyagent_agent_runs_total", agent="researcher", finish_reason="stop") == 1
        assert value("tinyagent_agent_iterations_total", agent="researcher") == 2
        assert value("tinyagent_agent_tokens_total", agent="researcher") == 120

    def test_tool_metrics(self, metrics_collector: MetricsCollector) -> None:
        """Test tool calls are counted by outcome and timed in seconds."""
        metrics_collector.record_tool_call(tool="search", success=True, duration_ms=250)
        metrics_collector.record_tool_call(tool="search", success=False, duration_ms=750)

        assert value("tinyagent_tool_calls_total", tool="search", outcome="success") == 1
        assert value("tinyagent_tool_calls_total", tool="search", outcome="failure") == 1
        assert value("tinyagent_tool_call_duration_seconds_count", tool="search") == 2
        assert value("tinyagent_tool_call_duration_seconds_sum", tool="search") == pytest.approx(1.0)

    def test_track_node_execution(self, metrics_collector: MetricsCollector) -> None:
        """Test node executions are counted with their outcome."""
        with metrics_collector.track_node_execution("flow", "custom"):
            pass
        with pytest.raises(ValueError):
            with metrics_collector.track_node_execution("flow", "custom"):
                raise ValueError("boom")

        assert value("tinyagent_node_executions_total", workflow="flow", node_type="custom", outcome="success") == 1
        assert value("tinyagent_node_executions_total", workflow="flow", node_type="custom", outcome="failure") == 1
        assert value("tinyagent_node_execution_duration_seconds_count", workflow="flow", node_type="custom") == 2

    def test_workflow_runs(self, metrics_collector: MetricsCollector) -> None:
        """Test workflow runs are counted by status."""
        metrics_collector.increment_workflow_run("flow", "success")
        metrics_collector.increment_workflow_run("flow", "error")
        metrics_collector.increment_workflow_run("flow", "error")

        assert value("tinyagent_workflow_runs_total", workflow="flow", status="success") == 1
        assert value("tinyagent_workflow_runs_total", workflow="flow", status="error") == 2


class BrokenMetric:
    """Stand-in collector whose every use fails."""

    def labels(self, **labels: str) -> "BrokenMetric":
        raise ValueError("registry unavailable")


class TestRecordingNeverRaises:
    """Test that metric failures stay out of the engines."""

    def test_counter_failure_is_swallowed(self, metrics_collector: MetricsCollector, monkeypatch) -> None:
        """Test a failing collector does not raise from the recording call."""
        monkeypatch.setattr(metrics_collector, "workflow_runs_total", BrokenMetric())
        monkeypatch.setattr(metrics_collector, "tool_calls_total", BrokenMetric())

        metrics_collector.increment_workflow_run("flow", "success")
        metrics_collector.record_tool_call(tool="search", success=True, duration_ms=1)

    def test_node_tracking_keeps_body_outcome(self, metrics_collector: MetricsCollector, monkeypatch) -> None:
        """Test a failing collector neither hides nor replaces the node's own result."""
        monkeypatch.setattr(metrics_collector, "node_executions_total", BrokenMetric())

        with metrics_collector.track_node_execution("flow", "custom"):
            pass
        with pytest.raises(KeyError):
            with metrics_collector.track_node_execution("flow", "custom"):
                raise KeyError("node failed")
