"""Prometheus metrics collection for tinyagent.

Tracks reasoning-loop runs, tool dispatches, and workflow node executions.
Exports metrics via HTTP for Prometheus scraping.
"""

import functools
import time
from contextlib import contextmanager
from enum import Enum
from threading import Lock
from typing import Any, Callable, Iterator, Optional, TypeVar

from prometheus_client import Counter, Histogram, Info, start_http_server

from tinyagent.logging import get_logger

logger = get_logger(__name__, component="metrics")

_LATENCY_BUCKETS = (0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0)

# Label used for tool names that are not registered, so model output cannot
# create new label values.
UNKNOWN_TOOL_LABEL = "unknown"

F = TypeVar("F", bound=Callable[..., Any])


def _never_raises(method: F) -> F:
    """Log and drop errors raised while recording a metric."""

    @functools.wraps(method)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return method(*args, **kwargs)
        except Exception as e:
            logger.warning("metric_recording_failed", metric=method.__name__, error=str(e))
            return None

    return wrapper  # type: ignore[return-value]


class MetricLabels(str, Enum):
    """Standard metric label names."""

    AGENT = "agent"
    FINISH_REASON = "finish_reason"
    TOOL = "tool"
    OUTCOME = "outcome"
    WORKFLOW = "workflow"
    NODE_TYPE = "node_type"
    STATUS = "status"


class MetricsCollector:
    """Centralized metrics collector for tinyagent.

    Singleton: every engine in the process records into the same Prometheus
    collectors.

    Example:
        >>> metrics = MetricsCollector()
        >>> metrics.increment_agent_run(agent="researcher", finish_reason="stop")
        >>> metrics.record_tool_call(tool="search", success=True, duration_ms=12.5)
    """

    _instance: Optional["MetricsCollector"] = None
    _lock = Lock()

    def __new__(cls) -> "MetricsCollector":
        """Ensure singleton instance."""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
                    cls._instance._initialized = False
        return cls._instance

    def __init__(self) -> None:
        if self._initialized:
            return

        logger.info("initializing_metrics_collector")

        self.system_info = Info("tinyagent_system", "tinyagent system information")
        self.system_info.info({"version": "0.1.0", "app": "tinyagent"})

        # Reasoning loop
        self.agent_runs_total = Counter(
            "tinyagent_agent_runs_total",
            "Completed reasoning-loop runs by finish reason",
            [MetricLabels.AGENT, MetricLabels.FINISH_REASON],
        )
        self.agent_iterations_total = Counter(
            "tinyagent_agent_iterations_total",
            "Model calls issued by reasoning loops",
            [MetricLabels.AGENT],
        )
        self.agent_tokens_total = Counter(
            "tinyagent_agent_tokens_total",
            "Tokens consumed by reasoning loops",
            [MetricLabels.AGENT],
        )

        # Tool dispatch
        self.tool_calls_total = Counter(
            "tinyagent_tool_calls_total",
            "Dispatched tool calls by outcome",
            [MetricLabels.TOOL, MetricLabels.OUTCOME],
        )
        self.tool_call_duration = Histogram(
            "tinyagent_tool_call_duration_seconds",
            "Tool call latency in seconds",
            [MetricLabels.TOOL],
            buckets=_LATENCY_BUCKETS,
        )

        # Workflow
        self.workflow_runs_total = Counter(
            "tinyagent_workflow_runs_total",
            "Workflow runs by terminal status",
            [MetricLabels.WORKFLOW, MetricLabels.STATUS],
        )
        self.node_executions_total = Counter(
            "tinyagent_node_executions_total",
            "Workflow node executions by outcome",
            [MetricLabels.WORKFLOW, MetricLabels.NODE_TYPE, MetricLabels.OUTCOME],
        )
        self.node_execution_duration = Histogram(
            "tinyagent_node_execution_duration_seconds",
            "Workflow node execution latency in seconds",
            [MetricLabels.WORKFLOW, MetricLabels.NODE_TYPE],
            buckets=_LATENCY_BUCKETS,
        )

        self._initialized = True

    # Reasoning loop methods

    @_never_raises
    def increment_agent_run(self, agent: str, finish_reason: str) -> None:
        self.agent_runs_total.labels(agent=agent, finish_reason=finish_reason).inc()

    @_never_raises
    def increment_agent_iteration(self, agent: str) -> None:
        self.agent_iterations_total.labels(agent=agent).inc()

    @_never_raises
    def record_agent_tokens(self, agent: str, tokens: int) -> None:
        if tokens > 0:
            self.agent_tokens_total.labels(agent=agent).inc(tokens)

    # Tool methods

    @_never_raises
    def record_tool_call(self, tool: str, success: bool, duration_ms: float) -> None:
        """Record one dispatched tool call.

        Args:
            tool: Registered tool name, or UNKNOWN_TOOL_LABEL.
            success: Whether the call produced a success record.
            duration_ms: Wall-clock duration of the call.
        """
        outcome = "success" if success else "failure"
        self.tool_calls_total.labels(tool=tool, outcome=outcome).inc()
        self.tool_call_duration.labels(tool=tool).observe(duration_ms / 1000.0)

    # Workflow methods

    @_never_raises
    def increment_workflow_run(self, workflow: str, status: str) -> None:
        self.workflow_runs_total.labels(workflow=workflow, status=status).inc()

    @contextmanager
    def track_node_execution(self, workflow: str, node_type: str) -> Iterator[None]:
        """Context manager to track node execution duration and outcome.

        Args:
            workflow: Workflow name.
            node_type: Node variant (llm, tool, condition, ...).

        Yields:
            None
        """
        start_time = time.monotonic()
        outcome = "success"
        try:
            yield
        except BaseException:
            outcome = "failure"
            raise
        finally:
            self._record_node_execution(workflow, node_type, outcome, time.monotonic() - start_time)

    @_never_raises
    def _record_node_execution(self, workflow: str, node_type: str, outcome: str, duration: float) -> None:
        self.node_executions_total.labels(
            workflow=workflow, node_type=node_type, outcome=outcome
        ).inc()
        self.node_execution_duration.labels(
            workflow=workflow, node_type=node_type
        ).observe(duration)


def start_metrics_server(port: int = 9090, addr: str = "0.0.0.0") -> None:
    """Start the Prometheus metrics HTTP server.

    Args:
        port: Port to listen on (default: 9090).
        addr: Address to bind to (default: 0.0.0.0 for all interfaces).
    """
    logger.info("starting_metrics_server", port=port, addr=addr)
    try:
        start_http_server(port=port, addr=addr)
        logger.info("metrics_server_started", port=port, addr=addr)
    except OSError as e:
        if "Address already in use" in str(e):
            logger.warning("metrics_server_already_running", port=port, addr=addr)
        else:
            logger.error("metrics_server_start_failed", port=port, addr=addr, error=str(e))
            raise


_global_metrics: Optional[MetricsCollector] = None


def get_metrics_collector() -> MetricsCollector:
    """Get the global metrics collector instance."""
    global _global_metrics
    if _global_metrics is None:
        _global_metrics = MetricsCollector()
    return _global_metrics
