"""Workflow graph executor.

Drives one run of a validated Workflow: starts at the start node, executes
each node with the run input and the shared context, records its output, and
follows the first outgoing edge whose condition holds. Every node entered
(sub-nodes of parallel and loop nodes included) gets node_start and then
node_complete or node_error events; the stream always ends with exactly one
workflow_complete or workflow_error event.
"""

import inspect
import time
from typing import Any, AsyncIterator, Callable, Dict, List, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from tinyagent.cancellation import CancellationToken
from tinyagent.config import Config
from tinyagent.core.context import WorkflowContext
from tinyagent.core.graph import Workflow
from tinyagent.core.node import BaseNode
from tinyagent.core.streaming import ChunkChannel, stream_from
from tinyagent.core.trace import (
    WorkflowEvent,
    WorkflowEventType,
    WorkflowExecutionResult,
    describe_error,
)
from tinyagent.errors import (
    AbortedError,
    NodeExecutionError,
    TinyAgentError,
    WorkflowExecutionError,
)
from tinyagent.events import HookEmitter, HookEvent
from tinyagent.logging import bind_context, get_logger, unbind_context
from tinyagent.metrics import get_metrics_collector

logger = get_logger(__name__, component="executor")

DEFAULT_MAX_STEPS = 1000


class ExecutionOptions(BaseModel):
    """Options for one workflow run."""

    model_config = ConfigDict(extra="forbid", arbitrary_types_allowed=True)

    timeout_ms: Optional[int] = Field(
        default=None,
        ge=1,
        description="Derive a token that self-cancels after this long",
    )
    cancellation: Optional[CancellationToken] = Field(default=None, description="Caller's cancellation token")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Initial context metadata")
    max_steps: int = Field(
        default=DEFAULT_MAX_STEPS,
        ge=1,
        description="Upper bound on top-level node entries (guards hand-authored edge cycles)",
    )
    on_event: Optional[Callable[[WorkflowEvent], Any]] = Field(default=None, description="Called for every event")
    hooks: Optional[HookEmitter] = Field(default=None, description="Lifecycle hook subscribers")

    @classmethod
    def from_config(cls, config: Config, **overrides: Any) -> "ExecutionOptions":
        values: Dict[str, Any] = {
            "max_steps": config.workflow.max_steps,
            "timeout_ms": config.workflow.timeout_ms,
        }
        values.update(overrides)
        return cls(**values)


class _Run:
    """Per-run wiring between the executor, the context and the event channel."""

    def __init__(
        self,
        workflow: Workflow,
        options: ExecutionOptions,
        channel: ChunkChannel[WorkflowEvent],
        token: CancellationToken,
    ):
        self.workflow = workflow
        self.options = options
        self.channel = channel
        self.run_id = str(uuid4())
        self.hooks = options.hooks or HookEmitter()
        self.metrics = get_metrics_collector()
        self.context = WorkflowContext(
            workflow_name=workflow.name,
            run_id=self.run_id,
            cancellation=token,
            metadata=options.metadata,
        )
        self.context.bind_executor(self.run_node, self.emit)

    def event(self, event_type: WorkflowEventType, node_name: Optional[str] = None, **kwargs: Any) -> WorkflowEvent:
        return WorkflowEvent(
            type=event_type,
            workflow=self.workflow.name,
            run_id=self.run_id,
            node_name=node_name,
            **kwargs,
        )

    def publish(self, event: WorkflowEvent) -> None:
        if event.type.is_terminal:
            self.channel.close(event)
        else:
            self.channel.send(event)
        if self.options.on_event is not None:
            try:
                outcome = self.options.on_event(event)
                if inspect.isawaitable(outcome):
                    self.hooks.schedule(outcome)
            except Exception as e:
                logger.error("on_event_callback_error", event_type=event.type.value, error=str(e))

    def emit(self, event_type: WorkflowEventType, node_name: Optional[str] = None, **data: Any) -> None:
        self.publish(self.event(event_type, node_name=node_name, data=data))

    async def run_node(self, node: BaseNode, input: Any, output_key: Optional[str] = None) -> Any:
        """Execute one node with cancellation check, events, hooks and metrics."""
        key = output_key or node.name
        ctx = self.context
        if ctx.cancellation.cancelled:
            raise AbortedError("Workflow execution was aborted", reason=ctx.cancellation.reason)

        ctx.execution_path.append(key)
        self.emit(WorkflowEventType.NODE_START, node_name=key, node_type=node.node_type.value)
        self.hooks.emit(HookEvent.NODE_ENTERED, workflow=self.workflow.name, run_id=self.run_id, node=key)
        logger.debug("node_started", node=key, node_type=node.node_type.value)

        scope = ctx.enter_node(key)
        start = time.perf_counter()
        try:
            with self.metrics.track_node_execution(self.workflow.name, node.node_type.value):
                output = await node.execute(input, ctx)
        except Exception as e:
            duration_ms = (time.perf_counter() - start) * 1000
            if isinstance(e, (NodeExecutionError, AbortedError)):
                error: TinyAgentError = e
            else:
                error = NodeExecutionError(key, e)
            self.publish(
                self.event(
                    WorkflowEventType.NODE_ERROR,
                    node_name=key,
                    error=error.message,
                    data={"duration_ms": duration_ms, "error": describe_error(e)},
                )
            )
            logger.warning("node_failed", node=key, error=str(e), error_type=type(e).__name__)
            if error is e:
                raise
            raise error from e
        finally:
            ctx.exit_node(scope)

        duration_ms = (time.perf_counter() - start) * 1000
        ctx.set_node_output(key, output)
        self.emit(WorkflowEventType.NODE_COMPLETE, node_name=key, output=output, duration_ms=duration_ms)
        self.hooks.emit(
            HookEvent.NODE_COMPLETED,
            workflow=self.workflow.name,
            run_id=self.run_id,
            node=key,
            output=output,
        )
        return output

    def next_node(self, node: BaseNode, output: Any) -> Optional[str]:
        """The explicit routing choice of the node, else the first open outgoing edge."""
        explicit = node.select_next(output, self.context)
        if explicit is not None:
            return explicit
        for edge in self.workflow.get_outgoing_edges(node.name):
            try:
                if edge.is_open(self.context):
                    return edge.to_node
            except Exception as e:
                raise WorkflowExecutionError(
                    f"Edge condition {edge.from_node} -> {edge.to_node} failed: {e}",
                    details={"node": edge.from_node, "target": edge.to_node},
                ) from e
        return None

    async def drive(self, input: Any) -> WorkflowExecutionResult:
        started = time.perf_counter()
        order: List[str] = []
        output: Any = None
        current: Optional[str] = self.workflow.start_node

        self.emit(WorkflowEventType.WORKFLOW_START, input=input)
        logger.info("workflow_started", start_node=current, max_steps=self.options.max_steps)

        try:
            while current is not None:
                if len(order) >= self.options.max_steps:
                    raise WorkflowExecutionError(
                        f"Max steps ({self.options.max_steps}) exceeded",
                        details={"node": current},
                    )
                node = self.workflow.get_node(current)
                output = await self.run_node(node, input)
                order.append(current)
                current = self.next_node(node, output)
        except Exception as e:
            failed_node = e.node_name if isinstance(e, NodeExecutionError) else None
            message = e.message if isinstance(e, TinyAgentError) else str(e)
            code = e.code if isinstance(e, TinyAgentError) else "UNKNOWN"
            result = WorkflowExecutionResult(
                workflow=self.workflow.name,
                run_id=self.run_id,
                output=output,
                node_execution_order=order,
                node_outputs=self.context.snapshot(),
                duration_ms=(time.perf_counter() - started) * 1000,
                error=message,
                error_code=code,
                failed_node=failed_node,
                exception=e,
            )
            self.metrics.increment_workflow_run(self.workflow.name, "error")
            logger.error(
                "workflow_failed",
                error=message,
                code=code,
                failed_node=failed_node,
                steps=len(order),
            )
            self.publish(self.event(WorkflowEventType.WORKFLOW_ERROR, node_name=failed_node, error=message, result=result))
            return result

        result = WorkflowExecutionResult(
            workflow=self.workflow.name,
            run_id=self.run_id,
            output=output,
            node_execution_order=order,
            node_outputs=self.context.snapshot(),
            duration_ms=(time.perf_counter() - started) * 1000,
        )
        self.metrics.increment_workflow_run(self.workflow.name, "success")
        logger.info("workflow_completed", steps=len(order), duration_ms=round(result.duration_ms, 2))
        self.publish(self.event(WorkflowEventType.WORKFLOW_COMPLETE, result=result))
        return result


class WorkflowExecutor:
    """Runs a Workflow.

    Example:
        >>> executor = WorkflowExecutor(workflow)
        >>> result = await executor.execute({"question": "..."})
        >>> result.node_execution_order
        ['plan', 'research', 'write']
    """

    def __init__(self, workflow: Workflow, options: Optional[ExecutionOptions] = None):
        self.workflow = workflow
        self.options = options or ExecutionOptions()

    async def execute(self, input: Any = None, options: Optional[ExecutionOptions] = None) -> WorkflowExecutionResult:
        """Run to completion. Node failures are reported on the result, not raised."""
        result: Optional[WorkflowExecutionResult] = None
        async for event in self.stream(input, options):
            if event.type.is_terminal:
                result = event.result
        if result is None:
            raise WorkflowExecutionError("Workflow stream ended without a terminal event")
        return result

    def stream(self, input: Any = None, options: Optional[ExecutionOptions] = None) -> AsyncIterator[WorkflowEvent]:
        """Run while streaming lifecycle events; the last event is terminal."""
        opts = options or self.options
        return stream_from(lambda channel: self._produce(channel, input, opts))

    async def _produce(self, channel: ChunkChannel[WorkflowEvent], input: Any, options: ExecutionOptions) -> None:
        base = options.cancellation or CancellationToken()
        token = base.with_timeout(options.timeout_ms / 1000) if options.timeout_ms else base

        run = _Run(self.workflow, options, channel, token)
        bind_context(run_id=run.run_id, workflow=self.workflow.name)
        try:
            await run.drive(input)
        finally:
            unbind_context("run_id", "workflow")
            if token is not base:
                token.dispose()


async def execute_workflow(
    workflow: Workflow,
    input: Any = None,
    options: Optional[ExecutionOptions] = None,
) -> WorkflowExecutionResult:
    """Run a workflow once and return its result."""
    return await WorkflowExecutor(workflow, options).execute(input)


def stream_workflow(
    workflow: Workflow,
    input: Any = None,
    options: Optional[ExecutionOptions] = None,
) -> AsyncIterator[WorkflowEvent]:
    """Run a workflow once, streaming its events."""
    return WorkflowExecutor(workflow, options).stream(input)
