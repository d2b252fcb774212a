"""Execution context for workflow runs.

One WorkflowContext exists per run and is owned by the executor. Nodes read
upstream outputs and metadata through it, and composite nodes use it to run
their children; it is never shared between runs.

The current node and the loop state are task-local. They live in context
variables, so concurrent branches of a parallel node each see their own.
"""

from contextvars import ContextVar, Token
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, List, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from tinyagent.cancellation import CancellationToken

if TYPE_CHECKING:
    from tinyagent.core.node import BaseNode
    from tinyagent.core.trace import WorkflowEventType

NodeRunner = Callable[["BaseNode", Any, Optional[str]], Awaitable[Any]]
EventSink = Callable[..., None]

# Values are tagged with the run id so a nested run never reads its parent's.
_current_node: ContextVar[Optional[Tuple[str, Optional[str]]]] = ContextVar("tinyagent_current_node", default=None)
_loop_state: ContextVar[Optional[Tuple[str, Any]]] = ContextVar("tinyagent_loop_state", default=None)


class LoopState(BaseModel):
    """Position of the innermost running loop."""

    model_config = ConfigDict(frozen=True)

    index: int = Field(ge=0, description="Zero-based iteration index")
    iteration: int = Field(ge=1, description="One-based iteration number")
    is_first: bool
    is_last: Optional[bool] = Field(default=None, description="Known only when iterating a collection")
    value: Any = Field(default=None, description="Current item when iterating a collection")
    accumulator: Any = Field(default=None, description="Value threaded between iterations")


class WorkflowContext:
    """Mutable state for one workflow run."""

    def __init__(
        self,
        workflow_name: str,
        run_id: str,
        cancellation: Optional[CancellationToken] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ):
        self.workflow_name = workflow_name
        self.run_id = run_id
        self.cancellation = cancellation or CancellationToken()
        self.metadata: Dict[str, Any] = dict(metadata or {})
        self.execution_path: List[str] = []
        self._node_outputs: Dict[str, Any] = {}
        self._runner: Optional[NodeRunner] = None
        self._event_sink: Optional[EventSink] = None

    # Outputs

    @property
    def node_outputs(self) -> Mapping[str, Any]:
        """Read-only view of outputs recorded so far."""
        return MappingProxyType(self._node_outputs)

    def get_node_output(self, name: str, default: Any = None) -> Any:
        return self._node_outputs.get(name, default)

    def set_node_output(self, name: str, value: Any) -> None:
        """Record an output; re-entry (loops) overwrites the previous value."""
        self._node_outputs[name] = value

    def snapshot(self) -> Dict[str, Any]:
        return dict(self._node_outputs)

    # Metadata

    def get_metadata(self, key: str, default: Any = None) -> Any:
        return self.metadata.get(key, default)

    def set_metadata(self, key: str, value: Any) -> None:
        self.metadata[key] = value

    # Task-local state

    @property
    def current_node(self) -> Optional[str]:
        """Output key of the node running in the calling task."""
        scoped = _current_node.get()
        return scoped[1] if scoped is not None and scoped[0] == self.run_id else None

    def enter_node(self, key: str) -> Token:
        """Mark ``key`` as the running node of this task; hand the token to exit_node."""
        return _current_node.set((self.run_id, key))

    def exit_node(self, token: Token) -> None:
        _current_node.reset(token)

    @property
    def loop_state(self) -> Optional[LoopState]:
        """Position of the innermost loop enclosing the calling task."""
        scoped = _loop_state.get()
        return scoped[1] if scoped is not None and scoped[0] == self.run_id else None

    def update_loop_state(self, state: Optional[LoopState]) -> Optional[LoopState]:
        """Replace this task's loop state, returning the previous one for restoration."""
        previous = self.loop_state
        _loop_state.set((self.run_id, state))
        return previous

    # Executor wiring

    def bind_executor(self, runner: NodeRunner, event_sink: EventSink) -> None:
        self._runner = runner
        self._event_sink = event_sink

    async def run_node(self, node: "BaseNode", input: Any, output_key: Optional[str] = None) -> Any:
        """Run a child node with full lifecycle handling.

        Args:
            node: Node to run.
            input: Input passed to the child's execute.
            output_key: Key for the recorded output (defaults to the node name).
        """
        if self._runner is None:
            raise RuntimeError("WorkflowContext is not bound to an executor")
        return await self._runner(node, input, output_key)

    def emit(self, event_type: "WorkflowEventType", node_name: Optional[str] = None, **data: Any) -> None:
        """Publish a custom event (e.g. streamed model tokens) to the run's event stream."""
        if self._event_sink is not None:
            self._event_sink(event_type, node_name=node_name or self.current_node, **data)

    def __repr__(self) -> str:
        return f"WorkflowContext(workflow={self.workflow_name!r}, run_id={self.run_id!r})"
