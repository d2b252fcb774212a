"""Workflow lifecycle events and execution results."""

import time
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from tinyagent.errors import TinyAgentError, WorkflowExecutionError


class WorkflowEventType(str, Enum):
    """Events emitted on a workflow run's stream."""

    WORKFLOW_START = "workflow_start"
    NODE_START = "node_start"
    NODE_COMPLETE = "node_complete"
    NODE_ERROR = "node_error"
    WORKFLOW_COMPLETE = "workflow_complete"
    WORKFLOW_ERROR = "workflow_error"
    LLM_TOKEN = "llm_token"

    @property
    def is_terminal(self) -> bool:
        return self in (WorkflowEventType.WORKFLOW_COMPLETE, WorkflowEventType.WORKFLOW_ERROR)


class WorkflowExecutionResult(BaseModel):
    """Outcome of one workflow run. Immutable once returned."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    workflow: str
    run_id: str
    output: Any = Field(default=None, description="Output of the last top-level node executed")
    node_execution_order: List[str] = Field(default_factory=list, description="Top-level nodes in execution order")
    node_outputs: Dict[str, Any] = Field(default_factory=dict, description="Snapshot of all recorded outputs")
    duration_ms: float = Field(default=0.0, ge=0)
    error: Optional[str] = None
    error_code: Optional[str] = None
    failed_node: Optional[str] = None
    exception: Optional[BaseException] = Field(default=None, exclude=True, repr=False)

    @property
    def success(self) -> bool:
        return self.error is None

    def raise_for_error(self) -> None:
        """Re-raise the failure that ended the run, if any."""
        if self.success:
            return
        if self.exception is not None:
            raise self.exception
        raise WorkflowExecutionError(self.error or "Workflow failed")


class WorkflowEvent(BaseModel):
    """One event on a workflow run's stream."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    type: WorkflowEventType
    workflow: str
    run_id: str
    timestamp: float = Field(default_factory=time.time)
    node_name: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None
    result: Optional[WorkflowExecutionResult] = Field(default=None, description="Set on terminal events")


def describe_error(error: BaseException) -> Dict[str, Any]:
    """Serializable summary of an exception for event payloads."""
    if isinstance(error, TinyAgentError):
        return error.to_dict()
    return {"type": type(error).__name__, "message": str(error)}
