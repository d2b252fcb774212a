"""Base node class and types for workflows.

This module defines the abstract base class every workflow node variant
derives from. Nodes are stateless; all mutable state lives in the
WorkflowContext the executor passes to ``execute``.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import TYPE_CHECKING, Any, List, Optional

from tinyagent.errors import WorkflowConfigError
from tinyagent.logging import get_logger

if TYPE_CHECKING:
    from tinyagent.core.context import WorkflowContext

logger = get_logger(__name__, component="node")


class NodeType(str, Enum):
    """Closed set of node variants."""

    LLM = "llm"
    TOOL = "tool"
    CONDITION = "condition"
    PARALLEL = "parallel"
    LOOP = "loop"
    AGENT = "agent"
    CUSTOM = "custom"


class BaseNode(ABC):
    """Abstract base class for all workflow nodes.

    Subclasses implement ``execute``. Composite nodes (parallel, loop) run
    their children through ``context.run_node`` so that every child gets
    lifecycle events and its own entry in the context's node outputs.
    """

    node_type: NodeType = NodeType.CUSTOM

    def __init__(self, name: str, description: Optional[str] = None):
        if not name or not isinstance(name, str):
            raise WorkflowConfigError("Node name must be a non-empty string")
        self.name = name
        self.description = description

    @abstractmethod
    async def execute(self, input: Any, context: "WorkflowContext") -> Any:
        """Execute the node.

        Args:
            input: The workflow run's input (or the item, for fan-out children).
            context: Shared execution context for this run.

        Returns:
            Output recorded under this node's name in ``context.node_outputs``.
        """
        pass

    def select_next(self, output: Any, context: "WorkflowContext") -> Optional[str]:
        """Choose the next node explicitly. None defers to outgoing edges."""
        return None

    def referenced_nodes(self) -> List[str]:
        """Top-level node names this node may route to."""
        return []

    def children(self) -> List["BaseNode"]:
        """Nested nodes run by this node (for name validation)."""
        return []

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r})"
