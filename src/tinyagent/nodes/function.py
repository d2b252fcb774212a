"""Custom nodes backed by a plain or async function."""

import inspect
from typing import TYPE_CHECKING, Any, Callable, Optional

from tinyagent.core.node import BaseNode, NodeType

if TYPE_CHECKING:
    from tinyagent.core.context import WorkflowContext

NodeFunction = Callable[[Any, "WorkflowContext"], Any]


class FunctionNode(BaseNode):
    """Runs ``func(input, context)``; sync and async functions are both accepted."""

    node_type = NodeType.CUSTOM

    def __init__(self, name: str, func: NodeFunction, description: Optional[str] = None):
        super().__init__(name, description)
        self.func = func

    async def execute(self, input: Any, context: "WorkflowContext") -> Any:
        result = self.func(input, context)
        if inspect.isawaitable(result):
            result = await result
        return result


def create_node(name: str, execute: NodeFunction, description: Optional[str] = None) -> FunctionNode:
    """Shorthand for a custom node.

    Example:
        >>> double = create_node("double", lambda input, ctx: {"y": ctx.get_node_output("a")["x"] * 2})
    """
    return FunctionNode(name, execute, description)
