"""Condition node: two-way branch on a predicate over the context."""

import inspect
from typing import TYPE_CHECKING, Any, Callable, List, Optional

from tinyagent.core.node import BaseNode, NodeType
from tinyagent.logging import get_logger

if TYPE_CHECKING:
    from tinyagent.core.context import WorkflowContext

logger = get_logger(__name__, component="condition_node")


class ConditionNode(BaseNode):
    """Evaluate ``condition(context)`` and continue at ``if_true`` or ``if_false``.

    The node's output is the boolean result. When the predicate is false and
    no ``if_false`` target is set, routing falls back to the node's ordinary
    outgoing edges (none means the run ends here).
    """

    node_type = NodeType.CONDITION

    def __init__(
        self,
        name: str,
        condition: Callable[["WorkflowContext"], Any],
        if_true: str,
        if_false: Optional[str] = None,
        description: Optional[str] = None,
    ):
        super().__init__(name, description)
        self.condition = condition
        self.if_true = if_true
        self.if_false = if_false

    async def execute(self, input: Any, context: "WorkflowContext") -> bool:
        value = self.condition(context)
        if inspect.isawaitable(value):
            value = await value
        logger.debug("condition_evaluated", node=self.name, result=bool(value))
        return bool(value)

    def select_next(self, output: Any, context: "WorkflowContext") -> Optional[str]:
        return self.if_true if output else self.if_false

    def referenced_nodes(self) -> List[str]:
        return [target for target in (self.if_true, self.if_false) if target is not None]
