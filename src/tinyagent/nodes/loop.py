"""Loop node implementation.

Re-executes a body node, threading an accumulator through
``context.loop_state``, until a break condition holds, the collection is
exhausted, or the iteration bound is hit. Hitting the bound is a normal exit.
"""

import inspect
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from tinyagent.core.context import LoopState
from tinyagent.core.node import BaseNode, NodeType
from tinyagent.logging import get_logger

if TYPE_CHECKING:
    from tinyagent.core.context import WorkflowContext

logger = get_logger(__name__, component="loop_node")


class LoopTermination(str, Enum):
    """Why a loop stopped."""

    BREAK_CONDITION = "break_condition"
    MAX_ITERATIONS = "max_iterations"
    ITEMS_EXHAUSTED = "items_exhausted"


class LoopConfig(BaseModel):
    """Configuration for loop nodes."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    max_iterations: int = Field(default=10, ge=1, le=10000, description="Upper bound on body executions")


class LoopResult(BaseModel):
    """Output of a loop node."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    accumulator: Any = Field(default=None, description="Accumulator value at exit")
    iterations: int = Field(ge=0, description="Body executions performed")
    terminated_by: LoopTermination


def _append(accumulator: Any, output: Any, context: "WorkflowContext") -> List[Any]:
    return [*accumulator, output]


class LoopNode(BaseNode):
    """Repeatedly run ``body``.

    Args:
        name: Node name.
        body: Node executed once per iteration. Receives the current item when
            ``items`` is set, otherwise the run input.
        max_iterations: Iteration bound (default 10).
        break_condition: Checked after each iteration, once the accumulator is
            updated; True stops the loop.
        items: Optional function ``(input, context) -> iterable``; the loop
            visits each item in order (still capped by ``max_iterations``).
        initial: Starting accumulator (defaults to an empty list).
        accumulate: ``(accumulator, output, context) -> accumulator``;
            defaults to appending each body output to a list.
    """

    node_type = NodeType.LOOP

    def __init__(
        self,
        name: str,
        body: BaseNode,
        max_iterations: int = 10,
        break_condition: Optional[Callable[["WorkflowContext"], Any]] = None,
        items: Optional[Callable[[Any, "WorkflowContext"], Any]] = None,
        initial: Any = None,
        accumulate: Optional[Callable[[Any, Any, "WorkflowContext"], Any]] = None,
        description: Optional[str] = None,
    ):
        super().__init__(name, description)
        self.body = body
        self.config = LoopConfig(max_iterations=max_iterations)
        self.break_condition = break_condition
        self.items = items
        self.accumulate = accumulate or _append
        if initial is None and accumulate is None:
            initial = []
        self.initial = initial

    def children(self) -> List[BaseNode]:
        return [self.body]

    async def execute(self, input: Any, context: "WorkflowContext") -> LoopResult:
        collection: Optional[List[Any]] = None
        if self.items is not None:
            items = self.items(input, context)
            if inspect.isawaitable(items):
                items = await items
            collection = list(items or [])

        bound = self.config.max_iterations
        if collection is not None:
            bound = min(bound, len(collection))

        accumulator = list(self.initial) if isinstance(self.initial, list) else self.initial
        iterations = 0
        terminated_by = LoopTermination.MAX_ITERATIONS
        if collection is not None and len(collection) <= self.config.max_iterations:
            terminated_by = LoopTermination.ITEMS_EXHAUSTED

        previous = context.update_loop_state(None)
        try:
            for index in range(bound):
                value = collection[index] if collection is not None else None
                state = LoopState(
                    index=index,
                    iteration=index + 1,
                    is_first=index == 0,
                    is_last=index == len(collection) - 1 if collection is not None else None,
                    value=value,
                    accumulator=accumulator,
                )
                context.update_loop_state(state)

                output = await context.run_node(self.body, value if collection is not None else input)
                iterations += 1

                accumulator = self.accumulate(accumulator, output, context)
                if inspect.isawaitable(accumulator):
                    accumulator = await accumulator
                context.update_loop_state(state.model_copy(update={"accumulator": accumulator}))

                if self.break_condition is not None:
                    stop = self.break_condition(context)
                    if inspect.isawaitable(stop):
                        stop = await stop
                    if stop:
                        terminated_by = LoopTermination.BREAK_CONDITION
                        break
        finally:
            context.update_loop_state(previous)

        logger.info(
            "loop_completed",
            node=self.name,
            iterations=iterations,
            terminated_by=terminated_by.value,
        )
        return LoopResult(accumulator=accumulator, iterations=iterations, terminated_by=terminated_by)
