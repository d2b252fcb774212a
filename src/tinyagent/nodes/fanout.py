"""Parallel (fan-out/fan-in) node implementation.

Runs a declared set of branch nodes, or one instance of a template node per
item of a computed collection, concurrently and joins them before the path
continues. A failure policy decides what a failed branch does to the node.
"""

import asyncio
import contextlib
import inspect
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Iterable, List, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field

from tinyagent.core.node import BaseNode, NodeType
from tinyagent.errors import AbortedError, NodeExecutionError, WorkflowConfigError
from tinyagent.logging import get_logger

if TYPE_CHECKING:
    from tinyagent.core.context import WorkflowContext

logger = get_logger(__name__, component="parallel_node")


class FailurePolicy(str, Enum):
    """What a failed branch does to the parallel node."""

    ALL = "all"  # Any branch failure fails the node
    PARTIAL = "partial"  # Failures tolerated, every branch reported
    NONE = "none"  # Failures ignored, only successful outputs kept


class BranchResult(BaseModel):
    """Outcome of one branch under the partial failure policy."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    key: str = Field(description="Output key of the branch")
    success: bool
    output: Any = None
    error: Optional[str] = None


class ParallelConfig(BaseModel):
    """Configuration for parallel nodes."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    max_concurrency: Optional[int] = Field(
        default=None,
        ge=1,
        description="Maximum branches running at once (unbounded if None)",
    )
    failure_policy: FailurePolicy = Field(default=FailurePolicy.ALL)


ItemsFunction = Callable[[Any, "WorkflowContext"], Any]
MergeFunction = Callable[[Any, "WorkflowContext"], Any]


class ParallelNode(BaseNode):
    """Fan out to branches and join.

    Static branches record outputs under their own names and produce a
    ``{name: output}`` mapping. Dynamic fan-out (``for_each`` + ``node``)
    runs the template once per item with the item as input, records outputs
    under ``"<node>[<index>]"`` and produces a list in item order. With the
    partial policy the node produces a list of BranchResult instead. ``merge``
    receives that value and the context and its return value becomes the
    node's output.
    """

    node_type = NodeType.PARALLEL

    def __init__(
        self,
        name: str,
        branches: Optional[Sequence[BaseNode]] = None,
        for_each: Optional[ItemsFunction] = None,
        node: Optional[BaseNode] = None,
        merge: Optional[MergeFunction] = None,
        max_concurrency: Optional[int] = None,
        failure_policy: FailurePolicy = FailurePolicy.ALL,
        description: Optional[str] = None,
    ):
        super().__init__(name, description)
        if branches and (for_each is not None or node is not None):
            raise WorkflowConfigError(f'Parallel node "{name}" takes either branches or for_each with node, not both')
        if not branches and (for_each is None or node is None):
            raise WorkflowConfigError(f'Parallel node "{name}" needs branches, or for_each together with node')

        self.branches: List[BaseNode] = list(branches or [])
        names = [branch.name for branch in self.branches]
        if len(names) != len(set(names)):
            raise WorkflowConfigError(f'Parallel node "{name}" has duplicate branch names')

        self.for_each = for_each
        self.node = node
        self.merge = merge
        self.config = ParallelConfig(max_concurrency=max_concurrency, failure_policy=failure_policy)

    def children(self) -> List[BaseNode]:
        return list(self.branches) if self.branches else [self.node]

    async def _jobs(self, input: Any, context: "WorkflowContext") -> List[Tuple[str, BaseNode, Any]]:
        if self.branches:
            return [(branch.name, branch, input) for branch in self.branches]

        items = self.for_each(input, context)
        if inspect.isawaitable(items):
            items = await items
        template = self.node
        return [(f"{template.name}[{index}]", template, item) for index, item in enumerate(_as_list(items))]

    async def execute(self, input: Any, context: "WorkflowContext") -> Any:
        jobs = await self._jobs(input, context)
        semaphore = asyncio.Semaphore(self.config.max_concurrency) if self.config.max_concurrency else None

        async def run_branch(key: str, node: BaseNode, branch_input: Any) -> Any:
            guard = semaphore if semaphore is not None else contextlib.nullcontext()
            async with guard:
                return await context.run_node(node, branch_input, output_key=key)

        logger.debug(
            "parallel_fanout_started",
            node=self.name,
            branches=len(jobs),
            max_concurrency=self.config.max_concurrency,
            failure_policy=self.config.failure_policy.value,
        )

        outcomes = await asyncio.gather(
            *(run_branch(key, node, branch_input) for key, node, branch_input in jobs),
            return_exceptions=True,
        )

        failures: List[Tuple[str, BaseException]] = []
        for (key, _, _), outcome in zip(jobs, outcomes):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception) or isinstance(outcome, AbortedError):
                    raise outcome
                failures.append((key, outcome))

        logger.info(
            "parallel_fanout_completed",
            node=self.name,
            succeeded=len(jobs) - len(failures),
            failed=len(failures),
        )

        policy = self.config.failure_policy
        if policy == FailurePolicy.ALL and failures:
            raise failures[0][1]

        if policy == FailurePolicy.PARTIAL:
            value: Any = [
                BranchResult(key=key, success=False, error=_error_message(outcome))
                if isinstance(outcome, BaseException)
                else BranchResult(key=key, success=True, output=outcome)
                for (key, _, _), outcome in zip(jobs, outcomes)
            ]
        else:
            succeeded = [
                (key, outcome)
                for (key, _, _), outcome in zip(jobs, outcomes)
                if not isinstance(outcome, BaseException)
            ]
            if self.branches:
                value = {key: outcome for key, outcome in succeeded}
            else:
                value = [outcome for _, outcome in succeeded]

        if self.merge is not None:
            merged = self.merge(value, context)
            if inspect.isawaitable(merged):
                merged = await merged
            return merged
        return value


def _as_list(items: Any) -> List[Any]:
    if items is None:
        return []
    if isinstance(items, (str, bytes, dict)) or not isinstance(items, Iterable):
        raise TypeError(f"for_each must return an iterable of items, got {type(items).__name__}")
    return list(items)


def _error_message(error: BaseException) -> str:
    if isinstance(error, NodeExecutionError):
        return str(error.cause) or type(error.cause).__name__
    return str(error) or type(error).__name__
