"""Tool node: run one tool as a workflow step.

The call goes through the same dispatcher the agent uses, so validation,
timeouts, logging and metrics behave identically. A failed call fails the
node.
"""

import inspect
import json
from typing import TYPE_CHECKING, Any, Callable, Optional
from uuid import uuid4

from pydantic import BaseModel

from tinyagent.core.message import ToolCallRequest
from tinyagent.core.node import BaseNode, NodeType
from tinyagent.errors import ToolExecutionError
from tinyagent.tools.base import BaseTool
from tinyagent.tools.dispatcher import DispatchContext, execute_tool

if TYPE_CHECKING:
    from tinyagent.core.context import WorkflowContext


class ToolNode(BaseNode):
    """Execute ``tool`` with arguments derived from the node input.

    Args:
        name: Node name.
        tool: Tool to run.
        input_mapper: ``(input, context) -> arguments``. Defaults to passing
            the input through; pydantic models are dumped first.
        output_transform: ``(data, context) -> output`` applied to the tool's
            data on success.
    """

    node_type = NodeType.TOOL

    def __init__(
        self,
        name: str,
        tool: BaseTool,
        input_mapper: Optional[Callable[[Any, "WorkflowContext"], Any]] = None,
        output_transform: Optional[Callable[[Any, "WorkflowContext"], Any]] = None,
        description: Optional[str] = None,
    ):
        super().__init__(name, description or tool.description)
        self.tool = tool
        self.input_mapper = input_mapper
        self.output_transform = output_transform

    async def execute(self, input: Any, context: "WorkflowContext") -> Any:
        arguments = input
        if self.input_mapper is not None:
            arguments = self.input_mapper(input, context)
            if inspect.isawaitable(arguments):
                arguments = await arguments
        if isinstance(arguments, BaseModel):
            arguments = arguments.model_dump()
        if arguments is None:
            arguments = {}

        request = ToolCallRequest(
            id=f"{context.run_id}:{self.name}:{uuid4().hex[:8]}",
            name=self.tool.name,
            arguments=json.dumps(arguments, default=str),
        )
        run_context = DispatchContext(
            cancellation=context.cancellation,
            metadata={"workflow": context.workflow_name, "node": self.name},
        )
        record = await execute_tool({self.tool.name: self.tool}, request, run_context)

        if not record.result.success:
            raise ToolExecutionError(record.result.error or "Tool failed", tool_name=self.tool.name)

        data = record.result.data
        if self.output_transform is not None:
            data = self.output_transform(data, context)
            if inspect.isawaitable(data):
                data = await data
        return data
