"""Tool dispatcher.

Resolves tool call requests to registered tools, parses and validates their
arguments, executes them under the run's cancellation token, and normalizes
every outcome into a ToolCallRecord. Failures never escape as exceptions.
"""

import asyncio
import json
import time
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict, Field

from tinyagent.cancellation import CancellationToken
from tinyagent.core.message import ToolCallRecord, ToolCallRequest, ToolResult
from tinyagent.logging import get_logger
from tinyagent.metrics import UNKNOWN_TOOL_LABEL, get_metrics_collector
from tinyagent.tools.base import BaseTool, ToolContext

logger = get_logger(__name__, component="tool_dispatcher")

ToolSet = Union[Mapping[str, BaseTool], Iterable[BaseTool]]


class DispatchContext(BaseModel):
    """Run-level context shared by every call in one dispatch batch."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    cancellation: CancellationToken = Field(default_factory=CancellationToken)
    thread_id: Optional[str] = None
    user_id: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    def for_call(self, request: ToolCallRequest) -> ToolContext:
        return ToolContext(
            execution_id=request.id,
            cancellation=self.cancellation,
            thread_id=self.thread_id,
            user_id=self.user_id,
            metadata=dict(self.metadata),
        )


def index_tools(tools: ToolSet) -> Dict[str, BaseTool]:
    """Normalize a tool collection into a name -> tool mapping.

    Raises:
        ValueError: If two tools share a name.
    """
    if isinstance(tools, Mapping):
        return dict(tools)
    indexed: Dict[str, BaseTool] = {}
    for tool in tools:
        if tool.name in indexed:
            raise ValueError(f"Duplicate tool name: {tool.name}")
        indexed[tool.name] = tool
    return indexed


def parse_arguments(arguments: str) -> Any:
    """Parse raw argument text; blank text means no arguments."""
    if not arguments or not arguments.strip():
        return {}
    return json.loads(arguments)


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000


async def execute_tool(
    tools: Mapping[str, BaseTool],
    request: ToolCallRequest,
    run_context: Optional[DispatchContext] = None,
) -> ToolCallRecord:
    """Dispatch a single request. Never raises for tool-side failures."""
    run_context = run_context or DispatchContext()
    metrics = get_metrics_collector()

    tool = tools.get(request.name)
    if tool is None or not tool.config.enabled:
        logger.error("unknown_tool", tool_name=request.name, available_tools=list(tools.keys()))
        result = ToolResult.fail(f"Tool not found: {request.name}")
        metrics.record_tool_call(UNKNOWN_TOOL_LABEL, success=False, duration_ms=0.0)
        return ToolCallRecord(id=request.id, name=request.name, arguments=None, result=result)

    start = time.perf_counter()
    parsed: Any = None
    try:
        parsed = parse_arguments(request.arguments)
        if not tool.validate(parsed):
            raise ValueError(f"Invalid arguments for tool {tool.name}")
        tool_input = tool.parse(parsed)

        logger.info(
            "executing_tool",
            tool_name=tool.name,
            call_id=request.id,
            input_preview=request.arguments[:100],
        )

        coro = tool.execute(tool_input, run_context.for_call(request))
        timeout_ms = tool.config.timeout_ms
        if timeout_ms:
            try:
                data = await asyncio.wait_for(coro, timeout=timeout_ms / 1000)
            except asyncio.TimeoutError:
                raise TimeoutError(f"Tool timed out after {timeout_ms}ms") from None
        else:
            data = await coro

        result = ToolResult.ok(data, duration_ms=_elapsed_ms(start))
        logger.info(
            "tool_execution_success",
            tool_name=tool.name,
            call_id=request.id,
            duration_ms=round(result.duration_ms, 2),
        )
    except Exception as e:
        message = str(e) or type(e).__name__
        result = ToolResult.fail(message, duration_ms=_elapsed_ms(start))
        logger.warning(
            "tool_execution_failed",
            tool_name=tool.name,
            call_id=request.id,
            error=message,
            error_type=type(e).__name__,
        )

    metrics.record_tool_call(tool.name, success=result.success, duration_ms=result.duration_ms)
    return ToolCallRecord(id=request.id, name=request.name, arguments=parsed, result=result)


async def dispatch(
    tools: ToolSet,
    requests: Sequence[ToolCallRequest],
    run_context: Optional[DispatchContext] = None,
    parallel: bool = True,
) -> List[ToolCallRecord]:
    """Dispatch a batch of tool calls.

    Args:
        tools: Registered tools, as a mapping or an iterable of tools.
        requests: Calls requested by the model in one turn.
        run_context: Cancellation token and caller metadata for the batch.
        parallel: Run all calls concurrently (default). When False, each call
            completes before the next starts.

    Returns:
        One record per request, in request order.
    """
    indexed = index_tools(tools)
    run_context = run_context or DispatchContext()

    if not requests:
        return []

    logger.debug("dispatching_tools", count=len(requests), parallel=parallel)

    if parallel:
        return list(
            await asyncio.gather(*(execute_tool(indexed, request, run_context) for request in requests))
        )

    records: List[ToolCallRecord] = []
    for request in requests:
        records.append(await execute_tool(indexed, request, run_context))
    return records


def format_tool_result(record: ToolCallRecord) -> str:
    """Render a record as the content of the tool message fed back to the model."""
    if not record.result.success:
        return f"Error: {record.result.error}"
    data = record.result.data
    if isinstance(data, BaseModel):
        data = data.model_dump(mode="json")
    return json.dumps(data, default=str, ensure_ascii=False)
