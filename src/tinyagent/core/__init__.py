"""Core engine for tinyagent: messages, streaming and the workflow graph executor."""

from tinyagent.core.context import LoopState, WorkflowContext
from tinyagent.core.executor import (
    ExecutionOptions,
    WorkflowExecutor,
    execute_workflow,
    stream_workflow,
)
from tinyagent.core.graph import Edge, Workflow
from tinyagent.core.message import (
    Message,
    MessageRole,
    TokenUsage,
    ToolCallRecord,
    ToolCallRequest,
    ToolResult,
)
from tinyagent.core.node import BaseNode, NodeType
from tinyagent.core.streaming import (
    AgentRunResult,
    ChunkChannel,
    FinishReason,
    StreamChunk,
    StreamChunkType,
    collect_stream,
    stream_from,
)
from tinyagent.core.structured import extract_json_payload, parse_structured
from tinyagent.core.trace import WorkflowEvent, WorkflowEventType, WorkflowExecutionResult

__all__ = [
    # Messages
    "Message",
    "MessageRole",
    "TokenUsage",
    "ToolCallRequest",
    "ToolCallRecord",
    "ToolResult",
    # Streaming
    "AgentRunResult",
    "ChunkChannel",
    "FinishReason",
    "StreamChunk",
    "StreamChunkType",
    "collect_stream",
    "stream_from",
    "extract_json_payload",
    "parse_structured",
    # Workflow graph
    "BaseNode",
    "NodeType",
    "Edge",
    "Workflow",
    "LoopState",
    "WorkflowContext",
    "ExecutionOptions",
    "WorkflowExecutor",
    "execute_workflow",
    "stream_workflow",
    "WorkflowEvent",
    "WorkflowEventType",
    "WorkflowExecutionResult",
]
