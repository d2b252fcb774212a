"""tinyagent: a ReAct reasoning loop and a workflow graph executor for LLM agents.

The reasoning loop alternates model calls with tool dispatch and reports
every run as a stream of chunks. The workflow executor runs a validated graph
of nodes over a shared context and reports every run as a stream of
lifecycle events.
"""

__version__ = "0.1.0"

# Logging exports
from tinyagent.logging import (
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
    unbind_context,
)

# Error exports
from tinyagent.errors import (
    AbortedError,
    AgentError,
    AgentErrorCode,
    NodeExecutionError,
    RetryConfig,
    TinyAgentError,
    ToolExecutionError,
    WorkflowConfigError,
    WorkflowExecutionError,
    with_retry,
)

# Cancellation and hooks
from tinyagent.cancellation import CancellationToken
from tinyagent.events import HookEmitter, HookEvent, HookPayload

# Config exports
from tinyagent.config import Config, load_config

# Core exports
from tinyagent.core import (
    AgentRunResult,
    BaseNode,
    Edge,
    ExecutionOptions,
    FinishReason,
    Message,
    MessageRole,
    StreamChunk,
    StreamChunkType,
    TokenUsage,
    ToolCallRecord,
    ToolCallRequest,
    ToolResult,
    Workflow,
    WorkflowContext,
    WorkflowEvent,
    WorkflowEventType,
    WorkflowExecutionResult,
    WorkflowExecutor,
    execute_workflow,
    stream_workflow,
)

# Model adapter
from tinyagent.models import GenerationEvent, GenerationEventType, ModelAdapter

# Tool exports
from tinyagent.tools import BaseTool, FunctionTool, ToolContext, define_tool, dispatch

# Node exports
from tinyagent.nodes import (
    ConditionNode,
    FailurePolicy,
    FunctionNode,
    LLMNode,
    LoopNode,
    ParallelNode,
    ToolNode,
    create_node,
)

# Agent exports
from tinyagent.agents import (
    AgentNode,
    InMemoryConversationStore,
    PersistentAgent,
    ReActAgent,
    ReActConfig,
    RunOptions,
    WorkflowAgent,
    compose_agents,
)

# Metrics exports
from tinyagent.metrics import MetricsCollector, get_metrics_collector, start_metrics_server

__all__ = [
    "__version__",
    # Logging
    "configure_logging",
    "get_logger",
    "bind_context",
    "unbind_context",
    "clear_context",
    # Errors
    "TinyAgentError",
    "AgentError",
    "AgentErrorCode",
    "AbortedError",
    "ToolExecutionError",
    "WorkflowConfigError",
    "NodeExecutionError",
    "WorkflowExecutionError",
    "RetryConfig",
    "with_retry",
    # Cancellation and hooks
    "CancellationToken",
    "HookEmitter",
    "HookEvent",
    "HookPayload",
    # Config
    "Config",
    "load_config",
    # Core
    "Message",
    "MessageRole",
    "TokenUsage",
    "ToolCallRequest",
    "ToolCallRecord",
    "ToolResult",
    "AgentRunResult",
    "FinishReason",
    "StreamChunk",
    "StreamChunkType",
    "BaseNode",
    "Edge",
    "Workflow",
    "WorkflowContext",
    "ExecutionOptions",
    "WorkflowExecutor",
    "WorkflowEvent",
    "WorkflowEventType",
    "WorkflowExecutionResult",
    "execute_workflow",
    "stream_workflow",
    # Models
    "ModelAdapter",
    "GenerationEvent",
    "GenerationEventType",
    # Tools
    "BaseTool",
    "FunctionTool",
    "ToolContext",
    "define_tool",
    "dispatch",
    # Nodes
    "FunctionNode",
    "create_node",
    "ConditionNode",
    "ParallelNode",
    "FailurePolicy",
    "LoopNode",
    "LLMNode",
    "ToolNode",
    # Agents
    "ReActAgent",
    "ReActConfig",
    "RunOptions",
    "AgentNode",
    "PersistentAgent",
    "InMemoryConversationStore",
    "WorkflowAgent",
    "compose_agents",
    # Metrics
    "MetricsCollector",
    "get_metrics_collector",
    "start_metrics_server",
]
