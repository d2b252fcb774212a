"""Tool definitions and the tool dispatcher."""

from tinyagent.tools.base import (
    BaseTool,
    FunctionTool,
    ToolConfig,
    ToolContext,
    ToolDeclaration,
    define_tool,
)
from tinyagent.tools.dispatcher import (
    DispatchContext,
    dispatch,
    execute_tool,
    format_tool_result,
    index_tools,
)

__all__ = [
    "BaseTool",
    "FunctionTool",
    "ToolConfig",
    "ToolContext",
    "ToolDeclaration",
    "define_tool",
    "DispatchContext",
    "dispatch",
    "execute_tool",
    "format_tool_result",
    "index_tools",
]
