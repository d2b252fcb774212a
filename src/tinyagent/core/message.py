"""Message types for the reasoning loop transcript.

This module defines the data structures exchanged between the reasoning loop,
the model adapter, and the tool dispatcher.
"""

from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class MessageRole(str, Enum):
    """Speaker of a transcript message."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class ToolCallRequest(BaseModel):
    """One tool invocation requested by the model in a single turn."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str = Field(description="Correlation id, unique within a run")
    name: str = Field(description="Name of the tool to invoke")
    arguments: str = Field(default="", description="Raw argument text as streamed by the model")


class ToolResult(BaseModel):
    """Discriminated success/failure outcome of one tool call."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    success: bool = Field(description="Whether the tool succeeded")
    data: Optional[Any] = Field(default=None, description="Tool output on success")
    error: Optional[str] = Field(default=None, description="Error message on failure")
    duration_ms: float = Field(default=0.0, ge=0, description="Wall-clock execution time")

    @model_validator(mode="after")
    def _check_discriminant(self) -> "ToolResult":
        if not self.success and not self.error:
            raise ValueError("failed ToolResult requires an error message")
        return self

    @classmethod
    def ok(cls, data: Any, duration_ms: float = 0.0) -> "ToolResult":
        return cls(success=True, data=data, duration_ms=duration_ms)

    @classmethod
    def fail(cls, error: str, duration_ms: float = 0.0) -> "ToolResult":
        return cls(success=False, error=error or "Unknown error", duration_ms=duration_ms)


class ToolCallRecord(BaseModel):
    """A dispatched tool call and its outcome. Created once, never mutated."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str = Field(description="Correlation id of the originating request")
    name: str = Field(description="Requested tool name")
    arguments: Any = Field(default=None, description="Parsed arguments (None if parsing failed)")
    result: ToolResult = Field(description="Outcome of the call")


class Message(BaseModel):
    """One transcript entry. Immutable once appended to a run."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    role: MessageRole = Field(description="Speaker")
    content: Optional[str] = Field(default=None, description="Text content")
    tool_calls: Optional[List[ToolCallRequest]] = Field(
        default=None, description="Tool calls requested by an assistant turn"
    )
    tool_call_id: Optional[str] = Field(
        default=None, description="Correlation id when role is tool"
    )
    name: Optional[str] = Field(default=None, description="Tool name when role is tool")

    @model_validator(mode="after")
    def _check_tool_message(self) -> "Message":
        if self.role == MessageRole.TOOL and not self.tool_call_id:
            raise ValueError("tool messages require tool_call_id")
        if self.tool_calls and self.role != MessageRole.ASSISTANT:
            raise ValueError("only assistant messages may carry tool_calls")
        return self

    @classmethod
    def system(cls, content: str) -> "Message":
        return cls(role=MessageRole.SYSTEM, content=content)

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(role=MessageRole.USER, content=content)

    @classmethod
    def assistant(
        cls, content: Optional[str] = None, tool_calls: Optional[List[ToolCallRequest]] = None
    ) -> "Message":
        return cls(role=MessageRole.ASSISTANT, content=content, tool_calls=tool_calls or None)

    @classmethod
    def tool(cls, tool_call_id: str, content: str, name: Optional[str] = None) -> "Message":
        return cls(role=MessageRole.TOOL, content=content, tool_call_id=tool_call_id, name=name)


class TokenUsage(BaseModel):
    """Token counts reported by the model adapter."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    prompt_tokens: int = Field(default=0, ge=0)
    completion_tokens: int = Field(default=0, ge=0)
    total_tokens: int = Field(default=0, ge=0)

    def __add__(self, other: "TokenUsage") -> "TokenUsage":
        return TokenUsage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
        )
