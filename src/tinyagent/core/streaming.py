"""Stream chunk protocol shared by the reasoning loop and workflow executor.

A run reports progress as an ordered, single-pass sequence of chunks. The
producer writes into a ChunkChannel and the caller consumes it; closing the
channel with its terminal item is the only way a run ends, so the terminal
item is always the last one a consumer sees.
"""

import asyncio
import contextlib
from enum import Enum
from typing import (
    Any,
    AsyncIterable,
    AsyncIterator,
    Awaitable,
    Callable,
    Generic,
    List,
    Optional,
    TypeVar,
)

from pydantic import BaseModel, ConfigDict, Field

from tinyagent.core.message import Message, TokenUsage, ToolCallRecord
from tinyagent.errors import AgentError, AgentErrorCode
from tinyagent.logging import get_logger

logger = get_logger(__name__, component="streaming")

T = TypeVar("T")


class FinishReason(str, Enum):
    """Terminal classification of a reasoning-loop run."""

    STOP = "stop"
    MAX_ITERATIONS = "max_iterations"
    ERROR = "error"


class AgentRunResult(BaseModel):
    """Completed reasoning-loop run. Frozen once surfaced."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    content: str = Field(default="", description="Final (or partial) answer text")
    tool_calls: List[ToolCallRecord] = Field(default_factory=list, description="Dispatched calls in order")
    usage: TokenUsage = Field(default_factory=TokenUsage, description="Summed token usage")
    duration_ms: float = Field(default=0.0, ge=0, description="Wall-clock duration")
    iterations: int = Field(default=0, ge=0, description="Model calls issued")
    structured: Optional[Any] = Field(default=None, description="Parsed JSON payload, if requested")
    error: Optional[str] = Field(default=None, description="Human-readable error on failure")
    error_code: Optional[AgentErrorCode] = Field(default=None, description="Stable error code on failure")
    messages: List[Message] = Field(default_factory=list, description="Full transcript of the run")
    finish_reason: FinishReason = Field(description="Why the run ended")

    @property
    def success(self) -> bool:
        return self.finish_reason != FinishReason.ERROR


class StreamChunkType(str, Enum):
    """Closed set of chunk types."""

    CONTENT = "content"
    TOOL_CALL_START = "tool-call-start"
    TOOL_CALL_ARGS = "tool-call-args"
    TOOL_CALL_END = "tool-call-end"
    TOOL_RESULT = "tool-result"
    ERROR = "error"
    FINISH = "finish"


class StreamChunk(BaseModel):
    """One unit of a reasoning-loop stream."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    type: StreamChunkType = Field(description="Chunk discriminator")
    delta: Optional[str] = Field(default=None, description="Text delta (content, tool-call-args)")
    tool_call_id: Optional[str] = Field(default=None, description="Correlation id of the tool call")
    tool_name: Optional[str] = Field(default=None, description="Tool name (tool-call-start, tool-result)")
    record: Optional[ToolCallRecord] = Field(default=None, description="Dispatch outcome (tool-result)")
    error: Optional[str] = Field(default=None, description="Error message (error)")
    error_code: Optional[AgentErrorCode] = Field(default=None, description="Error code (error)")
    result: Optional[AgentRunResult] = Field(default=None, description="Terminal result (finish)")

    @classmethod
    def content(cls, delta: str) -> "StreamChunk":
        return cls(type=StreamChunkType.CONTENT, delta=delta)

    @classmethod
    def tool_call_start(cls, tool_call_id: str, tool_name: str) -> "StreamChunk":
        return cls(type=StreamChunkType.TOOL_CALL_START, tool_call_id=tool_call_id, tool_name=tool_name)

    @classmethod
    def tool_call_args(cls, tool_call_id: str, delta: str) -> "StreamChunk":
        return cls(type=StreamChunkType.TOOL_CALL_ARGS, tool_call_id=tool_call_id, delta=delta)

    @classmethod
    def tool_call_end(cls, tool_call_id: str) -> "StreamChunk":
        return cls(type=StreamChunkType.TOOL_CALL_END, tool_call_id=tool_call_id)

    @classmethod
    def tool_result(cls, record: ToolCallRecord) -> "StreamChunk":
        return cls(
            type=StreamChunkType.TOOL_RESULT,
            tool_call_id=record.id,
            tool_name=record.name,
            record=record,
        )

    @classmethod
    def error_chunk(cls, error: AgentError) -> "StreamChunk":
        return cls(type=StreamChunkType.ERROR, error=error.message, error_code=error.agent_code)

    @classmethod
    def finish(cls, result: AgentRunResult) -> "StreamChunk":
        return cls(type=StreamChunkType.FINISH, result=result)


class ChannelClosedError(RuntimeError):
    """Raised when a producer writes to a channel that has been closed."""


_CLOSED = object()


class ChunkChannel(Generic[T]):
    """Single-producer, single-consumer channel backed by an asyncio.Queue.

    ``close(final)`` enqueues the terminal item followed by an end marker and
    refuses further writes, so nothing can follow the terminal item.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False
        self._drained = False
        self.sent = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def send(self, item: T) -> None:
        if self._closed:
            raise ChannelClosedError("send on closed channel")
        self._queue.put_nowait(item)
        self.sent += 1

    def close(self, final: Optional[T] = None) -> None:
        """Close the channel, optionally delivering a terminal item first. Idempotent."""
        if self._closed:
            return
        if final is not None:
            self._queue.put_nowait(final)
            self.sent += 1
        self._closed = True
        self._queue.put_nowait(_CLOSED)

    def __aiter__(self) -> "ChunkChannel[T]":
        return self

    async def __anext__(self) -> T:
        if self._drained:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED:
            self._drained = True
            raise StopAsyncIteration
        return item


async def _drive(producer: Callable[[ChunkChannel[T]], Awaitable[None]], channel: ChunkChannel[T]) -> None:
    try:
        await producer(channel)
    finally:
        channel.close()


async def stream_from(
    producer: Callable[[ChunkChannel[T]], Awaitable[None]],
) -> AsyncIterator[T]:
    """Run ``producer`` as a task and yield what it sends, in order.

    If the consumer stops early (breaks out or calls ``aclose()``) the
    producer task is cancelled. A producer that raises after the consumer
    has drained the channel re-raises here.
    """
    channel: ChunkChannel[T] = ChunkChannel()
    task = asyncio.create_task(_drive(producer, channel))
    try:
        async for item in channel:
            yield item
        await task
    finally:
        if not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
            logger.debug("stream_producer_cancelled", sent=channel.sent)


async def collect_stream(chunks: AsyncIterable[StreamChunk]) -> AgentRunResult:
    """Consume a chunk stream and return the result carried by its finish chunk."""
    result: Optional[AgentRunResult] = None
    async for chunk in chunks:
        if chunk.type == StreamChunkType.FINISH:
            result = chunk.result
    if result is None:
        raise AgentError("Stream ended without a finish chunk", code=AgentErrorCode.UNKNOWN)
    return result
