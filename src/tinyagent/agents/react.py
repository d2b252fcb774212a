"""ReAct (Reasoning + Acting) agent.

This module implements the reasoning loop from the paper:
"ReAct: Synergizing Reasoning and Acting in Language Models"
https://arxiv.org/abs/2210.03629

The loop is driven by native tool calling rather than text parsing:
1. Thinking: send the transcript and tool declarations to the model
2. ToolDispatch: run every requested tool and append one tool message each
3. Repeat until the model answers without tool calls, the iteration bound
   is reached, the run is cancelled, or a step fails

Every run is reported as a stream of chunks that always ends with exactly one
``finish`` chunk carrying the AgentRunResult.
"""

import time
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from tinyagent.cancellation import CancellationToken
from tinyagent.config import Config
from tinyagent.core.message import (
    Message,
    MessageRole,
    TokenUsage,
    ToolCallRecord,
    ToolCallRequest,
    ToolResult,
)
from tinyagent.core.streaming import (
    AgentRunResult,
    ChunkChannel,
    FinishReason,
    StreamChunk,
    collect_stream,
    stream_from,
)
from tinyagent.core.structured import OutputSchema, parse_structured
from tinyagent.errors import AgentError, AgentErrorCode, check_aborted, wrap_error
from tinyagent.events import HookEmitter, HookEvent
from tinyagent.logging import get_logger
from tinyagent.metrics import get_metrics_collector
from tinyagent.models.adapter import GenerationEventType, ModelAdapter
from tinyagent.tools.base import BaseTool
from tinyagent.tools.dispatcher import DispatchContext, ToolSet, dispatch, format_tool_result, index_tools

logger = get_logger(__name__, component="react_agent")


class ReActConfig(BaseModel):
    """Configuration for a ReAct agent."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(default="agent", description="Agent name used in logs, metrics and tool metadata")
    system_prompt: Optional[str] = Field(default=None, description="Injected as the first message")
    max_iterations: int = Field(
        default=5,
        ge=1,
        le=100,
        description="Maximum tool-dispatch rounds before stopping",
    )
    temperature: float = Field(default=0.7, ge=0.0, le=2.0, description="Sampling temperature")
    parallel_tool_calls: bool = Field(
        default=True,
        description="Run the tool calls of one turn concurrently",
    )
    output_schema: Optional[OutputSchema] = Field(
        default=None,
        description="Parse a JSON payload from the final answer into this model",
    )

    @classmethod
    def from_config(cls, config: Config, **overrides: Any) -> "ReActConfig":
        """Seed agent settings from the loaded configuration."""
        values: Dict[str, Any] = {
            "max_iterations": config.agent.max_iterations,
            "temperature": config.agent.temperature,
            "parallel_tool_calls": config.agent.parallel_tool_calls,
        }
        values.update(overrides)
        return cls(**values)


class RunOptions(BaseModel):
    """Per-call overrides for a single run."""

    model_config = ConfigDict(extra="forbid", arbitrary_types_allowed=True)

    max_iterations: Optional[int] = Field(default=None, ge=1)
    temperature: Optional[float] = Field(default=None, ge=0.0, le=2.0)
    cancellation: Optional[CancellationToken] = None
    thread_id: Optional[str] = None
    user_id: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class _RunState:
    """Mutable accumulator for one run; frozen into an AgentRunResult at the end."""

    def __init__(self) -> None:
        self.started = time.perf_counter()
        self.transcript: List[Message] = []
        self.content = ""
        self.tool_calls: List[ToolCallRecord] = []
        self.usage = TokenUsage()
        self.model_calls = 0
        self.tool_rounds = 0
        self.structured: Any = None
        self.seen_call_ids: set[str] = set()
        # Calls announced with tool-call-start that have no tool-result yet
        self.open_calls: Dict[str, str] = {}
        self.ended_calls: set[str] = set()

    def freeze(self, finish_reason: FinishReason, error: Optional[AgentError] = None) -> AgentRunResult:
        return AgentRunResult(
            content=self.content,
            tool_calls=list(self.tool_calls),
            usage=self.usage,
            duration_ms=(time.perf_counter() - self.started) * 1000,
            iterations=self.model_calls,
            structured=self.structured,
            error=error.message if error else None,
            error_code=error.agent_code if error else None,
            messages=list(self.transcript),
            finish_reason=finish_reason,
        )


class ReActAgent:
    """Agent that alternates between model calls and tool dispatch.

    Example:
        >>> agent = ReActAgent(model, tools=[search], config=ReActConfig(name="researcher"))
        >>> result = await agent.run("Who wrote Dune?")
        >>> result.finish_reason
        <FinishReason.STOP: 'stop'>
    """

    def __init__(
        self,
        model: ModelAdapter,
        tools: ToolSet = (),
        config: Optional[ReActConfig] = None,
        hooks: Optional[HookEmitter] = None,
    ):
        self.model = model
        self.tools: Dict[str, BaseTool] = index_tools(tools)
        self.config = config or ReActConfig()
        self.hooks = hooks or HookEmitter()
        self.metrics = get_metrics_collector()

    @property
    def name(self) -> str:
        return self.config.name

    def register_tool(self, tool: BaseTool) -> None:
        """Register a tool with the agent."""
        if tool.name in self.tools:
            raise ValueError(f"Duplicate tool name: {tool.name}")
        self.tools[tool.name] = tool
        logger.debug("tool_registered", agent=self.name, tool_name=tool.name)

    async def run(self, text: str, options: Optional[RunOptions] = None) -> AgentRunResult:
        """Run the loop on a single user message and return the final result."""
        return await collect_stream(self.chat([Message.user(text)], options))

    def stream(self, text: str, options: Optional[RunOptions] = None) -> AsyncIterator[StreamChunk]:
        """Streaming variant of ``run``."""
        return self.chat([Message.user(text)], options)

    def chat(
        self,
        messages: Sequence[Message],
        options: Optional[RunOptions] = None,
    ) -> AsyncIterator[StreamChunk]:
        """Run the loop over a transcript, streaming chunks as they are produced.

        The last chunk is always ``finish``. Closing the iterator early
        cancels the run.
        """
        history = list(messages)
        opts = options or RunOptions()
        return stream_from(lambda channel: self._run_loop(channel, history, opts))

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    async def _run_loop(
        self,
        channel: ChunkChannel[StreamChunk],
        messages: List[Message],
        options: RunOptions,
    ) -> None:
        state = _RunState()
        token = options.cancellation or CancellationToken()
        max_iterations = options.max_iterations or self.config.max_iterations
        temperature = options.temperature if options.temperature is not None else self.config.temperature

        if self.config.system_prompt and (not messages or messages[0].role != MessageRole.SYSTEM):
            state.transcript.append(Message.system(self.config.system_prompt))
        state.transcript.extend(messages)

        logger.info(
            "agent_run_started",
            agent=self.name,
            max_iterations=max_iterations,
            tools=list(self.tools.keys()),
            history_length=len(messages),
        )

        error: Optional[AgentError] = None
        finish_reason = FinishReason.ERROR
        try:
            while True:
                check_aborted(token)

                text, requests = await self._think(channel, state, token, temperature)

                if not requests:
                    state.content = text
                    self._append(state, Message.assistant(content=text))
                    if self.config.output_schema is not None:
                        state.structured = self._parse_structured(text)
                    finish_reason = FinishReason.STOP
                    break

                self._append(state, Message.assistant(content=text or None, tool_calls=requests))
                check_aborted(token)

                records = await dispatch(
                    self.tools,
                    requests,
                    DispatchContext(
                        cancellation=token,
                        thread_id=options.thread_id,
                        user_id=options.user_id,
                        metadata={**options.metadata, "agent_name": self.name},
                    ),
                    parallel=self.config.parallel_tool_calls,
                )
                for record in records:
                    state.open_calls.pop(record.id, None)
                    state.tool_calls.append(record)
                    channel.send(StreamChunk.tool_result(record))
                    self._append(state, Message.tool(record.id, format_tool_result(record), name=record.name))
                    self.hooks.emit(HookEvent.TOOL_CALL_COMPLETED, agent=self.name, record=record)

                state.tool_rounds += 1
                if state.tool_rounds >= max_iterations:
                    state.content = text
                    finish_reason = FinishReason.MAX_ITERATIONS
                    logger.warning(
                        "agent_max_iterations_reached",
                        agent=self.name,
                        max_iterations=max_iterations,
                    )
                    break
        except Exception as e:
            error = wrap_error(e)
            finish_reason = FinishReason.ERROR
            for call_id, tool_name in list(state.open_calls.items()):
                if call_id not in state.ended_calls:
                    channel.send(StreamChunk.tool_call_end(call_id))
                channel.send(
                    StreamChunk.tool_result(
                        ToolCallRecord(
                            id=call_id,
                            name=tool_name,
                            result=ToolResult.fail(f"Tool call not executed: {error.message}"),
                        )
                    )
                )
            state.open_calls.clear()
            channel.send(StreamChunk.error_chunk(error))
            log = logger.warning if error.agent_code == AgentErrorCode.ABORTED else logger.error
            log(
                "agent_run_failed",
                agent=self.name,
                error=error.message,
                code=error.code,
                iterations=state.model_calls,
                exc_info=error.agent_code != AgentErrorCode.ABORTED,
            )

        result = state.freeze(finish_reason, error)
        self.metrics.increment_agent_run(self.name, result.finish_reason.value)
        self.metrics.record_agent_tokens(self.name, result.usage.total_tokens)
        logger.info(
            "agent_run_completed",
            agent=self.name,
            finish_reason=result.finish_reason.value,
            iterations=result.iterations,
            tool_calls=len(result.tool_calls),
            total_tokens=result.usage.total_tokens,
            duration_ms=round(result.duration_ms, 2),
        )
        channel.close(StreamChunk.finish(result))

    async def _think(
        self,
        channel: ChunkChannel[StreamChunk],
        state: _RunState,
        token: CancellationToken,
        temperature: float,
    ) -> tuple[str, List[ToolCallRequest]]:
        """One model call: stream its text and collect the tool calls it requests."""
        state.model_calls += 1
        self.metrics.increment_agent_iteration(self.name)
        logger.debug("agent_iteration_started", agent=self.name, iteration=state.model_calls)

        text_parts: List[str] = []
        slots: Dict[int, Dict[str, Any]] = {}
        declarations = [tool.declaration() for tool in self.tools.values()]

        try:
            async for event in self.model.generate(list(state.transcript), declarations, temperature, token):
                if event.type == GenerationEventType.CONTENT_DELTA and event.delta:
                    text_parts.append(event.delta)
                    state.content = "".join(text_parts)
                    channel.send(StreamChunk.content(event.delta))
                elif event.type == GenerationEventType.TOOL_CALL_DELTA:
                    self._on_tool_call_delta(channel, state, slots, event)
                elif event.type == GenerationEventType.USAGE and event.usage is not None:
                    state.usage = state.usage + event.usage
                elif event.type == GenerationEventType.DONE:
                    break
        except AgentError:
            raise
        except Exception as e:
            raise wrap_error(e, AgentErrorCode.LLM_ERROR) from e

        requests: List[ToolCallRequest] = []
        for index in sorted(slots):
            slot = slots[index]
            channel.send(StreamChunk.tool_call_end(slot["id"]))
            state.ended_calls.add(slot["id"])
            requests.append(ToolCallRequest(id=slot["id"], name=slot["name"], arguments="".join(slot["args"])))
        return "".join(text_parts), requests

    def _on_tool_call_delta(
        self,
        channel: ChunkChannel[StreamChunk],
        state: _RunState,
        slots: Dict[int, Dict[str, Any]],
        event: Any,
    ) -> None:
        index = event.index or 0
        slot = slots.get(index)
        if slot is None:
            if not event.tool_name:
                raise AgentError(
                    f"Model started tool call {index} without a name",
                    code=AgentErrorCode.LLM_ERROR,
                )
            call_id = event.tool_call_id or f"call_{uuid4().hex[:12]}"
            if call_id in state.seen_call_ids:
                raise AgentError(
                    f"Model reused tool call id within a run: {call_id}",
                    code=AgentErrorCode.LLM_ERROR,
                )
            state.seen_call_ids.add(call_id)
            state.open_calls[call_id] = event.tool_name
            slot = {"id": call_id, "name": event.tool_name, "args": []}
            slots[index] = slot
            channel.send(StreamChunk.tool_call_start(call_id, event.tool_name))

        if event.arguments_delta:
            slot["args"].append(event.arguments_delta)
            channel.send(StreamChunk.tool_call_args(slot["id"], event.arguments_delta))

    def _append(self, state: _RunState, message: Message) -> None:
        state.transcript.append(message)
        self.hooks.emit(HookEvent.MESSAGE_APPENDED, agent=self.name, message=message)

    def _parse_structured(self, text: str) -> Any:
        """Best-effort structured parse; failures leave ``structured`` unset."""
        schema = self.config.output_schema
        try:
            return parse_structured(schema, text)
        except Exception as e:
            logger.debug(
                "structured_output_parse_failed",
                agent=self.name,
                code=AgentErrorCode.VALIDATION_ERROR.value,
                error=str(e),
            )
            return None
