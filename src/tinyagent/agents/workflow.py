"""Workflow-backed agents.

WorkflowAgent exposes a workflow through the same ``run``/``stream`` surface
as ReActAgent. compose_agents chains several agents into a sequential
workflow.
"""

import time
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field

from tinyagent.agents.react import ReActAgent, RunOptions
from tinyagent.core.context import WorkflowContext
from tinyagent.core.executor import ExecutionOptions, WorkflowExecutor
from tinyagent.core.graph import Edge, Workflow
from tinyagent.core.message import Message
from tinyagent.core.node import BaseNode, NodeType
from tinyagent.core.streaming import AgentRunResult, FinishReason, StreamChunk, StreamChunkType
from tinyagent.core.trace import WorkflowEventType, WorkflowExecutionResult
from tinyagent.errors import AbortedError, AgentError, AgentErrorCode, WorkflowConfigError
from tinyagent.logging import get_logger
from tinyagent.nodes.function import FunctionNode

logger = get_logger(__name__, component="workflow_agent")

OUTPUT_NODE = "_output"


class WorkflowAgentInput(BaseModel):
    """Input handed to a workflow run by a WorkflowAgent."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    message: str = Field(description="User message")
    messages: List[Message] = Field(default_factory=list, description="Conversation history")
    context: Dict[str, Any] = Field(default_factory=dict, description="Caller-supplied context")


class WorkflowAgentOutput(BaseModel):
    """What a workflow run by a WorkflowAgent is expected to produce."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    content: str = ""
    structured: Any = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


def default_message(input: Any, context: WorkflowContext) -> str:
    if isinstance(input, str):
        return input
    if isinstance(input, WorkflowAgentInput):
        return input.message
    if isinstance(input, dict) and "message" in input:
        return str(input["message"])
    return str(input)


class AgentNode(BaseNode):
    """Run an agent on a message derived from the node input.

    The agent shares the run's cancellation token, its text deltas are
    forwarded as ``llm_token`` events, and its AgentRunResult becomes the
    node output. An agent run that ends in error fails the node.
    """

    node_type = NodeType.AGENT

    def __init__(
        self,
        name: str,
        agent: ReActAgent,
        extract_message: Optional[Callable[[Any, WorkflowContext], str]] = None,
        options: Optional[RunOptions] = None,
        description: Optional[str] = None,
    ):
        super().__init__(name, description)
        self.agent = agent
        self.extract_message = extract_message or default_message
        self.options = options or RunOptions()

    async def execute(self, input: Any, context: WorkflowContext) -> AgentRunResult:
        text = self.extract_message(input, context)
        options = self.options.model_copy(
            update={
                "cancellation": context.cancellation,
                "metadata": {
                    **self.options.metadata,
                    "workflow": context.workflow_name,
                    "node": context.current_node or self.name,
                },
            }
        )

        result: Optional[AgentRunResult] = None
        async for chunk in self.agent.chat([Message.user(text)], options):
            if chunk.type == StreamChunkType.CONTENT and chunk.delta:
                context.emit(WorkflowEventType.LLM_TOKEN, token=chunk.delta)
            elif chunk.type == StreamChunkType.FINISH:
                result = chunk.result

        if result is None:
            raise AgentError("Agent stream ended without a finish chunk")
        if result.finish_reason == FinishReason.ERROR:
            if result.error_code == AgentErrorCode.ABORTED:
                raise AbortedError(result.error or "Agent execution was aborted", reason=context.cancellation.reason)
            raise AgentError(
                result.error or "Agent run failed",
                code=result.error_code or AgentErrorCode.UNKNOWN,
            )
        return result


def _content_of(output: Any) -> Tuple[str, Any]:
    """Best-effort (content, structured) view of a workflow's final output."""
    if output is None:
        return "", None
    if isinstance(output, str):
        return output, None
    if isinstance(output, dict):
        return str(output.get("content", "")), output.get("structured")
    content = getattr(output, "content", None)
    if content is not None:
        return str(content), getattr(output, "structured", None)
    return str(output), None


class WorkflowAgent:
    """Run a workflow as if it were an agent.

    The workflow receives a WorkflowAgentInput and its last node's output is
    read as the answer (a WorkflowAgentOutput, a string, a dict with
    ``content``, or anything with a ``content`` attribute).
    """

    def __init__(
        self,
        name: str,
        workflow: Workflow,
        default_options: Optional[ExecutionOptions] = None,
    ):
        self._name = name
        self.workflow = workflow
        self.default_options = default_options or ExecutionOptions()

    @property
    def name(self) -> str:
        return self._name

    def _execution_options(self, options: Optional[RunOptions]) -> ExecutionOptions:
        if options is None or options.cancellation is None:
            return self.default_options
        return self.default_options.model_copy(update={"cancellation": options.cancellation})

    async def run_workflow(
        self,
        input: WorkflowAgentInput,
        options: Optional[ExecutionOptions] = None,
    ) -> WorkflowExecutionResult:
        """Full workflow execution with the detailed result."""
        opts = self.default_options
        if options is not None:
            opts = opts.model_copy(update={field: getattr(options, field) for field in options.model_fields_set})
        return await WorkflowExecutor(self.workflow, opts).execute(input)

    async def run(self, text: str, options: Optional[RunOptions] = None) -> AgentRunResult:
        result: Optional[AgentRunResult] = None
        async for chunk in self.stream(text, options):
            if chunk.result is not None:
                result = chunk.result
        if result is None:
            raise AgentError("Workflow agent stream ended without a finish chunk")
        return result

    async def stream(self, text: str, options: Optional[RunOptions] = None) -> AsyncIterator[StreamChunk]:
        """Stream the workflow's model tokens as content chunks, then finish."""
        started = time.perf_counter()
        executor = WorkflowExecutor(self.workflow, self._execution_options(options))
        outcome: Optional[WorkflowExecutionResult] = None

        async for event in executor.stream(WorkflowAgentInput(message=text)):
            if event.type == WorkflowEventType.LLM_TOKEN and event.data.get("token"):
                yield StreamChunk.content(event.data["token"])
            elif event.type.is_terminal:
                outcome = event.result

        duration_ms = (time.perf_counter() - started) * 1000
        if outcome is None or not outcome.success:
            error = _as_agent_error(outcome)
            logger.error("workflow_agent_failed", agent=self.name, error=error.message, code=error.code)
            yield StreamChunk.error_chunk(error)
            yield StreamChunk.finish(
                AgentRunResult(
                    duration_ms=duration_ms,
                    error=error.message,
                    error_code=error.agent_code,
                    finish_reason=FinishReason.ERROR,
                )
            )
            return

        content, structured = _content_of(outcome.output)
        yield StreamChunk.finish(
            AgentRunResult(
                content=content,
                structured=structured,
                duration_ms=duration_ms,
                finish_reason=FinishReason.STOP,
            )
        )


def _as_agent_error(outcome: Optional[WorkflowExecutionResult]) -> AgentError:
    if outcome is None:
        return AgentError("Workflow ended without a result")
    cause = outcome.exception
    while cause is not None and not isinstance(cause, AgentError):
        cause = cause.__cause__
    code = cause.agent_code if isinstance(cause, AgentError) else AgentErrorCode.UNKNOWN
    return AgentError(outcome.error or "Workflow failed", code=code)


InputExtractor = Callable[[Optional[AgentRunResult], Any, WorkflowContext], str]


def _default_extractor(previous: Optional[AgentRunResult], input: Any, context: WorkflowContext) -> str:
    if previous is None:
        return input.message if isinstance(input, WorkflowAgentInput) else str(input)
    return previous.content


def compose_agents(
    name: str,
    agents: Sequence[Tuple[str, ReActAgent]],
    input_extractor: Optional[InputExtractor] = None,
) -> Workflow:
    """Chain agents into a sequential workflow.

    Each agent receives the message produced by ``input_extractor`` from the
    previous agent's result (or the workflow input for the first agent). A
    final ``_output`` node turns the last result into a WorkflowAgentOutput.

    Example:
        >>> workflow = compose_agents("pipeline", [("planner", planner), ("writer", writer)])
        >>> agent = WorkflowAgent("pipeline", workflow)
    """
    if not agents:
        raise WorkflowConfigError(f'Composed workflow "{name}" needs at least one agent')

    extract = input_extractor or _default_extractor
    names = [node_name for node_name, _ in agents]

    def extractor_for(index: int) -> Callable[[Any, WorkflowContext], str]:
        previous_name = names[index - 1] if index > 0 else None

        def extract_message(input: Any, context: WorkflowContext) -> str:
            previous = context.get_node_output(previous_name) if previous_name else None
            return extract(previous, input, context)

        return extract_message

    nodes = [
        AgentNode(node_name, agent, extract_message=extractor_for(index))
        for index, (node_name, agent) in enumerate(agents)
    ]

    def build_output(input: Any, context: WorkflowContext) -> WorkflowAgentOutput:
        last: AgentRunResult = context.get_node_output(names[-1])
        return WorkflowAgentOutput(
            content=last.content,
            structured=last.structured,
            metadata={"agent_chain": list(names)},
        )

    edges = [Edge(from_node=a, to_node=b) for a, b in zip(names, names[1:])]
    edges.append(Edge(from_node=names[-1], to_node=OUTPUT_NODE))

    return Workflow(
        name=name,
        nodes=[*nodes, FunctionNode(OUTPUT_NODE, build_output)],
        edges=edges,
        start_node=names[0],
    )
