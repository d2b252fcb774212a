"""LLM node: a single model call inside a workflow.

Streams the model's text as ``llm_token`` events and produces an LLMOutput
with the full text, token usage and (optionally) a parsed JSON payload.
"""

from typing import TYPE_CHECKING, Any, Callable, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from tinyagent.core.message import Message, TokenUsage
from tinyagent.core.node import BaseNode, NodeType
from tinyagent.core.structured import OutputSchema, parse_structured
from tinyagent.core.trace import WorkflowEventType
from tinyagent.errors import AgentError, AgentErrorCode, WorkflowConfigError, wrap_error
from tinyagent.logging import get_logger
from tinyagent.models.adapter import GenerationEventType, ModelAdapter

if TYPE_CHECKING:
    from tinyagent.core.context import WorkflowContext

logger = get_logger(__name__, component="llm_node")

PromptBuilder = Callable[[Any, "WorkflowContext"], str]
MessagesBuilder = Callable[[Any, "WorkflowContext"], List[Message]]


class LLMOutput(BaseModel):
    """Output of an LLM node."""

    model_config = ConfigDict(frozen=True)

    content: str = ""
    usage: TokenUsage = Field(default_factory=TokenUsage)
    structured: Any = None


class LLMNode(BaseNode):
    """Call the model once with a prompt built from the input and context.

    Exactly one of ``prompt`` or ``messages`` may be given. With neither, the
    run input (stringified) becomes the user message.
    """

    node_type = NodeType.LLM

    def __init__(
        self,
        name: str,
        model: ModelAdapter,
        prompt: Optional[Union[str, PromptBuilder]] = None,
        messages: Optional[MessagesBuilder] = None,
        system_prompt: Optional[str] = None,
        temperature: float = 0.7,
        output_schema: Optional[OutputSchema] = None,
        description: Optional[str] = None,
    ):
        super().__init__(name, description)
        if prompt is not None and messages is not None:
            raise WorkflowConfigError(f'LLM node "{name}" takes prompt or messages, not both')
        self.model = model
        self.prompt = prompt
        self.messages = messages
        self.system_prompt = system_prompt
        self.temperature = temperature
        self.output_schema = output_schema

    def build_messages(self, input: Any, context: "WorkflowContext") -> List[Message]:
        if self.messages is not None:
            transcript = list(self.messages(input, context))
        else:
            if self.prompt is None:
                text = input if isinstance(input, str) else str(input)
            elif isinstance(self.prompt, str):
                text = self.prompt
            else:
                text = self.prompt(input, context)
            transcript = [Message.user(text)]
        if self.system_prompt:
            transcript.insert(0, Message.system(self.system_prompt))
        return transcript

    async def execute(self, input: Any, context: "WorkflowContext") -> LLMOutput:
        transcript = self.build_messages(input, context)
        parts: List[str] = []
        usage = TokenUsage()

        try:
            async for event in self.model.generate(transcript, [], self.temperature, context.cancellation):
                if event.type == GenerationEventType.CONTENT_DELTA and event.delta:
                    parts.append(event.delta)
                    context.emit(WorkflowEventType.LLM_TOKEN, token=event.delta)
                elif event.type == GenerationEventType.USAGE and event.usage is not None:
                    usage = usage + event.usage
                elif event.type == GenerationEventType.DONE:
                    break
        except AgentError:
            raise
        except Exception as e:
            raise wrap_error(e, AgentErrorCode.LLM_ERROR) from e

        content = "".join(parts)
        structured = None
        if self.output_schema is not None:
            try:
                structured = parse_structured(self.output_schema, content)
            except Exception as e:
                logger.debug("structured_output_parse_failed", node=self.name, error=str(e))

        return LLMOutput(content=content, usage=usage, structured=structured)
