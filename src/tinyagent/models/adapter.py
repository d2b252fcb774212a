"""Model adapter interface.

The engines never call a provider directly. They hand a transcript and the
tool declarations to a ModelAdapter and consume the stream of generation
events it yields.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import AsyncIterator, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field

from tinyagent.cancellation import CancellationToken
from tinyagent.core.message import Message, TokenUsage
from tinyagent.tools.base import ToolDeclaration


class GenerationEventType(str, Enum):
    """Kinds of events a model adapter yields."""

    CONTENT_DELTA = "content_delta"
    TOOL_CALL_DELTA = "tool_call_delta"
    USAGE = "usage"
    DONE = "done"


class GenerationEvent(BaseModel):
    """One event in a model generation stream.

    Tool calls arrive as deltas keyed by ``index``. The first delta for an
    index carries the call's name (and id, when the provider assigns one);
    later deltas carry argument text fragments.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    type: GenerationEventType
    delta: Optional[str] = Field(default=None, description="Content text fragment")
    index: Optional[int] = Field(default=None, ge=0, description="Tool call slot within the turn")
    tool_call_id: Optional[str] = None
    tool_name: Optional[str] = None
    arguments_delta: Optional[str] = None
    usage: Optional[TokenUsage] = None
    done_reason: Optional[str] = None

    @classmethod
    def content(cls, delta: str) -> "GenerationEvent":
        return cls(type=GenerationEventType.CONTENT_DELTA, delta=delta)

    @classmethod
    def tool_call(
        cls,
        index: int,
        tool_call_id: Optional[str] = None,
        tool_name: Optional[str] = None,
        arguments_delta: Optional[str] = None,
    ) -> "GenerationEvent":
        return cls(
            type=GenerationEventType.TOOL_CALL_DELTA,
            index=index,
            tool_call_id=tool_call_id,
            tool_name=tool_name,
            arguments_delta=arguments_delta,
        )

    @classmethod
    def usage_report(cls, prompt_tokens: int, completion_tokens: int) -> "GenerationEvent":
        return cls(
            type=GenerationEventType.USAGE,
            usage=TokenUsage(
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
                total_tokens=prompt_tokens + completion_tokens,
            ),
        )

    @classmethod
    def done(cls, reason: str = "stop") -> "GenerationEvent":
        return cls(type=GenerationEventType.DONE, done_reason=reason)


class ModelAdapter(ABC):
    """Provider-agnostic source of generation events."""

    name: str = "model"

    @abstractmethod
    def generate(
        self,
        messages: List[Message],
        tools: Sequence[ToolDeclaration],
        temperature: float,
        cancellation: CancellationToken,
    ) -> AsyncIterator[GenerationEvent]:
        """Stream a completion for the transcript.

        Implementations are usually async generator methods. Raising at any
        point is reported by the caller as an LLM_ERROR.
        """
        raise NotImplementedError
