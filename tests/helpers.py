"""Shared test doubles for tinyagent tests.

ScriptedModel replays pre-recorded generation turns so reasoning-loop and
workflow tests run without a real provider.
"""

import asyncio
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Sequence, Tuple, Union

from prometheus_client import REGISTRY

from tinyagent.cancellation import CancellationToken
from tinyagent.core.message import Message
from tinyagent.models.adapter import GenerationEvent, ModelAdapter
from tinyagent.tools.base import ToolDeclaration

Turn = Union[List[GenerationEvent], BaseException]


def text_turn(text: str, prompt_tokens: int = 10, completion_tokens: int = 5) -> List[GenerationEvent]:
    """A model turn that answers with ``text`` in two deltas."""
    half = len(text) // 2
    events = [GenerationEvent.content(part) for part in (text[:half], text[half:]) if part]
    events.append(GenerationEvent.usage_report(prompt_tokens, completion_tokens))
    events.append(GenerationEvent.done())
    return events


def tool_turn(
    calls: Sequence[Tuple[Optional[str], str, str]],
    text: str = "",
    prompt_tokens: int = 10,
    completion_tokens: int = 5,
) -> List[GenerationEvent]:
    """A model turn requesting ``calls`` given as ``(id, name, arguments)``.

    Arguments are streamed in two fragments to exercise delta assembly.
    """
    events: List[GenerationEvent] = []
    if text:
        events.append(GenerationEvent.content(text))
    for index, (call_id, name, arguments) in enumerate(calls):
        events.append(GenerationEvent.tool_call(index, tool_call_id=call_id, tool_name=name))
        half = len(arguments) // 2
        for part in (arguments[:half], arguments[half:]):
            if part:
                events.append(GenerationEvent.tool_call(index, arguments_delta=part))
    events.append(GenerationEvent.usage_report(prompt_tokens, completion_tokens))
    events.append(GenerationEvent.done("tool_calls"))
    return events


class ScriptedModel(ModelAdapter):
    """Model adapter replaying one scripted turn per ``generate`` call.

    A turn that is an exception is raised instead of streamed. ``on_call``
    runs before each turn with the zero-based call index.
    """

    name = "scripted"

    def __init__(self, turns: Sequence[Turn], on_call: Optional[Callable[[int], Any]] = None):
        self.turns = list(turns)
        self.on_call = on_call
        self.calls: List[Dict[str, Any]] = []

    async def generate(
        self,
        messages: List[Message],
        tools: Sequence[ToolDeclaration],
        temperature: float,
        cancellation: CancellationToken,
    ) -> AsyncIterator[GenerationEvent]:
        index = len(self.calls)
        self.calls.append(
            {
                "messages": list(messages),
                "tools": [tool.name for tool in tools],
                "temperature": temperature,
                "cancellation": cancellation,
            }
        )
        if self.on_call is not None:
            self.on_call(index)
        if index >= len(self.turns):
            raise RuntimeError(f"ScriptedModel has no turn {index}")

        turn = self.turns[index]
        if isinstance(turn, BaseException):
            raise turn
        for event in turn:
            await asyncio.sleep(0)
            yield event


def sample_value(name: str, labels: Dict[str, str]) -> float:
    """Current value of a Prometheus sample (0.0 when absent)."""
    value = REGISTRY.get_sample_value(name, labels)
    return value or 0.0
