"""Lifecycle hooks for persistence and telemetry collaborators.

The engines announce a small set of lifecycle events (a message appended to a
transcript, a tool call completed, a workflow node entered or completed).
Wrapping collaborators subscribe to them to persist conversations or export
traces. The engines never block on a hook: synchronous handlers run inline
with their failures logged, coroutine handlers are scheduled as tasks and
left to finish on their own.
"""

import asyncio
import inspect
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from tinyagent.logging import get_logger

logger = get_logger(__name__, component="events")


class HookEvent(str, Enum):
    """Lifecycle events exposed by the engines."""

    MESSAGE_APPENDED = "message_appended"
    TOOL_CALL_COMPLETED = "tool_call_completed"
    NODE_ENTERED = "node_entered"
    NODE_COMPLETED = "node_completed"


@dataclass
class HookPayload:
    """What a hook handler receives."""

    event: HookEvent
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)


HookHandler = Callable[[HookPayload], Any]


class HookEmitter:
    """Fan a lifecycle event out to its subscribers without waiting on them.

    Example:
        >>> hooks = HookEmitter()
        >>> hooks.on(HookEvent.MESSAGE_APPENDED, lambda p: print(p.data["message"]))
        >>> agent = ReActAgent(model, tools, hooks=hooks)
    """

    def __init__(self) -> None:
        self._handlers: Dict[HookEvent, List[HookHandler]] = {event: [] for event in HookEvent}
        self._pending: Set[asyncio.Task] = set()

    def on(self, event: HookEvent, handler: HookHandler) -> None:
        """Subscribe a handler to an event."""
        self._handlers[HookEvent(event)].append(handler)

    def off(self, event: HookEvent, handler: HookHandler) -> None:
        """Unsubscribe a handler; unknown handlers are ignored."""
        handlers = self._handlers[HookEvent(event)]
        if handler in handlers:
            handlers.remove(handler)

    def has_handlers(self, event: HookEvent) -> bool:
        return bool(self._handlers[HookEvent(event)])

    def emit(self, event: HookEvent, **data: Any) -> None:
        """Deliver an event to every subscriber.

        Args:
            event: Lifecycle event being announced.
            **data: Event-specific payload fields.
        """
        handlers = self._handlers[HookEvent(event)]
        if not handlers:
            return

        payload = HookPayload(event=HookEvent(event), data=data)
        for handler in list(handlers):
            try:
                result = handler(payload)
            except Exception as e:
                logger.error(
                    "hook_handler_error",
                    hook=payload.event.value,
                    handler=getattr(handler, "__name__", handler.__class__.__name__),
                    error=str(e),
                )
                continue

            if inspect.isawaitable(result):
                self.schedule(result)

    def schedule(self, awaitable: Awaitable[Any]) -> None:
        """Run an awaitable in the background, logging its failure."""
        task = asyncio.ensure_future(awaitable)
        self._pending.add(task)
        task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error("hook_handler_error", error=str(error), error_type=type(error).__name__)

    def pending(self) -> List[asyncio.Task]:
        """In-flight asynchronous hook tasks."""
        return list(self._pending)

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for in-flight asynchronous hooks (for shutdown and tests)."""
        if not self._pending:
            return
        await asyncio.wait(list(self._pending), timeout=timeout)
