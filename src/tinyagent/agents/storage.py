"""Conversation persistence around a ReAct agent.

PersistentAgent holds an agent and a ConversationStore and forwards runs to
the agent, loading thread history before the run and persisting the user
message and the messages the run appended to the transcript after it. The
agent itself never touches storage.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, List, Optional
from uuid import uuid4

from pydantic import BaseModel, Field

from tinyagent.agents.react import ReActAgent, RunOptions
from tinyagent.core.message import Message, MessageRole, ToolCallRequest
from tinyagent.core.streaming import AgentRunResult, StreamChunk, StreamChunkType, collect_stream
from tinyagent.logging import get_logger

logger = get_logger(__name__, component="persistence")

DEFAULT_MAX_HISTORY_MESSAGES = 50


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Thread(BaseModel):
    """A persisted conversation."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    agent_id: str
    user_id: Optional[str] = None
    title: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class StoredMessage(BaseModel):
    """A persisted transcript entry."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    thread_id: str
    role: MessageRole
    content: str = ""
    tool_calls: Optional[List[ToolCallRequest]] = None
    tool_call_id: Optional[str] = None
    name: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)

    @classmethod
    def from_message(cls, thread_id: str, message: Message) -> "StoredMessage":
        return cls(
            thread_id=thread_id,
            role=message.role,
            content=message.content or "",
            tool_calls=message.tool_calls,
            tool_call_id=message.tool_call_id,
            name=message.name,
        )

    def to_message(self) -> Message:
        """Convert back into a transcript message."""
        if self.role == MessageRole.TOOL:
            return Message.tool(self.tool_call_id or "", self.content, name=self.name)
        if self.tool_calls:
            return Message.assistant(content=self.content or None, tool_calls=self.tool_calls)
        return Message(role=self.role, content=self.content)


class ConversationStore(ABC):
    """Abstract storage for threads and their messages."""

    @abstractmethod
    async def get_thread(self, thread_id: str) -> Optional[Thread]:
        """Retrieve a thread by ID.

        Returns:
            The thread if found, None otherwise.
        """

    @abstractmethod
    async def create_thread(self, thread: Thread) -> Thread:
        """Store a new thread."""

    @abstractmethod
    async def append_message(self, message: StoredMessage) -> StoredMessage:
        """Append a message to its thread."""

    @abstractmethod
    async def list_messages(self, thread_id: str, limit: Optional[int] = None) -> List[StoredMessage]:
        """List a thread's messages, oldest first.

        Args:
            thread_id: Thread to read.
            limit: Keep only the most recent ``limit`` messages.
        """


class InMemoryConversationStore(ConversationStore):
    """In-memory conversation store.

    Useful for testing and development. Data is not persisted.
    """

    def __init__(self) -> None:
        self._threads: Dict[str, Thread] = {}
        self._messages: Dict[str, List[StoredMessage]] = {}

    async def get_thread(self, thread_id: str) -> Optional[Thread]:
        return self._threads.get(thread_id)

    async def create_thread(self, thread: Thread) -> Thread:
        self._threads[thread.id] = thread
        self._messages.setdefault(thread.id, [])
        return thread

    async def append_message(self, message: StoredMessage) -> StoredMessage:
        if message.thread_id not in self._threads:
            raise KeyError(f"Unknown thread: {message.thread_id}")
        self._messages[message.thread_id].append(message)
        return message

    async def list_messages(self, thread_id: str, limit: Optional[int] = None) -> List[StoredMessage]:
        messages = list(self._messages.get(thread_id, []))
        if limit is not None:
            messages = messages[-limit:] if limit > 0 else []
        return messages


class PersistentAgent:
    """Agent wrapper that keeps conversations in a store.

    Example:
        >>> store = InMemoryConversationStore()
        >>> persistent = PersistentAgent(agent, store, agent_id="assistant-v1")
        >>> result = await persistent.run_with_storage("Hello!", thread_id=thread.id)
    """

    def __init__(
        self,
        agent: ReActAgent,
        store: ConversationStore,
        agent_id: str,
        auto_persist: bool = True,
        auto_load_history: bool = True,
        max_history_messages: int = DEFAULT_MAX_HISTORY_MESSAGES,
    ):
        self.agent = agent
        self.store = store
        self.agent_id = agent_id
        self.auto_persist = auto_persist
        self.auto_load_history = auto_load_history
        self.max_history_messages = max_history_messages

    @property
    def name(self) -> str:
        return self.agent.name

    async def get_or_create_thread(
        self,
        thread_id: Optional[str] = None,
        user_id: Optional[str] = None,
        title: Optional[str] = None,
    ) -> Thread:
        """Return the existing thread, or create one."""
        if thread_id:
            existing = await self.store.get_thread(thread_id)
            if existing is not None:
                return existing

        thread = Thread(
            agent_id=self.agent_id,
            user_id=user_id,
            title=title or f"Conversation {_utcnow():%Y-%m-%d %H:%M}",
        )
        if thread_id:
            thread.id = thread_id
        logger.debug("thread_created", thread_id=thread.id, agent_id=self.agent_id)
        return await self.store.create_thread(thread)

    async def load_history(self, thread_id: str, limit: Optional[int] = None) -> List[Message]:
        """Load a thread's most recent messages as transcript messages.

        Tool replies at the start of the window are dropped, since the turn
        that requested them fell outside it.
        """
        stored = await self.store.list_messages(thread_id, limit=limit or self.max_history_messages)
        messages = [message.to_message() for message in stored]
        while messages and messages[0].role == MessageRole.TOOL:
            messages.pop(0)
        return messages

    async def run_with_storage(
        self,
        text: str,
        thread_id: Optional[str] = None,
        user_id: Optional[str] = None,
        title: Optional[str] = None,
        load_history: Optional[bool] = None,
        options: Optional[RunOptions] = None,
    ) -> AgentRunResult:
        """Run the agent within a persisted thread and return the result."""
        return await collect_stream(
            self.stream_with_storage(
                text,
                thread_id=thread_id,
                user_id=user_id,
                title=title,
                load_history=load_history,
                options=options,
            )
        )

    async def stream_with_storage(
        self,
        text: str,
        thread_id: Optional[str] = None,
        user_id: Optional[str] = None,
        title: Optional[str] = None,
        load_history: Optional[bool] = None,
        options: Optional[RunOptions] = None,
    ) -> AsyncIterator[StreamChunk]:
        """Streaming variant of ``run_with_storage``; chunks are forwarded unchanged."""
        thread = await self.get_or_create_thread(thread_id=thread_id, user_id=user_id, title=title)

        should_load = self.auto_load_history if load_history is None else load_history
        history = await self.load_history(thread.id) if should_load else []

        if self.auto_persist:
            await self.store.append_message(StoredMessage(thread_id=thread.id, role=MessageRole.USER, content=text))

        opts = options or RunOptions()
        opts = opts.model_copy(update={"thread_id": thread.id, "user_id": user_id or opts.user_id})

        sent = [*history, Message.user(text)]
        async for chunk in self.agent.chat(sent, opts):
            if chunk.type == StreamChunkType.FINISH and chunk.result is not None and self.auto_persist:
                await self._persist_response(thread.id, _appended(sent, chunk.result))
            yield chunk

    async def _persist_response(self, thread_id: str, messages: List[Message]) -> None:
        stored = 0
        for message in _answered(messages):
            if message.role == MessageRole.ASSISTANT and not message.content and not message.tool_calls:
                continue
            await self.store.append_message(StoredMessage.from_message(thread_id, message))
            stored += 1
        logger.debug("conversation_persisted", thread_id=thread_id, messages=stored)


def _appended(sent: List[Message], result: AgentRunResult) -> List[Message]:
    """Messages the run added after the ones it was given."""
    offset = len(sent)
    transcript = result.messages
    if transcript and transcript[0].role == MessageRole.SYSTEM and (not sent or sent[0].role != MessageRole.SYSTEM):
        offset += 1
    return list(transcript[offset:])


def _answered(messages: List[Message]) -> List[Message]:
    """Drop a trailing tool-call turn whose calls did not all get a tool reply.

    An aborted or failed run can stop between requesting tools and recording
    their results; replaying such a turn would reference undeclared ids.
    """
    kept: List[Message] = []
    pending: List[Message] = []
    waiting: set[str] = set()
    for message in messages:
        if message.role == MessageRole.ASSISTANT and message.tool_calls:
            if not waiting:
                kept.extend(pending)
            pending = [message]
            waiting = {call.id for call in message.tool_calls}
        elif message.role == MessageRole.TOOL and pending:
            pending.append(message)
            waiting.discard(message.tool_call_id)
        else:
            if pending and not waiting:
                kept.extend(pending)
            pending, waiting = [], set()
            kept.append(message)
    if pending and not waiting:
        kept.extend(pending)
    return kept
