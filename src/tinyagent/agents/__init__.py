"""Agents: the ReAct loop and the wrappers composed around it."""

from tinyagent.agents.react import ReActAgent, ReActConfig, RunOptions
from tinyagent.agents.storage import (
    ConversationStore,
    InMemoryConversationStore,
    PersistentAgent,
    StoredMessage,
    Thread,
)
from tinyagent.agents.workflow import (
    AgentNode,
    WorkflowAgent,
    WorkflowAgentInput,
    WorkflowAgentOutput,
    compose_agents,
)

__all__ = [
    "ReActAgent",
    "ReActConfig",
    "RunOptions",
    "ConversationStore",
    "InMemoryConversationStore",
    "PersistentAgent",
    "StoredMessage",
    "Thread",
    "AgentNode",
    "WorkflowAgent",
    "WorkflowAgentInput",
    "WorkflowAgentOutput",
    "compose_agents",
]
