"""Node implementations for tinyagent workflows."""

from tinyagent.nodes.condition import ConditionNode
from tinyagent.nodes.fanout import BranchResult, FailurePolicy, ParallelConfig, ParallelNode
from tinyagent.nodes.function import FunctionNode, create_node
from tinyagent.nodes.loop import LoopConfig, LoopNode, LoopResult, LoopTermination
from tinyagent.nodes.model import LLMNode, LLMOutput
from tinyagent.nodes.tool import ToolNode

__all__ = [
    "ConditionNode",
    "FunctionNode",
    "create_node",
    "ParallelNode",
    "ParallelConfig",
    "FailurePolicy",
    "BranchResult",
    "LoopNode",
    "LoopConfig",
    "LoopResult",
    "LoopTermination",
    "LLMNode",
    "LLMOutput",
    "ToolNode",
]
