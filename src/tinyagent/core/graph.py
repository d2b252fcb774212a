"""Workflow graph structure.

A Workflow holds the nodes and edges of a graph and validates them once, at
construction time. Execution lives in tinyagent.core.executor.
"""

from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict

from tinyagent.core.node import BaseNode
from tinyagent.errors import WorkflowConfigError
from tinyagent.logging import get_logger

if TYPE_CHECKING:
    from tinyagent.core.context import WorkflowContext

logger = get_logger(__name__, component="graph")

# Called with the WorkflowContext after the source node has recorded its output
EdgeCondition = Callable[..., bool]


class Edge(BaseModel):
    """Directed transition between two nodes."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    from_node: str
    to_node: str
    condition: Optional[EdgeCondition] = None

    def is_open(self, context: "WorkflowContext") -> bool:
        """An edge without a condition is always taken."""
        if self.condition is None:
            return True
        return bool(self.condition(context))


class Workflow:
    """Validated workflow definition.

    Raises WorkflowConfigError on construction for duplicate node names,
    edges naming undeclared nodes, an undeclared start node, or routing
    targets (condition nodes) that are not declared.
    """

    def __init__(
        self,
        name: str,
        nodes: Sequence[BaseNode],
        edges: Sequence[Edge] = (),
        start_node: Optional[str] = None,
        description: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ):
        self.name = name
        self.description = description
        self.metadata = dict(metadata or {})

        self._nodes: Dict[str, BaseNode] = {}
        for node in nodes:
            if node.name in self._nodes:
                raise WorkflowConfigError(f'Duplicate node name: "{node.name}"', details={"node": node.name})
            self._nodes[node.name] = node

        self._edges: List[Edge] = list(edges)
        self._validate_edges()
        self._validate_nested_names()
        self._validate_references()
        self.start_node = self._resolve_start_node(start_node)

        logger.debug(
            "workflow_created",
            workflow=self.name,
            nodes=len(self._nodes),
            edges=len(self._edges),
            start_node=self.start_node,
        )

    # Validation

    def _validate_edges(self) -> None:
        for edge in self._edges:
            if edge.from_node not in self._nodes:
                raise WorkflowConfigError(
                    f'Edge references non-existent source node: "{edge.from_node}"',
                    details={"node": edge.from_node},
                )
            if edge.to_node not in self._nodes:
                raise WorkflowConfigError(
                    f'Edge references non-existent target node: "{edge.to_node}"',
                    details={"node": edge.to_node},
                )

    def _validate_nested_names(self) -> None:
        seen = set(self._nodes)
        stack = [child for node in self._nodes.values() for child in node.children()]
        while stack:
            child = stack.pop()
            if child.name in seen:
                raise WorkflowConfigError(f'Duplicate node name: "{child.name}"', details={"node": child.name})
            seen.add(child.name)
            stack.extend(child.children())

    def _validate_references(self) -> None:
        for node in self._nodes.values():
            for target in node.referenced_nodes():
                if target not in self._nodes:
                    raise WorkflowConfigError(
                        f'Node "{node.name}" routes to non-existent node: "{target}"',
                        details={"node": node.name, "target": target},
                    )

    def _resolve_start_node(self, start_node: Optional[str]) -> str:
        if not self._nodes:
            raise WorkflowConfigError("Workflow must declare at least one node")

        if start_node is not None:
            if start_node not in self._nodes:
                raise WorkflowConfigError(
                    f'Start node "{start_node}" not found in nodes',
                    details={"node": start_node},
                )
            return start_node

        targets = {edge.to_node for edge in self._edges}
        for node in self._nodes.values():
            targets.update(node.referenced_nodes())
        for name in self._nodes:
            if name not in targets:
                return name
        raise WorkflowConfigError("Workflow has no start node: every node has an incoming edge")

    # Traversal

    @property
    def nodes(self) -> Dict[str, BaseNode]:
        return dict(self._nodes)

    @property
    def edges(self) -> List[Edge]:
        return list(self._edges)

    def get_node(self, name: str) -> BaseNode:
        return self._nodes[name]

    def get_outgoing_edges(self, name: str) -> List[Edge]:
        """Outgoing edges of a node, in declaration order."""
        return [edge for edge in self._edges if edge.from_node == name]

    def get_incoming_edges(self, name: str) -> List[Edge]:
        return [edge for edge in self._edges if edge.to_node == name]

    def __repr__(self) -> str:
        return f"Workflow(name={self.name!r}, nodes={list(self._nodes)})"
