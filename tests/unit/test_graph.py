"""Tests for workflow graph construction and validation."""

import pytest
from pydantic import ValidationError

from tinyagent.core.graph import Edge, Workflow
from tinyagent.core.node import NodeType
from tinyagent.errors import WorkflowConfigError
from tinyagent.nodes import ConditionNode, LoopNode, ParallelNode, create_node


def noop(name: str):
    return create_node(name, lambda input, ctx: None)


class TestEdge:
    """Tests for Edge model."""

    def test_unconditional_edge_is_open(self):
        """Test an edge without a condition is always taken."""
        assert Edge(from_node="a", to_node="b").is_open(None)

    def test_condition_receives_context(self):
        """Test the condition is called with the context."""
        edge = Edge(from_node="a", to_node="b", condition=lambda ctx: ctx == "ctx")
        assert edge.is_open("ctx")
        assert not edge.is_open("other")

    def test_edge_is_frozen(self):
        """Test edges cannot be mutated."""
        edge = Edge(from_node="a", to_node="b")
        with pytest.raises(ValidationError):
            edge.to_node = "c"


class TestWorkflowValidation:
    """Tests for construction-time validation."""

    def test_valid_workflow(self):
        """Test a linear workflow is accepted."""
        workflow = Workflow(
            "linear",
            nodes=[noop("a"), noop("b")],
            edges=[Edge(from_node="a", to_node="b")],
        )
        assert workflow.start_node == "a"
        assert list(workflow.nodes) == ["a", "b"]

    def test_duplicate_node_names(self):
        """Test duplicate node names are rejected."""
        with pytest.raises(WorkflowConfigError, match='Duplicate node name: "a"'):
            Workflow("dup", nodes=[noop("a"), noop("a")])

    def test_edge_unknown_source(self):
        """Test an edge from an undeclared node is rejected."""
        with pytest.raises(WorkflowConfigError, match="non-existent source node"):
            Workflow("bad", nodes=[noop("a")], edges=[Edge(from_node="ghost", to_node="a")])

    def test_edge_unknown_target(self):
        """Test an edge to an undeclared node is rejected."""
        with pytest.raises(WorkflowConfigError, match="non-existent target node"):
            Workflow("bad", nodes=[noop("a")], edges=[Edge(from_node="a", to_node="ghost")])

    def test_unknown_start_node(self):
        """Test a start node that is not declared is rejected."""
        with pytest.raises(WorkflowConfigError, match='Start node "ghost" not found'):
            Workflow("bad", nodes=[noop("a")], start_node="ghost")

    def test_no_nodes(self):
        """Test an empty workflow is rejected."""
        with pytest.raises(WorkflowConfigError):
            Workflow("empty", nodes=[])

    def test_condition_target_must_exist(self):
        """Test condition node routing targets are validated."""
        check = ConditionNode("check", lambda ctx: True, if_true="yes", if_false="no")
        with pytest.raises(WorkflowConfigError, match="routes to non-existent node"):
            Workflow("bad", nodes=[check, noop("yes")])

    def test_nested_names_must_be_unique(self):
        """Test a branch inside a parallel node cannot reuse a top-level name."""
        fan = ParallelNode("fan", branches=[noop("a"), noop("b")])
        with pytest.raises(WorkflowConfigError, match='Duplicate node name: "a"'):
            Workflow("bad", nodes=[noop("a"), fan])

    def test_nested_names_checked_through_loops(self):
        """Test names nested two levels deep are checked too."""
        inner = ParallelNode("inner", branches=[noop("x")])
        loop = LoopNode("loop", body=inner)
        with pytest.raises(WorkflowConfigError, match='Duplicate node name: "x"'):
            Workflow("bad", nodes=[loop, noop("x")])

    def test_empty_node_name(self):
        """Test nodes need a name."""
        with pytest.raises(WorkflowConfigError):
            create_node("", lambda input, ctx: None)


class TestStartNode:
    """Tests for start node resolution."""

    def test_explicit_start_node(self):
        """Test an explicit start node wins."""
        workflow = Workflow(
            "explicit",
            nodes=[noop("a"), noop("b")],
            edges=[Edge(from_node="a", to_node="b")],
            start_node="b",
        )
        assert workflow.start_node == "b"

    def test_first_node_without_incoming_edge(self):
        """Test the default start is the first node nothing points to."""
        workflow = Workflow(
            "implicit",
            nodes=[noop("b"), noop("a")],
            edges=[Edge(from_node="a", to_node="b")],
        )
        assert workflow.start_node == "a"

    def test_condition_targets_are_not_start_candidates(self):
        """Test nodes reachable through a condition do not count as starts."""
        check = ConditionNode("check", lambda ctx: True, if_true="yes")
        workflow = Workflow("cond", nodes=[noop("yes"), check])
        assert workflow.start_node == "check"

    def test_cycle_without_entry(self):
        """Test a pure cycle needs an explicit start node."""
        with pytest.raises(WorkflowConfigError, match="no start node"):
            Workflow(
                "cycle",
                nodes=[noop("a"), noop("b")],
                edges=[Edge(from_node="a", to_node="b"), Edge(from_node="b", to_node="a")],
            )


class TestTraversal:
    """Tests for graph accessors."""

    def test_outgoing_edges_keep_declaration_order(self):
        """Test outgoing edges are returned in declaration order."""
        edges = [
            Edge(from_node="a", to_node="c"),
            Edge(from_node="a", to_node="b"),
            Edge(from_node="b", to_node="c"),
        ]
        workflow = Workflow("order", nodes=[noop("a"), noop("b"), noop("c")], edges=edges)
        assert [e.to_node for e in workflow.get_outgoing_edges("a")] == ["c", "b"]
        assert [e.from_node for e in workflow.get_incoming_edges("c")] == ["a", "b"]

    def test_node_types(self):
        """Test node variants report their type."""
        assert noop("a").node_type == NodeType.CUSTOM
        assert ConditionNode("c", lambda ctx: True, if_true="a").node_type == NodeType.CONDITION
        assert ParallelNode("p", branches=[noop("x")]).node_type == NodeType.PARALLEL
        assert LoopNode("l", body=noop("y")).node_type == NodeType.LOOP
