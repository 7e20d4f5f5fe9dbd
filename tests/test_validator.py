"""Tests for execution path validation.

Tests the Start -> End state machine:
- Cardinality checks and their order
- BFS path discovery (shortest path, edge-order tie break)
- Result shape (node objects, reason, message)
"""

import pytest

from flowplan.core.graph_schema import Edge, Node, NodeType
from flowplan.core.validator import (
    ExecutionPathValidator,
    ValidationReason,
    ValidatorState,
    is_valid_execution_path,
)


def _node(node_id: str, node_type: str) -> Node:
    return Node(id=node_id, type=node_type)


def _edges(*pairs: tuple[str, str]) -> list[Edge]:
    return [Edge(id=f"{s}-{t}", source=s, target=t) for s, t in pairs]


class TestValidPaths:
    def test_minimal_pipeline(self, pipeline_nodes, pipeline_edges):
        result = is_valid_execution_path(pipeline_nodes, pipeline_edges)
        assert result.is_valid
        assert result.reason is None
        assert result.node_ids == ["s", "f", "e"]
        assert result.path[0].type == NodeType.START
        assert result.path[-1].type == NodeType.END
        assert result.message == "Pipeline is valid"

    def test_direct_start_to_end(self):
        nodes = [_node("s", "start"), _node("e", "end")]
        result = is_valid_execution_path(nodes, _edges(("s", "e")))
        assert result.node_ids == ["s", "e"]

    def test_shortest_path_wins(self):
        nodes = [_node("s", "start"), _node("a", "filter"), _node("b", "select"),
                 _node("c", "rename"), _node("e", "end")]
        edges = _edges(("s", "a"), ("a", "b"), ("b", "e"), ("s", "c"), ("c", "e"))
        result = is_valid_execution_path(nodes, edges)
        assert result.node_ids == ["s", "c", "e"]

    def test_equal_length_paths_break_ties_by_edge_order(self):
        nodes = [_node("s", "start"), _node("a", "filter"), _node("b", "select"),
                 _node("e", "end")]
        edges = _edges(("s", "b"), ("s", "a"), ("a", "e"), ("b", "e"))
        result = is_valid_execution_path(nodes, edges)
        assert result.node_ids == ["s", "b", "e"]

    def test_side_branches_ignored(self):
        nodes = [_node("s", "start"), _node("f", "filter"), _node("x", "select"),
                 _node("e", "end")]
        edges = _edges(("s", "f"), ("f", "x"), ("f", "e"))
        result = is_valid_execution_path(nodes, edges)
        assert result.node_ids == ["s", "f", "e"]

    def test_path_contains_node_objects(self, pipeline_nodes, pipeline_edges):
        result = is_valid_execution_path(pipeline_nodes, pipeline_edges)
        assert result.path[1] is pipeline_nodes[1]


class TestRejections:
    @pytest.mark.parametrize(
        "types,reason",
        [
            (["filter", "end"], ValidationReason.NO_START),
            (["start", "filter"], ValidationReason.NO_END),
            (["start", "start", "end"], ValidationReason.MULTI_START),
            (["start", "end", "end"], ValidationReason.MULTI_END),
        ],
    )
    def test_cardinality(self, types, reason):
        nodes = [_node(f"n{i}", t) for i, t in enumerate(types)]
        result = is_valid_execution_path(nodes, [])
        assert not result.is_valid
        assert result.reason == reason
        assert result.path == []

    def test_no_start_reported_before_no_end(self):
        result = is_valid_execution_path([_node("f", "filter")], [])
        assert result.reason == ValidationReason.NO_START

    def test_multi_start_reported_before_multi_end(self):
        nodes = [_node("s1", "start"), _node("s2", "start"),
                 _node("e1", "end"), _node("e2", "end")]
        result = is_valid_execution_path(nodes, [])
        assert result.reason == ValidationReason.MULTI_START

    def test_unconnected_start_and_end(self):
        nodes = [_node("s", "start"), _node("e", "end")]
        result = is_valid_execution_path(nodes, [])
        assert result.reason == ValidationReason.NO_PATH
        assert result.message == "No path connects the Start node to the End node"

    def test_reverse_edge_is_not_a_path(self):
        nodes = [_node("s", "start"), _node("e", "end")]
        result = is_valid_execution_path(nodes, _edges(("e", "s")))
        assert result.reason == ValidationReason.NO_PATH

    def test_path_through_unknown_node_rejected(self):
        nodes = [_node("s", "start"), _node("e", "end")]
        result = is_valid_execution_path(nodes, _edges(("s", "ghost"), ("ghost", "e")))
        assert result.reason == ValidationReason.NO_PATH

    def test_empty_graph(self):
        assert is_valid_execution_path([], []).reason == ValidationReason.NO_START


class TestValidatorStateMachine:
    def test_valid_run_ends_in_valid(self, pipeline_nodes, pipeline_edges):
        validator = ExecutionPathValidator(pipeline_nodes, pipeline_edges)
        assert validator.state == ValidatorState.UNCHECKED
        validator.run()
        assert validator.state == ValidatorState.VALID

    def test_invalid_run_ends_in_invalid(self):
        validator = ExecutionPathValidator([_node("s", "start")], [])
        validator.run()
        assert validator.state == ValidatorState.INVALID

    def test_run_is_memoized(self, pipeline_nodes, pipeline_edges):
        validator = ExecutionPathValidator(pipeline_nodes, pipeline_edges)
        assert validator.run() is validator.run()
