"""Tests for the canvas graph model.

Covers:
- Node/Edge parsing (type aliases, opaque layout fields)
- Edge integrity at construction and on add_edge
- Cascading node removal
- Whole-collection replacement and repair
"""

import pydantic
import pytest

from flowplan.core.graph_schema import (
    Edge,
    Graph,
    GraphIntegrityError,
    Node,
    NodeType,
    check_edge_references,
    find_dangling_edges,
)


def _node(node_id: str, node_type: str = "filter") -> Node:
    return Node(id=node_id, type=node_type)


def _edge(source: str, target: str, edge_id: str | None = None) -> Edge:
    return Edge(id=edge_id or f"{source}-{target}", source=source, target=target)


# =============================================================================
# Node / Edge models
# =============================================================================


class TestNodeModel:
    def test_string_alias_maps_to_str(self):
        node = Node(id="n1", type="string")
        assert node.type == NodeType.STR

    def test_unknown_type_rejected(self):
        with pytest.raises(pydantic.ValidationError):
            Node(id="n1", type="join")

    def test_blank_id_rejected(self):
        with pytest.raises(pydantic.ValidationError, match="Node ID cannot be empty"):
            Node(id="  ", type="start")

    def test_layout_fields_preserved(self):
        node = Node.model_validate(
            {
                "id": "n1",
                "type": "select",
                "position": {"x": 1, "y": 2},
                "width": 150,
                "selected": True,
            }
        )
        dumped = node.model_dump()
        assert dumped["width"] == 150
        assert dumped["selected"] is True
        assert dumped["position"] == {"x": 1.0, "y": 2.0}

    def test_sentinels(self):
        assert NodeType.START.is_sentinel
        assert NodeType.END.is_sentinel
        assert not NodeType.FILTER.is_sentinel

    def test_edge_extra_keys_preserved(self):
        edge = Edge.model_validate(
            {"id": "e1", "source": "a", "target": "b", "sourceHandle": "out"}
        )
        assert edge.model_dump()["sourceHandle"] == "out"


# =============================================================================
# Edge integrity
# =============================================================================


class TestEdgeIntegrity:
    def test_find_dangling_edges(self):
        nodes = [_node("a"), _node("b")]
        edges = [_edge("a", "b"), _edge("a", "ghost"), _edge("ghost", "b")]
        dangling = find_dangling_edges(nodes, edges)
        assert [e.id for e in dangling] == ["a-ghost", "ghost-b"]

    def test_check_edge_references_raises_with_ids(self):
        with pytest.raises(GraphIntegrityError) as exc_info:
            check_edge_references([_node("a")], [_edge("a", "x", "bad")])
        assert exc_info.value.edge_ids == ["bad"]
        assert isinstance(exc_info.value, ValueError)

    def test_graph_construction_rejects_dangling_edge(self):
        with pytest.raises(pydantic.ValidationError, match="unknown nodes"):
            Graph(nodes=[_node("a")], edges=[_edge("a", "x")])

    def test_add_edge_rejects_unknown_endpoint(self):
        graph = Graph(nodes=[_node("a"), _node("b")])
        with pytest.raises(GraphIntegrityError):
            graph.add_edge(_edge("a", "missing"))
        assert graph.edges == []

    def test_repaired_drops_dangling_edges(self):
        graph = Graph.repaired(
            [{"id": "a", "type": "start"}, {"id": "b", "type": "end"}],
            [
                {"id": "ok", "source": "a", "target": "b"},
                {"id": "bad", "source": "a", "target": "zzz"},
            ],
        )
        assert [e.id for e in graph.edges] == ["ok"]


# =============================================================================
# Mutation
# =============================================================================


class TestGraphMutation:
    def test_add_node_appends(self):
        graph = Graph()
        graph.add_node(_node("a"))
        graph.add_node(_node("b"))
        assert graph.node_ids() == ["a", "b"]

    def test_add_node_same_id_replaces_in_place(self):
        graph = Graph(nodes=[_node("a"), _node("b")])
        graph.add_node(Node(id="a", type="rename", label="renamed"))
        assert graph.node_ids() == ["a", "b"]
        assert graph.get_node("a").type == NodeType.RENAME

    def test_remove_nodes_cascades_edges(self, pipeline_nodes, pipeline_edges):
        graph = Graph(nodes=pipeline_nodes, edges=pipeline_edges)
        graph.remove_nodes(["f"])
        assert graph.node_ids() == ["s", "e"]
        assert graph.edges == []

    def test_remove_edges(self, pipeline_nodes, pipeline_edges):
        graph = Graph(nodes=pipeline_nodes, edges=pipeline_edges)
        graph.remove_edges(["e1"])
        assert [e.id for e in graph.edges] == ["e2"]
        assert len(graph.nodes) == 3

    def test_replace_nodes_prunes_edges(self, pipeline_nodes, pipeline_edges):
        graph = Graph(nodes=pipeline_nodes, edges=pipeline_edges)
        graph.replace_nodes([n for n in pipeline_nodes if n.id != "e"])
        assert [e.id for e in graph.edges] == ["e1"]

    def test_replace_edges_checks_references(self, pipeline_nodes):
        graph = Graph(nodes=pipeline_nodes)
        with pytest.raises(GraphIntegrityError):
            graph.replace_edges([_edge("s", "nowhere")])
        graph.replace_edges([_edge("s", "e")])
        assert len(graph.edges) == 1

    def test_prune_dangling_edges_returns_dropped(self):
        graph = Graph.model_construct(nodes=[_node("a")], edges=[_edge("a", "b")])
        dropped = graph.prune_dangling_edges()
        assert [e.id for e in dropped] == ["a-b"]
        assert graph.edges == []


# =============================================================================
# Lookups
# =============================================================================


class TestGraphLookups:
    def test_edges_from_and_to(self, pipeline_nodes, pipeline_edges):
        graph = Graph(nodes=pipeline_nodes, edges=pipeline_edges)
        assert [e.id for e in graph.edges_from("f")] == ["e2"]
        assert [e.id for e in graph.edges_to("f")] == ["e1"]
        assert graph.get_node("nope") is None

    def test_nodes_of_type(self, pipeline_nodes, pipeline_edges):
        graph = Graph(nodes=pipeline_nodes, edges=pipeline_edges)
        assert [n.id for n in graph.nodes_of_type(NodeType.FILTER)] == ["f"]

    def test_to_networkx(self, pipeline_nodes, pipeline_edges):
        G = Graph(nodes=pipeline_nodes, edges=pipeline_edges).to_networkx()
        assert list(G.nodes) == ["s", "f", "e"]
        assert list(G.successors("s")) == ["f"]
        assert G.nodes["f"]["node"].label == "Filter"
