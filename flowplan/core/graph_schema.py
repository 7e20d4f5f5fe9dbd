"""Graph schema definitions using Pydantic models.

This module defines the node/edge graph produced by the visual canvas.
Nodes are typed pipeline steps (SELECT, FILTER, STR, ...) bounded by START
and END sentinels, and edges are directed "runs before" connections.

The graph is a passive container: it keeps edge endpoints referentially
intact but does not decide whether it is an executable pipeline. That is the
job of ``flowplan.core.validator``.
"""

from collections.abc import Iterable
from enum import Enum
from typing import Any

import networkx as nx
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from flowplan.core.digraph import build_digraph


class NodeType(str, Enum):
    """Supported node types in pipeline graphs"""

    START = "start"  # Sentinel: pipeline entry
    END = "end"  # Sentinel: pipeline exit
    SELECT = "select"  # Keep a subset of columns
    FILTER = "filter"  # Keep rows matching a condition
    STR = "str"  # Per-cell string operation
    RENAME = "rename"  # Rename a column
    SLICE = "slice"  # Substring extraction

    @classmethod
    def _missing_(cls, value):
        # The canvas palette labels string nodes "string"; the backend tag is "str"
        if isinstance(value, str) and value.lower() == "string":
            return cls.STR
        return None

    @property
    def is_sentinel(self) -> bool:
        return self in (NodeType.START, NodeType.END)


class GraphIntegrityError(ValueError):
    """An edge references a node id that is not part of the graph."""

    def __init__(self, message: str, edge_ids: list[str] | None = None):
        super().__init__(message)
        self.edge_ids = edge_ids or []


class Node(BaseModel):
    """A single step (or START/END marker) placed on the canvas.

    Layout fields produced by the editor (position, dimensions, styling) are
    opaque to the engine and preserved on round-trip.
    """

    model_config = ConfigDict(extra="allow")

    id: str
    type: NodeType
    label: str | None = None
    position: dict[str, float] | None = None
    data: dict[str, Any] | None = None

    @field_validator("id")
    @classmethod
    def validate_node_id(cls, v):
        if not v or not v.strip():
            raise ValueError("Node ID cannot be empty")
        return v


class Edge(BaseModel):
    """Directed edge between two nodes"""

    model_config = ConfigDict(extra="allow")

    id: str
    source: str  # Source node ID
    target: str  # Target node ID


def find_dangling_edges(nodes: Iterable[Node], edges: Iterable[Edge]) -> list[Edge]:
    """Return edges whose source or target is not among ``nodes``."""
    node_ids = {n.id for n in nodes}
    return [e for e in edges if e.source not in node_ids or e.target not in node_ids]


def check_edge_references(nodes: Iterable[Node], edges: Iterable[Edge]) -> None:
    """Raise GraphIntegrityError if any edge endpoint is missing."""
    dangling = find_dangling_edges(nodes, edges)
    if dangling:
        details = ", ".join(f"{e.id} ({e.source} -> {e.target})" for e in dangling)
        raise GraphIntegrityError(
            f"Edges reference unknown nodes: {details}",
            edge_ids=[e.id for e in dangling],
        )


class Graph(BaseModel):
    """Canonical node/edge collections for the active canvas.

    Edge endpoints are checked when the graph is constructed and whenever an
    edge is added, so a Graph never holds a dangling edge.
    """

    nodes: list[Node] = Field(default_factory=list)
    edges: list[Edge] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_references(self) -> "Graph":
        check_edge_references(self.nodes, self.edges)
        return self

    @classmethod
    def repaired(cls, nodes: Iterable[Node | dict], edges: Iterable[Edge | dict]) -> "Graph":
        """Build a graph, dropping edges that reference unknown nodes."""
        node_list = [n if isinstance(n, Node) else Node.model_validate(n) for n in nodes]
        edge_list = [e if isinstance(e, Edge) else Edge.model_validate(e) for e in edges]
        dangling = {id(e) for e in find_dangling_edges(node_list, edge_list)}
        return cls(nodes=node_list, edges=[e for e in edge_list if id(e) not in dangling])

    # ========== Mutation ==========

    def add_node(self, node: Node) -> None:
        """Append a node, replacing an existing node with the same ID in place."""
        for idx, existing in enumerate(self.nodes):
            if existing.id == node.id:
                self.nodes[idx] = node
                return
        self.nodes.append(node)

    def add_edge(self, edge: Edge) -> None:
        """Append an edge after checking both endpoints exist."""
        check_edge_references(self.nodes, [edge])
        self.edges.append(edge)

    def replace_nodes(self, nodes: list[Node]) -> None:
        """Replace the whole node collection (canvas sync).

        Edges left dangling by the new node set are dropped.
        """
        self.nodes = list(nodes)
        self.prune_dangling_edges()

    def replace_edges(self, edges: list[Edge]) -> None:
        """Replace the whole edge collection (canvas sync)."""
        check_edge_references(self.nodes, edges)
        self.edges = list(edges)

    def remove_nodes(self, node_ids: Iterable[str]) -> None:
        """Remove nodes and every edge touching them."""
        ids = set(node_ids)
        self.nodes = [n for n in self.nodes if n.id not in ids]
        self.edges = [e for e in self.edges if e.source not in ids and e.target not in ids]

    def remove_edges(self, edge_ids: Iterable[str]) -> None:
        ids = set(edge_ids)
        self.edges = [e for e in self.edges if e.id not in ids]

    def prune_dangling_edges(self) -> list[Edge]:
        """Drop edges that reference unknown nodes. Returns the dropped edges."""
        dangling = find_dangling_edges(self.nodes, self.edges)
        if dangling:
            drop = {id(e) for e in dangling}
            self.edges = [e for e in self.edges if id(e) not in drop]
        return dangling

    # ========== Lookups ==========

    def get_node(self, node_id: str) -> Node | None:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def node_ids(self) -> list[str]:
        return [n.id for n in self.nodes]

    def edges_from(self, node_id: str) -> list[Edge]:
        """Get all edges originating from a node."""
        return [e for e in self.edges if e.source == node_id]

    def edges_to(self, node_id: str) -> list[Edge]:
        """Get all edges pointing to a node."""
        return [e for e in self.edges if e.target == node_id]

    def nodes_of_type(self, node_type: NodeType) -> list[Node]:
        return [n for n in self.nodes if n.type == node_type]

    def to_networkx(self) -> nx.DiGraph:
        """Convert to NetworkX DiGraph for analysis"""
        return build_digraph(self.nodes, self.edges)
