"""Directed-graph helpers shared by the linearizer and the validator.

The canvas graph is loaded into a NetworkX ``DiGraph`` whose adjacency keeps
edge insertion order, so every traversal here is deterministic for a given
node/edge list. Node objects are attached as the ``node`` attribute; ids that
only appear on an edge endpoint have no attribute and are never emitted.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable
from typing import TYPE_CHECKING

import networkx as nx

if TYPE_CHECKING:
    from flowplan.core.graph_schema import Edge, Node


def build_digraph(nodes: Iterable[Node], edges: Iterable[Edge]) -> nx.DiGraph:
    """Build a DiGraph with nodes in list order and successors in edge order."""
    G = nx.DiGraph()
    for node in nodes:
        G.add_node(node.id, node=node)
    for edge in edges:
        G.add_edge(edge.source, edge.target, id=edge.id)
    return G


def node_object(G: nx.DiGraph, node_id: str) -> Node | None:
    return G.nodes[node_id].get("node") if node_id in G else None


def source_nodes(G: nx.DiGraph) -> list[str]:
    """Nodes with at least one outgoing edge and no incoming edge, in node order."""
    return [
        n
        for n, attrs in G.nodes(data=True)
        if "node" in attrs and G.out_degree(n) > 0 and G.in_degree(n) == 0
    ]


def dfs_preorder(G: nx.DiGraph, sources: Iterable[str]) -> list[str]:
    """Depth-first preorder from each source, sharing one visited set.

    A node reachable from several sources (or along several paths) is emitted
    once, at its first visit.
    """
    visited: set[str] = set()
    order: list[str] = []
    for source in sources:
        stack = [source]
        while stack:
            current = stack.pop()
            if current in visited:
                continue
            visited.add(current)
            if "node" in G.nodes[current]:
                order.append(current)
            # Reverse so the first successor is explored first
            stack.extend(reversed(list(G.successors(current))))
    return order


def bfs_path(G: nx.DiGraph, source: str, target: str) -> list[str] | None:
    """Breadth-first search from ``source``; return the first path found to ``target``.

    Successors are enqueued in edge order, so among paths of equal length the
    one discovered first wins. Returns None when ``target`` is unreachable.
    """
    if source not in G:
        return None
    parents: dict[str, str | None] = {source: None}
    queue = deque([source])
    while queue:
        current = queue.popleft()
        if current == target:
            path = [current]
            while parents[path[-1]] is not None:
                path.append(parents[path[-1]])
            path.reverse()
            return path
        for succ in G.successors(current):
            if succ not in parents:
                parents[succ] = current
                queue.append(succ)
    return None


def reachable_from(G: nx.DiGraph, source: str) -> set[str]:
    """All node ids reachable from ``source`` (excluding itself)."""
    if source not in G:
        return set()
    return nx.descendants(G, source)
