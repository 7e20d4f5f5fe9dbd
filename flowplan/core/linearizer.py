"""Canvas linearizer - a display/debug ordering of reachable nodes.

This is a best-effort ordering: a graph with several disconnected branches
yields the concatenation of each branch's depth-first order. It never rejects
a graph; use ``flowplan.core.validator`` to decide executability.
"""

from collections.abc import Sequence

from flowplan.core.digraph import build_digraph, dfs_preorder, node_object, source_nodes
from flowplan.core.graph_schema import Edge, Node


def get_nodes_in_edge_order(nodes: Sequence[Node], edges: Sequence[Edge]) -> list[Node]:
    """Order nodes depth-first from every source node.

    Source nodes are nodes with at least one outgoing edge and no incoming
    edge. Isolated nodes and nodes only reachable through a cycle are omitted.
    """
    G = build_digraph(nodes, edges)
    order = dfs_preorder(G, source_nodes(G))
    return [node_object(G, node_id) for node_id in order]
