"""Terminal graph rendering for pipeline visualization.

Provides tree-based views of canvas graphs and tables of execution plans
using Rich.
"""

from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.tree import Tree

from flowplan.core.digraph import source_nodes
from flowplan.core.graph_schema import Edge, Graph, Node, NodeType
from flowplan.core.resolver import ExecutionPlan
from flowplan.core.validator import PathValidation


class TerminalGraphRenderer:
    """
    Renders pipeline graphs as Rich trees.

    Each source node (START, or any node with outgoing edges and no incoming
    edge) becomes a root. Nodes reached a second time are shown as back
    references instead of being expanded again.
    """

    # Node type symbols and colors
    NODE_STYLES = {
        NodeType.START: ("(>)", "green"),
        NodeType.END: ("(#)", "red"),
        NodeType.SELECT: ("[S]", "cyan"),
        NodeType.FILTER: ("[F]", "yellow"),
        NodeType.STR: ("[T]", "magenta"),
        NodeType.RENAME: ("[R]", "blue"),
        NodeType.SLICE: ("[/]", "white"),
    }

    def __init__(self, console: Console | None = None):
        self.console = console or Console()

    def _build_edge_map(self, graph: Graph) -> dict[str, list[Edge]]:
        """Outgoing edges by source node ID."""
        edge_map: dict[str, list[Edge]] = {n.id: [] for n in graph.nodes}
        for edge in graph.edges:
            if edge.source in edge_map:
                edge_map[edge.source].append(edge)
        return edge_map

    def _node_text(self, node: Node, on_path: bool = False, label: str | None = None) -> str:
        symbol, color = self.NODE_STYLES.get(node.type, ("[ ]", "white"))
        # SECURITY: Escape node labels to prevent Rich markup injection
        safe_label = escape(node.label or node.id)
        text = f"[{color}]{escape(symbol)} {safe_label}[/]"
        if label:
            text += f" [dim]-> {escape(label)}[/]"
        if on_path:
            text = f"[bold]{text}[/]"
        return text

    def render_as_tree(
        self,
        graph: Graph,
        title: str = "Pipeline",
        validation: PathValidation | None = None,
        headers: dict[str, str] | None = None,
        max_depth: int = 50,
    ) -> Tree:
        """
        Render the graph as a Rich Tree.

        Args:
            graph: Canvas graph to render
            title: Tree title (escaped)
            validation: Optional validation result; nodes on the path are bolded
            headers: Optional node_id -> output label mapping
            max_depth: Maximum tree depth
        """
        tree = Tree(f"[bold]{escape(title)}[/]")
        node_map = {n.id: n for n in graph.nodes}
        edge_map = self._build_edge_map(graph)
        on_path = set(validation.node_ids) if validation and validation.is_valid else set()

        roots = source_nodes(graph.to_networkx())
        if not roots:
            tree.add("[dim](no connected nodes)[/]")
        visited: set[str] = set()
        for root_id in roots:
            self._add_node_to_tree(
                tree, node_map[root_id], node_map, edge_map, visited, on_path, headers or {},
                depth=0, max_depth=max_depth,
            )

        isolated = [n for n in graph.nodes if n.id not in visited]
        if isolated:
            branch = tree.add("[dim]Unreached[/]")
            for node in isolated:
                branch.add(self._node_text(node, label=(headers or {}).get(node.id)))
        return tree

    def _add_node_to_tree(
        self,
        parent: Tree,
        node: Node,
        node_map: dict[str, Node],
        edge_map: dict[str, list[Edge]],
        visited: set[str],
        on_path: set[str],
        headers: dict[str, str],
        depth: int = 0,
        max_depth: int = 50,
    ) -> None:
        if depth >= max_depth:
            parent.add("[dim]... (max depth reached)[/]")
            return
        if node.id in visited:
            parent.add(f"[dim]↩ {escape(node.id)}[/]")
            return
        visited.add(node.id)

        branch = parent.add(
            self._node_text(node, node.id in on_path, headers.get(node.id))
        )
        for edge in edge_map.get(node.id, []):
            child = node_map.get(edge.target)
            if child:
                self._add_node_to_tree(
                    branch, child, node_map, edge_map, visited, on_path, headers,
                    depth + 1, max_depth,
                )


class PlanTableRenderer:
    """Renders an execution plan as a Rich table.

    SECURITY: All user-controlled strings are escaped.
    """

    CONFIG_COLUMNS = ("mode", "column", "value", "comparand", "replacement")

    def render_plan_table(self, plan: ExecutionPlan) -> Table:
        table = Table(title="Execution plan")
        table.add_column("#", justify="right")
        table.add_column("Node", style="cyan")
        table.add_column("Op", style="magenta")
        table.add_column("Output")
        table.add_column("Parameters", max_width=50)

        for idx, step in enumerate(plan.steps, start=1):
            params = ", ".join(
                f"{key}={step.config[key]}"
                for key in self.CONFIG_COLUMNS
                if step.config.get(key)
            )
            table.add_row(
                str(idx),
                escape(step.node_id),
                escape(str(step.config.get("op", step.node_type.value))),
                escape(step.output_label or "-"),
                escape(params),
            )
        return table
