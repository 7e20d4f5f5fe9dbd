"""Editing session - the canvas buffer plus every engine store.

A Session owns:
- the canvas buffer (a ``Graph``) for the current workflow,
- the ``WorkflowStore`` of saved snapshots,
- the ``ConfigRegistry`` and ``HeaderRegistry``.

In-memory state and persisted state are separate. ``save_canvas`` commits the
buffer into the workflow store; ``save``/``load`` move all stores to and from
the database. Neither happens implicitly.
"""

import logging
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from flowplan.core.config import FlowplanConfig, load_config
from flowplan.core.graph_schema import Edge, Graph, Node, check_edge_references
from flowplan.core.headers import HeaderRegistry
from flowplan.core.linearizer import get_nodes_in_edge_order
from flowplan.core.node_config import ConfigRegistry, NodeConfig, parse_config
from flowplan.core.resolver import ExecutionPlan, build_execution_plan
from flowplan.core.state import STORE_HEADERS, STORE_NODE_CONFIGS, STORE_WORKFLOW, Database
from flowplan.core.validator import PathValidation, is_valid_execution_path
from flowplan.core.workflow_store import (
    NoCurrentWorkflowError,
    Workflow,
    WorkflowStore,
    WorkflowStoreError,
)

logger = logging.getLogger(__name__)


class UnsavedChangesError(WorkflowStoreError):
    """The canvas has edits that switching would discard."""


class Session:
    """Canvas buffer and engine stores for one user session."""

    def __init__(self, db: Database | None = None, config: FlowplanConfig | None = None):
        self.db = db
        self.config = config or FlowplanConfig()
        self.workflows = WorkflowStore()
        self.configs = ConfigRegistry()
        self.headers = HeaderRegistry()
        self.canvas = Graph()
        self.dirty = False

    # ========== Persistence ==========

    def load(self) -> "Session":
        """Restore all stores from the database and load the current workflow."""
        if self.db is not None:
            self.workflows = WorkflowStore.from_dict(self.db.load_store(STORE_WORKFLOW))
            self.configs = ConfigRegistry.from_dict(self.db.load_store(STORE_NODE_CONFIGS))
            self.headers = HeaderRegistry.from_dict(self.db.load_store(STORE_HEADERS))
        self._load_canvas()
        return self

    def save(self) -> None:
        """Write all stores to the database in one transaction.

        The canvas buffer is not included; call ``save_canvas`` first to keep it.
        """
        if self.db is None:
            return
        with self.db.transaction() as conn:
            self.db.save_store(STORE_WORKFLOW, self.workflows.to_dict(), conn=conn)
            self.db.save_store(STORE_NODE_CONFIGS, self.configs.to_dict(), conn=conn)
            self.db.save_store(STORE_HEADERS, self.headers.to_dict(), conn=conn)
        logger.debug(f"Session persisted to {self.db.db_path}")

    def _load_canvas(self) -> None:
        wf = self.workflows.current_workflow
        self.canvas = wf.to_graph() if wf else Graph()
        self.dirty = False

    # ========== Workflows ==========

    @property
    def current_workflow(self) -> Workflow | None:
        return self.workflows.current_workflow

    def create_workflow(self, name: str) -> Workflow:
        """Create a uniquely named, empty workflow and open it on the canvas.

        Raises:
            WorkflowNameError: If the name is blank or taken.
        """
        workflow_id = self.workflows.create(self.workflows.check_new_name(name))
        self._load_canvas()
        return self.workflows.get(workflow_id)

    def switch_to(self, workflow_id: str, discard_unsaved: bool | None = None) -> Workflow:
        """Open another workflow on the canvas.

        Raises:
            WorkflowNotFoundError: If ``workflow_id`` is unknown.
            UnsavedChangesError: If the canvas is dirty and discarding is off.
        """
        if discard_unsaved is None:
            discard_unsaved = self.config.discard_unsaved_on_switch
        target = self.workflows.get(workflow_id)
        if target.id == self.workflows.current_id:
            return target
        if self.dirty and not discard_unsaved:
            raise UnsavedChangesError("The canvas has unsaved changes")
        self.workflows.switch_to(target.id)
        self._load_canvas()
        return target

    def save_canvas(self) -> Workflow:
        """Commit the canvas buffer to the current workflow.

        Raises:
            NoCurrentWorkflowError: If no workflow is selected.
        """
        wf = self.workflows.save_current(self.canvas.nodes, self.canvas.edges)
        self.dirty = False
        self._prune_orphans()
        return wf

    def delete_workflow(self, workflow_id: str) -> bool:
        """Delete a workflow and the configuration/header entries only it used."""
        wf = self.workflows.get(workflow_id)
        was_current = wf.id == self.workflows.current_id
        self.workflows.remove(wf.id)
        if was_current:
            self._load_canvas()
        self._prune_orphans()
        return True

    def _prune_orphans(self) -> None:
        """Drop config and header entries of nodes no saved workflow or the canvas holds."""
        keep = {n.id for other in self.workflows.workflows for n in other.nodes}
        keep.update(n.id for n in self.canvas.nodes)
        self.configs.prune(keep)
        for entry in list(self.headers.entries):
            if entry.value not in keep:
                self.headers.remove_header_for_node(entry.value)

    def import_workflow(self, document: Any, repair: bool | None = None) -> Workflow:
        if repair is None:
            repair = self.config.repair_dangling_edges
        wf = self.workflows.import_workflow(document, repair=repair)
        self._load_canvas()
        return wf

    def export_workflow(self, workflow_id: str | None = None) -> dict[str, Any]:
        workflow_id = workflow_id or self.workflows.current_id
        if workflow_id is None:
            raise NoCurrentWorkflowError("No workflow selected")
        return self.workflows.export_workflow(workflow_id)

    # ========== Canvas ==========

    def add_node(self, node: Node) -> None:
        self.canvas.add_node(node)
        self.dirty = True

    def add_edge(self, edge: Edge) -> None:
        self.canvas.add_edge(edge)
        self.dirty = True

    def replace_graph(self, nodes: list[Node], edges: list[Edge]) -> None:
        """Replace the whole canvas buffer (editor sync)."""
        check_edge_references(nodes, edges)
        self.canvas = Graph(nodes=list(nodes), edges=list(edges))
        self.dirty = True

    def remove_nodes(self, node_ids: Iterable[str]) -> None:
        """Remove nodes and their edges from the canvas.

        Their configuration and header entry go away on the next
        ``save_canvas`` once no saved workflow still holds them.
        """
        self.canvas.remove_nodes(list(node_ids))
        self.dirty = True

    def remove_edges(self, edge_ids: Iterable[str]) -> None:
        self.canvas.remove_edges(edge_ids)
        self.dirty = True

    def configure_node(self, node_id: str, data: dict[str, Any]) -> NodeConfig:
        """Upsert the configuration record of a canvas node.

        Raises:
            KeyError: If the node is not on the canvas.
            ValueError: If the node type takes no configuration.
        """
        node = self.canvas.get_node(node_id)
        if node is None:
            raise KeyError(f"Node '{node_id}' is not on the canvas")
        record = parse_config(node.type, {**data, "id": node_id})
        return self.configs.upsert(record)

    def set_header(self, node_id: str, label: str | None) -> str | None:
        return self.headers.set_header_for_node(node_id, label)

    # ========== Analysis ==========

    def validate(self) -> PathValidation:
        return is_valid_execution_path(self.canvas.nodes, self.canvas.edges)

    def execution_order(self) -> list[Node]:
        return get_nodes_in_edge_order(self.canvas.nodes, self.canvas.edges)

    def plan(self, strict: bool | None = None) -> ExecutionPlan:
        """Validate the canvas and resolve it into an execution plan.

        Raises:
            InvalidPipelineError: If the canvas is not a Start -> End pipeline.
            MissingConfigError: In strict mode, if a node lacks configuration.
        """
        if strict is None:
            strict = self.config.strict_configs
        return build_execution_plan(
            self.canvas.nodes,
            self.canvas.edges,
            self.configs,
            self.headers,
            strict=strict,
            workflow_id=self.workflows.current_id,
        )

    def unconfigured_nodes(self) -> list[Node]:
        """Canvas nodes (other than START/END) without a configuration record."""
        return [
            n
            for n in self.canvas.nodes
            if not n.type.is_sentinel
            and self.configs.get(n.type, n.id) is None
        ]


def open_session(repo_path: Path) -> Session:
    """Load configuration and persisted stores for the project at ``repo_path``."""
    config = load_config(repo_path)
    db = Database(config.database_path(repo_path))
    return Session(db=db, config=config).load()
