"""Workflow store - named graph snapshots with explicit save semantics.

The canvas edits its own node/edge buffer. Nothing reaches the stored
workflow until ``save_current`` is called, which overwrites the snapshot and
bumps ``updated_at``. Switching workflows loads a different snapshot; unsaved
buffer edits are the caller's to keep or discard.

The store is an in-memory model. Writing it to disk is a separate, explicit
step (see ``flowplan.core.session``).
"""

import logging
import uuid
from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from flowplan.core.graph_schema import (
    Edge,
    Graph,
    Node,
    check_edge_references,
    find_dangling_edges,
)

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    """Get current UTC time (timezone-aware)."""
    return datetime.now(UTC)


class WorkflowStoreError(Exception):
    """Base class for illegal workflow store operations."""


class NoCurrentWorkflowError(WorkflowStoreError):
    """No workflow is selected."""


class WorkflowNotFoundError(WorkflowStoreError, KeyError):
    """Workflow ID is not in the store."""

    def __init__(self, workflow_id: str):
        self.workflow_id = workflow_id
        super().__init__(f"Workflow '{workflow_id}' does not exist")

    def __str__(self) -> str:
        return self.args[0]


class WorkflowNameError(WorkflowStoreError, ValueError):
    """Workflow name is blank or already taken."""


class WorkflowImportError(WorkflowStoreError, ValueError):
    """Imported document is not a valid workflow."""


class DuplicateWorkflowError(WorkflowStoreError):
    """A workflow with the same ID already exists."""


class Workflow(BaseModel):
    """A named, persisted snapshot of one node/edge graph."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    name: str
    nodes: list[Node] = Field(default_factory=list)
    edges: list[Edge] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utc_now, alias="createdAt")
    updated_at: datetime = Field(default_factory=_utc_now, alias="updatedAt")

    def touch(self) -> None:
        """Update the ``updated_at`` timestamp."""
        self.updated_at = _utc_now()

    def to_graph(self) -> Graph:
        """Copy of the snapshot as a Graph (the canvas buffer)."""
        return Graph.model_construct(
            nodes=[n.model_copy(deep=True) for n in self.nodes],
            edges=[e.model_copy(deep=True) for e in self.edges],
        )

    def to_document(self) -> dict[str, Any]:
        """JSON-ready document in the export/persist layout."""
        return self.model_dump(mode="json", by_alias=True)


class WorkflowStore:
    """CRUD over named workflows plus the current selection."""

    def __init__(self) -> None:
        self.current_id: str | None = None
        self.workflows: list[Workflow] = []

    # ========== Lookups ==========

    def _find(self, workflow_id: str | None) -> Workflow | None:
        for wf in self.workflows:
            if wf.id == workflow_id:
                return wf
        return None

    def get(self, workflow_id: str) -> Workflow:
        wf = self._find(workflow_id)
        if wf is None:
            raise WorkflowNotFoundError(workflow_id)
        return wf

    @property
    def current_workflow(self) -> Workflow | None:
        return self._find(self.current_id)

    def name_exists(self, name: str) -> bool:
        return any(wf.name == name for wf in self.workflows)

    def check_new_name(self, name: str | None) -> str:
        """Normalize a proposed workflow name, rejecting blank or duplicate names."""
        cleaned = (name or "").strip()
        if not cleaned:
            raise WorkflowNameError("The workflow name cannot be empty")
        if self.name_exists(cleaned):
            raise WorkflowNameError(f"A workflow named '{cleaned}' already exists")
        return cleaned

    def __len__(self) -> int:
        return len(self.workflows)

    # ========== CRUD ==========

    def create(self, name: str) -> str:
        """Create an empty workflow and make it current. Returns its ID."""
        wf = Workflow(name=name)
        self.workflows.append(wf)
        self.current_id = wf.id
        logger.info(f"Workflow created: {wf.name} ({wf.id})")
        return wf.id

    def add_node(self, node: Node) -> None:
        """Append a node to the current workflow (no-op when none is selected).

        A node with an existing ID replaces the old one in place.
        """
        wf = self.current_workflow
        if wf is None:
            return
        for idx, existing in enumerate(wf.nodes):
            if existing.id == node.id:
                wf.nodes[idx] = node
                break
        else:
            wf.nodes = [*wf.nodes, node]
        wf.touch()

    def add_edge(self, edge: Edge) -> None:
        """Append an edge to the current workflow (no-op when none is selected).

        Raises:
            GraphIntegrityError: If an endpoint is not a node of the workflow.
        """
        wf = self.current_workflow
        if wf is None:
            return
        check_edge_references(wf.nodes, [edge])
        wf.edges = [*wf.edges, edge.model_copy()]
        wf.touch()

    def save_current(self, nodes: Iterable[Node], edges: Iterable[Edge]) -> Workflow:
        """Overwrite the current workflow's snapshot with the canvas buffer.

        Raises:
            NoCurrentWorkflowError: If no workflow is selected.
            GraphIntegrityError: If an edge references a node not in ``nodes``.
        """
        wf = self.current_workflow
        if wf is None:
            raise NoCurrentWorkflowError("No workflow selected")
        node_list = [n.model_copy(deep=True) for n in nodes]
        edge_list = [e.model_copy(deep=True) for e in edges]
        check_edge_references(node_list, edge_list)
        wf.nodes = node_list
        wf.edges = edge_list
        wf.touch()
        logger.info(f"Workflow saved: {wf.name} ({len(node_list)} nodes, {len(edge_list)} edges)")
        return wf

    def switch_to(self, workflow_id: str) -> Workflow:
        """Select another workflow.

        Raises:
            WorkflowNotFoundError: If ``workflow_id`` is unknown.
        """
        wf = self.get(workflow_id)
        self.current_id = wf.id
        return wf

    def remove(self, workflow_id: str) -> bool:
        """Delete a workflow; if it was current, fall back to the first remaining one."""
        before = len(self.workflows)
        self.workflows = [wf for wf in self.workflows if wf.id != workflow_id]
        if self.current_id == workflow_id:
            self.current_id = self.workflows[0].id if self.workflows else None
        removed = len(self.workflows) < before
        if removed:
            logger.info(f"Workflow deleted: {workflow_id}")
        return removed

    def remove_nodes(self, node_ids: Iterable[str]) -> None:
        """Remove nodes (and every edge touching them) from the current workflow."""
        wf = self.current_workflow
        if wf is None:
            return
        ids = set(node_ids)
        wf.nodes = [n for n in wf.nodes if n.id not in ids]
        wf.edges = [e for e in wf.edges if e.source not in ids and e.target not in ids]
        wf.touch()

    def remove_edges(self, edge_ids: Iterable[str]) -> None:
        wf = self.current_workflow
        if wf is None:
            return
        ids = set(edge_ids)
        wf.edges = [e for e in wf.edges if e.id not in ids]
        wf.touch()

    def get_workflow_data(self, workflow_id: str) -> Graph:
        """Return a copy of the stored snapshot for loading into the canvas.

        Raises:
            WorkflowNotFoundError: If ``workflow_id`` is unknown.
        """
        return self.get(workflow_id).to_graph()

    # ========== Import / Export ==========

    def export_workflow(self, workflow_id: str) -> dict[str, Any]:
        return self.get(workflow_id).to_document()

    def import_workflow(self, document: Any, repair: bool = False) -> Workflow:
        """Add a workflow from an exported document and make it current.

        Raises:
            WorkflowImportError: If the document lacks an ``id`` or a ``nodes`` list,
                or does not parse as a workflow.
            DuplicateWorkflowError: If a workflow with the same ID exists.
            GraphIntegrityError: If an edge is dangling and ``repair`` is False.
        """
        if (
            not isinstance(document, dict)
            or not document.get("id")
            or not isinstance(document.get("nodes"), list)
        ):
            raise WorkflowImportError("Invalid workflow file")
        if self._find(document["id"]) is not None:
            raise DuplicateWorkflowError(
                f"Workflow '{document.get('name', document['id'])}' already exists"
            )
        try:
            wf = Workflow.model_validate({"name": document["id"], **document})
        except ValidationError as e:
            raise WorkflowImportError(f"Invalid workflow file: {e}") from e

        dangling = find_dangling_edges(wf.nodes, wf.edges)
        if dangling:
            if not repair:
                check_edge_references(wf.nodes, wf.edges)
            drop = {id(e) for e in dangling}
            wf.edges = [e for e in wf.edges if id(e) not in drop]
            logger.warning(f"Dropped {len(dangling)} dangling edge(s) from imported workflow")

        self.workflows.append(wf)
        self.current_id = wf.id
        logger.info(f"Workflow imported: {wf.name} ({wf.id})")
        return wf

    # ========== Serialization ==========

    def to_dict(self) -> dict[str, Any]:
        return {
            "currentId": self.current_id,
            "list": [wf.to_document() for wf in self.workflows],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "WorkflowStore":
        store = cls()
        if not data:
            return store
        store.workflows = [Workflow.model_validate(wf) for wf in data.get("list", [])]
        current = data.get("currentId")
        store.current_id = current if store._find(current) is not None else None
        if store.current_id is None and store.workflows:
            store.current_id = store.workflows[0].id
        return store

