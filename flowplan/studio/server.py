"""FastAPI backend for the flowplan studio canvas.

This module provides:
- REST API for workflow CRUD, switching and import/export
- Canvas sync, validation and linearization for the editor
- Node configuration and header editing
- Execution plan resolution

Architecture Notes:
- One Session is shared by every request. Each mutating request that touches
  the stores persists them before returning; the canvas buffer only reaches
  the current workflow through ``POST /api/canvas/save``.
- The studio is a local development tool; CORS is restricted to localhost.
"""

from __future__ import annotations

import logging
import os
import threading
from pathlib import Path
from typing import Any

import pydantic
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from flowplan.core.config import PROJECT_DIR, ConfigError
from flowplan.core.graph_schema import Edge, GraphIntegrityError, Node
from flowplan.core.resolver import ExecutionPlan, InvalidPipelineError, MissingConfigError
from flowplan.core.session import Session, UnsavedChangesError, open_session
from flowplan.core.workflow_store import (
    DuplicateWorkflowError,
    NoCurrentWorkflowError,
    WorkflowImportError,
    WorkflowNameError,
    WorkflowNotFoundError,
)

logger = logging.getLogger(__name__)

app = FastAPI(
    title="flowplan Studio API",
    description="API for visual pipeline editing",
    version="0.1.0",
)


def _get_allowed_origins() -> list[str]:
    """Build allowed origins list including the configured port."""
    origins = [
        "http://localhost:3000",
        "http://localhost:5173",
        "http://127.0.0.1:3000",
        "http://127.0.0.1:5173",
    ]
    configured_port = os.environ.get("FLOWPLAN_STUDIO_PORT")
    if configured_port and configured_port not in ("3000", "5173"):
        origins.extend(
            [
                f"http://localhost:{configured_port}",
                f"http://127.0.0.1:{configured_port}",
            ]
        )
    return origins


app.add_middleware(
    CORSMiddleware,
    allow_origins=_get_allowed_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Global session - initialized lazily
_session: Session | None = None
_session_lock = threading.Lock()
_project_root: Path | None = None


def _find_project_root() -> Path:
    """Find the project root by looking for a .flowplan directory.

    Falls back to cwd if not found.
    """
    global _project_root
    if _project_root is not None:
        return _project_root

    current = Path.cwd()
    for parent in [current] + list(current.parents):
        if (parent / PROJECT_DIR).exists():
            _project_root = parent
            return parent

    _project_root = current
    return current


def get_session() -> Session:
    """Get or create the shared session."""
    global _session
    with _session_lock:
        if _session is None:
            try:
                _session = open_session(_find_project_root())
            except ConfigError as e:
                raise HTTPException(status_code=500, detail=str(e))
        return _session


def _require_current(session: Session) -> None:
    if session.current_workflow is None:
        raise HTTPException(status_code=409, detail="No workflow selected")


# ========== API Models ==========


class WorkflowCreateRequest(BaseModel):
    """Request to create a new workflow"""

    name: str


class SwitchRequest(BaseModel):
    """Request to open another workflow on the canvas"""

    discard_unsaved: bool | None = None


class CanvasRequest(BaseModel):
    """Whole canvas snapshot sent by the editor"""

    nodes: list[Node] = Field(default_factory=list)
    edges: list[Edge] = Field(default_factory=list)


class HeaderRequest(BaseModel):
    """Output field name for a node (empty clears it)"""

    label: str | None = None


class ImportRequest(BaseModel):
    """Exported workflow document to import"""

    document: dict[str, Any]
    repair: bool | None = None


def _summary(session: Session) -> dict[str, Any]:
    return {
        "currentId": session.workflows.current_id,
        "workflows": [
            {
                "id": wf.id,
                "name": wf.name,
                "nodes": len(wf.nodes),
                "edges": len(wf.edges),
                "updatedAt": wf.updated_at.isoformat(),
            }
            for wf in session.workflows.workflows
        ],
    }


def _canvas(session: Session) -> dict[str, Any]:
    return {
        "workflowId": session.workflows.current_id,
        "dirty": session.dirty,
        **session.canvas.model_dump(mode="json"),
    }


# ========== Workflow Endpoints ==========


@app.get("/api/workflows")
def list_workflows() -> dict[str, Any]:
    """List workflows and the current selection."""
    session = get_session()
    with _session_lock:
        return _summary(session)


@app.post("/api/workflows", status_code=201)
def create_workflow(request: WorkflowCreateRequest) -> dict[str, Any]:
    """Create an empty workflow and open it on the canvas."""
    session = get_session()
    with _session_lock:
        try:
            wf = session.create_workflow(request.name)
        except WorkflowNameError as e:
            raise HTTPException(status_code=400, detail=str(e))
        session.save()
    return wf.to_document()


@app.get("/api/workflows/{workflow_id}")
def get_workflow(workflow_id: str) -> dict[str, Any]:
    """Get a stored workflow snapshot by ID."""
    session = get_session()
    with _session_lock:
        try:
            return session.export_workflow(workflow_id)
        except WorkflowNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e))


@app.delete("/api/workflows/{workflow_id}")
def delete_workflow(workflow_id: str) -> dict[str, Any]:
    """Delete a workflow and the configuration only it used."""
    session = get_session()
    with _session_lock:
        try:
            session.delete_workflow(workflow_id)
        except WorkflowNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e))
        session.save()
    return {"status": "deleted", "id": workflow_id, "currentId": session.workflows.current_id}


@app.post("/api/workflows/{workflow_id}/switch")
def switch_workflow(workflow_id: str, request: SwitchRequest | None = None) -> dict[str, Any]:
    """Open another workflow on the canvas."""
    session = get_session()
    discard = request.discard_unsaved if request else None
    with _session_lock:
        try:
            session.switch_to(workflow_id, discard_unsaved=discard)
        except WorkflowNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e))
        except UnsavedChangesError as e:
            raise HTTPException(status_code=409, detail=str(e))
        session.save()
    return _canvas(session)


@app.get("/api/workflows/{workflow_id}/export")
def export_workflow(workflow_id: str) -> dict[str, Any]:
    """Export a workflow as a standalone document."""
    return get_workflow(workflow_id)


@app.post("/api/workflows/import", status_code=201)
def import_workflow(request: ImportRequest) -> dict[str, Any]:
    """Import an exported workflow and make it current."""
    session = get_session()
    with _session_lock:
        try:
            wf = session.import_workflow(request.document, repair=request.repair)
        except DuplicateWorkflowError as e:
            raise HTTPException(status_code=409, detail=str(e))
        except (WorkflowImportError, GraphIntegrityError) as e:
            raise HTTPException(status_code=400, detail=str(e))
        session.save()
    return wf.to_document()


# ========== Canvas Endpoints ==========


@app.get("/api/canvas")
def get_canvas() -> dict[str, Any]:
    """Current canvas buffer."""
    session = get_session()
    with _session_lock:
        return _canvas(session)


@app.put("/api/canvas")
def put_canvas(request: CanvasRequest) -> dict[str, Any]:
    """Replace the canvas buffer with the editor's nodes and edges."""
    session = get_session()
    _require_current(session)
    with _session_lock:
        try:
            session.replace_graph(request.nodes, request.edges)
        except GraphIntegrityError as e:
            raise HTTPException(
                status_code=400, detail={"message": str(e), "edge_ids": e.edge_ids}
            )
    return _canvas(session)


@app.post("/api/canvas/save")
def save_canvas() -> dict[str, Any]:
    """Commit the canvas buffer to the current workflow and persist."""
    session = get_session()
    with _session_lock:
        try:
            wf = session.save_canvas()
        except NoCurrentWorkflowError as e:
            raise HTTPException(status_code=409, detail=str(e))
        session.save()
    return wf.to_document()


@app.get("/api/canvas/validate")
def validate_canvas() -> dict[str, Any]:
    """Validate the canvas as a Start -> End pipeline."""
    session = get_session()
    with _session_lock:
        result = session.validate()
    return {
        "isValid": result.is_valid,
        "reason": result.reason.value if result.reason else None,
        "message": result.message,
        "path": result.node_ids,
    }


@app.get("/api/canvas/order")
def canvas_order() -> list[str]:
    """Node IDs in display order."""
    session = get_session()
    with _session_lock:
        return [n.id for n in session.execution_order()]


@app.get("/api/canvas/plan")
def canvas_plan(strict: bool | None = None) -> ExecutionPlan:
    """Resolve the canvas into the ordered operation list."""
    session = get_session()
    with _session_lock:
        try:
            return session.plan(strict=strict)
        except InvalidPipelineError as e:
            raise HTTPException(
                status_code=400,
                detail={"message": str(e), "reason": e.validation.reason.value},
            )
        except MissingConfigError as e:
            raise HTTPException(
                status_code=400,
                detail={"message": str(e), "nodes": [n.id for n in e.nodes]},
            )


# ========== Node Endpoints ==========


@app.put("/api/nodes/{node_id}/config")
def put_node_config(node_id: str, data: dict[str, Any]) -> dict[str, Any]:
    """Upsert the configuration record of a canvas node."""
    session = get_session()
    with _session_lock:
        try:
            record = session.configure_node(node_id, data)
        except KeyError as e:
            raise HTTPException(status_code=404, detail=str(e.args[0]))
        except pydantic.ValidationError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        session.save()
    return record.model_dump()


@app.get("/api/nodes/{node_id}/config")
def get_node_config(node_id: str) -> dict[str, Any]:
    session = get_session()
    with _session_lock:
        node = session.canvas.get_node(node_id)
        record = session.configs.get(node.type, node_id) if node else None
    if record is None:
        raise HTTPException(status_code=404, detail=f"No configuration for '{node_id}'")
    return record.model_dump()


@app.put("/api/nodes/{node_id}/header")
def put_node_header(node_id: str, request: HeaderRequest) -> dict[str, Any]:
    """Set the node's output field name; returns the label actually assigned."""
    session = get_session()
    with _session_lock:
        if session.canvas.get_node(node_id) is None:
            raise HTTPException(status_code=404, detail=f"Node '{node_id}' is not on the canvas")
        label = session.set_header(node_id, request.label)
        session.save()
    return {"value": node_id, "label": label}


@app.delete("/api/nodes/{node_id}")
def delete_node(node_id: str) -> dict[str, Any]:
    """Remove a node and its edges from the canvas."""
    session = get_session()
    with _session_lock:
        if session.canvas.get_node(node_id) is None:
            raise HTTPException(status_code=404, detail=f"Node '{node_id}' is not on the canvas")
        session.remove_nodes([node_id])
        session.save()
    return _canvas(session)
