# conftest.py - Shared pytest fixtures for all tests
"""Shared pytest fixtures for the flowplan test suite.

This module provides foundational fixtures used across all test modules:
- Sample canvas graphs (the minimal Start -> Filter -> End pipeline)
- Temporary databases and projects
- Sessions backed by a temporary database

Usage:
    Import fixtures implicitly via pytest's fixture discovery.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from flowplan.core.config import FlowplanConfig
from flowplan.core.graph_schema import Edge, Node, NodeType
from flowplan.core.session import Session
from flowplan.core.state import Database


def make_node(node_id: str, node_type: NodeType | str, **kwargs) -> Node:
    return Node(id=node_id, type=node_type, **kwargs)


def make_edge(source: str, target: str, edge_id: str | None = None) -> Edge:
    return Edge(id=edge_id or f"{source}-{target}", source=source, target=target)


# =============================================================================
# Graph Fixtures
# =============================================================================


@pytest.fixture
def pipeline_nodes() -> list[Node]:
    """Start -> Filter -> End nodes: ``s``, ``f``, ``e``."""
    return [
        make_node("s", NodeType.START, label="Start"),
        make_node("f", NodeType.FILTER, label="Filter", position={"x": 120.0, "y": 40.0}),
        make_node("e", NodeType.END, label="End"),
    ]


@pytest.fixture
def pipeline_edges() -> list[Edge]:
    return [make_edge("s", "f", "e1"), make_edge("f", "e", "e2")]


@pytest.fixture
def canvas_document(pipeline_nodes, pipeline_edges) -> dict:
    """Canvas snapshot as the editor sends it."""
    return {
        "nodes": [n.model_dump(mode="json") for n in pipeline_nodes],
        "edges": [e.model_dump(mode="json") for e in pipeline_edges],
    }


# =============================================================================
# Database and Session Fixtures
# =============================================================================


@pytest.fixture
def test_db(tmp_path: Path) -> Database:
    """Create a test database in a temporary directory."""
    return Database(tmp_path / "state.db")


@pytest.fixture
def session(test_db: Database) -> Session:
    """Empty session persisted to a temporary database."""
    return Session(db=test_db, config=FlowplanConfig()).load()


@pytest.fixture
def pipeline_session(session: Session, pipeline_nodes, pipeline_edges) -> Session:
    """Session with a saved ``main`` workflow holding the s -> f -> e pipeline."""
    session.create_workflow("main")
    session.replace_graph(pipeline_nodes, pipeline_edges)
    session.save_canvas()
    return session
