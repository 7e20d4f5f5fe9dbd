"""Core modules for the flowplan workflow engine."""

from flowplan.core.graph_schema import Edge, Graph, GraphIntegrityError, Node, NodeType
from flowplan.core.headers import HeaderEntry, HeaderRegistry
from flowplan.core.linearizer import get_nodes_in_edge_order
from flowplan.core.node_config import ConfigRegistry, NodeConfig, parse_config
from flowplan.core.resolver import ExecutionPlan, build_execution_plan, get_execution_config
from flowplan.core.session import Session, open_session
from flowplan.core.state import Database
from flowplan.core.validator import PathValidation, is_valid_execution_path
from flowplan.core.workflow_store import Workflow, WorkflowStore

__all__ = [
    "ConfigRegistry",
    "Database",
    "Edge",
    "ExecutionPlan",
    "Graph",
    "GraphIntegrityError",
    "HeaderEntry",
    "HeaderRegistry",
    "Node",
    "NodeConfig",
    "NodeType",
    "PathValidation",
    "Session",
    "Workflow",
    "WorkflowStore",
    "build_execution_plan",
    "get_execution_config",
    "get_nodes_in_edge_order",
    "is_valid_execution_path",
    "open_session",
    "parse_config",
]
