"""Execution path validation.

A graph is executable only if it reduces to one linear path from a unique
START node to a unique END node. Structural failures are returned as a typed
result rather than raised, so the canvas can show live feedback on every edit.

Nodes without outgoing edges are NOT treated as implicit terminals; an explicit
END node is required.
"""

import logging
from collections.abc import Sequence
from enum import Enum

from pydantic import BaseModel, Field

from flowplan.core.digraph import bfs_path, build_digraph, node_object
from flowplan.core.graph_schema import Edge, Node, NodeType

logger = logging.getLogger(__name__)


class ValidationReason(str, Enum):
    """Why a graph was rejected"""

    NO_START = "no_start"
    NO_END = "no_end"
    MULTI_START = "multi_start"
    MULTI_END = "multi_end"
    NO_PATH = "no_path"


REASON_MESSAGES = {
    ValidationReason.NO_START: "Pipeline has no Start node",
    ValidationReason.NO_END: "Pipeline has no End node",
    ValidationReason.MULTI_START: "Pipeline has more than one Start node",
    ValidationReason.MULTI_END: "Pipeline has more than one End node",
    ValidationReason.NO_PATH: "No path connects the Start node to the End node",
}


class ValidatorState(str, Enum):
    """States of the path validator"""

    UNCHECKED = "unchecked"
    CHECKING = "checking"  # Start/End cardinality
    SEARCHING = "searching"  # BFS from Start
    VALID = "valid"
    INVALID = "invalid"


class PathValidation(BaseModel):
    """Result of validating a graph as an executable pipeline."""

    is_valid: bool
    path: list[Node] = Field(default_factory=list)
    reason: ValidationReason | None = None

    @property
    def message(self) -> str:
        if self.is_valid:
            return "Pipeline is valid"
        return REASON_MESSAGES[self.reason]

    @property
    def node_ids(self) -> list[str]:
        return [n.id for n in self.path]


class ExecutionPathValidator:
    """Single-use validator that walks the state machine for one graph.

    Usage::

        validator = ExecutionPathValidator(nodes, edges)
        result = validator.run()
        validator.state  # ValidatorState.VALID or ValidatorState.INVALID
    """

    def __init__(self, nodes: Sequence[Node], edges: Sequence[Edge]):
        self.nodes = list(nodes)
        self.edges = list(edges)
        self.state = ValidatorState.UNCHECKED
        self.result: PathValidation | None = None

    def run(self) -> PathValidation:
        if self.result is not None:
            return self.result

        G = build_digraph(self.nodes, self.edges)

        self.state = ValidatorState.CHECKING
        starts = [n for n in self.nodes if n.type == NodeType.START]
        ends = [n for n in self.nodes if n.type == NodeType.END]

        if not starts:
            return self._reject(ValidationReason.NO_START)
        if not ends:
            return self._reject(ValidationReason.NO_END)
        if len(starts) > 1:
            return self._reject(ValidationReason.MULTI_START)
        if len(ends) > 1:
            return self._reject(ValidationReason.MULTI_END)

        self.state = ValidatorState.SEARCHING
        path_ids = bfs_path(G, starts[0].id, ends[0].id)
        if path_ids is None:
            return self._reject(ValidationReason.NO_PATH)

        path = [node_object(G, node_id) for node_id in path_ids]
        # Intermediate hops through ids with no node object cannot be executed
        if any(n is None for n in path):
            return self._reject(ValidationReason.NO_PATH)

        self.state = ValidatorState.VALID
        self.result = PathValidation(is_valid=True, path=path)
        return self.result

    def _reject(self, reason: ValidationReason) -> PathValidation:
        logger.debug(f"Pipeline rejected: {reason.value}")
        self.state = ValidatorState.INVALID
        self.result = PathValidation(is_valid=False, reason=reason)
        return self.result


def is_valid_execution_path(nodes: Sequence[Node], edges: Sequence[Edge]) -> PathValidation:
    """Validate a graph and return the Start→End path on success."""
    return ExecutionPathValidator(nodes, edges).run()
