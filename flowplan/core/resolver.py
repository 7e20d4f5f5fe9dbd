"""Execution config resolver - validated path -> ordered operation list.

START and END resolve to nothing. Every other node is looked up in the
configuration registry by type and id. A node with no saved configuration is
dropped from the plan and logged as a warning, or raises MissingConfigError
when ``strict`` is set.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from pydantic import BaseModel, Field

from flowplan.core.graph_schema import Edge, Node, NodeType
from flowplan.core.headers import HeaderRegistry
from flowplan.core.node_config import ConfigRegistry, NodeConfig
from flowplan.core.validator import PathValidation, is_valid_execution_path

logger = logging.getLogger(__name__)


class MissingConfigError(Exception):
    """A pipeline node has no saved configuration (strict mode)."""

    def __init__(self, nodes: list[Node]):
        self.nodes = nodes
        ids = ", ".join(f"{n.id} ({n.type.value})" for n in nodes)
        super().__init__(f"Nodes without configuration: {ids}")


class InvalidPipelineError(Exception):
    """The graph is not an executable Start -> End pipeline."""

    def __init__(self, validation: PathValidation):
        self.validation = validation
        super().__init__(validation.message)


def _resolve(
    path: Sequence[Node], registry: ConfigRegistry
) -> tuple[list[tuple[Node, NodeConfig]], list[Node]]:
    resolved: list[tuple[Node, NodeConfig]] = []
    dropped: list[Node] = []
    for node in path:
        if node.type.is_sentinel:
            continue
        record = registry.get(node.type, node.id)
        if record is None:
            logger.warning(
                f"Node {node.id} ({node.type.value}) has no configuration; "
                "dropping it from the execution plan"
            )
            dropped.append(node)
            continue
        resolved.append((node, record))
    return resolved, dropped


def get_execution_config(
    path: Sequence[Node], registry: ConfigRegistry, strict: bool = False
) -> list[NodeConfig]:
    """Map a validated path onto configuration records, in path order.

    Raises:
        MissingConfigError: If ``strict`` and any node lacks a record.
    """
    resolved, dropped = _resolve(path, registry)
    if strict and dropped:
        raise MissingConfigError(dropped)
    return [record for _, record in resolved]


class PlanStep(BaseModel):
    """One resolved operation, tagged with its originating node."""

    node_id: str
    node_type: NodeType
    output_label: str | None = None
    config: dict[str, Any]


class ExecutionPlan(BaseModel):
    """Ordered operation list handed to the execution backend"""

    workflow_id: str | None = None
    steps: list[PlanStep] = Field(default_factory=list)
    dropped: list[str] = Field(default_factory=list)  # Node IDs without configuration

    def operations(self) -> list[dict[str, Any]]:
        """Flat backend records, in execution order."""
        return [dict(step.config) for step in self.steps]


def build_execution_plan(
    nodes: Sequence[Node],
    edges: Sequence[Edge],
    registry: ConfigRegistry,
    headers: HeaderRegistry | None = None,
    strict: bool = False,
    workflow_id: str | None = None,
) -> ExecutionPlan:
    """Validate a graph and resolve it into an ExecutionPlan.

    Raises:
        InvalidPipelineError: If the graph is not a Start -> End pipeline.
        MissingConfigError: If ``strict`` and any node lacks a record.
    """
    validation = is_valid_execution_path(nodes, edges)
    if not validation.is_valid:
        raise InvalidPipelineError(validation)

    resolved, dropped = _resolve(validation.path, registry)
    if strict and dropped:
        raise MissingConfigError(dropped)

    steps = [
        PlanStep(
            node_id=node.id,
            node_type=node.type,
            output_label=headers.label_for(node.id) if headers else None,
            config=record.model_dump(),
        )
        for node, record in resolved
    ]
    logger.info(
        f"Built execution plan with {len(steps)} step(s)"
        + (f", {len(dropped)} dropped" if dropped else "")
    )
    return ExecutionPlan(
        workflow_id=workflow_id, steps=steps, dropped=[n.id for n in dropped]
    )
