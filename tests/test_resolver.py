"""Tests for resolving a validated path into backend operations."""

import logging

import pytest

from flowplan.core.graph_schema import Edge, Node
from flowplan.core.headers import HeaderRegistry
from flowplan.core.node_config import ConfigRegistry, FilterConfig, RenameConfig, SelectConfig
from flowplan.core.resolver import (
    InvalidPipelineError,
    MissingConfigError,
    build_execution_plan,
    get_execution_config,
)
from flowplan.core.validator import ValidationReason, is_valid_execution_path


@pytest.fixture
def registry() -> ConfigRegistry:
    registry = ConfigRegistry()
    registry.upsert(FilterConfig(id="f", mode="equal", column="city", value="Paris"))
    return registry


@pytest.fixture
def long_pipeline() -> tuple[list[Node], list[Edge]]:
    """s -> sel -> f -> r -> e"""
    nodes = [
        Node(id="s", type="start"),
        Node(id="sel", type="select"),
        Node(id="f", type="filter"),
        Node(id="r", type="rename"),
        Node(id="e", type="end"),
    ]
    ids = [n.id for n in nodes]
    edges = [Edge(id=f"x{i}", source=a, target=b) for i, (a, b) in enumerate(zip(ids, ids[1:]))]
    return nodes, edges


class TestGetExecutionConfig:
    def test_minimal_pipeline_resolves_to_filter_record(
        self, pipeline_nodes, pipeline_edges, registry
    ):
        path = is_valid_execution_path(pipeline_nodes, pipeline_edges).path
        records = get_execution_config(path, registry)
        assert records == [registry.get("filter", "f")]
        assert records[0].model_dump() == {
            "id": "f",
            "op": "filter",
            "mode": "equal",
            "column": "city",
            "value": "Paris",
            "logic": "or",
        }

    def test_sentinels_produce_nothing(self, registry):
        path = [Node(id="s", type="start"), Node(id="e", type="end")]
        assert get_execution_config(path, registry) == []

    def test_preserves_path_order(self, long_pipeline):
        nodes, _ = long_pipeline
        registry = ConfigRegistry()
        registry.upsert(RenameConfig(id="r", column="a", value="b"))
        registry.upsert(SelectConfig(id="sel", column="a|c"))
        registry.upsert(FilterConfig(id="f", column="a"))
        assert [r.op for r in get_execution_config(nodes, registry)] == [
            "select",
            "filter",
            "rename",
        ]

    def test_missing_config_dropped_with_warning(self, long_pipeline, registry, caplog):
        nodes, _ = long_pipeline
        with caplog.at_level(logging.WARNING, logger="flowplan.core.resolver"):
            records = get_execution_config(nodes, registry)
        assert [r.id for r in records] == ["f"]
        assert "sel" in caplog.text
        assert "r (rename)" in caplog.text

    def test_strict_raises_on_missing(self, long_pipeline, registry):
        nodes, _ = long_pipeline
        with pytest.raises(MissingConfigError) as exc_info:
            get_execution_config(nodes, registry, strict=True)
        assert [n.id for n in exc_info.value.nodes] == ["sel", "r"]

    def test_config_lookup_is_by_type(self):
        registry = ConfigRegistry()
        registry.upsert(SelectConfig(id="f"))
        path = [Node(id="f", type="filter")]
        assert get_execution_config(path, registry) == []


class TestBuildExecutionPlan:
    def test_plan_steps_carry_node_and_header(self, pipeline_nodes, pipeline_edges, registry):
        headers = HeaderRegistry()
        headers.set_header_for_node("f", "paris_rows")

        plan = build_execution_plan(
            pipeline_nodes, pipeline_edges, registry, headers, workflow_id="wf1"
        )
        assert plan.workflow_id == "wf1"
        assert len(plan.steps) == 1
        step = plan.steps[0]
        assert step.node_id == "f"
        assert step.output_label == "paris_rows"
        assert plan.operations() == [registry.get("filter", "f").model_dump()]
        assert plan.dropped == []

    def test_plan_lists_dropped_nodes(self, long_pipeline, registry):
        nodes, edges = long_pipeline
        plan = build_execution_plan(nodes, edges, registry)
        assert [s.node_id for s in plan.steps] == ["f"]
        assert plan.dropped == ["sel", "r"]

    def test_invalid_graph_raises(self, pipeline_nodes, registry):
        with pytest.raises(InvalidPipelineError) as exc_info:
            build_execution_plan(pipeline_nodes, [], registry)
        assert exc_info.value.validation.reason == ValidationReason.NO_PATH

    def test_strict_plan(self, long_pipeline, registry):
        nodes, edges = long_pipeline
        with pytest.raises(MissingConfigError, match="sel \\(select\\)"):
            build_execution_plan(nodes, edges, registry, strict=True)

    def test_plan_serializes(self, pipeline_nodes, pipeline_edges, registry):
        plan = build_execution_plan(pipeline_nodes, pipeline_edges, registry)
        data = plan.model_dump(mode="json")
        assert data["steps"][0]["node_type"] == "filter"
        assert data["steps"][0]["config"]["op"] == "filter"
