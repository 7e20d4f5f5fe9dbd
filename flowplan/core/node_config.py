"""Per-node configuration records and the configuration registry.

Every non-sentinel node type has one record shape, keyed by the owning node's
id. The registry is a single map of node type -> ordered map of node id ->
record, so there is at most one record per (type, id) pair and an upsert
replaces a record in place without moving it.
"""

import logging
from collections.abc import Iterable
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict

from flowplan.core.graph_schema import NodeType

logger = logging.getLogger(__name__)


class NodeConfig(BaseModel):
    """Base configuration record. ``op`` is the tag the execution backend dispatches on."""

    model_config = ConfigDict(extra="allow")

    node_type: ClassVar[NodeType]
    store_key: ClassVar[str]

    id: str
    op: str


class FilterConfig(NodeConfig):
    """Keep rows where ``column`` matches ``value`` under ``mode``.

    ``value`` may hold several alternatives separated by ``|``. ``logic``
    joins this filter with the next one (``and`` / ``or``).
    """

    node_type: ClassVar[NodeType] = NodeType.FILTER
    store_key: ClassVar[str] = "filters"

    op: str = "filter"
    mode: str = "equal"
    column: str = ""
    value: str = ""
    logic: str = "or"


class SelectConfig(NodeConfig):
    """Keep the ``|``-separated columns in ``column``."""

    node_type: ClassVar[NodeType] = NodeType.SELECT
    store_key: ClassVar[str] = "selects"

    op: str = "select"
    column: str = ""


class StrConfig(NodeConfig):
    """Apply string operation ``mode`` (upper, trim, replace, pad_left, ...) to ``column``."""

    node_type: ClassVar[NodeType] = NodeType.STR
    store_key: ClassVar[str] = "strs"

    op: str = "str"
    mode: str = ""
    column: str = ""
    comparand: str = ""
    replacement: str = ""


class RenameConfig(NodeConfig):
    """Rename ``column`` to ``value``."""

    node_type: ClassVar[NodeType] = NodeType.RENAME
    store_key: ClassVar[str] = "renames"

    op: str = "rename"
    column: str = ""
    value: str = ""


class SliceConfig(NodeConfig):
    node_type: ClassVar[NodeType] = NodeType.SLICE
    store_key: ClassVar[str] = "slices"

    op: str = "slice"
    mode: str = "left"
    column: str = ""
    offset: str = ""
    length: str = ""


CONFIG_TYPES: dict[NodeType, type[NodeConfig]] = {
    cls.node_type: cls
    for cls in (FilterConfig, SelectConfig, StrConfig, RenameConfig, SliceConfig)
}


def parse_config(node_type: NodeType | str, data: dict[str, Any] | NodeConfig) -> NodeConfig:
    """Build the record model for ``node_type`` from a dict (or pass a record through)."""
    node_type = NodeType(node_type)
    config_cls = CONFIG_TYPES.get(node_type)
    if config_cls is None:
        raise ValueError(f"Node type '{node_type.value}' does not take configuration")
    if isinstance(data, NodeConfig):
        if not isinstance(data, config_cls):
            raise ValueError(
                f"Expected {config_cls.__name__} for '{node_type.value}', "
                f"got {type(data).__name__}"
            )
        return data
    return config_cls.model_validate(data)


class ConfigStore:
    """Keyed store of records for a single node type."""

    def __init__(self, node_type: NodeType):
        self.node_type = node_type
        self.config_cls = CONFIG_TYPES[node_type]
        self._records: dict[str, NodeConfig] = {}

    def upsert(self, record: NodeConfig | dict[str, Any]) -> NodeConfig:
        """Replace the record with the same id in place, or append it."""
        record = parse_config(self.node_type, record)
        self._records[record.id] = record
        return record

    def get(self, node_id: str) -> NodeConfig | None:
        return self._records.get(node_id)

    def remove(self, node_id: str) -> bool:
        return self._records.pop(node_id, None) is not None

    def records(self) -> list[NodeConfig]:
        return list(self._records.values())

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._records


class ConfigRegistry:
    """All configuration stores, keyed by node type."""

    def __init__(self) -> None:
        self._stores: dict[NodeType, ConfigStore] = {
            node_type: ConfigStore(node_type) for node_type in CONFIG_TYPES
        }

    def store(self, node_type: NodeType | str) -> ConfigStore:
        node_type = NodeType(node_type)
        try:
            return self._stores[node_type]
        except KeyError:
            raise ValueError(
                f"Node type '{node_type.value}' does not take configuration"
            ) from None

    def upsert(self, record: NodeConfig) -> NodeConfig:
        """Upsert a typed record into the store for its node type."""
        return self.store(record.node_type).upsert(record)

    def get(self, node_type: NodeType | str, node_id: str) -> NodeConfig | None:
        node_type = NodeType(node_type)
        if node_type.is_sentinel:
            return None
        return self.store(node_type).get(node_id)

    def remove_node(self, node_id: str) -> int:
        """Drop every record owned by ``node_id``. Returns the number removed."""
        removed = sum(1 for s in self._stores.values() if s.remove(node_id))
        if removed:
            logger.debug(f"Removed {removed} config record(s) for node {node_id}")
        return removed

    def prune(self, keep_node_ids: Iterable[str]) -> int:
        """Drop records whose node is not in ``keep_node_ids``."""
        keep = set(keep_node_ids)
        stale = {
            rec.id
            for s in self._stores.values()
            for rec in s.records()
            if rec.id not in keep
        }
        return sum(self.remove_node(node_id) for node_id in stale)

    def __len__(self) -> int:
        return sum(len(s) for s in self._stores.values())

    # ========== Serialization ==========

    def to_dict(self) -> dict[str, list[dict[str, Any]]]:
        return {
            s.config_cls.store_key: [rec.model_dump() for rec in s.records()]
            for s in self._stores.values()
        }

    @classmethod
    def from_dict(cls, data: dict[str, list[dict[str, Any]]] | None) -> "ConfigRegistry":
        registry = cls()
        if not data:
            return registry
        by_key = {c.store_key: node_type for node_type, c in CONFIG_TYPES.items()}
        for key, records in data.items():
            node_type = by_key.get(key)
            if node_type is None:
                logger.warning(f"Ignoring unknown config store '{key}'")
                continue
            for record in records:
                registry.store(node_type).upsert(record)
        return registry
