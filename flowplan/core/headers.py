"""Header registry - the output field name each node contributes.

Labels are unique across all entries. A colliding label gets a numeric
suffix (``amount``, ``amount_1``, ``amount_2``, ...). Re-assigning the same
proposal to a node that already holds the suffixed label is a no-op, so
suffixes never grow on repeated calls.
"""

from typing import Any

from pydantic import BaseModel


class HeaderEntry(BaseModel):
    """Output field name contributed by a node"""

    label: str
    value: str  # Owning node ID


class HeaderRegistry:
    """Ordered, label-unique header entries, at most one per node."""

    def __init__(self, entries: list[HeaderEntry] | None = None):
        self.entries: list[HeaderEntry] = list(entries or [])

    def _index_of(self, node_id: str) -> int | None:
        for idx, entry in enumerate(self.entries):
            if entry.value == node_id:
                return idx
        return None

    def _held_by_other(self, label: str, node_id: str) -> bool:
        return any(e.label == label and e.value != node_id for e in self.entries)

    def set_header_for_node(self, node_id: str, proposed_label: str | None) -> str | None:
        """Assign a unique label to ``node_id``.

        A blank proposal removes the node's entry. Returns the label actually
        assigned, or None when the entry was removed.
        """
        label = (proposed_label or "").strip()
        if not label:
            self.remove_header_for_node(node_id)
            return None

        candidate = label
        suffix = 1
        while self._held_by_other(candidate, node_id):
            candidate = f"{label}_{suffix}"
            suffix += 1

        idx = self._index_of(node_id)
        if idx is None:
            self.entries.append(HeaderEntry(label=candidate, value=node_id))
        else:
            self.entries[idx] = HeaderEntry(label=candidate, value=node_id)
        return candidate

    def remove_header_for_node(self, node_id: str) -> bool:
        idx = self._index_of(node_id)
        if idx is None:
            return False
        del self.entries[idx]
        return True

    def label_for(self, node_id: str) -> str | None:
        idx = self._index_of(node_id)
        return None if idx is None else self.entries[idx].label

    def labels(self) -> set[str]:
        return {e.label for e in self.entries}

    def __len__(self) -> int:
        return len(self.entries)

    def to_dict(self) -> dict[str, Any]:
        return {"headers": [e.model_dump() for e in self.entries]}

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "HeaderRegistry":
        if not data:
            return cls()
        return cls([HeaderEntry.model_validate(e) for e in data.get("headers", [])])
