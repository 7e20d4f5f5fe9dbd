"""Tests for the header registry (unique output field names per node)."""

from flowplan.core.headers import HeaderRegistry


class TestSetHeader:
    def test_first_label_kept(self):
        headers = HeaderRegistry()
        assert headers.set_header_for_node("n1", "amount") == "amount"
        assert headers.label_for("n1") == "amount"

    def test_collision_gets_suffix(self):
        headers = HeaderRegistry()
        headers.set_header_for_node("n1", "amount")
        assert headers.set_header_for_node("n2", "amount") == "amount_1"
        assert headers.set_header_for_node("n3", "amount") == "amount_2"

    def test_reassigning_suffixed_label_is_idempotent(self):
        headers = HeaderRegistry()
        headers.set_header_for_node("n1", "amount")
        headers.set_header_for_node("n2", "amount")

        assert headers.set_header_for_node("n2", "amount") == "amount_1"
        assert headers.set_header_for_node("n2", "amount") == "amount_1"
        assert headers.labels() == {"amount", "amount_1"}
        assert len(headers) == 2

    def test_node_keeps_its_own_label(self):
        headers = HeaderRegistry()
        headers.set_header_for_node("n1", "amount")
        assert headers.set_header_for_node("n1", "amount") == "amount"
        assert len(headers) == 1

    def test_relabel_replaces_in_place(self):
        headers = HeaderRegistry()
        headers.set_header_for_node("n1", "a")
        headers.set_header_for_node("n2", "b")
        headers.set_header_for_node("n1", "c")
        assert [(e.value, e.label) for e in headers.entries] == [("n1", "c"), ("n2", "b")]

    def test_label_is_trimmed(self):
        headers = HeaderRegistry()
        assert headers.set_header_for_node("n1", "  total ") == "total"

    def test_blank_label_removes_entry(self):
        headers = HeaderRegistry()
        headers.set_header_for_node("n1", "amount")
        assert headers.set_header_for_node("n1", "   ") is None
        assert headers.label_for("n1") is None
        assert len(headers) == 0

    def test_freed_label_can_be_reused(self):
        headers = HeaderRegistry()
        headers.set_header_for_node("n1", "amount")
        headers.remove_header_for_node("n1")
        assert headers.set_header_for_node("n2", "amount") == "amount"

    def test_labels_unique_after_many_assignments(self):
        headers = HeaderRegistry()
        for i in range(6):
            headers.set_header_for_node(f"n{i % 3}", "col")
        labels = [e.label for e in headers.entries]
        assert len(labels) == len(set(labels)) == 3


class TestSerialization:
    def test_dict_round_trip(self):
        headers = HeaderRegistry()
        headers.set_header_for_node("n1", "amount")
        headers.set_header_for_node("n2", "amount")

        data = headers.to_dict()
        assert data == {
            "headers": [
                {"label": "amount", "value": "n1"},
                {"label": "amount_1", "value": "n2"},
            ]
        }
        assert HeaderRegistry.from_dict(data).label_for("n2") == "amount_1"

    def test_from_empty(self):
        assert len(HeaderRegistry.from_dict(None)) == 0
