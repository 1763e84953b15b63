"""
Tests for edge collection and reverse-edge propagation.
"""

import pytest
from unittest.mock import patch

from objectgraph.core.entities import ObjectRecord
from objectgraph.core.errors import StorageError
from objectgraph.layers.data_ingestion import ParentLink, RelationshipPropagator, combine_related_ids


class TestCombineRelatedIds:
    """Union of hints, parent edge and touched ids."""

    def test_union_of_all_sources(self):
        edges = combine_related_ids(
            {"product": ["p-1"], "job": []},
            ParentLink("product", "p-2"),
            {"signal": ["s-1"], "product": ["p-1"]}
        )
        assert edges == {"product": ["p-1", "p-2"], "signal": ["s-1"]}

    def test_nothing_to_combine(self):
        assert combine_related_ids() == {}

    def test_untyped_parent_is_skipped(self):
        assert combine_related_ids(parent=ParentLink(None, "p-1")) == {}


class TestRelationshipPropagator:
    """Symmetric edges written through structural patches."""

    @pytest.fixture
    def peers(self, storage, make_row):
        storage.seed("objects", [
            make_row("p-1", "product", {"title": "Mobile app"}, related_ids={"feedback": ["f-0"]}),
            make_row("j-1", "job", {"title": "Fix login"}),
        ])

    @pytest.fixture
    def record(self):
        return ObjectRecord(
            id="f-1",
            owner_organisation_id="org1",
            related_object_type_id="feedback",
            metadata={"title": "Login fails"}
        )

    def test_peers_get_reverse_edges(self, storage, peers, record):
        warnings = RelationshipPropagator(storage).propagate(record, {"product": ["p-1"], "job": ["j-1"]})

        assert warnings == []
        assert storage.get_by_id("objects", "p-1")["related_ids"] == {"feedback": ["f-0", "f-1"]}
        assert storage.get_by_id("objects", "j-1")["related_ids"] == {"feedback": ["f-1"]}

    def test_propagation_is_idempotent(self, storage, peers, record):
        propagator = RelationshipPropagator(storage)
        propagator.propagate(record, {"product": ["p-1"]})
        propagator.propagate(record, {"product": ["p-1"]})

        assert storage.get_by_id("objects", "p-1")["related_ids"] == {"feedback": ["f-0", "f-1"]}

    def test_parent_gets_child_edge(self, storage, peers, record):
        record.parent_id = "p-1"

        RelationshipPropagator(storage).propagate(record, {"product": ["p-1"], "job": ["j-1"]})

        assert storage.get_by_id("objects", "p-1")["child_ids"] == {"feedback": ["f-1"]}
        assert storage.get_by_id("objects", "j-1")["child_ids"] == {}

    def test_self_edges_are_skipped(self, storage, peers, record):
        with patch.object(storage, "upsert", wraps=storage.upsert) as upsert:
            RelationshipPropagator(storage).propagate(record, {"feedback": ["f-1"]})
        upsert.assert_not_called()

    def test_missing_peer_is_a_warning(self, storage, peers, record):
        warnings = RelationshipPropagator(storage).propagate(record, {"product": ["ghost", "p-1"]})

        assert len(warnings) == 1
        assert warnings[0].record_id == "ghost"
        assert warnings[0].object_type_id == "product"
        assert storage.get_by_id("objects", "ghost") is None
        assert "f-1" in storage.get_by_id("objects", "p-1")["related_ids"]["feedback"]

    def test_storage_failure_is_a_warning(self, storage, peers, record):
        with patch.object(storage, "upsert", side_effect=StorageError("write failed")):
            warnings = RelationshipPropagator(storage).propagate(record, {"job": ["j-1"]})

        assert [str(w) for w in warnings] == ["Could not link job j-1: write failed"]

    def test_peer_of_other_organisation_is_never_written(self, storage, make_row, peers, record):
        storage.seed("objects", [make_row("p-other", "product", {"title": "Theirs"}, organisation_id="org2")])
        record.parent_id = "p-other"

        warnings = RelationshipPropagator(storage).propagate(record, {"product": ["p-other", "p-1"]})

        assert [str(w) for w in warnings] == ["Could not link product p-other: owned by another organisation"]
        other = storage.get_by_id("objects", "p-other")
        assert other["related_ids"] == {}
        assert other["child_ids"] == {}
        assert "f-1" in storage.get_by_id("objects", "p-1")["related_ids"]["feedback"]

    def test_global_peer_is_linked(self, storage, make_row, record):
        storage.seed("objects", [make_row("p-global", "product", {"title": "Shared"}, organisation_id=None)])

        assert RelationshipPropagator(storage).propagate(record, {"product": ["p-global"]}) == []
        assert storage.get_by_id("objects", "p-global")["related_ids"] == {"feedback": ["f-1"]}

    def test_attach_adds_forward_and_reverse_edges(self, storage, peers, record):
        storage.upsert("objects", record.id, record.to_row())

        warnings = RelationshipPropagator(storage).attach(record, {"job": ["j-1"], "feedback": ["f-1"]})

        assert warnings == []
        assert storage.get_by_id("objects", "f-1")["related_ids"] == {"job": ["j-1"]}
        assert storage.get_by_id("objects", "j-1")["related_ids"] == {"feedback": ["f-1"]}

    def test_attach_nothing(self, storage, record):
        assert RelationshipPropagator(storage).attach(record, {"feedback": ["f-1"]}) == []
