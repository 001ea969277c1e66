"""Tests for tagdb.link_index: fixed-arity relation records."""
from __future__ import annotations

import pytest

from tagdb.errors import (
    ArgumentListMismatchError,
    ArityExceededError,
    DuplicateIdError,
    MalformedRecordError,
    NotFoundError,
)
from tagdb.extent_index import ExtentIndex
from tagdb.link_index import LinkIndex
from tagdb.records import LinkArgument


# ───────────────────── Fixtures ──────────────────────────────────────


@pytest.fixture()
def extents() -> ExtentIndex:
    ix = ExtentIndex()
    ix.insert_many("e1", "Person", [3, 4, 5])
    ix.insert_many("e2", "Place", [10, 11])
    ix.insert_many("e3", "Person", [20])
    ix.insert_many("e4", "Event", [30, 31])
    ix.commit()
    return ix


@pytest.fixture()
def links() -> LinkIndex:
    ix = LinkIndex(max_args=2)
    ix.insert("l1", "Rel", ["e1", "e3"], ["source", "target"])
    ix.insert("l2", "Rel", ["e2", "e4"], ["source", "target"])
    ix.insert("l3", "OtherRel", ["e4", "e1"], ["from", "to"])
    ix.commit()
    return ix


# ───────────────────── Construction ──────────────────────────────────


class TestInit:
    def test_default_arity(self) -> None:
        assert LinkIndex().max_args == 2

    @pytest.mark.parametrize("bad", [0, -1, True, "2"])
    def test_rejects_bad_arity(self, bad) -> None:
        with pytest.raises(ValueError):
            LinkIndex(bad)


# ───────────────────── Insert / commit ───────────────────────────────


class TestInsert:
    def test_arity_exceeded(self) -> None:
        ix = LinkIndex(max_args=2)
        with pytest.raises(ArityExceededError) as excinfo:
            ix.insert("l1", "Rel", ["a", "b", "c"], ["r1", "r2", "r3"])
        assert excinfo.value.count == 3
        assert excinfo.value.max_args == 2
        assert ix.pending_count == 0
        assert ix.rejected is excinfo.value

    def test_rejected_link_fails_batch(self) -> None:
        ix = LinkIndex(max_args=2)
        ix.insert("l0", "Rel", ["a"], ["r1"])
        with pytest.raises(ArgumentListMismatchError):
            ix.insert("l1", "Rel", ["a", "b"], ["r1"])
        ix.insert("l2", "Rel", [], [])
        with pytest.raises(ArgumentListMismatchError):
            ix.commit()
        assert len(ix) == 0
        ix.insert("l3", "Rel", [], [])
        assert ix.commit() == 1
        assert ix.exists("l3")

    def test_length_mismatch(self) -> None:
        ix = LinkIndex(max_args=2)
        with pytest.raises(ArgumentListMismatchError) as excinfo:
            ix.insert("l1", "Rel", ["a", "b"], ["r1"])
        assert (excinfo.value.id_count, excinfo.value.role_count) == (2, 1)
        assert ix.pending_count == 0

    def test_mismatch_reported_before_arity(self) -> None:
        with pytest.raises(ArgumentListMismatchError):
            LinkIndex(max_args=1).insert("l1", "Rel", ["a", "b", "c"], ["r1"])

    def test_errors_are_distinct(self) -> None:
        assert not issubclass(ArityExceededError, ArgumentListMismatchError)
        assert not issubclass(ArgumentListMismatchError, ArityExceededError)

    def test_malformed_argument(self) -> None:
        ix = LinkIndex()
        with pytest.raises(MalformedRecordError, match="l1"):
            ix.insert("l1", "Rel", ["a", ""], ["r1", "r2"])
        assert ix.pending_count == 0

    def test_fewer_args_than_capacity(self) -> None:
        ix = LinkIndex(max_args=3)
        ix.insert("l1", "Rel", ["a"], ["r1"])
        ix.commit()
        record = ix.get("l1")
        assert record.slots == [LinkArgument("a", "r1"), None, None]
        assert record.arguments == [LinkArgument("a", "r1")]

    def test_zero_args(self) -> None:
        ix = LinkIndex()
        ix.insert("l1", "Rel", [], [])
        ix.commit()
        assert ix.arguments_of("l1") == []

    def test_argument_need_not_exist(self, links: LinkIndex) -> None:
        links.insert("l4", "Rel", ["ghost"], ["source"])
        links.commit()
        assert links.links_referencing("ghost") == {"Rel": {"l4"}}

    def test_duplicate_in_batch_fails_whole_batch(self) -> None:
        ix = LinkIndex()
        ix.insert("l1", "Rel", [], [])
        ix.insert("l2", "Rel", [], [])
        ix.insert("l1", "Rel", [], [])
        with pytest.raises(DuplicateIdError):
            ix.commit()
        assert len(ix) == 0
        assert ix.pending_count == 0

    def test_duplicate_of_committed(self, links: LinkIndex) -> None:
        links.insert("l1", "Rel", [], [])
        with pytest.raises(DuplicateIdError):
            links.commit()
        assert links.get("l1").argument_ids == ["e1", "e3"]

    def test_foreign_id_predicate(self) -> None:
        ix = LinkIndex()
        ix.insert("e1", "Rel", [], [])
        with pytest.raises(DuplicateIdError, match="extent"):
            ix.commit(lambda tag_id: tag_id == "e1")
        assert not ix.exists("e1")


# ───────────────────── set_argument ──────────────────────────────────


class TestSetArgument:
    def test_rewrites_slot_in_place(self, links: LinkIndex) -> None:
        links.set_argument("l1", 1, "e2", "target")
        assert links.get("l1").argument_ids == ["e1", "e2"]
        assert links.links_referencing("e3") == {}

    def test_fills_empty_slot(self) -> None:
        ix = LinkIndex(max_args=2)
        ix.insert("l1", "Rel", ["a"], ["source"])
        ix.commit()
        ix.set_argument("l1", 1, "b", "target")
        assert ix.arguments_of("l1") == [
            LinkArgument("a", "source"),
            LinkArgument("b", "target"),
        ]

    def test_slot_beyond_arity(self, links: LinkIndex) -> None:
        with pytest.raises(ArityExceededError):
            links.set_argument("l1", 2, "e2", "target")

    def test_negative_slot(self, links: LinkIndex) -> None:
        with pytest.raises(MalformedRecordError):
            links.set_argument("l1", -1, "e2", "target")

    def test_unknown_link(self, links: LinkIndex) -> None:
        with pytest.raises(NotFoundError):
            links.set_argument("nope", 0, "e2", "target")

    def test_clear_argument(self, links: LinkIndex) -> None:
        links.clear_argument("l1", 0)
        assert links.get("l1").slots[0] is None
        assert links.links_referencing("e1") == {"OtherRel": {"l3"}}


# ───────────────────── Lookups and relations ─────────────────────────


class TestQueries:
    def test_type_lookups(self, links: LinkIndex) -> None:
        assert links.type_of_id("l3") == "OtherRel"
        assert links.ids_of_type("Rel") == {"l1", "l2"}
        assert links.ids_of_type("Nope") == set()
        with pytest.raises(NotFoundError):
            links.type_of_id("nope")

    def test_links_referencing(self, links: LinkIndex) -> None:
        assert links.links_referencing("e1") == {"Rel": {"l1"}, "OtherRel": {"l3"}}
        assert links.links_referencing("unknown") == {}

    def test_links_referencing_by_role(self, links: LinkIndex) -> None:
        assert links.links_referencing("e1", role="source") == {"Rel": {"l1"}}
        assert links.links_referencing("e1", role="target") == {}

    def test_argument_ids_of_type(self, links: LinkIndex) -> None:
        assert links.argument_ids_of_type("Rel") == {"e1", "e2", "e3", "e4"}

    def test_anchor_offsets(self, links: LinkIndex, extents: ExtentIndex) -> None:
        assert links.anchor_offsets_of_type("OtherRel", extents) == {3, 4, 5, 30, 31}
        assert links.anchor_offsets_of_type("Nope", extents) == set()

    def test_anchor_offsets_excluding(self, links: LinkIndex, extents: ExtentIndex) -> None:
        # OtherRel uses e1 and e4; both lose every offset even though Rel reaches them
        assert links.anchor_offsets_of_type_excluding(
            "Rel", ["OtherRel"], extents
        ) == {10, 11, 20}

    def test_anchor_offsets_excluding_accepts_single_name(
        self, links: LinkIndex, extents: ExtentIndex,
    ) -> None:
        assert links.anchor_offsets_of_type_excluding(
            "Rel", "OtherRel", extents
        ) == {10, 11, 20}

    def test_anchor_offsets_excluding_nothing(
        self, links: LinkIndex, extents: ExtentIndex,
    ) -> None:
        assert links.anchor_offsets_of_type_excluding(
            "Rel", [], extents
        ) == links.anchor_offsets_of_type("Rel", extents)

    def test_records_sorted(self, links: LinkIndex) -> None:
        assert [r.tag_id for r in links.records()] == ["l1", "l2", "l3"]


class TestDelete:
    def test_delete_idempotent(self, links: LinkIndex) -> None:
        links.delete("l1")
        links.delete("l1")
        assert not links.exists("l1")
        assert links.ids_of_type("Rel") == {"l2"}
        assert links.links_referencing("e3") == {}

    def test_delete_last_of_type(self, links: LinkIndex) -> None:
        links.delete("l3")
        assert links.ids_of_type("OtherRel") == set()
        assert links.argument_ids_of_type("OtherRel") == set()
