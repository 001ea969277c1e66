"""Tests for tagdb.snapshot: dict/JSON dumps, text tables, DuckDB export."""
from __future__ import annotations

from pathlib import Path

import duckdb
import pytest

from tagdb.config import TagIndexConfig
from tagdb.errors import DuplicateIdError
from tagdb.io_utils import load_json
from tagdb.snapshot import (
    export_to_duckdb,
    format_extent_table,
    format_link_table,
    restore_snapshot,
    snapshot,
    write_snapshot,
)
from tagdb.tag_index import TagIndex


@pytest.fixture()
def index() -> TagIndex:
    ix = TagIndex(max_args=3)
    with ix.batch():
        ix.stage_extent("e1", "Person", [3, 4, 5])
        ix.stage_extent("e2", "Note", -1)
        ix.stage_extent("e3", "Place", [9])
        ix.stage_link("l1", "Rel", ["e1", "e3"], ["source", "target"])
        ix.stage_link("l2", "Mention", ["e2"], ["note"])
    ix.clear_argument("l1", 0)
    ix.set_argument("l1", 2, "e1", "source")
    yield ix  # type: ignore[misc]
    ix.close()


class TestSnapshot:
    def test_shape(self, index: TagIndex) -> None:
        data = snapshot(index)
        assert data["max_args"] == 3
        assert data["extents"] == [
            {"id": "e1", "type": "Person", "offsets": [3, 4, 5]},
            {"id": "e2", "type": "Note", "offsets": [-1]},
            {"id": "e3", "type": "Place", "offsets": [9]},
        ]
        assert data["links"][0] == {
            "id": "l1",
            "type": "Rel",
            "args": [None, {"id": "e3", "role": "target"}, {"id": "e1", "role": "source"}],
        }

    def test_restore_rebuilds_same_state(self, index: TagIndex) -> None:
        restored = restore_snapshot(snapshot(index))
        assert restored.max_args == 3
        assert restored.extent_rows() == index.extent_rows()
        assert restored.link_records() == index.link_records()
        restored.close()

    def test_write_and_restore_from_file(self, index: TagIndex, tmp_path: Path) -> None:
        path = write_snapshot(index, tmp_path / "snap" / "doc.json")
        assert load_json(path)["version"] == "1"
        restored = restore_snapshot(path)
        assert restored.links_referencing("e1") == {"Rel": {"l1"}}
        restored.close()

    def test_restore_with_config(self, index: TagIndex) -> None:
        restored = restore_snapshot(snapshot(index), config=TagIndexConfig(max_args=4))
        assert restored.max_args == 4
        assert restored.get_link("l2").slots[1:] == [None, None, None]
        restored.close()

    def test_restore_rejects_duplicate_ids(self) -> None:
        data = {
            "max_args": 2,
            "extents": [{"id": "x", "type": "Person", "offsets": [1]}],
            "links": [{"id": "x", "type": "Rel", "args": []}],
        }
        with pytest.raises(DuplicateIdError):
            restore_snapshot(data)


class TestTextTables:
    def test_extent_table(self, index: TagIndex) -> None:
        lines = format_extent_table(index).splitlines()
        assert "location" in lines[0]
        # -1 row first, then offsets ascending
        assert lines[1].split() == ["-1", "Note", "e2"]
        assert len(lines) == 1 + 5

    def test_header_repeats_every_ten_rows(self) -> None:
        with TagIndex() as ix:
            ix.insert_extent_now("e1", "Token", range(12))
            lines = format_extent_table(ix).splitlines()
        assert len(lines) == 12 + 2
        assert "location" in lines[11]

    def test_link_table(self, index: TagIndex) -> None:
        lines = format_link_table(index).splitlines()
        assert lines[0].split() == [
            "id", "element", "arg0", "arg0_name", "arg1", "arg1_name", "arg2", "arg2_name",
        ]
        assert lines[2].split() == ["l2", "Mention", "e2", "note"]

    def test_empty_tables_have_header(self) -> None:
        with TagIndex() as ix:
            assert format_extent_table(ix).split() == ["location", "element", "id"]


class TestDuckDbExport:
    def test_export_to_path(self, index: TagIndex, tmp_path: Path) -> None:
        db_path = tmp_path / "tags.duckdb"
        counts = export_to_duckdb(index, db_path)
        assert counts == {"extents": 5, "links": 2}

        conn = duckdb.connect(str(db_path), read_only=True)
        try:
            rows = conn.execute(
                "SELECT DISTINCT id, element_name FROM extents "
                "WHERE location >= 3 AND location <= 5"
            ).fetchall()
            assert rows == [("e1", "Person")]
            nc = conn.execute(
                "SELECT id FROM extents WHERE location = -1"
            ).fetchall()
            assert nc == [("e2",)]
            link = conn.execute(
                "SELECT arg0, arg1, arg2_name FROM links WHERE id = 'l1'"
            ).fetchone()
            assert link == (None, "e3", "source")
        finally:
            conn.close()

    def test_export_to_open_connection_replaces_tables(self, index: TagIndex) -> None:
        conn = duckdb.connect(":memory:")
        try:
            export_to_duckdb(index, conn)
            index.delete("e1")
            export_to_duckdb(index, conn)
            count = conn.execute("SELECT COUNT(*) FROM extents").fetchone()
            assert count == (2,)
        finally:
            conn.close()
