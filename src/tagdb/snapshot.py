"""Debug snapshots of a :class:`TagIndex`.

* ``snapshot`` / ``write_snapshot`` / ``restore_snapshot``: plain-dict and
  JSON dumps, and rebuilding an index from one.
* ``format_extent_table`` / ``format_link_table``: fixed-width text tables
  for logs and bug reports.
* ``export_to_duckdb``: materializes the two tables in a DuckDB database for
  ad-hoc SQL inspection::

      extents(location INTEGER, element_name VARCHAR, id VARCHAR)
      links(id VARCHAR, element_name VARCHAR, arg0 VARCHAR, arg0_name VARCHAR, ...)

Snapshots describe the current in-memory state only; their layout carries no
compatibility guarantee across versions.
"""
from __future__ import annotations

import importlib
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from tagdb.config import TagIndexConfig
from tagdb.io_utils import load_json, save_json
from tagdb.tag_index import TagIndex

# Dynamic DuckDB import for pyright compatibility
_duckdb_mod = importlib.import_module("duckdb")

SNAPSHOT_VERSION = "1"

_HEADER_EVERY = 10
_COL_WIDTH = 20


# ---------------------------------------------------------------------------
# Dict / JSON
# ---------------------------------------------------------------------------

def snapshot(index: TagIndex) -> dict[str, Any]:
    """Every extent (with its offsets) and every link of *index*."""
    extents: dict[str, dict[str, Any]] = {}
    for row in index.extent_rows():
        entry = extents.setdefault(row.tag_id, {"type": row.tag_type, "offsets": []})
        entry["offsets"].append(row.offset)
    return {
        "version": SNAPSHOT_VERSION,
        "max_args": index.max_args,
        "extents": [
            {"id": tag_id, "type": entry["type"], "offsets": sorted(entry["offsets"])}
            for tag_id, entry in sorted(extents.items())
        ],
        "links": [record.to_dict() for record in index.link_records()],
    }


def write_snapshot(index: TagIndex, path: Path | str) -> Path:
    path = Path(path)
    save_json(snapshot(index), path)
    return path


def restore_snapshot(
    data: Mapping[str, Any] | Path | str,
    *,
    config: TagIndexConfig | None = None,
) -> TagIndex:
    """Build a fresh index from :func:`snapshot` output (or a file holding it).

    Everything is staged and committed as one batch, so a snapshot that fails
    validation yields no index at all.
    """
    if not isinstance(data, Mapping):
        data = load_json(Path(data))
    if config is None:
        config = TagIndexConfig(max_args=int(data.get("max_args", 2)))
    index = TagIndex(config=config)
    gapped: list[tuple[str, list[tuple[int, dict[str, str]]]]] = []
    try:
        with index.batch():
            for extent in data.get("extents", []):
                index.stage_extent(extent["id"], extent["type"], extent["offsets"])
            for link in data.get("links", []):
                filled = [(slot, arg) for slot, arg in enumerate(link.get("args", [])) if arg]
                index.stage_link(
                    link["id"],
                    link["type"],
                    [arg["id"] for _, arg in filled],
                    [arg["role"] for _, arg in filled],
                )
                if [slot for slot, _ in filled] != list(range(len(filled))):
                    gapped.append((link["id"], filled))
        # staging packs arguments into the leading slots; put gapped ones back
        for tag_id, filled in gapped:
            for slot in range(len(filled)):
                index.clear_argument(tag_id, slot)
            for slot, arg in filled:
                index.set_argument(tag_id, slot, arg["id"], arg["role"])
    except BaseException:
        index.close()
        raise
    return index


# ---------------------------------------------------------------------------
# Text tables
# ---------------------------------------------------------------------------

def _format_rows(header: list[str], rows: list[list[str]]) -> str:
    lines: list[str] = []
    for i, row in enumerate(rows):
        if i % _HEADER_EVERY == 0:
            lines.append("\t".join(f"{h:>{_COL_WIDTH}}" for h in header))
        lines.append("\t".join(f"{c:>{_COL_WIDTH}}" for c in row))
    if not rows:
        lines.append("\t".join(f"{h:>{_COL_WIDTH}}" for h in header))
    return "\n".join(lines)


def format_extent_table(index: TagIndex) -> str:
    """One line per ``(location, element, id)`` row, header every 10 rows."""
    rows = [
        [str(row.offset), row.tag_type, row.tag_id]
        for row in index.extent_rows()
    ]
    return _format_rows(["location", "element", "id"], rows)


def format_link_table(index: TagIndex) -> str:
    """One line per link: id, element, then ``arg``/``role`` for each slot."""
    header = ["id", "element"]
    for slot in range(index.max_args):
        header += [f"arg{slot}", f"arg{slot}_name"]
    rows: list[list[str]] = []
    for record in index.link_records():
        row = [record.tag_id, record.tag_type]
        for arg in record.slots:
            row += ["", ""] if arg is None else [arg.arg_id, arg.role]
        rows.append(row)
    return _format_rows(header, rows)


# ---------------------------------------------------------------------------
# DuckDB export
# ---------------------------------------------------------------------------

def export_to_duckdb(index: TagIndex, target: Any) -> dict[str, int]:
    """Write ``extents`` and ``links`` tables into *target*.

    *target* is an open DuckDB connection or a database path (created if
    missing, closed afterwards). Existing tables of those names are replaced.
    Returns row counts per table.
    """
    owns_conn = isinstance(target, (str, Path))
    conn: Any = _duckdb_mod.connect(str(target)) if owns_conn else target
    try:
        arg_cols = []
        for slot in range(index.max_args):
            arg_cols += [f"arg{slot}", f"arg{slot}_name"]

        conn.execute("BEGIN TRANSACTION")
        try:
            conn.execute("""
                CREATE OR REPLACE TABLE extents (
                    location INTEGER NOT NULL,
                    element_name VARCHAR NOT NULL,
                    id VARCHAR NOT NULL
                )
            """)
            col_ddl = "".join(f", {col} VARCHAR" for col in arg_cols)
            conn.execute(
                "CREATE OR REPLACE TABLE links "
                f"(id VARCHAR PRIMARY KEY, element_name VARCHAR NOT NULL{col_ddl})"
            )
            extent_rows = [
                [row.offset, row.tag_type, row.tag_id] for row in index.extent_rows()
            ]
            if extent_rows:
                conn.executemany("INSERT INTO extents VALUES (?, ?, ?)", extent_rows)
            link_rows: list[list[str | None]] = []
            for record in index.link_records():
                row: list[str | None] = [record.tag_id, record.tag_type]
                for arg in record.slots:
                    row += [None, None] if arg is None else [arg.arg_id, arg.role]
                link_rows.append(row)
            if link_rows:
                placeholders = ", ".join("?" for _ in range(2 + len(arg_cols)))
                conn.executemany(f"INSERT INTO links VALUES ({placeholders})", link_rows)
            conn.execute("COMMIT")
        except Exception:
            conn.execute("ROLLBACK")
            raise
    finally:
        if owns_conn:
            conn.close()
    return {"extents": len(extent_rows), "links": len(link_rows)}
