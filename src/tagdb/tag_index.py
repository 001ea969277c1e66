"""Tag index facade owned by the annotation editor.

One :class:`TagIndex` is built per loaded document: the editor stages every
tag of its in-memory annotation model, commits once, and then drives
highlighting and selection through the query methods. The index is discarded
with :meth:`TagIndex.close` when the document is closed.

All public methods run under one re-entrant lock (unless the config turns it
off), so a reader on another thread never sees half of a committed batch.
"""
from __future__ import annotations

import contextlib
import logging
import threading
from collections.abc import Iterable, Iterator, Sequence
from typing import Any

from tagdb.batch import BatchWriter
from tagdb.config import TagIndexConfig
from tagdb.errors import IndexClosedError
from tagdb.extent_index import ExtentIndex
from tagdb.link_index import DEFAULT_MAX_ARGS, LinkIndex
from tagdb.query import QueryEngine
from tagdb.records import BatchState, ExtentRow, LinkArgument, LinkRecord, Span, TypeIdMap

log = logging.getLogger(__name__)


class TagIndex:
    """In-memory index of extent and link tags for one document."""

    def __init__(
        self,
        max_args: int | None = None,
        *,
        config: TagIndexConfig | None = None,
    ) -> None:
        if config is None:
            config = TagIndexConfig(
                max_args=DEFAULT_MAX_ARGS if max_args is None else max_args
            )
        elif max_args is not None and max_args != config.max_args:
            raise ValueError(
                f"max_args={max_args!r} conflicts with config.max_args={config.max_args!r}"
            )
        self._config = config
        self._extents = ExtentIndex()
        self._links = LinkIndex(config.max_args)
        self._query = QueryEngine(self._extents, self._links)
        self._writer = BatchWriter(self._extents, self._links)
        self._lock: Any = threading.RLock() if config.thread_safe else contextlib.nullcontext()
        self._closed = False

    @classmethod
    def from_config(cls, config: TagIndexConfig) -> TagIndex:
        config.apply_logging()
        return cls(config=config)

    @property
    def config(self) -> TagIndexConfig:
        return self._config

    @property
    def max_args(self) -> int:
        return self._config.max_args

    @property
    def closed(self) -> bool:
        return self._closed

    @contextlib.contextmanager
    def _guard(self) -> Iterator[None]:
        with self._lock:
            if self._closed:
                raise IndexClosedError("tag index is closed")
            yield

    # ─── Lifecycle ────────────────────────────────────────────────

    def close(self) -> None:
        """Drop every record and any staged batch; safe to call repeatedly."""
        with self._lock:
            if self._closed:
                return
            self._extents.clear()
            self._links.clear()
            self._closed = True
        log.debug("tag index closed")

    def __enter__(self) -> TagIndex:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def __len__(self) -> int:
        with self._guard():
            return len(self._extents) + len(self._links)

    # ─── Writes ───────────────────────────────────────────────────

    @property
    def batch_state(self) -> BatchState:
        with self._guard():
            return self._writer.state

    def stage_extent(self, tag_id: str, tag_type: str, offsets: int | Iterable[int]) -> None:
        with self._guard():
            self._writer.stage_extent(tag_id, tag_type, offsets)

    def stage_link(
        self,
        tag_id: str,
        tag_type: str,
        arg_ids: Sequence[str] = (),
        arg_roles: Sequence[str] = (),
    ) -> None:
        with self._guard():
            self._writer.stage_link(tag_id, tag_type, arg_ids, arg_roles)

    def commit(self) -> tuple[int, int]:
        with self._guard():
            return self._writer.commit()

    def discard(self) -> None:
        with self._guard():
            self._writer.discard()

    @contextlib.contextmanager
    def batch(self) -> Iterator[TagIndex]:
        """Stage inside the block; commit on exit, discard if it raises.

        The lock is held for the whole block so other threads cannot
        interleave their own writes into this batch.
        """
        with self._guard():
            try:
                yield self
            except BaseException:
                self._writer.discard()
                raise
            self._writer.commit()

    def insert_extent_now(self, tag_id: str, tag_type: str, offsets: int | Iterable[int]) -> int:
        with self._guard():
            return self._writer.insert_extent_now(tag_id, tag_type, offsets)

    def insert_link_now(
        self,
        tag_id: str,
        tag_type: str,
        arg_ids: Sequence[str] = (),
        arg_roles: Sequence[str] = (),
    ) -> None:
        with self._guard():
            self._writer.insert_link_now(tag_id, tag_type, arg_ids, arg_roles)

    def set_argument(self, tag_id: str, slot: int, arg_id: str, arg_role: str) -> None:
        with self._guard():
            self._links.set_argument(tag_id, slot, arg_id, arg_role)

    def clear_argument(self, tag_id: str, slot: int) -> None:
        with self._guard():
            self._links.clear_argument(tag_id, slot)

    def delete_extent(self, tag_id: str) -> None:
        with self._guard():
            self._extents.delete(tag_id)

    def delete_link(self, tag_id: str) -> None:
        with self._guard():
            self._links.delete(tag_id)

    def delete(self, tag_id: str) -> None:
        """Delete *tag_id* from whichever index holds it; no-op if neither does."""
        with self._guard():
            self._extents.delete(tag_id)
            self._links.delete(tag_id)

    # ─── Identity ─────────────────────────────────────────────────

    def extent_exists(self, tag_id: str) -> bool:
        with self._guard():
            return self._extents.exists(tag_id)

    def link_exists(self, tag_id: str) -> bool:
        with self._guard():
            return self._links.exists(tag_id)

    def id_in_use(self, tag_id: str) -> bool:
        with self._guard():
            return self._query.id_in_use(tag_id)

    def type_of_any_id(self, tag_id: str) -> str:
        with self._guard():
            return self._query.type_of_any_id(tag_id)

    def extent_type_of_id(self, tag_id: str) -> str:
        with self._guard():
            return self._extents.type_of_id(tag_id)

    def link_type_of_id(self, tag_id: str) -> str:
        with self._guard():
            return self._links.type_of_id(tag_id)

    def extent_ids_of_type(self, tag_type: str) -> set[str]:
        with self._guard():
            return self._extents.ids_of_type(tag_type)

    def link_ids_of_type(self, tag_type: str) -> set[str]:
        with self._guard():
            return self._links.ids_of_type(tag_type)

    def ids_of_type(self, tag_type: str) -> set[str]:
        with self._guard():
            return self._query.ids_of_type(tag_type)

    # ─── Extent queries ───────────────────────────────────────────

    def types_at_offset(self, offset: int) -> set[str]:
        with self._guard():
            return self._query.types_at_offset(offset)

    def ids_and_types_in_range(self, begin: int, end: int) -> TypeIdMap:
        with self._guard():
            return self._query.ids_and_types_in_range(begin, end)

    def ids_and_types_in_range_including_non_consuming(self, begin: int, end: int) -> TypeIdMap:
        with self._guard():
            return self._query.ids_and_types_in_range_including_non_consuming(begin, end)

    def all_including_non_consuming(self) -> TypeIdMap:
        with self._guard():
            return self._query.all_including_non_consuming()

    def all_excluding_non_consuming(self) -> TypeIdMap:
        with self._guard():
            return self._query.all_excluding_non_consuming()

    def all_non_consuming(self) -> TypeIdMap:
        with self._guard():
            return self._query.all_non_consuming()

    def location_type_map(self) -> dict[int, set[str]]:
        with self._guard():
            return self._query.location_type_map()

    def spans_of_id(self, tag_id: str) -> list[Span]:
        with self._guard():
            return self._query.spans_of_id(tag_id)

    def offsets_of_id(self, tag_id: str) -> set[int]:
        with self._guard():
            return self._extents.offsets_of_id(tag_id)

    def is_non_consuming(self, tag_id: str) -> bool:
        with self._guard():
            return self._extents.is_non_consuming(tag_id)

    # ─── Link queries ─────────────────────────────────────────────

    def get_link(self, tag_id: str) -> LinkRecord:
        """A copy of the link record; mutate links through :meth:`set_argument`."""
        with self._guard():
            record = self._links.get(tag_id)
            return LinkRecord(record.tag_id, record.tag_type, list(record.slots))

    def arguments_of(self, tag_id: str) -> list[LinkArgument]:
        with self._guard():
            return self._links.arguments_of(tag_id)

    def links_referencing(self, arg_id: str, *, role: str | None = None) -> TypeIdMap:
        with self._guard():
            return self._query.links_referencing(arg_id, role=role)

    def links_referencing_any(self, arg_ids: Iterable[str]) -> TypeIdMap:
        with self._guard():
            return self._query.links_referencing_any(arg_ids)

    def anchor_offsets_of_type(self, link_type: str) -> set[int]:
        with self._guard():
            return self._query.anchor_offsets_of_type(link_type)

    def anchor_offsets_of_type_excluding(
        self, link_type: str, excluded_types: Iterable[str],
    ) -> set[int]:
        with self._guard():
            return self._query.anchor_offsets_of_type_excluding(link_type, excluded_types)

    # ─── Table access (snapshots) ─────────────────────────────────

    def extent_rows(self) -> list[ExtentRow]:
        with self._guard():
            return list(self._extents.rows())

    def link_records(self) -> list[LinkRecord]:
        with self._guard():
            return [
                LinkRecord(r.tag_id, r.tag_type, list(r.slots))
                for r in self._links.records()
            ]
