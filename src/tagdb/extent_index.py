"""In-memory extent table: which tag ids occupy which character offsets.

Three views are kept in step on every write:

* ``id -> (type, offsets)`` for id lookups and span resolution,
* ``offset -> {id: type}`` plus a sorted offset list for location/range scans,
* ``type -> ids`` for type lookups.

Writes are staged with :meth:`ExtentIndex.insert` and applied all-or-nothing
by :meth:`ExtentIndex.commit`. A row rejected while staging fails the whole
batch: the error is raised at once and raised again by the next commit.
Committed extents are never extended; only :meth:`ExtentIndex.delete` frees
an id for reuse.
"""
from __future__ import annotations

import bisect
import logging
from collections.abc import Callable, Iterable, Iterator

from tagdb.errors import DuplicateIdError, MalformedRecordError, NotFoundError, TagIndexError
from tagdb.records import (
    NON_CONSUMING,
    ExtentRow,
    Span,
    TypeIdMap,
    add_to_type_map,
    merge_type_maps,
)
from tagdb.spans import resolve_spans

log = logging.getLogger(__name__)


class ExtentIndex:
    """Offset-keyed index of extent tags."""

    def __init__(self) -> None:
        self._types: dict[str, str] = {}
        self._offsets: dict[str, set[int]] = {}
        self._by_offset: dict[int, dict[str, str]] = {}
        self._sorted_offsets: list[int] = []
        self._by_type: dict[str, set[str]] = {}
        self._pending: list[ExtentRow] = []
        self._rejected: TagIndexError | None = None

    # ─── Staging ──────────────────────────────────────────────────

    def insert(self, tag_id: str, tag_type: str, offset: int) -> None:
        """Stage one offset row for *tag_id*; applied on :meth:`commit`."""
        try:
            row = ExtentRow(tag_id, tag_type, offset)
        except TagIndexError as exc:
            self._reject(exc)
            raise
        self._pending.append(row)

    def insert_many(self, tag_id: str, tag_type: str, offsets: Iterable[int]) -> None:
        """Stage several rows for one tag; a malformed row fails the batch."""
        try:
            rows = [ExtentRow(tag_id, tag_type, offset) for offset in offsets]
            if not rows:
                raise MalformedRecordError(
                    f"extent {tag_id!r} staged with no offsets", tag_id=tag_id
                )
        except TagIndexError as exc:
            self._reject(exc)
            raise
        self._pending.extend(rows)

    def _reject(self, exc: TagIndexError) -> None:
        if self._rejected is None:
            self._rejected = exc

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def rejected(self) -> TagIndexError | None:
        """First error raised while staging the current batch, if any."""
        return self._rejected

    def pending_ids(self) -> set[str]:
        return {row.tag_id for row in self._pending}

    def discard(self) -> None:
        self._pending.clear()
        self._rejected = None

    def check_pending(self, id_in_use: Callable[[str], bool] | None = None) -> None:
        """Validate the staged rows against the committed table.

        *id_in_use* reports ids owned elsewhere (the link index); any staged
        id it claims is a duplicate. Rows for one id accumulate only within
        the batch; an id already committed as an extent is a duplicate.
        """
        if self._rejected is not None:
            raise self._rejected
        staged_types: dict[str, str] = {}
        staged_offsets: dict[str, set[int]] = {}
        for row in self._pending:
            tag_id = row.tag_id
            if id_in_use is not None and id_in_use(tag_id):
                raise DuplicateIdError(
                    f"id {tag_id!r} is already used by a link", tag_id=tag_id
                )
            if tag_id in self._types:
                raise DuplicateIdError(
                    f"extent {tag_id!r} is already committed; "
                    "delete it before reusing the id",
                    tag_id=tag_id,
                )
            staged_type = staged_types.get(tag_id)
            if staged_type is not None and staged_type != row.tag_type:
                raise DuplicateIdError(
                    f"id {tag_id!r} is staged as {staged_type!r}, "
                    f"cannot reuse it for {row.tag_type!r}",
                    tag_id=tag_id,
                )
            staged_types[tag_id] = row.tag_type
            staged_offsets.setdefault(tag_id, set()).add(row.offset)

        for tag_id, offsets in staged_offsets.items():
            if NON_CONSUMING in offsets and len(offsets) > 1:
                raise MalformedRecordError(
                    f"extent {tag_id!r} mixes the non-consuming sentinel "
                    "with real offsets",
                    tag_id=tag_id,
                )

    def commit(self, id_in_use: Callable[[str], bool] | None = None) -> int:
        """Apply every staged row or none of them.

        Returns the number of new offset rows written. On failure the pending
        batch is discarded and the error propagates.
        """
        try:
            self.check_pending(id_in_use)
        except Exception:
            self.discard()
            raise
        return self.apply_pending()

    def apply_pending(self) -> int:
        """Write the staged rows; callers must have run :meth:`check_pending`."""
        written = 0
        for row in self._pending:
            if self._add_row(row):
                written += 1
        staged = len(self._pending)
        self._pending.clear()
        log.debug("extent commit: %d staged rows, %d new", staged, written)
        return written

    def _add_row(self, row: ExtentRow) -> bool:
        offsets = self._offsets.setdefault(row.tag_id, set())
        if row.offset in offsets:
            return False
        offsets.add(row.offset)
        self._types[row.tag_id] = row.tag_type
        add_to_type_map(self._by_type, row.tag_type, row.tag_id)
        at_offset = self._by_offset.get(row.offset)
        if at_offset is None:
            at_offset = self._by_offset[row.offset] = {}
            bisect.insort(self._sorted_offsets, row.offset)
        at_offset[row.tag_id] = row.tag_type
        return True

    # ─── Deletion ─────────────────────────────────────────────────

    def delete(self, tag_id: str) -> None:
        """Remove every offset row of *tag_id*; a no-op if it is absent."""
        offsets = self._offsets.pop(tag_id, None)
        if offsets is None:
            return
        tag_type = self._types.pop(tag_id)
        for offset in offsets:
            at_offset = self._by_offset[offset]
            del at_offset[tag_id]
            if not at_offset:
                del self._by_offset[offset]
                idx = bisect.bisect_left(self._sorted_offsets, offset)
                del self._sorted_offsets[idx]
        same_type = self._by_type[tag_type]
        same_type.discard(tag_id)
        if not same_type:
            del self._by_type[tag_type]

    def clear(self) -> None:
        self._types.clear()
        self._offsets.clear()
        self._by_offset.clear()
        self._sorted_offsets.clear()
        self._by_type.clear()
        self.discard()

    # ─── Lookups ──────────────────────────────────────────────────

    def exists(self, tag_id: str) -> bool:
        return tag_id in self._types

    def __len__(self) -> int:
        return len(self._types)

    @property
    def row_count(self) -> int:
        return sum(len(offsets) for offsets in self._offsets.values())

    def type_of_id(self, tag_id: str) -> str:
        try:
            return self._types[tag_id]
        except KeyError:
            raise NotFoundError(f"extent not found: {tag_id!r}", tag_id=tag_id) from None

    def ids_of_type(self, tag_type: str) -> set[str]:
        return set(self._by_type.get(tag_type, ()))

    def is_non_consuming(self, tag_id: str) -> bool:
        return self._offsets.get(tag_id) == {NON_CONSUMING}

    def offsets_of_id(self, tag_id: str) -> set[int]:
        return set(self._offsets.get(tag_id, ()))

    def offsets_of_ids(self, tag_ids: Iterable[str]) -> set[int]:
        locations: set[int] = set()
        for tag_id in tag_ids:
            locations.update(self._offsets.get(tag_id, ()))
        return locations

    def spans_of_id(self, tag_id: str) -> list[Span]:
        """Contiguous spans of *tag_id*; ``[]`` for a non-consuming extent."""
        offsets = self._offsets.get(tag_id)
        if not offsets:
            raise NotFoundError(f"no offsets on record for {tag_id!r}", tag_id=tag_id)
        if offsets == {NON_CONSUMING}:
            return []
        return resolve_spans(offsets)

    def types_at_offset(self, offset: int) -> set[str]:
        return set(self._by_offset.get(offset, {}).values())

    def ids_and_types_in_range(self, begin: int, end: int) -> TypeIdMap:
        """Tags occupying ``begin`` (when ``begin == end``) or ``[begin, end]``.

        Non-consuming tags never match a range.
        """
        found: TypeIdMap = {}
        for offset in self._offsets_between(begin, end):
            for tag_id, tag_type in self._by_offset[offset].items():
                add_to_type_map(found, tag_type, tag_id)
        return found

    def ids_and_types_in_range_including_non_consuming(
        self, begin: int, end: int,
    ) -> TypeIdMap:
        return merge_type_maps(
            self.ids_and_types_in_range(begin, end), self.all_non_consuming()
        )

    def _offsets_between(self, begin: int, end: int) -> list[int]:
        lo = bisect.bisect_left(self._sorted_offsets, max(begin, 0))
        hi = bisect.bisect_right(self._sorted_offsets, end)
        return self._sorted_offsets[lo:hi]

    def all_non_consuming(self) -> TypeIdMap:
        found: TypeIdMap = {}
        for tag_id, tag_type in self._by_offset.get(NON_CONSUMING, {}).items():
            add_to_type_map(found, tag_type, tag_id)
        return found

    def all_excluding_non_consuming(self) -> TypeIdMap:
        found: TypeIdMap = {}
        for tag_id, offsets in self._offsets.items():
            if offsets != {NON_CONSUMING}:
                add_to_type_map(found, self._types[tag_id], tag_id)
        return found

    def all_including_non_consuming(self) -> TypeIdMap:
        found: TypeIdMap = {}
        for tag_id, tag_type in self._types.items():
            add_to_type_map(found, tag_type, tag_id)
        return found

    def location_type_map(self) -> dict[int, set[str]]:
        """Every anchored offset mapped to the tag types occupying it."""
        return {
            offset: set(self._by_offset[offset].values())
            for offset in self._sorted_offsets
            if offset != NON_CONSUMING
        }

    def rows(self) -> Iterator[ExtentRow]:
        """Every committed row in offset order, then id order."""
        for offset in self._sorted_offsets:
            for tag_id, tag_type in sorted(self._by_offset[offset].items()):
                yield ExtentRow(tag_id, tag_type, offset)
