"""In-memory link table: relations between tags with bounded arity.

Every link owns exactly ``max_args`` argument slots. Relational queries
(``links_referencing``, ``anchor_offsets_of_type*``) are full scans; arity is
small and documents are small, so no secondary index is kept.
"""
from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Iterator, Sequence
from dataclasses import dataclass

from tagdb.errors import (
    ArgumentListMismatchError,
    ArityExceededError,
    DuplicateIdError,
    MalformedRecordError,
    NotFoundError,
    TagIndexError,
)
from tagdb.extent_index import ExtentIndex
from tagdb.records import (
    LinkArgument,
    LinkRecord,
    TypeIdMap,
    add_to_type_map,
    check_name,
)

log = logging.getLogger(__name__)

DEFAULT_MAX_ARGS = 2


@dataclass(frozen=True, slots=True)
class _StagedLink:
    tag_id: str
    tag_type: str
    arguments: tuple[LinkArgument, ...]


class LinkIndex:
    """Id-keyed index of link tags."""

    def __init__(self, max_args: int = DEFAULT_MAX_ARGS) -> None:
        if isinstance(max_args, bool) or not isinstance(max_args, int) or max_args < 1:
            raise ValueError(f"max_args must be a positive int, got {max_args!r}")
        self._max_args = max_args
        self._records: dict[str, LinkRecord] = {}
        self._by_type: dict[str, set[str]] = {}
        self._pending: list[_StagedLink] = []
        self._rejected: TagIndexError | None = None

    @property
    def max_args(self) -> int:
        return self._max_args

    # ─── Staging ──────────────────────────────────────────────────

    def insert(
        self,
        tag_id: str,
        tag_type: str,
        arg_ids: Sequence[str],
        arg_roles: Sequence[str],
    ) -> None:
        """Stage one link.

        A rejected link is never staged, and it fails the batch: the same
        error is raised again by the next :meth:`check_pending` until the
        batch is discarded.
        """
        try:
            staged = self._build(tag_id, tag_type, arg_ids, arg_roles)
        except TagIndexError as exc:
            if self._rejected is None:
                self._rejected = exc
            raise
        self._pending.append(staged)

    def _build(
        self,
        tag_id: str,
        tag_type: str,
        arg_ids: Sequence[str],
        arg_roles: Sequence[str],
    ) -> _StagedLink:
        check_name(tag_id, "tag id")
        check_name(tag_type, "tag type", tag_id=tag_id)
        if len(arg_ids) != len(arg_roles):
            raise ArgumentListMismatchError(
                f"link {tag_id!r}: {len(arg_ids)} argument ids "
                f"but {len(arg_roles)} argument roles",
                tag_id=tag_id,
                id_count=len(arg_ids),
                role_count=len(arg_roles),
            )
        if len(arg_ids) > self._max_args:
            raise ArityExceededError(
                f"link {tag_id!r}: {len(arg_ids)} arguments exceed "
                f"max_args={self._max_args}",
                tag_id=tag_id,
                count=len(arg_ids),
                max_args=self._max_args,
            )
        try:
            arguments = tuple(
                LinkArgument(arg_id, role)
                for arg_id, role in zip(arg_ids, arg_roles, strict=True)
            )
        except MalformedRecordError as exc:
            raise MalformedRecordError(f"link {tag_id!r}: {exc}", tag_id=tag_id) from exc
        return _StagedLink(tag_id, tag_type, arguments)

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def rejected(self) -> TagIndexError | None:
        return self._rejected

    def pending_ids(self) -> set[str]:
        return {staged.tag_id for staged in self._pending}

    def discard(self) -> None:
        self._pending.clear()
        self._rejected = None

    def check_pending(self, id_in_use: Callable[[str], bool] | None = None) -> None:
        """Validate staged links: every id must be new to both indexes and the batch."""
        if self._rejected is not None:
            raise self._rejected
        seen: set[str] = set()
        for staged in self._pending:
            tag_id = staged.tag_id
            if tag_id in seen or tag_id in self._records:
                raise DuplicateIdError(
                    f"link id {tag_id!r} is already in use", tag_id=tag_id
                )
            if id_in_use is not None and id_in_use(tag_id):
                raise DuplicateIdError(
                    f"id {tag_id!r} is already used by an extent", tag_id=tag_id
                )
            seen.add(tag_id)

    def commit(self, id_in_use: Callable[[str], bool] | None = None) -> int:
        """Apply every staged link or none; returns the number of links added."""
        try:
            self.check_pending(id_in_use)
        except Exception:
            self.discard()
            raise
        return self.apply_pending()

    def apply_pending(self) -> int:
        """Write staged links; callers must have run :meth:`check_pending`."""
        for staged in self._pending:
            slots: list[LinkArgument | None] = [None] * self._max_args
            slots[: len(staged.arguments)] = staged.arguments
            self._records[staged.tag_id] = LinkRecord(staged.tag_id, staged.tag_type, slots)
            add_to_type_map(self._by_type, staged.tag_type, staged.tag_id)
        written = len(self._pending)
        self._pending.clear()
        log.debug("link commit: %d links", written)
        return written

    # ─── In-place mutation ────────────────────────────────────────

    def _check_slot(self, tag_id: str, slot: int) -> LinkRecord:
        if isinstance(slot, bool) or not isinstance(slot, int) or slot < 0:
            raise MalformedRecordError(
                f"argument slot must be an int >= 0, got {slot!r}", tag_id=tag_id
            )
        if slot >= self._max_args:
            raise ArityExceededError(
                f"link {tag_id!r}: slot {slot} is beyond max_args={self._max_args}",
                tag_id=tag_id,
                count=slot + 1,
                max_args=self._max_args,
            )
        return self.get(tag_id)

    def set_argument(self, tag_id: str, slot: int, arg_id: str, arg_role: str) -> None:
        """Rewrite one argument slot of an existing link."""
        record = self._check_slot(tag_id, slot)
        record.slots[slot] = LinkArgument(arg_id, arg_role)

    def clear_argument(self, tag_id: str, slot: int) -> None:
        record = self._check_slot(tag_id, slot)
        record.slots[slot] = None

    # ─── Deletion ─────────────────────────────────────────────────

    def delete(self, tag_id: str) -> None:
        """Remove the link; a no-op if it is absent."""
        record = self._records.pop(tag_id, None)
        if record is None:
            return
        same_type = self._by_type[record.tag_type]
        same_type.discard(tag_id)
        if not same_type:
            del self._by_type[record.tag_type]

    def clear(self) -> None:
        self._records.clear()
        self._by_type.clear()
        self.discard()

    # ─── Lookups ──────────────────────────────────────────────────

    def exists(self, tag_id: str) -> bool:
        return tag_id in self._records

    def __len__(self) -> int:
        return len(self._records)

    def get(self, tag_id: str) -> LinkRecord:
        try:
            return self._records[tag_id]
        except KeyError:
            raise NotFoundError(f"link not found: {tag_id!r}", tag_id=tag_id) from None

    def arguments_of(self, tag_id: str) -> list[LinkArgument]:
        return self.get(tag_id).arguments

    def type_of_id(self, tag_id: str) -> str:
        return self.get(tag_id).tag_type

    def ids_of_type(self, tag_type: str) -> set[str]:
        return set(self._by_type.get(tag_type, ()))

    def records(self) -> Iterator[LinkRecord]:
        """Committed links in id order."""
        for tag_id in sorted(self._records):
            yield self._records[tag_id]

    def links_referencing(self, arg_id: str, *, role: str | None = None) -> TypeIdMap:
        """Links with *arg_id* in any slot (optionally only under *role*)."""
        found: TypeIdMap = {}
        for record in self._records.values():
            if record.references(arg_id, role):
                add_to_type_map(found, record.tag_type, record.tag_id)
        return found

    def argument_ids_of_type(self, tag_type: str) -> set[str]:
        """Every argument id used by any link of *tag_type*."""
        arg_ids: set[str] = set()
        for tag_id in self._by_type.get(tag_type, ()):
            arg_ids.update(self._records[tag_id].argument_ids)
        return arg_ids

    def anchor_offsets_of_type(self, tag_type: str, extents: ExtentIndex) -> set[int]:
        """Offsets of every extent anchoring a link of *tag_type*."""
        return extents.offsets_of_ids(self.argument_ids_of_type(tag_type))

    def anchor_offsets_of_type_excluding(
        self,
        tag_type: str,
        excluded_types: Iterable[str],
        extents: ExtentIndex,
    ) -> set[int]:
        """Like :meth:`anchor_offsets_of_type`, minus ids used by excluded link types.

        Exclusion removes argument ids, not offsets: an id used by any link of
        an excluded type loses all of its offsets.
        """
        if isinstance(excluded_types, str):
            excluded_types = (excluded_types,)
        arg_ids = self.argument_ids_of_type(tag_type)
        for excluded in excluded_types:
            arg_ids -= self.argument_ids_of_type(excluded)
        return extents.offsets_of_ids(arg_ids)
