"""Batched, all-or-nothing writes across the extent and link indexes."""
from __future__ import annotations

import contextlib
import logging
from collections.abc import Iterable, Iterator, Sequence

from tagdb.errors import BatchStateError, TagIndexError
from tagdb.extent_index import ExtentIndex
from tagdb.link_index import LinkIndex
from tagdb.records import BatchState

log = logging.getLogger(__name__)


class BatchWriter:
    """Stages extent rows and links, then commits them as one unit.

    The writer is ``"idle"`` until something is staged and returns to
    ``"idle"`` after every :meth:`commit` (successful or not) and
    :meth:`discard`. A record rejected while staging keeps the writer
    ``"staging"``; the next :meth:`commit` raises that error and applies
    nothing.
    """

    def __init__(self, extents: ExtentIndex, links: LinkIndex) -> None:
        self._extents = extents
        self._links = links

    @property
    def state(self) -> BatchState:
        if (
            self._extents.pending_count
            or self._links.pending_count
            or self._extents.rejected is not None
            or self._links.rejected is not None
        ):
            return "staging"
        return "idle"

    def stage_extent(
        self, tag_id: str, tag_type: str, offsets: int | Iterable[int],
    ) -> None:
        """Stage one offset, or every offset of a multi-span tag."""
        if isinstance(offsets, int):
            self._extents.insert(tag_id, tag_type, offsets)
        else:
            self._extents.insert_many(tag_id, tag_type, offsets)

    def stage_link(
        self,
        tag_id: str,
        tag_type: str,
        arg_ids: Sequence[str] = (),
        arg_roles: Sequence[str] = (),
    ) -> None:
        self._links.insert(tag_id, tag_type, arg_ids, arg_roles)

    def discard(self) -> None:
        self._extents.discard()
        self._links.discard()

    def commit(self) -> tuple[int, int]:
        """Apply the staged batch; returns ``(extent_rows_written, links_written)``.

        Both pending batches are validated before anything is applied. On any
        validation failure both are discarded and the error propagates.
        """
        staged_extent_ids = self._extents.pending_ids()
        staged_link_ids = self._links.pending_ids()
        try:
            self._extents.check_pending(
                lambda tag_id: self._links.exists(tag_id) or tag_id in staged_link_ids
            )
            self._links.check_pending(
                lambda tag_id: self._extents.exists(tag_id) or tag_id in staged_extent_ids
            )
        except TagIndexError as exc:
            log.warning("batch rejected, nothing applied: %s", exc)
            self.discard()
            raise
        rows = self._extents.apply_pending()
        links = self._links.apply_pending()
        log.debug("batch committed: %d extent rows, %d links", rows, links)
        return rows, links

    def _require_idle(self) -> None:
        if self.state != "idle":
            raise BatchStateError(
                "cannot write immediately while a batch is staging; "
                "commit or discard it first"
            )

    def insert_extent_now(
        self, tag_id: str, tag_type: str, offsets: int | Iterable[int],
    ) -> int:
        """Stage one extent and commit it at once; returns rows written."""
        self._require_idle()
        try:
            self.stage_extent(tag_id, tag_type, offsets)
        except TagIndexError:
            self.discard()
            raise
        return self.commit()[0]

    def insert_link_now(
        self,
        tag_id: str,
        tag_type: str,
        arg_ids: Sequence[str] = (),
        arg_roles: Sequence[str] = (),
    ) -> None:
        """Stage one link and commit it at once."""
        self._require_idle()
        try:
            self.stage_link(tag_id, tag_type, arg_ids, arg_roles)
        except TagIndexError:
            self.discard()
            raise
        self.commit()

    @contextlib.contextmanager
    def batch(self) -> Iterator[BatchWriter]:
        """Commit on normal exit; discard the staged batch if the block raises."""
        try:
            yield self
        except BaseException:
            self.discard()
            raise
        self.commit()
