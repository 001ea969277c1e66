"""Read-only queries spanning the extent and link indexes."""
from __future__ import annotations

from collections.abc import Iterable

from tagdb.errors import NotFoundError
from tagdb.extent_index import ExtentIndex
from tagdb.link_index import LinkIndex
from tagdb.records import Span, TypeIdMap, merge_type_maps


class QueryEngine:
    """Thin composition layer over one :class:`ExtentIndex` and one :class:`LinkIndex`."""

    def __init__(self, extents: ExtentIndex, links: LinkIndex) -> None:
        self._extents = extents
        self._links = links

    # ─── Identity ─────────────────────────────────────────────────

    def id_in_use(self, tag_id: str) -> bool:
        return self._extents.exists(tag_id) or self._links.exists(tag_id)

    def type_of_any_id(self, tag_id: str) -> str:
        """Type of *tag_id*, looked up in extents first, then links."""
        if self._extents.exists(tag_id):
            return self._extents.type_of_id(tag_id)
        if self._links.exists(tag_id):
            return self._links.type_of_id(tag_id)
        raise NotFoundError(f"tag not found: {tag_id!r}", tag_id=tag_id)

    def ids_of_type(self, tag_type: str) -> set[str]:
        return self._extents.ids_of_type(tag_type) | self._links.ids_of_type(tag_type)

    # ─── Location ─────────────────────────────────────────────────

    def types_at_offset(self, offset: int) -> set[str]:
        return self._extents.types_at_offset(offset)

    def ids_and_types_in_range(self, begin: int, end: int) -> TypeIdMap:
        return self._extents.ids_and_types_in_range(begin, end)

    def ids_and_types_in_range_including_non_consuming(
        self, begin: int, end: int,
    ) -> TypeIdMap:
        return self._extents.ids_and_types_in_range_including_non_consuming(begin, end)

    def all_including_non_consuming(self) -> TypeIdMap:
        return self._extents.all_including_non_consuming()

    def all_excluding_non_consuming(self) -> TypeIdMap:
        return self._extents.all_excluding_non_consuming()

    def all_non_consuming(self) -> TypeIdMap:
        return self._extents.all_non_consuming()

    def location_type_map(self) -> dict[int, set[str]]:
        return self._extents.location_type_map()

    def spans_of_id(self, tag_id: str) -> list[Span]:
        return self._extents.spans_of_id(tag_id)

    # ─── Relations ────────────────────────────────────────────────

    def links_referencing(self, arg_id: str, *, role: str | None = None) -> TypeIdMap:
        return self._links.links_referencing(arg_id, role=role)

    def links_referencing_any(self, arg_ids: Iterable[str]) -> TypeIdMap:
        """Union of :meth:`links_referencing` over several argument ids."""
        found: TypeIdMap = {}
        for arg_id in arg_ids:
            merge_type_maps(found, self._links.links_referencing(arg_id))
        return found

    def anchor_offsets_of_type(self, link_type: str) -> set[int]:
        return self._links.anchor_offsets_of_type(link_type, self._extents)

    def anchor_offsets_of_type_excluding(
        self, link_type: str, excluded_types: Iterable[str],
    ) -> set[int]:
        return self._links.anchor_offsets_of_type_excluding(
            link_type, excluded_types, self._extents
        )
