"""Collapse the offsets owned by one extent into contiguous spans."""
from __future__ import annotations

from collections.abc import Iterable

from tagdb.errors import MalformedRecordError
from tagdb.records import Span


def resolve_spans(offsets: Iterable[int]) -> list[Span]:
    """Return the minimal ordered list of half-open spans covering *offsets*.

    Consecutive offsets (difference of exactly 1) merge into one span; any
    larger gap starts a new one. Input order and duplicates do not matter.

    >>> [s.as_tuple() for s in resolve_spans({5, 6, 7, 10})]
    [(5, 8), (10, 11)]
    """
    ordered = sorted(set(offsets))
    if not ordered:
        raise MalformedRecordError("cannot resolve spans of an empty offset set")

    spans: list[Span] = []
    range_start = last_seen = ordered[0]
    for offset in ordered[1:]:
        if offset > last_seen + 1:
            spans.append(Span(range_start, last_seen + 1))
            range_start = offset
        last_seen = offset
    spans.append(Span(range_start, last_seen + 1))
    return spans


def spans_to_offsets(spans: Iterable[Span | tuple[int, int]]) -> set[int]:
    """Expand spans back into the set of offsets they cover."""
    offsets: set[int] = set()
    for span in spans:
        start, end = span.as_tuple() if isinstance(span, Span) else span
        offsets.update(range(start, end))
    return offsets

