"""Tests for tagdb.spans: offset sets to contiguous half-open spans."""
from __future__ import annotations

import random

import pytest

from tagdb.errors import MalformedRecordError
from tagdb.records import Span
from tagdb.spans import resolve_spans, spans_to_offsets


def _tuples(spans: list[Span]) -> list[tuple[int, int]]:
    return [s.as_tuple() for s in spans]


class TestResolveSpans:
    def test_single_offset(self) -> None:
        assert _tuples(resolve_spans({5})) == [(5, 6)]

    def test_contiguous_then_gap(self) -> None:
        assert _tuples(resolve_spans({5, 6, 7, 10})) == [(5, 8), (10, 11)]

    def test_input_order_does_not_matter(self) -> None:
        assert _tuples(resolve_spans([3, 1, 2])) == [(1, 4)]

    def test_fully_disjoint(self) -> None:
        assert _tuples(resolve_spans({0, 2, 4, 6})) == [(0, 1), (2, 3), (4, 5), (6, 7)]

    def test_duplicates_collapse(self) -> None:
        assert _tuples(resolve_spans([4, 4, 5, 5])) == [(4, 6)]

    def test_offset_zero(self) -> None:
        assert _tuples(resolve_spans({0, 1})) == [(0, 2)]

    def test_empty_input_rejected(self) -> None:
        with pytest.raises(MalformedRecordError, match="empty"):
            resolve_spans(set())

    def test_empty_input_is_a_value_error(self) -> None:
        with pytest.raises(ValueError):
            resolve_spans([])

    def test_spans_cover_exactly_the_input(self) -> None:
        rng = random.Random(1234)
        for _ in range(200):
            offsets = {rng.randrange(0, 60) for _ in range(rng.randrange(1, 25))}
            spans = resolve_spans(offsets)
            assert spans_to_offsets(spans) == offsets
            for prev, nxt in zip(spans, spans[1:]):
                # sorted, non-overlapping and maximal (a gap between spans)
                assert prev.end < nxt.start

    def test_span_length(self) -> None:
        (span,) = resolve_spans({10, 11, 12})
        assert span.length == 3


class TestSpansToOffsets:
    def test_accepts_tuples(self) -> None:
        assert spans_to_offsets([(1, 3), (7, 8)]) == {1, 2, 7}

    def test_empty(self) -> None:
        assert spans_to_offsets([]) == set()


class TestSpan:
    def test_rejects_empty_range(self) -> None:
        with pytest.raises(ValueError):
            Span(3, 3)
