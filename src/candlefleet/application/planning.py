from __future__ import annotations
from typing import Iterable, Iterator

from ..domain.errors import InvalidBoundError
from ..domain.intervals import IntervalSet, RangeLike
from ..domain.models import Gap, Segment
from ..domain.value_types import Epoch


def _check_bound(start: int, end: int) -> None:
    if start > end:
        raise InvalidBoundError(f"from ({start}) must be <= to ({end})")


def find_next_gap(start: int, end: int, cached: Iterable[RangeLike]) -> Gap | None:
    """
    First uncovered sub-range of [start, end], or None when fully covered.
    The gap is widened by one second onto each cached neighbour so that a
    re-import overlaps existing data instead of leaving a seam.
    """
    _check_bound(start, end)
    gaps = IntervalSet(cached).complement().intersection(start, end)
    gap = gaps.first()
    if gap is None:
        return None
    lower = gap.lower - 1 if gap.lower > start else gap.lower
    return Gap(start=Epoch(lower), end=Epoch(min(end, gap.upper + 1)))


def is_covered(start: int, end: int, cached: Iterable[RangeLike]) -> bool:
    return find_next_gap(start, end, cached) is None


def _next_segment(start: int, end: int, covered: IntervalSet) -> Segment:
    ranges = covered.intersection(start, end)
    head = ranges.first()
    if head is None:
        return Segment(Epoch(start), Epoch(end), cached=False)
    if head.lower > start:
        return Segment(Epoch(start), Epoch(head.lower), cached=False)
    if head.is_point():
        # boundary marker: coverage on either side unknown, skip to the next interval
        if len(ranges) < 2:
            return Segment(Epoch(start), Epoch(end), cached=None)
        return Segment(Epoch(start), Epoch(ranges[1].lower), cached=None)
    return Segment(Epoch(start), Epoch(head.upper), cached=True)


def to_next_segment(start: int, end: int, cached: Iterable[RangeLike]) -> Segment:
    """Leading uniformly cached (or uncached) sub-range of [start, end], starting at `start`."""
    _check_bound(start, end)
    return _next_segment(start, end, IntervalSet(cached))


def iter_segments(start: int, end: int, cached: Iterable[RangeLike]) -> Iterator[Segment]:
    """Walk [start, end] segment by segment; each segment starts where the previous one ended."""
    _check_bound(start, end)
    covered = IntervalSet(cached)
    cur = start
    after_cached = False
    while True:
        if after_cached:
            # cur is the last cached second; look past it so it is not read as a one-point marker
            nxt = _next_segment(cur + 1, end, covered)
            seg = Segment(Epoch(cur), nxt.end, nxt.cached)
        else:
            seg = _next_segment(cur, end, covered)
        yield seg
        after_cached = seg.cached is True
        if seg.end >= end or seg.end <= cur:
            return
        cur = seg.end
