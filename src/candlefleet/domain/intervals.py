"""
Closed integer intervals over the signed 64-bit epoch-second domain.

An IntervalSet is kept sorted and maximally coalesced: two intervals that
overlap or touch (upper + 1 == next lower) are always merged. Every
operation returns a new set.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Iterable, Iterator, Mapping, Union

from .errors import InvalidBoundError, InvalidIntervalError
from .models import CachedRange

DOMAIN_MIN = -(2 ** 63)
DOMAIN_MAX = 2 ** 63 - 1


@dataclass(slots=True, frozen=True, order=True)
class Interval:
    lower: int
    upper: int

    def __post_init__(self) -> None:
        if self.lower > self.upper:
            raise InvalidIntervalError(f"Interval lower ({self.lower}) must be <= upper ({self.upper})")
        if self.lower < DOMAIN_MIN or self.upper > DOMAIN_MAX:
            raise InvalidIntervalError(f"Interval [{self.lower}, {self.upper}] is outside the epoch domain")

    def span(self) -> int: return self.upper - self.lower + 1
    def contains(self, value: int) -> bool: return self.lower <= value <= self.upper
    def is_point(self) -> bool: return self.lower == self.upper

    def mergeable(self, other: "Interval") -> bool:
        # overlapping or adjacent on the integer line
        return self.lower <= other.upper + 1 and other.lower <= self.upper + 1

    def __str__(self) -> str: return f"[{self.lower}, {self.upper}]"


RangeLike = Union[Interval, CachedRange, tuple[int, int], Mapping[str, Any]]


def to_interval(r: RangeLike) -> Interval:
    if isinstance(r, Interval):
        return r
    if isinstance(r, CachedRange):
        return Interval(int(r.start), int(r.end))
    if isinstance(r, Mapping):
        return Interval(int(r["from"]), int(r["to"]))
    lower, upper = r
    return Interval(int(lower), int(upper))


def _coalesce(intervals: list[Interval]) -> tuple[Interval, ...]:
    if not intervals: return ()
    ivs = sorted(intervals)
    out: list[list[int]] = [[ivs[0].lower, ivs[0].upper]]
    for iv in ivs[1:]:
        _, me = out[-1]
        if iv.lower <= me + 1: out[-1][1] = max(me, iv.upper)
        else: out.append([iv.lower, iv.upper])
    return tuple(Interval(s, e) for s, e in out)


class IntervalSet:
    __slots__ = ("_intervals",)

    def __init__(self, intervals: Iterable[RangeLike] = ()) -> None:
        self._intervals: tuple[Interval, ...] = _coalesce([to_interval(r) for r in intervals])

    @classmethod
    def from_ranges(cls, ranges: Iterable[RangeLike]) -> "IntervalSet":
        return cls(ranges)

    @classmethod
    def _trusted(cls, intervals: tuple[Interval, ...]) -> "IntervalSet":
        # caller guarantees sorted + coalesced
        out = cls.__new__(cls)
        out._intervals = intervals
        return out

    @property
    def intervals(self) -> tuple[Interval, ...]:
        return self._intervals

    def union_all(self, ranges: Iterable[RangeLike]) -> "IntervalSet":
        """Insert every range, coalescing overlaps and adjacency. Insertion order is irrelevant."""
        return IntervalSet._trusted(_coalesce(list(self._intervals) + [to_interval(r) for r in ranges]))

    def intersection(self, lower: int, upper: int) -> "IntervalSet":
        """Clip every interval to [lower, upper]; intervals fully outside are dropped."""
        if lower > upper:
            raise InvalidBoundError(f"bound lower ({lower}) must be <= upper ({upper})")
        out: list[Interval] = []
        for iv in self._intervals:
            if iv.upper < lower: continue
            if iv.lower > upper: break
            out.append(Interval(max(iv.lower, lower), min(iv.upper, upper)))
        return IntervalSet._trusted(tuple(out))

    def complement(self) -> "IntervalSet":
        """Gaps of the domain; the open ends run to DOMAIN_MIN / DOMAIN_MAX."""
        out: list[Interval] = []
        cur = DOMAIN_MIN
        for iv in self._intervals:
            if iv.lower > cur:
                out.append(Interval(cur, iv.lower - 1))
            if iv.upper == DOMAIN_MAX:
                return IntervalSet._trusted(tuple(out))
            cur = iv.upper + 1
        out.append(Interval(cur, DOMAIN_MAX))
        return IntervalSet._trusted(tuple(out))

    def contains_range(self, lower: int, upper: int) -> bool:
        return any(iv.lower <= lower and upper <= iv.upper for iv in self._intervals)

    def is_empty(self) -> bool: return not self._intervals

    def first(self) -> Interval | None:
        return self._intervals[0] if self._intervals else None

    def __iter__(self) -> Iterator[Interval]: return iter(self._intervals)
    def __len__(self) -> int: return len(self._intervals)
    def __bool__(self) -> bool: return bool(self._intervals)
    def __getitem__(self, i: int) -> Interval: return self._intervals[i]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, IntervalSet): return NotImplemented
        return self._intervals == other._intervals

    def __hash__(self) -> int: return hash(self._intervals)

    def __repr__(self) -> str:
        return f"IntervalSet({', '.join(str(iv) for iv in self._intervals)})"
