from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Mapping

from .errors import InvalidBoundError, InvalidJobConfigError
from .value_types import Epoch, JobId, Mode, Stage

DEFAULT_PORT = 3000


@dataclass(slots=True, frozen=True)
class HostSpec:
    address: str
    port: int = DEFAULT_PORT
    threads: int = 1

    @property
    def label(self) -> str: return f"{self.address}:{self.port}"


@dataclass(slots=True, frozen=True)
class CapacityToken:
    """One unit of permitted concurrent job execution on `host`."""
    host: HostSpec
    priority: int


@dataclass(slots=True, frozen=True)
class WatchTarget:
    exchange: str
    currency: str
    asset: str

    def to_payload(self) -> dict[str, str]:
        return {"exchange": self.exchange, "currency": self.currency, "asset": self.asset}

    def __str__(self) -> str: return f"{self.exchange}:{self.currency}/{self.asset}"


@dataclass(slots=True, frozen=True)
class CachedRange:
    start: Epoch
    end: Epoch

    @classmethod
    def from_payload(cls, raw: Mapping[str, Any]) -> "CachedRange":
        return cls(start=Epoch(int(raw["from"])), end=Epoch(int(raw["to"])))


@dataclass(slots=True, frozen=True)
class DateRange:
    start: Epoch
    end: Epoch

    def __post_init__(self) -> None:
        if self.start > self.end:
            raise InvalidBoundError(f"date range start ({self.start}) must be <= end ({self.end})")

    def span(self) -> int: return self.end - self.start


@dataclass(slots=True, frozen=True)
class Gap:
    """First uncovered sub-range, widened by one second onto neighbouring cached data."""
    start: Epoch
    end: Epoch


@dataclass(slots=True, frozen=True)
class Segment:
    """
    Leading sub-range of a query bound.
    cached is True/False, or None when the head is a single-point boundary
    marker and coverage on either side is unknown.
    """
    start: Epoch
    end: Epoch
    cached: bool | None

    @property
    def is_cached(self) -> bool: return self.cached is True


@dataclass(slots=True, frozen=True)
class JobHandle:
    id: JobId
    active: bool = False
    stopped: bool = False
    errored: bool = False

    @classmethod
    def from_payload(cls, raw: Mapping[str, Any]) -> "JobHandle":
        return cls(
            id=JobId(str(raw["id"])),
            active=bool(raw.get("active")),
            stopped=bool(raw.get("stopped")),
            errored=bool(raw.get("errored")),
        )


@dataclass(slots=True, frozen=True)
class JobConfig:
    mode: Mode
    watch: WatchTarget
    date_range: DateRange | None = None
    strategy: str | None = None
    candle_size: int = 60                  # minutes
    extra: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.mode not in ("backtest", "live"):
            raise InvalidJobConfigError(f"unknown job mode: {self.mode!r}")
        if self.mode == "backtest" and self.date_range is None:
            raise InvalidJobConfigError("backtest jobs need a date_range")
        if self.candle_size <= 0:
            raise InvalidJobConfigError(f"candle_size must be positive, got {self.candle_size}")


@dataclass(slots=True, frozen=True)
class SyncProgress:
    stage: Stage
    host: HostSpec | None
    watch: WatchTarget | None
    index: int = 0
    total: int = 0
    gap: Gap | None = None
