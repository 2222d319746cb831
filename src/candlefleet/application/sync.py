from __future__ import annotations
from typing import Callable, Iterable, Sequence

import structlog

from ..domain.models import HostSpec, SyncProgress, WatchTarget
from ..ports.jobs import JobAPIFactory
from .planning import find_next_gap
from .sessions import await_import
from .utils import ONE_DAY_S, format_epoch

logger = structlog.get_logger(__name__)

Observer = Callable[[SyncProgress], None]


def _notify(observer: Observer | None, event: SyncProgress) -> None:
    if observer is not None:
        observer(event)


def unique_hosts(hosts: Iterable[HostSpec]) -> list[HostSpec]:
    """One entry per address (first wins); instances on one machine share a candle store."""
    seen: set[str] = set()
    out: list[HostSpec] = []
    for h in hosts:
        if h.address in seen: continue
        seen.add(h.address)
        out.append(h)
    return out


class SyncOrchestrator:
    """
    Converges a host's cached candles toward [start, end] for a watch target.

    Each pass re-scans the host, imports the first gap (padded by `padding_s`
    on both sides) and waits for that import to finish. Passes for one
    host/watch are strictly sequential so the same range is never imported
    twice at once.
    """

    def __init__(
        self,
        client_factory: JobAPIFactory,
        hosts: Sequence[HostSpec] = (),
        *,
        padding_s: int = ONE_DAY_S,
    ) -> None:
        self.client_factory = client_factory
        self.hosts = tuple(hosts)
        self.padding_s = padding_s

    async def ensure_data_ready(
        self,
        start: int,
        end: int,
        watch: WatchTarget,
        host: HostSpec,
        observer: Observer | None = None,
    ) -> int:
        """Returns the number of import passes it took to converge."""
        api = self.client_factory(host)
        passes = 0
        try:
            while True:
                logger.info("checking_data", host=host.label, watch=str(watch),
                            start=format_epoch(start), end=format_epoch(end))
                _notify(observer, SyncProgress("checking", host, watch))
                cached = await api.scan(watch)
                gap = find_next_gap(start, end, cached)
                if gap is None:
                    return passes
                passes += 1
                logger.info("importing_gap", host=host.label, watch=str(watch), gap_start=gap.start,
                            gap_end=gap.end, attempt=passes)
                _notify(observer, SyncProgress("importing", host, watch, gap=gap))
                await await_import(api, gap.start - self.padding_s, gap.end + self.padding_s, watch)
        finally:
            await api.aclose()

    async def ensure_data_ready_all_hosts(
        self,
        start: int,
        end: int,
        watch: WatchTarget,
        hosts: Sequence[HostSpec] | None = None,
        observer: Observer | None = None,
    ) -> None:
        targets = unique_hosts(self.hosts if hosts is None else hosts)
        for i, host in enumerate(targets, 1):
            logger.info("checking_database", index=i, total=len(targets), host=host.label)
            await self.ensure_data_ready(start, end, watch, host, observer)
            _notify(observer, SyncProgress("ready", host, watch, index=i, total=len(targets)))

    async def ensure_data_ready_all_watches(
        self,
        start: int,
        end: int,
        exchanges: Sequence[str],
        pairs: Sequence[tuple[str, str]],
        observer: Observer | None = None,
    ) -> int:
        """Sync every exchange x (currency, asset) pair on every host; returns the number of data sets checked."""
        per_watch = len(unique_hosts(self.hosts))
        total = per_watch * len(exchanges) * len(pairs)
        logger.info("checking_data_sets", total=total)
        checked = 0
        for exchange in exchanges:
            for currency, asset in pairs:
                watch = WatchTarget(exchange=exchange, currency=currency, asset=asset)
                await self.ensure_data_ready_all_hosts(start, end, watch, observer=observer)
                checked += per_watch
        logger.info("all_data_sets_in_sync", total=checked)
        _notify(observer, SyncProgress("done", None, None, index=checked, total=total))
        return checked
