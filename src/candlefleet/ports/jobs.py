from __future__ import annotations
from typing import Any, AsyncContextManager, AsyncIterator, Callable, Mapping, Protocol

from ..domain.models import CachedRange, HostSpec, JobHandle, WatchTarget
from ..domain.value_types import JobId


EventStream = AsyncIterator[dict[str, Any]]


class JobAPI(Protocol):
    """Port for one host's remote job-execution API (request/response + push events)."""

    async def scan(self, watch: WatchTarget) -> list[CachedRange]:
        """Return the [from,to] epoch ranges already cached for `watch`."""

    async def start_import(self, start: int, end: int, watch: WatchTarget) -> JobId:
        """Start a historical import for [start, end] and return its import id."""

    async def start_job(self, payload: Mapping[str, Any]) -> JobHandle:
        """Start a session-based (live) job."""

    async def delete_job(self, job_id: JobId) -> None:
        """Stop and remove a job; best-effort from the caller's point of view."""

    async def run_backtest(self, payload: Mapping[str, Any]) -> dict[str, Any]:
        """Run a backtest and return its result document once it is done."""

    async def get_candles(self, start: int, end: int, candle_size: int, watch: WatchTarget) -> list[dict[str, Any]]:
        """Return cached candles for charting."""

    def events(self) -> AsyncContextManager[EventStream]:
        """Open the push-event connection; the yielded iterator ends when the connection closes."""

    async def aclose(self) -> None:
        """Release transport resources."""


JobAPIFactory = Callable[[HostSpec], JobAPI]
