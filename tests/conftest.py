"""Pytest configuration and shared fixtures.

FakeJobAPI stands in for a worker host: it keeps an in-memory list of cached
ranges, turns every import into new cached data, and replays scripted push
events on its event connection.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Any

import pytest

from candlefleet.domain.models import CachedRange, HostSpec, JobHandle
from candlefleet.domain.value_types import Epoch, JobId


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "unit: fast tests with fake ports, no network")


class FakeJobAPI:
    def __init__(self, host: HostSpec, cached: list[tuple[int, int]] | None = None) -> None:
        self.host = host
        self.cached: list[tuple[int, int]] = list(cached or [])
        self.imports: list[tuple[int, int]] = []
        self.scans = 0
        self.deleted: list[str] = []
        self.backtests: list[dict[str, Any]] = []
        self.closed = False
        self.fail_open = False
        self.import_events: list[dict[str, Any]] | None = None    # None → import completes
        self.import_fills = True
        self.job_events: list[dict[str, Any]] = []
        self.job_handle: dict[str, Any] = {"id": "job-1", "active": True}
        self.delete_fails = False
        self.backtest_delay = 0.0
        self.backtest_error: Exception | None = None
        self.active = 0
        self.max_active = 0
        self._outbox: list[dict[str, Any]] = []
        self._seq = 0

    async def scan(self, watch):
        self.scans += 1
        return [CachedRange(Epoch(s), Epoch(e)) for s, e in self.cached]

    async def start_import(self, start, end, watch):
        self._seq += 1
        import_id = f"imp-{self._seq}"
        self.imports.append((start, end))
        if self.import_fills:
            self.cached.append((start, end))
        events = self.import_events
        if events is None:
            events = [
                {"type": "import_update", "import_id": import_id, "updates": {"done": False}},
                {"type": "import_update", "import_id": import_id, "updates": {"done": True}},
            ]
        self._outbox.extend({**e, "import_id": e.get("import_id", import_id)} for e in events)
        return JobId(import_id)

    async def start_job(self, payload):
        self._outbox.extend(self.job_events)
        return JobHandle.from_payload(self.job_handle)

    async def delete_job(self, job_id):
        if self.delete_fails:
            raise RuntimeError("delete refused")
        self.deleted.append(job_id)

    async def run_backtest(self, payload):
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(self.backtest_delay)
            if self.backtest_error is not None:
                raise self.backtest_error
            self.backtests.append(dict(payload))
            return {"host": self.host.address, "profit": 1.5}
        finally:
            self.active -= 1

    async def get_candles(self, start, end, candle_size, watch):
        return []

    @asynccontextmanager
    async def _open(self):
        if self.fail_open:
            raise ConnectionRefusedError("no route to host")

        async def stream():
            while self._outbox:
                yield self._outbox.pop(0)
                await asyncio.sleep(0)

        yield stream()

    def events(self):
        return self._open()

    async def aclose(self):
        self.closed = True


class FakeFleet:
    """Client factory handing out one FakeJobAPI per host (reused across calls)."""

    def __init__(self) -> None:
        self.apis: dict[HostSpec, FakeJobAPI] = {}
        self.opened: list[HostSpec] = []

    def api(self, host: HostSpec) -> FakeJobAPI:
        if host not in self.apis:
            self.apis[host] = FakeJobAPI(host)
        return self.apis[host]

    def __call__(self, host: HostSpec) -> FakeJobAPI:
        self.opened.append(host)
        return self.api(host)


@pytest.fixture
def fleet() -> FakeFleet:
    return FakeFleet()


@pytest.fixture
def host_a() -> HostSpec:
    return HostSpec(address="192.168.1.10", port=3000, threads=2)


@pytest.fixture
def host_b() -> HostSpec:
    return HostSpec(address="192.168.1.11", port=3000, threads=1)


@pytest.fixture
def fake_api(host_a: HostSpec) -> FakeJobAPI:
    return FakeJobAPI(host_a)
