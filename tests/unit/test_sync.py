"""Unit tests for SyncOrchestrator."""

import pytest

from candlefleet.application.sync import SyncOrchestrator, unique_hosts
from candlefleet.domain.errors import RemoteJobError, SessionOpenError
from candlefleet.domain.models import Gap, HostSpec, WatchTarget

pytestmark = pytest.mark.unit

WATCH = WatchTarget(exchange="binance", currency="USDT", asset="BTC")
START = 1_554_076_800
END = 1_557_705_600


class TestEnsureDataReady:
    @pytest.mark.asyncio
    async def test_imports_padded_gap_then_converges(self, fleet, host_a) -> None:
        sync = SyncOrchestrator(fleet)
        passes = await sync.ensure_data_ready(START, END, WATCH, host_a)
        api = fleet.api(host_a)
        assert passes == 1
        assert api.imports == [(START - 86_400, END + 86_400)]
        assert api.scans == 2
        assert api.closed

    @pytest.mark.asyncio
    async def test_already_covered_needs_no_import(self, fleet, host_a) -> None:
        fleet.api(host_a).cached = [(START - 10, END + 10)]
        passes = await SyncOrchestrator(fleet).ensure_data_ready(START, END, WATCH, host_a)
        assert passes == 0
        assert fleet.api(host_a).imports == []

    @pytest.mark.asyncio
    async def test_gap_widened_onto_cached_edge(self, fleet, host_a) -> None:
        fleet.api(host_a).cached = [(START, START + 500)]
        sync = SyncOrchestrator(fleet, padding_s=0)
        await sync.ensure_data_ready(START, END, WATCH, host_a)
        assert fleet.api(host_a).imports == [(START + 500, END)]

    @pytest.mark.asyncio
    async def test_fills_several_gaps_in_order(self, fleet, host_a) -> None:
        fleet.api(host_a).cached = [(START, START + 100), (START + 200, START + 300)]
        sync = SyncOrchestrator(fleet, padding_s=0)
        passes = await sync.ensure_data_ready(START, START + 1000, WATCH, host_a)
        assert passes == 2
        assert fleet.api(host_a).imports == [(START + 100, START + 200), (START + 300, START + 1000)]

    @pytest.mark.asyncio
    async def test_observer_sees_checking_and_importing(self, fleet, host_a) -> None:
        events = []
        await SyncOrchestrator(fleet, padding_s=0).ensure_data_ready(START, END, WATCH, host_a, events.append)
        assert [e.stage for e in events] == ["checking", "importing", "checking"]
        assert events[1].gap == Gap(START, END)

    @pytest.mark.asyncio
    async def test_import_error_propagates_and_closes_client(self, fleet, host_a) -> None:
        api = fleet.api(host_a)
        api.import_events = [{"type": "import_error", "error": "no data"}]
        with pytest.raises(RemoteJobError):
            await SyncOrchestrator(fleet).ensure_data_ready(START, END, WATCH, host_a)
        assert api.closed

    @pytest.mark.asyncio
    async def test_open_failure_propagates(self, fleet, host_a) -> None:
        fleet.api(host_a).fail_open = True
        with pytest.raises(SessionOpenError):
            await SyncOrchestrator(fleet).ensure_data_ready(START, END, WATCH, host_a)


class TestAllHosts:
    def test_unique_hosts_keeps_first_per_address(self) -> None:
        a = HostSpec(address="10.0.0.1", port=3000, threads=4)
        a2 = HostSpec(address="10.0.0.1", port=3001, threads=2)
        b = HostSpec(address="10.0.0.2")
        assert unique_hosts([a, a2, b, a]) == [a, b]

    @pytest.mark.asyncio
    async def test_one_sync_per_address(self, fleet, host_a, host_b) -> None:
        twin = HostSpec(address=host_a.address, port=3001, threads=4)
        events = []
        sync = SyncOrchestrator(fleet, [host_a, twin, host_b])
        await sync.ensure_data_ready_all_hosts(START, END, WATCH, observer=events.append)
        assert twin not in fleet.opened
        assert set(fleet.opened) == {host_a, host_b}
        ready = [e for e in events if e.stage == "ready"]
        assert [(e.host, e.index, e.total) for e in ready] == [(host_a, 1, 2), (host_b, 2, 2)]

    @pytest.mark.asyncio
    async def test_explicit_host_list_overrides(self, fleet, host_a, host_b) -> None:
        sync = SyncOrchestrator(fleet, [host_a, host_b])
        await sync.ensure_data_ready_all_hosts(START, END, WATCH, hosts=[host_b])
        assert set(fleet.opened) == {host_b}

    @pytest.mark.asyncio
    async def test_stops_at_first_failing_host(self, fleet, host_a, host_b) -> None:
        fleet.api(host_a).import_events = [{"type": "import_error"}]
        with pytest.raises(RemoteJobError):
            await SyncOrchestrator(fleet, [host_a, host_b]).ensure_data_ready_all_hosts(START, END, WATCH)
        assert host_b not in fleet.opened


class TestAllWatches:
    @pytest.mark.asyncio
    async def test_counts_every_host_watch_combination(self, fleet, host_a, host_b) -> None:
        events = []
        sync = SyncOrchestrator(fleet, [host_a, host_b])
        checked = await sync.ensure_data_ready_all_watches(
            START, END, ["binance", "kraken"], [("USDT", "BTC"), ("EUR", "ETH")], events.append,
        )
        assert checked == 8
        assert sum(1 for e in events if e.stage == "ready") == 8
        done = events[-1]
        assert done.stage == "done"
        assert (done.index, done.total) == (8, 8)
        watches = {str(e.watch) for e in events if e.stage == "ready"}
        assert watches == {"binance:USDT/BTC", "binance:EUR/ETH", "kraken:USDT/BTC", "kraken:EUR/ETH"}

    @pytest.mark.asyncio
    async def test_nothing_to_do(self, fleet, host_a) -> None:
        checked = await SyncOrchestrator(fleet, [host_a]).ensure_data_ready_all_watches(START, END, [], [])
        assert checked == 0
        assert fleet.opened == []
