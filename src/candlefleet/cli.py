import asyncio, json
import click
from rich.console import Console
from rich.progress import (
    Progress, BarColumn, TextColumn, TimeElapsedColumn, MofNCompleteColumn, SpinnerColumn
)
from rich.table import Table

from .adapters.config.logging import configure_logging
from .adapters.config.settings import get_settings, load_hosts_file
from .adapters.jobapi_httpx import make_client_factory
from .application.capacity import HostCapacityPool
from .application.dispatch import JobDispatcher
from .application.planning import find_next_gap, iter_segments
from .application.sync import SyncOrchestrator, unique_hosts
from .application.utils import format_epoch, to_epoch
from .domain.errors import CandleFleetError
from .domain.models import DateRange, HostSpec, JobConfig, SyncProgress, WatchTarget

console = Console()


def _epoch(ctx, param, value):
    if value is None:
        return None
    try:
        return to_epoch(value)
    except ValueError as e:
        raise click.BadParameter(str(e))


def _pair(value: str) -> tuple[str, str]:
    cur, sep, asset = value.partition(":")
    if not sep or not cur or not asset:
        raise click.BadParameter(f"expected CURRENCY:ASSET, got {value!r}")
    return cur, asset


def _run(coro):
    try:
        return asyncio.run(coro)
    except CandleFleetError as e:
        raise click.ClickException(str(e))


@click.group()
@click.option("--hosts-file", type=click.Path(exists=True, dir_okay=False), default=None,
              help="JSON list of {address, port, threads}; overrides CANDLEFLEET_HOSTS")
@click.option("--log-level", default=None, help="DEBUG, INFO, WARNING, ERROR")
@click.option("--json-logs/--console-logs", default=None, help="Log format")
@click.pass_context
def cli(ctx, hosts_file, log_level, json_logs):
    """candlefleet: keep candle data in sync and run jobs across a fleet of worker hosts."""
    settings = get_settings()
    configure_logging(log_level or settings.log_level,
                      settings.json_logs if json_logs is None else json_logs)
    hosts = load_hosts_file(hosts_file) if hosts_file else settings.hosts
    ctx.obj = {
        "settings": settings,
        "hosts": [h.to_spec() for h in hosts],
        "factory": make_client_factory(timeout_s=settings.http_timeout_s, max_retries=settings.max_retries),
    }


def _require_hosts(ctx) -> list[HostSpec]:
    hosts = ctx.obj["hosts"]
    if not hosts:
        raise click.UsageError("No hosts configured (use --hosts-file or CANDLEFLEET_HOSTS)")
    return hosts


@cli.command("capacity")
@click.pass_context
def capacity_cmd(ctx):
    """Show configured hosts in priority order and the total thread capacity."""
    hosts = _require_hosts(ctx)
    try:
        pool = HostCapacityPool(hosts)
    except CandleFleetError as e:
        raise click.ClickException(str(e))
    table = Table(title="worker hosts")
    table.add_column("priority", justify="right")
    table.add_column("host")
    table.add_column("threads", justify="right")
    for i, h in enumerate(pool.hosts):
        table.add_row(str(len(pool.hosts) - i), h.label, str(h.threads))
    console.print(table)
    console.print(f"[bold]total capacity[/]: {pool.total_capacity()}")


@cli.command("coverage")
@click.option("--address", required=True, help="Host to scan")
@click.option("--port", type=int, default=3000, show_default=True)
@click.option("--exchange", required=True)
@click.option("--currency", required=True)
@click.option("--asset", required=True)
@click.option("--from", "start", required=True, callback=_epoch, help="ISO-8601 or epoch seconds")
@click.option("--to", "end", required=True, callback=_epoch, help="ISO-8601 or epoch seconds")
@click.pass_context
def coverage_cmd(ctx, address, port, exchange, currency, asset, start, end):
    """Print which parts of a date range a host already has cached."""
    if start > end:
        raise click.BadParameter("--from must not be after --to")
    host = HostSpec(address=address, port=port)
    watch = WatchTarget(exchange=exchange, currency=currency, asset=asset)

    async def run():
        api = ctx.obj["factory"](host)
        try:
            return await api.scan(watch)
        finally:
            await api.aclose()

    cached = _run(run())
    table = Table(title=f"{watch} @ {host.label}")
    table.add_column("from"); table.add_column("to"); table.add_column("cached")
    for seg in iter_segments(start, end, cached):
        state = {True: "[green]yes[/]", False: "[red]no[/]", None: "[yellow]unknown[/]"}[seg.cached]
        table.add_row(format_epoch(seg.start), format_epoch(seg.end), state)
    console.print(table)
    gap = find_next_gap(start, end, cached)
    if gap is None:
        console.print("[bold green]fully covered[/]")
    else:
        console.print(f"[bold]next gap[/]: {format_epoch(gap.start)} → {format_epoch(gap.end)}")


@cli.command("sync")
@click.option("--from", "start", required=True, callback=_epoch, help="ISO-8601 or epoch seconds")
@click.option("--to", "end", required=True, callback=_epoch, help="ISO-8601 or epoch seconds")
@click.option("--exchange", "exchanges", multiple=True, required=True, help="Repeat for several exchanges")
@click.option("--pair", "pairs", multiple=True, required=True, help="CURRENCY:ASSET; repeat for several pairs")
@click.pass_context
def sync_cmd(ctx, start, end, exchanges, pairs):
    """Import missing candles on every host for every exchange x pair."""
    hosts = _require_hosts(ctx)
    if start > end:
        raise click.BadParameter("--from must not be after --to")
    parsed = [_pair(p) for p in pairs]
    settings = ctx.obj["settings"]
    orchestrator = SyncOrchestrator(ctx.obj["factory"], hosts, padding_s=settings.import_padding_s)
    total = len(unique_hosts(hosts)) * len(exchanges) * len(parsed)

    progress = Progress(SpinnerColumn(),
                        TextColumn("[bold]syncing data[/]"),
                        BarColumn(),
                        MofNCompleteColumn(),
                        TextColumn("•"),
                        TimeElapsedColumn(),
                        TextColumn(" • {task.description}"),
                        console=console,
                        expand=True,
                        )

    with progress:
        task = progress.add_task(description=f"{format_epoch(start)} → {format_epoch(end)}", total=total)

        def observe(ev: SyncProgress) -> None:
            if ev.stage == "importing" and ev.gap is not None:
                progress.update(task, description=f"{ev.watch} @ {ev.host.label}: importing "
                                                  f"{format_epoch(ev.gap.start)} → {format_epoch(ev.gap.end)}")
            elif ev.stage == "ready":
                progress.advance(task, 1)
                progress.update(task, description=f"{ev.watch} @ {ev.host.label}: ready")

        checked = _run(orchestrator.ensure_data_ready_all_watches(start, end, exchanges, parsed, observe))
    console.print(f"[bold green]done[/]: {checked} data sets in sync")


def _job_from_file(path: str) -> JobConfig:
    with open(path, "r") as f:
        raw = json.load(f)
    try:
        watch = WatchTarget(**raw["watch"])
        dr = raw.get("daterange")
        date_range = DateRange(to_epoch(dr["from"]), to_epoch(dr["to"])) if dr else None
        known = {"mode", "watch", "daterange", "strategy", "candleSize"}
        return JobConfig(
            mode=raw.get("mode", "backtest"),
            watch=watch,
            date_range=date_range,
            strategy=raw.get("strategy"),
            candle_size=int(raw.get("candleSize", 60)),
            extra={k: v for k, v in raw.items() if k not in known},
        )
    except CandleFleetError as e:
        raise click.BadParameter(f"{path}: {e}")
    except (KeyError, TypeError, ValueError) as e:
        raise click.BadParameter(f"{path}: invalid job config ({e})")


@cli.command("backtest")
@click.argument("configs", nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def backtest_cmd(ctx, configs):
    """Run job configs (JSON files) across the fleet, at most one job per host thread."""
    hosts = _require_hosts(ctx)
    jobs = [_job_from_file(p) for p in configs]
    try:
        dispatcher = JobDispatcher(HostCapacityPool(hosts), ctx.obj["factory"])
    except CandleFleetError as e:
        raise click.ClickException(str(e))

    results = _run(dispatcher.run_all(jobs))
    failed = 0
    for path, res in zip(configs, results):
        if isinstance(res, BaseException):
            failed += 1
            console.print(f"[red]failed[/] {path}: {res}")
        else:
            console.print(f"[green]done[/] {path}")
            console.print_json(data=res)
    if failed:
        raise click.ClickException(f"{failed} of {len(configs)} jobs failed")


if __name__ == "__main__":
    cli()
