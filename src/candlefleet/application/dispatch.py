from __future__ import annotations
import asyncio
from typing import Any, Callable, Iterable, Union

import structlog

from ..domain.errors import InvalidJobConfigError, SessionClosedEarlyError
from ..domain.models import HostSpec, JobConfig
from ..ports.jobs import JobAPI, JobAPIFactory
from .capacity import HostCapacityPool
from .sessions import await_job
from .utils import format_epoch

logger = structlog.get_logger(__name__)

JobSpec = Union[JobConfig, Callable[[HostSpec], JobConfig]]


def build_payload(job: JobConfig) -> dict[str, Any]:
    payload: dict[str, Any] = {"watch": job.watch.to_payload()}
    advisor: dict[str, Any] = {"enabled": True, "candleSize": job.candle_size}
    if job.strategy:
        advisor["method"] = job.strategy
    payload["tradingAdvisor"] = advisor
    if job.mode == "backtest":
        if job.date_range is None:
            raise InvalidJobConfigError("backtest jobs need a date_range")
        payload["backtest"] = {"daterange": {
            "from": format_epoch(job.date_range.start),
            "to": format_epoch(job.date_range.end),
        }}
        payload["backtestResultExporter"] = {"enabled": True}
    else:
        payload["market"] = {"type": "leech"}
        payload["mode"] = "realtime"
    payload.update(job.extra)
    return payload


async def _cleanup(api: JobAPI, job_id: str) -> None:
    try:
        await api.delete_job(job_id)
    except Exception as e:
        # never mask the session failure that brought us here
        logger.warning("job_cleanup_failed", job_id=job_id, error=str(e))


class JobDispatcher:
    """Runs jobs on whichever host the capacity pool grants, one token per running job."""

    def __init__(self, pool: HostCapacityPool, client_factory: JobAPIFactory) -> None:
        self.pool = pool
        self.client_factory = client_factory

    async def run_with_token(self, job: JobSpec) -> dict[str, Any]:
        token = None
        try:
            token = await self.pool.acquire()
            host = token.host
            config = job(host) if callable(job) else job
            api = self.client_factory(host)
            try:
                payload = build_payload(config)
                logger.info("job_started", host=host.label, mode=config.mode, watch=str(config.watch))
                if config.mode == "backtest":
                    return await api.run_backtest(payload)
                try:
                    return await await_job(api, payload)
                except SessionClosedEarlyError as e:
                    if e.job_id is not None:
                        await _cleanup(api, e.job_id)
                    raise
            finally:
                await api.aclose()
        except Exception as e:
            logger.error("job_failed", host=token.host.label if token else None, error=str(e))
            raise
        finally:
            self.pool.release(token)

    async def run_all(self, jobs: Iterable[JobSpec]) -> list[Any]:
        """Run jobs concurrently, bounded by pool capacity. Failures are returned in place of results."""
        return await asyncio.gather(*(self.run_with_token(j) for j in jobs), return_exceptions=True)
