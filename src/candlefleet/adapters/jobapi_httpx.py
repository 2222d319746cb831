from __future__ import annotations
import asyncio, httpx
from typing import Any, AsyncContextManager, Mapping

import structlog

from ..application.utils import format_epoch
from ..domain.errors import JobAPIError, TransportError
from ..domain.models import CachedRange, HostSpec, JobHandle, WatchTarget
from ..domain.value_types import JobId
from ..ports.jobs import EventStream, JobAPI, JobAPIFactory
from .events_aiohttp import AiohttpEventChannel

logger = structlog.get_logger(__name__)


def _daterange(start: int, end: int) -> dict[str, str]:
    return {"from": format_epoch(start), "to": format_epoch(end)}


def _body(r: httpx.Response) -> Any:
    try:
        return r.json()
    except ValueError:
        return r.text


class HttpxJobAPI(JobAPI):
    def __init__(
        self,
        host: HostSpec,
        *,
        timeout_s: float = 20.0,
        max_retries: int = 3,
        backoff_s: float = 1.0,
        backtest_timeout_s: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        channel: AiohttpEventChannel | None = None,
    ) -> None:
        self.host = host
        self.base_url = f"http://{host.address}:{host.port}"
        self.max_retries = max_retries
        self.backoff_s = backoff_s
        self.backtest_timeout_s = backtest_timeout_s
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(timeout_s),
            transport=transport,
        )
        self.channel = channel or AiohttpEventChannel(f"ws://{host.address}:{host.port}/")

    async def _post(self, path: str, payload: Mapping[str, Any], *, timeout: Any = httpx.USE_CLIENT_DEFAULT) -> Any:
        # retry on 429 with Retry-After or exponential backoff
        for attempt in range(self.max_retries):
            try:
                r = await self.client.post(path, json=dict(payload), timeout=timeout)
            except httpx.HTTPError as e:
                raise TransportError(f"POST {self.base_url}{path} failed: {e}") from e
            if r.status_code == 429:
                ra = r.headers.get("Retry-After")
                delay = max(1.0, float(ra)) if ra and ra.isdigit() else (self.backoff_s * (2**attempt))
                logger.warning("rate_limited", host=self.host.label, path=path, retry_in=delay)
                await asyncio.sleep(delay); continue
            if not 200 <= r.status_code <= 299:
                raise JobAPIError(r.status_code, _body(r), path)
            if not r.content:
                return None
            try:
                return r.json()
            except ValueError as e:
                raise JobAPIError(r.status_code, r.text, path) from e
        raise JobAPIError(429, "retries exhausted", path)

    async def scan(self, watch: WatchTarget) -> list[CachedRange]:
        data = await self._post("/api/scan", {"watch": watch.to_payload()})
        return [CachedRange.from_payload(rng) for rng in (data or [])]

    async def start_import(self, start: int, end: int, watch: WatchTarget) -> JobId:
        data = await self._post("/api/import", {
            "watch": watch.to_payload(),
            "importer": {"daterange": _daterange(start, end)},
            "candleWriter": {"enabled": True},
        })
        if not isinstance(data, dict) or "id" not in data:
            raise JobAPIError(200, data, "/api/import")
        return JobId(str(data["id"]))

    async def start_job(self, payload: Mapping[str, Any]) -> JobHandle:
        data = await self._post("/api/startGekko", payload)
        if not isinstance(data, dict) or "id" not in data:
            raise JobAPIError(200, data, "/api/startGekko")
        return JobHandle.from_payload(data)

    async def delete_job(self, job_id: JobId) -> None:
        await self._post("/api/deleteGekko", {"id": job_id})

    async def run_backtest(self, payload: Mapping[str, Any]) -> dict[str, Any]:
        return await self._post("/api/backtest", payload, timeout=self.backtest_timeout_s)

    async def get_candles(self, start: int, end: int, candle_size: int, watch: WatchTarget) -> list[dict[str, Any]]:
        data = await self._post("/api/getCandles", {
            "watch": watch.to_payload(),
            "daterange": _daterange(start, end),
            "candleSize": candle_size,
        })
        return list(data or [])

    def events(self) -> AsyncContextManager[EventStream]:
        return self.channel.open()

    async def aclose(self) -> None:
        await self.client.aclose()


def make_client_factory(
    *,
    timeout_s: float = 20.0,
    max_retries: int = 3,
    backtest_timeout_s: float | None = None,
) -> JobAPIFactory:
    def factory(host: HostSpec) -> JobAPI:
        return HttpxJobAPI(host, timeout_s=timeout_s, max_retries=max_retries,
                           backtest_timeout_s=backtest_timeout_s)
    return factory
