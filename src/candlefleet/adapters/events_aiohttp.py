from __future__ import annotations
import asyncio, json
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

import aiohttp
import structlog

from ..domain.errors import SessionOpenError
from ..ports.jobs import EventStream

logger = structlog.get_logger(__name__)


async def _messages(ws: Any) -> EventStream:
    """Decoded JSON objects from a websocket; ends quietly when the socket closes or errors."""
    try:
        async for msg in ws:
            if msg.type == aiohttp.WSMsgType.TEXT:
                try:
                    data = json.loads(msg.data)
                except ValueError:
                    logger.debug("non_json_frame_skipped")
                    continue
                if isinstance(data, dict):
                    yield data
            elif msg.type == aiohttp.WSMsgType.ERROR:
                logger.warning("websocket_error", error=str(ws.exception()))
                return
    except aiohttp.ClientError as e:
        logger.warning("websocket_read_failed", error=str(e))


class AiohttpEventChannel:
    """Push-event connection to one host (`ws://host:port/`)."""

    def __init__(self, url: str, *, connect_timeout_s: float = 10.0, heartbeat_s: float | None = 30.0) -> None:
        self.url = url
        self.connect_timeout_s = connect_timeout_s
        self.heartbeat_s = heartbeat_s

    @asynccontextmanager
    async def open(self) -> AsyncIterator[EventStream]:
        session = aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=None, sock_connect=self.connect_timeout_s),
        )
        try:
            try:
                ws = await session.ws_connect(self.url, heartbeat=self.heartbeat_s, compress=0)
            except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
                raise SessionOpenError(f"failed to open {self.url}: {e}") from e
            try:
                yield _messages(ws)
            finally:
                await ws.close()
        finally:
            await session.close()
