"""
Push-event sessions as single awaitables.

The event connection is opened before the remote job is started so no event
for the new id can be missed; messages for other ids on the same connection
are ignored. A session ends on a terminal event for our id, or fails when the
connection cannot be opened or closes first.
"""
from __future__ import annotations
from typing import Any, Awaitable, Callable, Mapping

import structlog

from ..domain.errors import RemoteJobError, SessionClosedEarlyError, SessionError, SessionOpenError
from ..domain.models import WatchTarget
from ..domain.value_types import JobId
from ..ports.jobs import JobAPI

logger = structlog.get_logger(__name__)

UpdateFn = Callable[[dict[str, Any]], None]


def _import_terminal(msg: Mapping[str, Any]) -> bool:
    if msg.get("type") == "import_update":
        return bool((msg.get("updates") or {}).get("done"))
    if msg.get("type") == "import_error":
        raise RemoteJobError(msg)
    return False


def _job_terminal(msg: Mapping[str, Any]) -> bool:
    if msg.get("type") == "job_stopped":
        return True
    if msg.get("type") == "job_error":
        raise RemoteJobError(msg)
    return False


async def _run_session(
    api: JobAPI,
    *,
    start: Callable[[], Awaitable[tuple[JobId, dict[str, Any] | None]]],
    id_field: str,
    is_terminal: Callable[[Mapping[str, Any]], bool],
    on_update: UpdateFn | None = None,
) -> dict[str, Any]:
    opened = False
    job_id: JobId | None = None
    try:
        async with api.events() as stream:
            opened = True
            job_id, immediate = await start()
            if immediate is not None:
                return immediate
            async for msg in stream:
                if str(msg.get(id_field)) != str(job_id):
                    continue
                if on_update is not None:
                    on_update(msg)
                if is_terminal(msg):
                    return dict(msg)
    except (SessionError, RemoteJobError):
        raise
    except Exception as e:
        if not opened:
            raise SessionOpenError(f"failed to open event connection: {e}") from e
        raise
    logger.warning("session_closed_early", id_field=id_field, job_id=job_id)
    raise SessionClosedEarlyError(job_id)


async def await_import(
    api: JobAPI,
    start: int,
    end: int,
    watch: WatchTarget,
    on_update: UpdateFn | None = None,
) -> dict[str, Any]:
    """Start an import and return its final `import_update` event once done."""
    async def _start() -> tuple[JobId, dict[str, Any] | None]:
        return await api.start_import(start, end, watch), None

    msg = await _run_session(api, start=_start, id_field="import_id",
                             is_terminal=_import_terminal, on_update=on_update)
    logger.debug("import_done", watch=str(watch), start=start, end=end)
    return msg


async def await_job(
    api: JobAPI,
    payload: Mapping[str, Any],
    on_update: UpdateFn | None = None,
) -> dict[str, Any]:
    """Start a live job and return its terminal `job_stopped` event."""
    async def _start() -> tuple[JobId, dict[str, Any] | None]:
        handle = await api.start_job(payload)
        if handle.errored:
            raise RemoteJobError({"type": "job_error", "id": handle.id, "reason": "errored on start"})
        if handle.stopped:
            return handle.id, {"type": "job_stopped", "id": handle.id}
        return handle.id, None

    return await _run_session(api, start=_start, id_field="id",
                              is_terminal=_job_terminal, on_update=on_update)
