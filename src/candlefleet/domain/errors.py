"""Exception hierarchy.

Every error raised by candlefleet inherits from CandleFleetError so that the
CLI (the only place errors are converted for display) can catch them in one go.
"""
from __future__ import annotations

from typing import Any, Mapping


class CandleFleetError(Exception):
    """Base exception for all candlefleet errors."""


# ---------- analyzer input ---------------------------------------------------

class InvalidIntervalError(CandleFleetError, ValueError):
    """Interval with lower > upper, or outside the epoch domain."""


class InvalidBoundError(CandleFleetError, ValueError):
    """Query bound with from > to."""


# ---------- scheduling contract ----------------------------------------------

class PoolConfigurationError(CandleFleetError):
    """Host list is empty, has negative thread counts, or no threads at all."""


class TokenReleaseError(CandleFleetError):
    """Token released to a pool that does not own it, or released twice."""


class InvalidJobConfigError(CandleFleetError, ValueError):
    """Job configuration is missing a required field or is inconsistent."""


# ---------- transport / session ----------------------------------------------

class TransportError(CandleFleetError):
    """Request/response call to a host failed before a usable answer arrived."""


class JobAPIError(TransportError):
    """Host answered with a non-2xx status."""

    def __init__(self, status_code: int, body: Any, path: str = "") -> None:
        self.status_code = status_code
        self.body = body
        self.path = path
        super().__init__(f"{path or 'request'} failed with HTTP {status_code}: {body!r}")


class SessionError(TransportError):
    """Push-event connection failure."""


class SessionOpenError(SessionError):
    """The push-event connection could not be opened."""

    def __init__(self, message: str = "failed to open event connection") -> None:
        super().__init__(message)


class SessionClosedEarlyError(SessionError):
    """The push-event connection closed before a terminal event arrived."""

    def __init__(self, job_id: str | None = None) -> None:
        self.job_id = job_id
        super().__init__(f"event connection closed early (job_id={job_id})")


# ---------- remote job -------------------------------------------------------

class RemoteJobError(CandleFleetError):
    """The host reported an explicit error event for a job."""

    def __init__(self, payload: Mapping[str, Any]) -> None:
        self.payload = dict(payload)
        super().__init__(f"remote job failed: {self.payload.get('type', 'error')} {self.payload!r}")
