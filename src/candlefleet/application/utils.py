from datetime import datetime, timezone

from ..domain.value_types import Epoch

ONE_DAY_S = 86_400


def to_epoch(value: int | str | datetime) -> Epoch:
    """Accepts epoch seconds, digit strings, ISO-8601 strings (Z or offset) and datetimes; naive means UTC."""
    if isinstance(value, bool):
        raise TypeError("bool is not a timestamp")
    if isinstance(value, int):
        return Epoch(value)
    if isinstance(value, str):
        s = value.strip()
        if s.lstrip("-").isdigit():
            return Epoch(int(s))
        value = datetime.fromisoformat(s.replace("Z", "+00:00"))
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return Epoch(int(value.timestamp()))


def format_epoch(ts: int) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
