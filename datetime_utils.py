from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional


UTC = timezone.utc


def utc_now() -> datetime:
    return datetime.now(UTC)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def to_iso(dt: Optional[datetime]) -> Optional[str]:
    """Serialize a datetime as ISO-8601 UTC with millisecond precision.

    ``2024-05-01T09:30:00.125Z`` is the shape the browser client writes with
    ``Date.prototype.toISOString``, so both sides can read each other's queue.
    """

    if dt is None:
        return None
    value = ensure_utc(dt)
    if value is None:
        return None
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def epoch_millis(dt: datetime) -> int:
    return int(ensure_utc(dt).timestamp() * 1000)


__all__ = [
    "UTC",
    "ensure_utc",
    "epoch_millis",
    "to_iso",
    "utc_now",
]
