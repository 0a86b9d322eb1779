"""Clock and time-of-day helpers."""

from __future__ import annotations

from datetime import datetime, timezone

SECONDS_PER_HOUR = 3_600
SECONDS_PER_DAY = 86_400


def now_utc() -> datetime:
    """Return current timezone-aware UTC timestamp."""

    return datetime.now(timezone.utc)


def compact_utc_stamp(ts: datetime | None = None) -> str:
    """UTC timestamp formatted for directory names, e.g. ``20240131T235959Z``."""

    return (ts or now_utc()).astimezone(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


def hours_to_seconds(hours: float) -> float:
    return float(hours) * SECONDS_PER_HOUR
