"""Shared utility helpers."""

from dam_hmm.utils.time_utils import (
    SECONDS_PER_DAY,
    SECONDS_PER_HOUR,
    compact_utc_stamp,
    hours_to_seconds,
    now_utc,
)

__all__ = [
    "SECONDS_PER_DAY",
    "SECONDS_PER_HOUR",
    "compact_utc_stamp",
    "hours_to_seconds",
    "now_utc",
]
