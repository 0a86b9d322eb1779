"""Exclusion rules for consensus profiles and the failure table."""

from __future__ import annotations

import logging

import polars as pl

from dam_hmm.sleep_hmm.series import ActivitySeries, FailureRecord

LOGGER = logging.getLogger(__name__)

FAILURE_SCHEMA: dict[str, pl.DataType] = {
    "ID": pl.String,
    "Day": pl.Int64,
    "ErrorMessage": pl.String,
}


def check_no_solution(
    series: ActivitySeries,
    *,
    successful_iterations: int,
    iterations: int,
) -> FailureRecord | None:
    """Rule A: no iteration produced a valid 4-state fit."""

    if successful_iterations > 0:
        return None
    return FailureRecord(
        individual_id=series.individual_id,
        day=series.day,
        reason=f"No valid solution found after {iterations} iterations.",
    )


def check_single_state_dominance(
    series: ActivitySeries,
    profile: pl.DataFrame,
    *,
    full_day_points: int = 1440,
    max_single_state_share: float = 0.99,
    logger: logging.Logger | None = None,
) -> FailureRecord | None:
    """Rule B: a full-day consensus where one state holds more than the allowed share."""

    effective_logger = logger or LOGGER
    total_points = profile.height
    if total_points != full_day_points:
        return None

    largest = int(profile.group_by("state_name").len(name="n").select(pl.col("n").max()).item())
    if largest <= max_single_state_share * total_points:
        return None

    effective_logger.warning(
        "hmm.quality single_state_dominance id=%s day=%s largest_state_points=%s total_points=%s",
        series.individual_id,
        series.day,
        largest,
        total_points,
    )
    return FailureRecord(
        individual_id=series.individual_id,
        day=series.day,
        reason=(
            f"Excluded: >{max_single_state_share * 100:g}% of {full_day_points} minutes in one state"
        ),
    )


def failures_to_frame(records: list[FailureRecord]) -> pl.DataFrame:
    """Failure table with ``ID, Day, ErrorMessage`` columns."""

    if not records:
        return pl.DataFrame(schema=FAILURE_SCHEMA)
    return pl.DataFrame(
        {
            "ID": [record.individual_id for record in records],
            "Day": [record.day for record in records],
            "ErrorMessage": [record.reason for record in records],
        },
        schema=FAILURE_SCHEMA,
    ).sort(["ID", "Day"])
