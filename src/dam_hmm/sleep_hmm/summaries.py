"""Time-in-state and transition tables derived from decoded state paths."""

from __future__ import annotations

import numpy as np
import polars as pl

from dam_hmm.sleep_hmm.series import PHASE_NAMES, STATE_NAMES

GROUP_KEYS: tuple[str, ...] = ("ID", "Genotype", "day")

PROFILE_SCHEMA: dict[str, pl.DataType] = {
    "ID": pl.String,
    "Genotype": pl.String,
    "day": pl.Int64,
    "timestamp": pl.Int64,
    "t": pl.Float64,
    "activity": pl.Float64,
    "phase": pl.String,
    "state_name": pl.String,
    "votes": pl.Int64,
    "error_score": pl.Float64,
}
TIME_SPENT_SCHEMA: dict[str, pl.DataType] = {
    "state_name": pl.String,
    "phase": pl.String,
    "ID": pl.String,
    "day": pl.Int64,
    "Genotype": pl.String,
    "time_spent": pl.Int64,
}
TRANSITION_SCHEMA: dict[str, pl.DataType] = {
    "ID": pl.String,
    "Genotype": pl.String,
    "day": pl.Int64,
    "from_state": pl.String,
    "to_state": pl.String,
    "transition_count": pl.Int64,
}


def empty_profile() -> pl.DataFrame:
    return pl.DataFrame(schema=PROFILE_SCHEMA)


def empty_time_spent() -> pl.DataFrame:
    return pl.DataFrame(schema=TIME_SPENT_SCHEMA)


def empty_transitions() -> pl.DataFrame:
    return pl.DataFrame(schema=TRANSITION_SCHEMA)


def time_in_states(state_names: np.ndarray, phase: np.ndarray) -> pl.DataFrame:
    """Minutes per observed (state_name, phase) pair for one decoded path."""

    return (
        pl.DataFrame(
            {
                "state_name": pl.Series(values=list(state_names), dtype=pl.String),
                "phase": pl.Series(values=list(phase), dtype=pl.String),
            }
        )
        .group_by(["state_name", "phase"])
        .len(name="time_spent")
        .with_columns(pl.col("time_spent").cast(pl.Int64))
        .sort(["state_name", "phase"])
    )


def transition_counts(state_names: np.ndarray) -> pl.DataFrame:
    """Counts of consecutive (from_state, to_state) pairs for one decoded path."""

    names = list(state_names)
    return (
        pl.DataFrame(
            {
                "from_state": pl.Series(values=names[:-1], dtype=pl.String),
                "to_state": pl.Series(values=names[1:], dtype=pl.String),
            }
        )
        .group_by(["from_state", "to_state"])
        .len(name="transition_count")
        .with_columns(pl.col("transition_count").cast(pl.Int64))
        .sort(["from_state", "to_state"])
    )


def _group_keys(profile: pl.DataFrame) -> pl.DataFrame:
    return profile.select(list(GROUP_KEYS)).unique(maintain_order=True)


def build_state_time_summary(profile: pl.DataFrame) -> pl.DataFrame:
    """Minutes per state and phase for each individual-day, zero-filled.

    Every (ID, Genotype, day) in ``profile`` gets all state x phase rows.
    """

    if profile.height == 0:
        return empty_time_spent()

    observed = profile.group_by([*GROUP_KEYS, "phase", "state_name"]).len(name="time_spent")
    grid = pl.DataFrame({"phase": list(PHASE_NAMES)}).join(
        pl.DataFrame({"state_name": list(STATE_NAMES)}),
        how="cross",
    )
    return (
        _group_keys(profile)
        .join(grid, how="cross")
        .join(observed, on=[*GROUP_KEYS, "phase", "state_name"], how="left")
        .with_columns(pl.col("time_spent").fill_null(0).cast(pl.Int64))
        .select(list(TIME_SPENT_SCHEMA))
        .cast(TIME_SPENT_SCHEMA)
        .sort(["ID", "day", "phase", "state_name"])
    )


def build_transition_summary(profile: pl.DataFrame) -> pl.DataFrame:
    """Consensus-path transition counts per individual-day, zero-filled over all state pairs."""

    if profile.height == 0:
        return empty_transitions()

    observed = (
        profile.sort([*GROUP_KEYS, "timestamp"])
        .with_columns(pl.col("state_name").shift(1).over(list(GROUP_KEYS)).alias("from_state"))
        .filter(pl.col("from_state").is_not_null())
        .rename({"state_name": "to_state"})
        .group_by([*GROUP_KEYS, "from_state", "to_state"])
        .len(name="transition_count")
    )
    grid = pl.DataFrame({"from_state": list(STATE_NAMES)}).join(
        pl.DataFrame({"to_state": list(STATE_NAMES)}),
        how="cross",
    )
    return (
        _group_keys(profile)
        .join(grid, how="cross")
        .join(observed, on=[*GROUP_KEYS, "from_state", "to_state"], how="left")
        .with_columns(pl.col("transition_count").fill_null(0).cast(pl.Int64))
        .select(list(TRANSITION_SCHEMA))
        .cast(TRANSITION_SCHEMA)
        .sort(["ID", "day", "from_state", "to_state"])
    )
