"""Sanity helpers for completed consensus HMM runs."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import polars as pl

SLEEP_STATES: tuple[str, ...] = ("State2", "State3")


def summarize_hmm_run(run_dir: Path) -> dict[str, Any]:
    """Read HMM run artifacts and return compact diagnostics summary."""

    if not run_dir.exists() or not run_dir.is_dir():
        raise FileNotFoundError(f"HMM run directory not found: {run_dir}")

    run_summary_path = run_dir / "run_summary.json"
    profile_path = run_dir / "viterbi_decoded_profile.parquet"
    time_spent_path = run_dir / "time_spent_in_each_state.parquet"
    failures_path = run_dir / "failed_cases.csv"
    for required in (run_summary_path, profile_path, time_spent_path, failures_path):
        if not required.exists():
            raise FileNotFoundError(f"{required.name} missing in {run_dir}")

    run_summary = json.loads(run_summary_path.read_text(encoding="utf-8"))
    profile_df = pl.read_parquet(profile_path)
    time_spent_df = pl.read_parquet(time_spent_path)
    failures_df = pl.read_csv(failures_path, schema_overrides={"ID": pl.String})

    error_stats: dict[str, float | None] = {"mean": None, "max": None}
    if profile_df.height > 0:
        error_stats = {
            "mean": float(profile_df.get_column("error_score").mean()),
            "max": float(profile_df.get_column("error_score").max()),
        }

    sleep_by_phase = (
        time_spent_df.filter(pl.col("state_name").is_in(list(SLEEP_STATES)))
        .group_by("phase")
        .agg(pl.col("time_spent").sum().alias("sleep_minutes"))
        .sort("phase")
        .to_dicts()
    )
    state_minutes = (
        time_spent_df.group_by("state_name")
        .agg(pl.col("time_spent").sum().alias("minutes"))
        .sort("state_name")
        .to_dicts()
    )

    return {
        "run_dir": str(run_dir),
        "run_summary": run_summary,
        "individual_days_processed": profile_df.select(["ID", "day"]).unique().height if profile_df.height > 0 else 0,
        "individual_days_failed": failures_df.height,
        "failed_cases": failures_df.to_dicts(),
        "error_score": error_stats,
        "minutes_by_state": state_minutes,
        "sleep_minutes_by_phase": sleep_by_phase,
    }
