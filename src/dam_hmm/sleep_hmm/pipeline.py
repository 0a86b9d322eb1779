"""Consensus HMM sleep-state pipeline: dispatch, merge, and artifact writing."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from uuid import uuid4

import polars as pl

from dam_hmm.config import AppSettings
from dam_hmm.sleep_hmm.dataset_loader import load_activity_table
from dam_hmm.sleep_hmm.orchestrator import run_parallel
from dam_hmm.sleep_hmm.quality import failures_to_frame
from dam_hmm.sleep_hmm.runner import HMMRunParams, run_serial
from dam_hmm.sleep_hmm.series import FailureRecord, IndividualResult
from dam_hmm.sleep_hmm.summaries import empty_profile, empty_time_spent, empty_transitions
from dam_hmm.sleep_hmm.writer import (
    write_csv_atomically,
    write_json_atomically,
    write_parquet_atomically,
)
from dam_hmm.utils.time_utils import compact_utc_stamp, now_utc

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class HMMConsensusResult:
    """Merged in-memory tables for one consensus HMM run."""

    profile: pl.DataFrame
    time_spent: pl.DataFrame
    transitions: pl.DataFrame
    failures: pl.DataFrame
    params: HMMRunParams
    summary: dict[str, Any]


@dataclass(frozen=True, slots=True)
class HMMRunResult:
    """Artifact outputs for one consensus HMM run."""

    run_id: str
    output_dir: Path
    run_summary_path: Path
    profile_path: Path
    time_spent_path: Path
    failures_path: Path


def _concat_or_empty(frames: list[pl.DataFrame], empty: pl.DataFrame) -> pl.DataFrame:
    non_empty = [frame for frame in frames if frame.height > 0]
    if not non_empty:
        return empty
    return pl.concat(non_empty, how="diagonal_relaxed")


def merge_individual_results(
    results: list[IndividualResult],
) -> tuple[pl.DataFrame, pl.DataFrame, pl.DataFrame, pl.DataFrame]:
    """Concatenate per-individual tables; row order carries no meaning."""

    failures: list[FailureRecord] = [record for result in results for record in result.failures]
    return (
        _concat_or_empty([result.profile for result in results], empty_profile()),
        _concat_or_empty([result.time_spent for result in results], empty_time_spent()),
        _concat_or_empty([result.transitions for result in results], empty_transitions()),
        failures_to_frame(failures),
    )


def run_hmm_consensus(
    frame: pl.DataFrame,
    params: HMMRunParams,
    *,
    serial: bool = False,
    logger: logging.Logger | None = None,
) -> HMMConsensusResult:
    """Run the consensus pipeline over a prepared activity frame."""

    effective_logger = logger or LOGGER
    started_ts = now_utc()
    if serial:
        results = run_serial(frame, params, logger=effective_logger)
    else:
        results = run_parallel(frame, params, logger=effective_logger)

    profile, time_spent, transitions, failures = merge_individual_results(results)
    finished_ts = now_utc()
    n_individuals = frame.get_column("id").n_unique() if frame.height > 0 else 0
    individual_days = frame.select(["id", "day"]).unique().height if frame.height > 0 else 0
    succeeded_days = profile.select(["ID", "day"]).unique().height if profile.height > 0 else 0
    summary = {
        "started_ts": started_ts.isoformat(),
        "finished_ts": finished_ts.isoformat(),
        "duration_sec": round((finished_ts - started_ts).total_seconds(), 3),
        "mode": "serial" if serial or params.worker_count == 1 or n_individuals <= 1 else "parallel",
        "individuals": n_individuals,
        "individual_days": individual_days,
        "individual_days_succeeded": succeeded_days,
        "individual_days_failed": failures.height,
        "profile_rows": profile.height,
        "mean_error_score": float(profile.get_column("error_score").mean()) if profile.height > 0 else None,
    }

    if failures.height > 0:
        effective_logger.warning(
            "hmm.pipeline excluded_individual_days count=%s cases=%s",
            failures.height,
            failures.to_dicts(),
        )
    effective_logger.info(
        "hmm.pipeline done individual_days=%s succeeded=%s failed=%s duration_sec=%s",
        individual_days,
        succeeded_days,
        failures.height,
        summary["duration_sec"],
    )
    return HMMConsensusResult(
        profile=profile,
        time_spent=time_spent,
        transitions=transitions,
        failures=failures,
        params=params,
        summary=summary,
    )


def run_hmm_pipeline(
    settings: AppSettings,
    *,
    dataset_path: Path,
    iterations: int | None = None,
    light_phase_hours: float | None = None,
    worker_count: int | None = None,
    random_seed: int | None = None,
    serial: bool = False,
    write_csv: bool = True,
    logger: logging.Logger | None = None,
) -> HMMRunResult:
    """Load a prepared activity table, run the consensus HMM, and write artifacts."""

    effective_logger = logger or LOGGER
    params = HMMRunParams.from_settings(
        settings,
        iterations=iterations,
        light_phase_hours=light_phase_hours,
        worker_count=worker_count,
        random_seed=random_seed,
        logger=effective_logger,
    )
    loaded = load_activity_table(dataset_path, columns=settings.input_columns, logger=effective_logger)
    result = run_hmm_consensus(loaded.frame, params, serial=serial, logger=effective_logger)

    run_id = f"hmm-{compact_utc_stamp()}-{uuid4().hex[:8]}"
    dataset_tag = dataset_path.stem.replace(" ", "_")
    output_dir = settings.paths.artifacts_root / "hmm_runs" / f"{run_id}_{dataset_tag}"
    output_dir.mkdir(parents=True, exist_ok=True)

    profile_path = output_dir / "viterbi_decoded_profile.parquet"
    time_spent_path = output_dir / "time_spent_in_each_state.parquet"
    transitions_path = output_dir / "state_transitions.csv"
    failures_path = output_dir / "failed_cases.csv"
    run_summary_path = output_dir / "run_summary.json"

    write_parquet_atomically(result.profile, profile_path, parquet=settings.parquet)
    write_parquet_atomically(result.time_spent, time_spent_path, parquet=settings.parquet)
    write_csv_atomically(result.transitions, transitions_path)
    write_csv_atomically(result.failures, failures_path)
    if write_csv:
        write_csv_atomically(result.profile, output_dir / "viterbi_decoded_profile.csv")
        write_csv_atomically(result.time_spent, output_dir / "time_spent_in_each_state.csv")

    run_summary = {
        "run_id": run_id,
        "dataset_path": str(dataset_path),
        "dataset_stats": loaded.stats,
        "params": params.as_dict(),
        **result.summary,
        "outputs": {
            "viterbi_decoded_profile": str(profile_path),
            "time_spent_in_each_state": str(time_spent_path),
            "state_transitions": str(transitions_path),
            "failed_cases": str(failures_path),
        },
    }
    write_json_atomically(run_summary, run_summary_path)
    effective_logger.info("hmm.pipeline artifacts_written run_id=%s output_dir=%s", run_id, output_dir)
    return HMMRunResult(
        run_id=run_id,
        output_dir=output_dir,
        run_summary_path=run_summary_path,
        profile_path=profile_path,
        time_spent_path=time_spent_path,
        failures_path=failures_path,
    )
