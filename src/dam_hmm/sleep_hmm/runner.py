"""Per-individual-day and per-individual consensus HMM processing."""

from __future__ import annotations

import hashlib
import logging
import math
from dataclasses import asdict, dataclass
from numbers import Real
from typing import Any

import numpy as np
import polars as pl

from dam_hmm.config import AppSettings
from dam_hmm.sleep_hmm.consensus import FitterFn, collect_iterations, resolve_consensus
from dam_hmm.sleep_hmm.dataset_loader import iter_activity_series
from dam_hmm.sleep_hmm.hmm_model import HMMFitOptions, fit_constrained_hmm
from dam_hmm.sleep_hmm.quality import check_no_solution, check_single_state_dominance
from dam_hmm.sleep_hmm.series import ActivitySeries, DayResult, FailureRecord, IndividualResult
from dam_hmm.sleep_hmm.summaries import (
    build_state_time_summary,
    build_transition_summary,
    empty_profile,
)

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class HMMRunParams:
    """Resolved, validated parameters shared by every worker."""

    iterations: int
    light_phase_hours: float
    worker_count: int
    base_seed: int
    max_inner_attempts: int
    fit_options: HMMFitOptions
    full_day_points: int = 1440
    max_single_state_share: float = 0.99
    start_method: str = "spawn"

    @classmethod
    def from_settings(
        cls,
        settings: AppSettings,
        *,
        iterations: Any = None,
        light_phase_hours: float | None = None,
        worker_count: Any = None,
        random_seed: int | None = None,
        logger: logging.Logger | None = None,
    ) -> "HMMRunParams":
        """Merge explicit overrides with settings and validate them."""

        hours = settings.phase.light_phase_hours if light_phase_hours is None else float(light_phase_hours)
        if not 0.0 < hours <= 24.0:
            raise ValueError("light_phase_hours must be in (0, 24].")
        seed = random_seed if random_seed is not None else settings.hmm.random_seed
        if seed is None:
            seed = int(np.random.SeedSequence().entropy)
        elif seed < 0:
            raise ValueError("random_seed must be >= 0.")
        return cls(
            iterations=resolve_iterations(
                settings.hmm.iterations_default if iterations is None else iterations,
                minimum=settings.hmm.min_iterations,
                logger=logger,
            ),
            light_phase_hours=hours,
            worker_count=resolve_worker_count(
                settings.parallel.worker_count if worker_count is None else worker_count
            ),
            base_seed=int(seed),
            max_inner_attempts=settings.hmm.max_inner_attempts,
            fit_options=HMMFitOptions.from_config(settings.hmm),
            full_day_points=settings.quality.full_day_points,
            max_single_state_share=settings.quality.max_single_state_share,
            start_method=settings.parallel.start_method,
        )

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


def resolve_iterations(value: Any, *, minimum: int = 100, logger: logging.Logger | None = None) -> int:
    """Validate the iteration count and clamp it up to ``minimum``."""

    effective_logger = logger or LOGGER
    if isinstance(value, bool) or not isinstance(value, Real):
        raise ValueError(f"iterations must be a single integer, got {value!r}.")
    if not math.isfinite(float(value)) or float(value) != int(value):
        raise ValueError(f"iterations must be a single integer, got {value!r}.")
    resolved = int(value)
    if resolved < minimum:
        effective_logger.warning(
            "hmm.params iterations_clamped requested=%s minimum=%s using=%s",
            resolved,
            minimum,
            minimum,
        )
        resolved = minimum
    return resolved


def resolve_worker_count(value: Any) -> int:
    """Validate the worker count as a positive integer."""

    if isinstance(value, bool) or not isinstance(value, Real):
        raise ValueError(f"worker_count must be a positive integer, got {value!r}.")
    if not math.isfinite(float(value)) or float(value) != int(value) or int(value) < 1:
        raise ValueError(f"worker_count must be a positive integer, got {value!r}.")
    return int(value)


def seed_for_individual_day(base_seed: int, individual_id: str, day: int) -> np.random.SeedSequence:
    """Seed sequence that depends only on (base_seed, individual_id, day)."""

    digest = hashlib.sha256(str(individual_id).encode("utf-8")).digest()
    id_words = [int.from_bytes(digest[offset : offset + 4], "little") for offset in range(0, 16, 4)]
    return np.random.SeedSequence([int(base_seed), *id_words, int(day)])


def process_individual_day(
    series: ActivitySeries,
    params: HMMRunParams,
    *,
    fitter: FitterFn = fit_constrained_hmm,
    logger: logging.Logger | None = None,
) -> DayResult:
    """Fit, vote, and quality-check one individual-day; never raises."""

    effective_logger = logger or LOGGER
    try:
        rng = np.random.default_rng(seed_for_individual_day(params.base_seed, series.individual_id, series.day))
        results = collect_iterations(
            series,
            iterations=params.iterations,
            rng=rng,
            max_inner_attempts=params.max_inner_attempts,
            fit_options=params.fit_options,
            light_phase_hours=params.light_phase_hours,
            fitter=fitter,
            logger=effective_logger,
        )
        failure = check_no_solution(
            series,
            successful_iterations=len(results),
            iterations=params.iterations,
        )
        if failure is not None:
            effective_logger.warning(
                "hmm.quality no_valid_solution id=%s day=%s iterations=%s",
                series.individual_id,
                series.day,
                params.iterations,
            )
            return DayResult(series.individual_id, series.day, None, 0, failure)

        profile = resolve_consensus(series, results)
        failure = check_single_state_dominance(
            series,
            profile,
            full_day_points=params.full_day_points,
            max_single_state_share=params.max_single_state_share,
            logger=effective_logger,
        )
        if failure is not None:
            return DayResult(series.individual_id, series.day, None, len(results), failure)
    except Exception as exc:
        effective_logger.exception(
            "hmm.runner day_failed id=%s day=%s",
            series.individual_id,
            series.day,
        )
        return DayResult(
            series.individual_id,
            series.day,
            None,
            0,
            FailureRecord(individual_id=series.individual_id, day=series.day, reason=str(exc)),
        )

    effective_logger.info(
        "hmm.runner day_done id=%s day=%s valid_iterations=%s/%s mean_error_score=%.2f",
        series.individual_id,
        series.day,
        len(results),
        params.iterations,
        float(profile.get_column("error_score").mean()),
    )
    return DayResult(series.individual_id, series.day, profile, len(results), None)


def worker_failure_records(frame: pl.DataFrame, reason: str) -> list[FailureRecord]:
    """One failure record per day of an individual whose whole workload failed."""

    keys = frame.select(["id", "day"]).unique().sort(["id", "day"]).iter_rows()
    return [FailureRecord(individual_id=str(ind), day=int(day), reason=reason) for ind, day in keys]


def process_individual(
    frame: pl.DataFrame,
    params: HMMRunParams,
    *,
    fitter: FitterFn = fit_constrained_hmm,
    logger: logging.Logger | None = None,
) -> IndividualResult:
    """Run every day of one individual and build its result tables."""

    effective_logger = logger or LOGGER
    ids = frame.get_column("id").unique().to_list()
    if len(ids) != 1:
        raise ValueError(f"process_individual expects exactly one individual, got {len(ids)}.")

    day_results = [
        process_individual_day(series, params, fitter=fitter, logger=effective_logger)
        for series in iter_activity_series(frame)
    ]
    profiles = [result.profile for result in day_results if result.ok and result.profile is not None]
    profile = pl.concat(profiles, how="diagonal_relaxed") if profiles else empty_profile()
    return IndividualResult(
        individual_id=str(ids[0]),
        profile=profile,
        time_spent=build_state_time_summary(profile),
        transitions=build_transition_summary(profile),
        failures=[result.failure for result in day_results if result.failure is not None],
        days_processed=len(day_results),
    )


def run_serial(
    frame: pl.DataFrame,
    params: HMMRunParams,
    *,
    fitter: FitterFn = fit_constrained_hmm,
    logger: logging.Logger | None = None,
) -> list[IndividualResult]:
    """Process individuals one after another in the current process."""

    effective_logger = logger or LOGGER
    groups = frame.partition_by("id", maintain_order=True)
    results: list[IndividualResult] = []
    for index, group in enumerate(groups, start=1):
        individual_id = str(group["id"][0])
        try:
            results.append(process_individual(group, params, fitter=fitter, logger=effective_logger))
        except Exception as exc:
            effective_logger.exception("hmm.serial individual_failed id=%s", individual_id)
            results.append(failed_individual(individual_id, group, f"Worker failed: {exc}"))
        effective_logger.info("hmm.serial progress completed=%s/%s id=%s", index, len(groups), individual_id)
    return results


def failed_individual(individual_id: str, frame: pl.DataFrame, reason: str) -> IndividualResult:
    """Empty result carrying a failure record for each day of the individual."""

    profile = empty_profile()
    return IndividualResult(
        individual_id=individual_id,
        profile=profile,
        time_spent=build_state_time_summary(profile),
        transitions=build_transition_summary(profile),
        failures=worker_failure_records(frame, reason),
        days_processed=0,
    )
