"""Repeated constrained-HMM fitting and per-timepoint majority-vote consensus."""

from __future__ import annotations

import logging
from enum import StrEnum
from typing import Callable

import numpy as np
import polars as pl

from dam_hmm.sleep_hmm.hmm_model import FittedModel, HMMFitOptions, fit_constrained_hmm
from dam_hmm.sleep_hmm.series import N_STATES, STATE_NAMES, ActivitySeries, IterationResult
from dam_hmm.sleep_hmm.state_order import assign_phase, relabel_path
from dam_hmm.sleep_hmm.summaries import PROFILE_SCHEMA, time_in_states, transition_counts

LOGGER = logging.getLogger(__name__)

FitterFn = Callable[..., FittedModel | None]

_MAX_RANDOM_STATE = 2**31 - 1


class AttemptState(StrEnum):
    """Inner retry-loop states for one consensus iteration."""

    ATTEMPTING = "attempting"
    VALID = "valid"
    EXHAUSTED = "exhausted"


def draw_random_state(rng: np.random.Generator) -> int:
    """Draw a fitting seed from the injected generator."""

    return int(rng.integers(0, _MAX_RANDOM_STATE))


def _log_iteration(series: ActivitySeries, result: IterationResult, logger: logging.Logger) -> None:
    if not logger.isEnabledFor(logging.DEBUG):
        return
    occupancy = result.time_in_states.group_by("state_name").agg(pl.col("time_spent").sum()).sort("state_name")
    switches = result.transitions.filter(pl.col("from_state") != pl.col("to_state"))
    logger.debug(
        "hmm.consensus iteration_valid id=%s day=%s iteration=%s attempts=%s occupancy=%s switches=%s",
        series.individual_id,
        series.day,
        result.iteration,
        result.attempts,
        dict(occupancy.iter_rows()),
        int(switches.get_column("transition_count").sum()),
    )


def run_inner_loop(
    series: ActivitySeries,
    *,
    iteration: int,
    rng: np.random.Generator,
    max_inner_attempts: int,
    fit_options: HMMFitOptions,
    light_phase_hours: float = 12.0,
    fitter: FitterFn = fit_constrained_hmm,
    logger: logging.Logger | None = None,
) -> tuple[AttemptState, IterationResult | None]:
    """Fit until the decoded path occupies exactly ``n_states`` canonical states.

    Every attempt gets a fresh seed from ``rng``. After ``max_inner_attempts``
    failed attempts the loop ends in ``EXHAUSTED`` and yields no result.
    """

    effective_logger = logger or LOGGER
    if max_inner_attempts < 1:
        raise ValueError("max_inner_attempts must be >= 1.")

    phase = assign_phase(series.time_offset_seconds, light_phase_hours)
    fit_kwargs = fit_options.as_kwargs()
    state = AttemptState.ATTEMPTING
    attempts = 0
    while state is AttemptState.ATTEMPTING:
        attempts += 1
        fitted = fitter(series.activity, random_state=draw_random_state(rng), **fit_kwargs)
        if fitted is not None:
            names = relabel_path(fitted.states, series.activity)
            if np.unique(names).shape[0] == fit_options.n_states:
                result = IterationResult(
                    iteration=iteration,
                    state_names=names,
                    phase=phase,
                    attempts=attempts,
                    time_in_states=time_in_states(names, phase),
                    transitions=transition_counts(names),
                )
                _log_iteration(series, result, effective_logger)
                return AttemptState.VALID, result
        if attempts >= max_inner_attempts:
            state = AttemptState.EXHAUSTED

    effective_logger.warning(
        "hmm.consensus inner_attempts_exhausted id=%s day=%s iteration=%s max_inner_attempts=%s",
        series.individual_id,
        series.day,
        iteration,
        max_inner_attempts,
    )
    return state, None


def collect_iterations(
    series: ActivitySeries,
    *,
    iterations: int,
    rng: np.random.Generator,
    max_inner_attempts: int,
    fit_options: HMMFitOptions,
    light_phase_hours: float = 12.0,
    fitter: FitterFn = fit_constrained_hmm,
    logger: logging.Logger | None = None,
) -> list[IterationResult]:
    """Run the inner loop ``iterations`` times and keep every valid path."""

    effective_logger = logger or LOGGER
    results: list[IterationResult] = []
    for iteration in range(1, iterations + 1):
        state, result = run_inner_loop(
            series,
            iteration=iteration,
            rng=rng,
            max_inner_attempts=max_inner_attempts,
            fit_options=fit_options,
            light_phase_hours=light_phase_hours,
            fitter=fitter,
            logger=effective_logger,
        )
        if state is AttemptState.VALID and result is not None:
            results.append(result)

    effective_logger.debug(
        "hmm.consensus collected id=%s day=%s valid=%s requested=%s total_attempts=%s",
        series.individual_id,
        series.day,
        len(results),
        iterations,
        sum(result.attempts for result in results),
    )
    return results


def count_votes(results: list[IterationResult], n_points: int) -> np.ndarray:
    """Vote matrix of shape (n_points, n_states) in canonical state order."""

    votes = np.zeros((n_points, N_STATES), dtype=np.int64)
    for result in results:
        if result.state_names.shape[0] != n_points:
            raise ValueError(
                f"Iteration {result.iteration} path length {result.state_names.shape[0]} != {n_points}."
            )
        for index, name in enumerate(STATE_NAMES):
            votes[:, index] += result.state_names == name
    return votes


def resolve_consensus(series: ActivitySeries, results: list[IterationResult]) -> pl.DataFrame:
    """Majority-vote state per timepoint with its disagreement percentage.

    Ties go to the lexicographically smallest state name. ``error_score`` is the
    share of successful iterations that disagree with the winner, in percent.
    """

    if not results:
        raise ValueError(
            f"No successful iterations to resolve for id={series.individual_id} day={series.day}."
        )

    n_points = len(series)
    votes = count_votes(results, n_points)
    winner = np.argmax(votes, axis=1)
    winner_votes = votes[np.arange(n_points), winner]
    error_score = (1.0 - winner_votes / len(results)) * 100.0

    profile = pl.DataFrame(
        {
            "ID": [series.individual_id] * n_points,
            "Genotype": [series.genotype] * n_points,
            "day": [series.day] * n_points,
            "timestamp": np.arange(1, n_points + 1, dtype=np.int64),
            "t": series.time_offset_seconds.astype(np.float64, copy=False),
            "activity": series.activity.astype(np.float64, copy=False),
            "phase": list(results[0].phase),
            "state_name": [STATE_NAMES[index] for index in winner],
            "votes": winner_votes,
            "error_score": error_score,
        },
        schema=PROFILE_SCHEMA,
    )
    passthrough = [
        pl.lit(value).alias(name)
        for name, value in series.metadata.items()
        if name not in profile.columns
    ]
    if passthrough:
        profile = profile.with_columns(passthrough)
    return profile
