"""
Shared test fixtures for the consensus HMM pipeline.
Provides synthetic activity series, frames, and fast settings.
"""

from __future__ import annotations

from typing import Any, Callable

import numpy as np
import polars as pl
import pytest

from dam_hmm.config import AppSettings, HMMConfig, ParallelConfig, PathsConfig
from dam_hmm.sleep_hmm.hmm_model import FittedModel
from dam_hmm.sleep_hmm.series import ActivitySeries

FOUR_LEVELS: tuple[tuple[float, float], ...] = ((50.0, 5.0), (15.0, 2.0), (4.0, 0.5), (0.0, 0.0))


def pytest_configure(config):
    config.addinivalue_line("markers", "slow: fits real HMMs with hmmlearn")
    config.addinivalue_line("markers", "integration: runs the full pipeline end to end")


def four_level_activity(n_points: int, *, block: int = 30, seed: int = 0) -> np.ndarray:
    """Blocks cycling through four well separated activity levels."""

    rng = np.random.default_rng(seed)
    values = np.empty(n_points, dtype=np.float64)
    for start in range(0, n_points, block):
        mean, sd = FOUR_LEVELS[(start // block) % len(FOUR_LEVELS)]
        stop = min(start + block, n_points)
        values[start:stop] = mean + rng.normal(0.0, sd, size=stop - start) if sd > 0 else mean
    return np.clip(values, 0.0, 100.0)


def make_series(
    activity: np.ndarray,
    *,
    individual_id: str = "fly-1",
    day: int = 1,
    genotype: str = "wt",
    metadata: dict[str, Any] | None = None,
) -> ActivitySeries:
    n_points = activity.shape[0]
    offset = (day - 1) * 86_400.0
    return ActivitySeries(
        individual_id=individual_id,
        day=day,
        genotype=genotype,
        time_offset_seconds=offset + np.arange(n_points, dtype=np.float64) * 60.0,
        activity=np.asarray(activity, dtype=np.float64),
        metadata=metadata or {},
    )


def make_activity_frame(
    individuals: dict[str, np.ndarray | list[np.ndarray]],
    *,
    genotype: str = "wt",
) -> pl.DataFrame:
    """Canonical activity frame; each value is one day's series or a list of days."""

    frames: list[pl.DataFrame] = []
    for individual_id, days in individuals.items():
        day_values = days if isinstance(days, list) else [days]
        for day_index, activity in enumerate(day_values, start=1):
            n_points = activity.shape[0]
            frames.append(
                pl.DataFrame(
                    {
                        "id": [individual_id] * n_points,
                        "day": [day_index] * n_points,
                        "t": (day_index - 1) * 86_400.0 + np.arange(n_points, dtype=np.float64) * 60.0,
                        "normact": activity.astype(np.float64),
                        "genotype": [genotype] * n_points,
                        "replicate": [1] * n_points,
                    }
                )
            )
    return pl.concat(frames)


def fitted_from_states(states: np.ndarray | list[int], random_state: int = 0) -> FittedModel:
    path = np.asarray(states, dtype=np.int16)
    return FittedModel(
        states=path,
        means=np.zeros(4),
        variances=np.ones(4),
        transmat=np.full((4, 4), 0.25),
        log_likelihood=0.0,
        converged=True,
        n_iter_used=1,
        random_state=random_state,
    )


class ScriptedFitter:
    """Fitter stand-in that replays a script of paths (``None`` = failed attempt)."""

    def __init__(self, script: list[np.ndarray | list[int] | None], *, repeat_last: bool = True) -> None:
        self.script = script
        self.repeat_last = repeat_last
        self.calls: list[int] = []

    def __call__(self, activity: np.ndarray, *, random_state: int, **_: Any) -> FittedModel | None:
        self.calls.append(random_state)
        index = len(self.calls) - 1
        if index >= len(self.script):
            if not self.repeat_last:
                raise AssertionError("ScriptedFitter ran out of script entries.")
            index = len(self.script) - 1
        entry = self.script[index]
        return None if entry is None else fitted_from_states(entry, random_state)


def seeded_block_fitter(block: int = 10) -> Callable[..., FittedModel | None]:
    """Deterministic fitter whose path depends only on the activity and random_state."""

    def fitter(activity: np.ndarray, *, random_state: int, **_: Any) -> FittedModel | None:
        rng = np.random.default_rng(random_state)
        n_points = activity.shape[0]
        states = (np.arange(n_points) // block) % 4
        flips = rng.random(n_points) < 0.1
        states = np.where(flips, rng.integers(0, 4, size=n_points), states)
        return fitted_from_states(states, random_state)

    return fitter


@pytest.fixture
def fast_settings(tmp_path) -> AppSettings:
    """Settings with small iteration and retry budgets for quick real fits."""

    return AppSettings(
        paths=PathsConfig(artifacts_root=tmp_path / "artifacts", logs_root=tmp_path / "logs"),
        hmm=HMMConfig(
            em_max_iter=30,
            max_inner_attempts=20,
            min_iterations=5,
            iterations_default=5,
            random_seed=1234,
        ),
        parallel=ParallelConfig(worker_count=2, start_method="spawn"),
    )


@pytest.fixture
def four_level_series() -> ActivitySeries:
    return make_series(four_level_activity(240, seed=11))
