"""Per-individual-day activity series and result containers."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import numpy as np
import polars as pl

N_STATES = 4
STATE_NAMES: tuple[str, ...] = tuple(f"State{index}" for index in range(N_STATES))
PHASE_NAMES: tuple[str, ...] = ("light", "dark")


@dataclass(frozen=True, slots=True)
class ActivitySeries:
    """Normalized activity of one individual on one day, ordered by time."""

    individual_id: str
    day: int
    genotype: str
    time_offset_seconds: np.ndarray
    activity: np.ndarray
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.day < 1:
            raise ValueError(f"day must be >= 1, got {self.day} for id={self.individual_id}.")
        if self.time_offset_seconds.ndim != 1 or self.activity.ndim != 1:
            raise ValueError("time_offset_seconds and activity must be 1D arrays.")
        if self.time_offset_seconds.shape[0] != self.activity.shape[0]:
            raise ValueError("time_offset_seconds and activity must have equal length.")
        if self.activity.shape[0] == 0:
            raise ValueError(f"Empty activity series for id={self.individual_id} day={self.day}.")
        if not np.all(np.isfinite(self.activity)):
            raise ValueError(f"Non-finite activity for id={self.individual_id} day={self.day}.")
        if float(self.activity.min()) < 0.0 or float(self.activity.max()) > 100.0:
            raise ValueError(
                f"Normalized activity must lie in [0, 100] for id={self.individual_id} day={self.day}."
            )

    def __len__(self) -> int:
        return int(self.activity.shape[0])


@dataclass(frozen=True, slots=True)
class IterationResult:
    """Relabeled Viterbi path and derived tables for one successful iteration."""

    iteration: int
    state_names: np.ndarray
    phase: np.ndarray
    attempts: int
    time_in_states: pl.DataFrame
    transitions: pl.DataFrame


@dataclass(frozen=True, slots=True)
class FailureRecord:
    """One excluded individual-day and the reason it was excluded."""

    individual_id: str
    day: int
    reason: str


@dataclass(frozen=True, slots=True)
class DayResult:
    """Outcome of the full pipeline for one individual-day."""

    individual_id: str
    day: int
    profile: pl.DataFrame | None
    successful_iterations: int
    failure: FailureRecord | None

    @property
    def ok(self) -> bool:
        return self.failure is None and self.profile is not None


@dataclass(frozen=True, slots=True)
class IndividualResult:
    """Merged tables for every day of one individual (the worker return value)."""

    individual_id: str
    profile: pl.DataFrame
    time_spent: pl.DataFrame
    transitions: pl.DataFrame
    failures: list[FailureRecord]
    days_processed: int
