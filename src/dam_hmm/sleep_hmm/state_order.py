"""Activity-ranked relabeling of raw HMM states and light/dark phase labels."""

from __future__ import annotations

import numpy as np

from dam_hmm.utils.time_utils import SECONDS_PER_DAY, hours_to_seconds


def order_states(states: np.ndarray, activity: np.ndarray) -> dict[int, str]:
    """Map occupied raw state indices to canonical names by median activity.

    ``State0`` is the state with the highest median activity. Equal medians keep
    ascending raw-index order. Unoccupied raw states get no name.
    """

    raw = np.asarray(states)
    values = np.asarray(activity, dtype=np.float64)
    if raw.shape != values.shape:
        raise ValueError("states and activity must have the same shape.")

    occupied = np.unique(raw)
    medians = np.array([float(np.median(values[raw == state])) for state in occupied])
    ranked = occupied[np.argsort(-medians, kind="stable")]
    return {int(state): f"State{rank}" for rank, state in enumerate(ranked)}


def relabel_path(states: np.ndarray, activity: np.ndarray) -> np.ndarray:
    """Return the canonical state name for every timepoint."""

    mapping = order_states(states, activity)
    return np.array([mapping[int(state)] for state in np.asarray(states)], dtype=object)


def assign_phase(time_offset_seconds: np.ndarray, light_phase_hours: float = 12.0) -> np.ndarray:
    """Label each timepoint ``light`` or ``dark`` from its time of day."""

    if not 0.0 < light_phase_hours <= 24.0:
        raise ValueError("light_phase_hours must be in (0, 24].")
    time_of_day = np.mod(np.asarray(time_offset_seconds, dtype=np.float64), SECONDS_PER_DAY)
    return np.where(time_of_day < hours_to_seconds(light_phase_hours), "light", "dark").astype(object)
