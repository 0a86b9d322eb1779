"""Constrained 4-state Gaussian HMM construction and single-attempt fitting."""

from __future__ import annotations

import importlib.util
import logging
from dataclasses import dataclass
from typing import Any

import numpy as np

from dam_hmm.sleep_hmm.series import N_STATES

LOGGER = logging.getLogger(__name__)

# Weight of the random hard split in the starting soft classification.
_HARD_START_WEIGHT = 0.8


@dataclass(frozen=True, slots=True)
class FittedModel:
    """Parameters and Viterbi path from one successful fitting attempt."""

    states: np.ndarray
    means: np.ndarray
    variances: np.ndarray
    transmat: np.ndarray
    log_likelihood: float
    converged: bool | None
    n_iter_used: int | None
    random_state: int


def _require_hmmlearn() -> None:
    if importlib.util.find_spec("hmmlearn") is None:
        raise RuntimeError(
            "hmmlearn is required for HMM fitting. Install with: pip install hmmlearn"
        )


def floor_zero_activity(
    activity: np.ndarray,
    *,
    max_floor: float = 1e-3,
    floor_fraction: float = 0.01,
) -> np.ndarray:
    """Replace non-positive activity with a tiny positive value.

    The replacement is ``min(max_floor, floor_fraction * smallest_positive)``;
    a series without any positive value is floored to ``max_floor``.
    """

    values = np.asarray(activity, dtype=np.float64)
    positive = values[values > 0.0]
    if positive.size == 0:
        replacement = float(max_floor)
    else:
        replacement = min(float(max_floor), float(positive.min()) * float(floor_fraction))
    return np.where(values > 0.0, values, replacement)


def build_transition_matrix(n_states: int = N_STATES, epsilon: float = 1e-5) -> np.ndarray:
    """Build the structured starting transition matrix.

    The first and last states leak ``epsilon`` to the opposite extreme state and
    spread the remaining mass evenly; interior states start uniform. Rows sum to 1.
    """

    if n_states < 2:
        raise ValueError("n_states must be >= 2.")
    if not 0.0 < epsilon < 1.0 / n_states:
        raise ValueError(f"epsilon must be in (0, 1/{n_states}).")

    matrix = np.full((n_states, n_states), 1.0 / n_states, dtype=np.float64)
    spread = (1.0 - epsilon) / (n_states - 1)
    matrix[0, :] = spread
    matrix[0, -1] = epsilon
    matrix[-1, :] = spread
    matrix[-1, 0] = epsilon
    return matrix


def build_start_probabilities(n_states: int = N_STATES) -> np.ndarray:
    """Uniform starting state-occupancy vector."""

    if n_states < 1:
        raise ValueError("n_states must be >= 1.")
    return np.full(n_states, 1.0 / n_states, dtype=np.float64)


def random_emission_start(
    values: np.ndarray,
    *,
    n_states: int,
    rng: np.random.Generator,
    min_covar: float,
) -> tuple[np.ndarray, np.ndarray]:
    """Draw starting means/variances from a random soft classification of the data."""

    n_obs = values.shape[0]
    cut_points = np.sort(rng.uniform(0.0, 1.0, size=n_states - 1))
    thresholds = np.quantile(values, cut_points)
    hard = np.zeros((n_obs, n_states), dtype=np.float64)
    hard[np.arange(n_obs), np.digitize(values, thresholds)] = 1.0
    noise = rng.dirichlet(np.ones(n_states), size=n_obs)
    resp = _HARD_START_WEIGHT * hard + (1.0 - _HARD_START_WEIGHT) * noise

    weights = resp.sum(axis=0)
    means = (resp * values[:, None]).sum(axis=0) / weights
    variances = (resp * np.square(values[:, None] - means[None, :])).sum(axis=0) / weights
    return means, np.maximum(variances, min_covar)


def fit_constrained_hmm(
    activity: np.ndarray,
    *,
    random_state: int,
    n_states: int = N_STATES,
    transition_epsilon: float = 1e-5,
    zero_floor_max: float = 1e-3,
    zero_floor_fraction: float = 0.01,
    em_max_iter: int = 100,
    em_tol: float = 1e-3,
    min_covar: float = 1e-3,
    logger: logging.Logger | None = None,
) -> FittedModel | None:
    """Fit one constrained Gaussian HMM and Viterbi-decode the series.

    Returns ``None`` when the fitting library raises or produces non-finite
    parameters; callers retry with a fresh ``random_state``.
    """

    effective_logger = logger or LOGGER
    _require_hmmlearn()
    from hmmlearn.hmm import GaussianHMM

    values = floor_zero_activity(
        activity,
        max_floor=zero_floor_max,
        floor_fraction=zero_floor_fraction,
    )
    if values.ndim != 1 or values.shape[0] < n_states:
        raise ValueError(f"activity must be a 1D series with at least {n_states} points.")
    if np.unique(values).shape[0] < 2:
        # A constant series has no variance to split between states.
        effective_logger.debug("hmm.fit constant_series random_state=%s", random_state)
        return None
    X = values.reshape(-1, 1)
    rng = np.random.default_rng(random_state)
    means, variances = random_emission_start(values, n_states=n_states, rng=rng, min_covar=min_covar)

    model = GaussianHMM(
        n_components=n_states,
        covariance_type="diag",
        min_covar=min_covar,
        n_iter=em_max_iter,
        tol=em_tol,
        random_state=random_state,
        params="stmc",
        init_params="",
    )
    model.startprob_ = build_start_probabilities(n_states)
    model.transmat_ = build_transition_matrix(n_states, transition_epsilon)
    model.means_ = means.reshape(n_states, 1)
    model.covars_ = variances.reshape(n_states, 1)

    try:
        with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
            model.fit(X)
            log_likelihood, states = model.decode(X, algorithm="viterbi")
    except Exception as exc:
        effective_logger.debug("hmm.fit attempt_failed random_state=%s error=%r", random_state, exc)
        return None

    fitted_means = np.asarray(model.means_, dtype=np.float64).reshape(-1)
    fitted_vars = np.asarray(model.covars_, dtype=np.float64).reshape(n_states, -1)[:, 0]
    transmat = np.asarray(model.transmat_, dtype=np.float64)
    if not (
        np.isfinite(log_likelihood)
        and np.all(np.isfinite(fitted_means))
        and np.all(np.isfinite(fitted_vars))
        and np.all(np.isfinite(transmat))
    ):
        effective_logger.debug("hmm.fit non_finite_parameters random_state=%s", random_state)
        return None

    converged = None
    n_iter_used = None
    if hasattr(model, "monitor_") and model.monitor_ is not None:
        converged = bool(getattr(model.monitor_, "converged", False))
        n_iter_used = int(getattr(model.monitor_, "iter", 0))

    return FittedModel(
        states=np.asarray(states, dtype=np.int16),
        means=fitted_means,
        variances=fitted_vars,
        transmat=transmat,
        log_likelihood=float(log_likelihood),
        converged=converged,
        n_iter_used=n_iter_used,
        random_state=int(random_state),
    )


@dataclass(frozen=True, slots=True)
class HMMFitOptions:
    """Fitting knobs forwarded to ``fit_constrained_hmm`` on every attempt."""

    n_states: int = N_STATES
    transition_epsilon: float = 1e-5
    zero_floor_max: float = 1e-3
    zero_floor_fraction: float = 0.01
    em_max_iter: int = 100
    em_tol: float = 1e-3
    min_covar: float = 1e-3

    @classmethod
    def from_config(cls, config: Any) -> "HMMFitOptions":
        """Build options from an ``HMMConfig`` section."""

        return cls(
            n_states=int(config.n_states),
            transition_epsilon=float(config.transition_epsilon),
            zero_floor_max=float(config.zero_floor_max),
            zero_floor_fraction=float(config.zero_floor_fraction),
            em_max_iter=int(config.em_max_iter),
            em_tol=float(config.em_tol),
            min_covar=float(config.min_covar),
        )

    def as_kwargs(self) -> dict[str, Any]:
        return {
            "n_states": self.n_states,
            "transition_epsilon": self.transition_epsilon,
            "zero_floor_max": self.zero_floor_max,
            "zero_floor_fraction": self.zero_floor_fraction,
            "em_max_iter": self.em_max_iter,
            "em_tol": self.em_tol,
            "min_covar": self.min_covar,
        }
