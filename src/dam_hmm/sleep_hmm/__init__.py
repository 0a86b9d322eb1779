"""Consensus HMM sleep-state inference package exports."""

from dam_hmm.sleep_hmm.consensus import (
    AttemptState,
    collect_iterations,
    resolve_consensus,
    run_inner_loop,
)
from dam_hmm.sleep_hmm.dataset_loader import (
    LoadedActivityTable,
    iter_activity_series,
    load_activity_table,
    prepare_activity_frame,
)
from dam_hmm.sleep_hmm.hmm_model import (
    FittedModel,
    HMMFitOptions,
    build_start_probabilities,
    build_transition_matrix,
    fit_constrained_hmm,
    floor_zero_activity,
)
from dam_hmm.sleep_hmm.orchestrator import run_parallel
from dam_hmm.sleep_hmm.pipeline import (
    HMMConsensusResult,
    HMMRunResult,
    run_hmm_consensus,
    run_hmm_pipeline,
)
from dam_hmm.sleep_hmm.quality import (
    check_no_solution,
    check_single_state_dominance,
    failures_to_frame,
)
from dam_hmm.sleep_hmm.runner import (
    HMMRunParams,
    process_individual,
    process_individual_day,
    resolve_iterations,
    resolve_worker_count,
    run_serial,
)
from dam_hmm.sleep_hmm.sanity import summarize_hmm_run
from dam_hmm.sleep_hmm.series import (
    ActivitySeries,
    DayResult,
    FailureRecord,
    IndividualResult,
    IterationResult,
)
from dam_hmm.sleep_hmm.state_order import assign_phase, order_states, relabel_path
from dam_hmm.sleep_hmm.summaries import build_state_time_summary, build_transition_summary

__all__ = [
    "ActivitySeries",
    "AttemptState",
    "DayResult",
    "FailureRecord",
    "FittedModel",
    "HMMConsensusResult",
    "HMMFitOptions",
    "HMMRunParams",
    "HMMRunResult",
    "IndividualResult",
    "IterationResult",
    "LoadedActivityTable",
    "assign_phase",
    "build_start_probabilities",
    "build_state_time_summary",
    "build_transition_matrix",
    "build_transition_summary",
    "check_no_solution",
    "check_single_state_dominance",
    "collect_iterations",
    "failures_to_frame",
    "fit_constrained_hmm",
    "floor_zero_activity",
    "iter_activity_series",
    "load_activity_table",
    "order_states",
    "prepare_activity_frame",
    "process_individual",
    "process_individual_day",
    "relabel_path",
    "resolve_consensus",
    "resolve_iterations",
    "resolve_worker_count",
    "run_hmm_consensus",
    "run_hmm_pipeline",
    "run_inner_loop",
    "run_parallel",
    "run_serial",
    "summarize_hmm_run",
]
