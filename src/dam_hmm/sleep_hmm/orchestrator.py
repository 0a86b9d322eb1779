"""Process-pool fan-out of the consensus HMM pipeline, one individual per task."""

from __future__ import annotations

import logging
import multiprocessing
from concurrent.futures import Future, ProcessPoolExecutor, as_completed

import polars as pl

from dam_hmm.logging_utils import configure_worker_logging
from dam_hmm.sleep_hmm.runner import (
    HMMRunParams,
    failed_individual,
    process_individual,
    run_serial,
)
from dam_hmm.sleep_hmm.series import IndividualResult

LOGGER = logging.getLogger(__name__)


def _init_worker(log_level: int) -> None:
    """Give spawned workers the same log format as the parent process."""

    configure_worker_logging(log_level)


def _worker_processes(executor: ProcessPoolExecutor) -> list[multiprocessing.process.BaseProcess]:
    """Snapshot the pool's worker processes.

    ``ProcessPoolExecutor`` has no public accessor before Python 3.14, so this is
    the only place that reads the private ``_processes`` mapping. ``shutdown``
    resets that mapping to ``None``; take the snapshot first.
    """

    return list((executor._processes or {}).values())


def _terminate_pool(executor: ProcessPoolExecutor, *, join_timeout: float = 5.0) -> None:
    """Cancel pending tasks, then kill the running workers and reap them."""

    workers = _worker_processes(executor)
    executor.shutdown(wait=False, cancel_futures=True)
    for process in workers:
        if process.is_alive():
            process.kill()
    for process in workers:
        process.join(timeout=join_timeout)


def run_parallel(
    frame: pl.DataFrame,
    params: HMMRunParams,
    *,
    logger: logging.Logger | None = None,
) -> list[IndividualResult]:
    """Dispatch each individual's multi-day workload to a worker process.

    A worker that raises or dies yields a failure record for every day of its
    individual. On KeyboardInterrupt pending work is cancelled, workers are
    killed, and the interrupt propagates.
    """

    effective_logger = logger or LOGGER
    groups = frame.partition_by("id", maintain_order=True)
    if params.worker_count == 1 or len(groups) <= 1:
        effective_logger.info(
            "hmm.parallel serial_fallback individuals=%s worker_count=%s",
            len(groups),
            params.worker_count,
        )
        return run_serial(frame, params, logger=effective_logger)

    max_workers = min(params.worker_count, len(groups))
    effective_logger.info(
        "hmm.parallel start individuals=%s workers=%s start_method=%s",
        len(groups),
        max_workers,
        params.start_method,
    )
    executor = ProcessPoolExecutor(
        max_workers=max_workers,
        mp_context=multiprocessing.get_context(params.start_method),
        initializer=_init_worker,
        initargs=(effective_logger.getEffectiveLevel(),),
    )
    results: list[IndividualResult] = []
    try:
        futures: dict[Future[IndividualResult], tuple[str, pl.DataFrame]] = {
            executor.submit(process_individual, group, params): (str(group["id"][0]), group)
            for group in groups
        }
        for completed, future in enumerate(as_completed(futures), start=1):
            individual_id, group = futures[future]
            try:
                results.append(future.result())
            except Exception as exc:
                effective_logger.error(
                    "hmm.parallel worker_failed id=%s error=%r",
                    individual_id,
                    exc,
                )
                results.append(failed_individual(individual_id, group, f"Worker failed: {exc}"))
            effective_logger.info(
                "hmm.parallel progress completed=%s/%s id=%s",
                completed,
                len(futures),
                individual_id,
            )
    except KeyboardInterrupt:
        effective_logger.warning("hmm.parallel interrupted cancelling_workers=%s", max_workers)
        _terminate_pool(executor)
        raise
    finally:
        # No-op after _terminate_pool; otherwise drops queued work and joins the pool.
        executor.shutdown(wait=True, cancel_futures=True)
    return results
