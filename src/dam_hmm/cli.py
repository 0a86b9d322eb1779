"""Typer CLI entrypoint for dam_hmm."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import typer
import yaml
from pydantic import ValidationError

from dam_hmm.config import AppSettings, load_settings
from dam_hmm.logging_utils import configure_logging
from dam_hmm.sleep_hmm.pipeline import run_hmm_pipeline
from dam_hmm.sleep_hmm.sanity import summarize_hmm_run

app = typer.Typer(
    add_completion=False,
    help="dam_hmm command line interface.",
    no_args_is_help=True,
)


def _load_and_optionally_configure_logger(
    config_file: Path | None,
    configure: bool,
) -> tuple[AppSettings, logging.Logger]:
    try:
        settings = load_settings(config_file=config_file)
    except FileNotFoundError as exc:
        raise typer.BadParameter(str(exc), param_hint="--config-file") from exc
    except ValidationError as exc:
        raise typer.BadParameter(f"Invalid settings: {exc}") from exc
    if configure:
        logger = configure_logging(settings.paths.logs_root / "dam_hmm.log")
    else:
        logger = logging.getLogger("dam_hmm")
    return settings, logger


@app.command("show-config")
def show_config(
    config_file: Path | None = typer.Option(
        None,
        "--config-file",
        help="Optional settings YAML path.",
        exists=False,
        file_okay=True,
        dir_okay=False,
        readable=True,
    ),
) -> None:
    """Print the effective configuration after env overrides."""

    settings, _ = _load_and_optionally_configure_logger(config_file, configure=False)
    rendered = yaml.safe_dump(settings.as_dict(), sort_keys=False)
    typer.echo(rendered)


@app.command("hmm-run")
def hmm_run(
    dataset: Path = typer.Option(
        ...,
        "--dataset",
        help="Prepared per-minute activity table (parquet or csv).",
        exists=True,
        file_okay=True,
        dir_okay=False,
        readable=True,
    ),
    iterations: int | None = typer.Option(
        None,
        "--iterations",
        help="HMM fits per individual-day (values below the configured minimum are raised to it).",
    ),
    light_phase_hours: float | None = typer.Option(
        None,
        "--light-phase-hours",
        help="Light-phase duration in hours used for light/dark labels.",
    ),
    workers: int | None = typer.Option(
        None,
        "--workers",
        help="Worker process count for per-individual parallel fitting.",
    ),
    seed: int | None = typer.Option(
        None,
        "--seed",
        min=0,
        help="Base random seed; per individual-day seeds derive from it.",
    ),
    serial: bool = typer.Option(
        False,
        "--serial",
        help="Process individuals in the current process without a worker pool.",
    ),
    no_csv: bool = typer.Option(
        False,
        "--no-csv",
        help="Skip CSV copies of the profile and time-spent tables.",
    ),
    config_file: Path | None = typer.Option(
        None,
        "--config-file",
        help="Optional settings YAML path.",
        exists=False,
        file_okay=True,
        dir_okay=False,
        readable=True,
    ),
) -> None:
    """Fit the consensus HMM for every individual-day and write result tables."""

    settings, logger = _load_and_optionally_configure_logger(config_file, configure=True)
    try:
        result = run_hmm_pipeline(
            settings,
            dataset_path=dataset,
            iterations=iterations,
            light_phase_hours=light_phase_hours,
            worker_count=workers,
            random_seed=seed,
            serial=serial,
            write_csv=not no_csv,
            logger=logger,
        )
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc

    summary = json.loads(result.run_summary_path.read_text(encoding="utf-8"))
    typer.echo(f"run_id: {summary.get('run_id')}")
    typer.echo(f"mode: {summary.get('mode')}")
    typer.echo(f"iterations: {summary.get('params', {}).get('iterations')}")
    typer.echo(f"base_seed: {summary.get('params', {}).get('base_seed')}")
    typer.echo(f"individual_days: {summary.get('individual_days')}")
    typer.echo(f"individual_days_succeeded: {summary.get('individual_days_succeeded')}")
    typer.echo(f"individual_days_failed: {summary.get('individual_days_failed')}")
    typer.echo(f"output_dir: {result.output_dir}")
    typer.echo(f"run_summary_path: {result.run_summary_path}")


@app.command("hmm-sanity")
def hmm_sanity(
    run_dir: Path = typer.Option(
        ...,
        "--run-dir",
        help="Path to one HMM run output directory.",
        exists=True,
        file_okay=False,
        dir_okay=True,
        readable=True,
    ),
) -> None:
    """Inspect a completed HMM run and print concise diagnostics."""

    summary = summarize_hmm_run(run_dir)
    run_summary = summary["run_summary"]
    typer.echo(f"run_id: {run_summary.get('run_id')}")
    typer.echo(f"individual_days_processed: {summary.get('individual_days_processed')}")
    typer.echo(f"individual_days_failed: {summary.get('individual_days_failed')}")
    error_score = summary.get("error_score", {})
    typer.echo(f"error_score_mean: {error_score.get('mean')}")
    typer.echo(f"error_score_max: {error_score.get('max')}")
    typer.echo("minutes_by_state:")
    for row in summary.get("minutes_by_state", []):
        typer.echo(f"state={row.get('state_name')} | minutes={row.get('minutes')}")
    typer.echo("sleep_minutes_by_phase:")
    for row in summary.get("sleep_minutes_by_phase", []):
        typer.echo(f"phase={row.get('phase')} | sleep_minutes={row.get('sleep_minutes')}")
    for row in summary.get("failed_cases", []):
        typer.echo(f"failed: ID={row.get('ID')} | Day={row.get('Day')} | {row.get('ErrorMessage')}")


def main() -> None:
    """CLI script entrypoint."""

    app()


if __name__ == "__main__":
    main()
