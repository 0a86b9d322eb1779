"""Loading and partitioning of prepared per-minute activity tables."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterator

import numpy as np
import polars as pl

from dam_hmm.config import InputColumnsConfig
from dam_hmm.sleep_hmm.series import ActivitySeries
from dam_hmm.utils.time_utils import SECONDS_PER_DAY

LOGGER = logging.getLogger(__name__)

CANONICAL_COLUMNS: tuple[str, ...] = ("id", "day", "t", "normact", "genotype")


@dataclass(frozen=True, slots=True)
class LoadedActivityTable:
    """Container for a validated activity table and its stats."""

    frame: pl.DataFrame
    stats: dict[str, Any]


def _read_table(path: Path) -> pl.DataFrame:
    suffix = path.suffix.lower()
    if suffix == ".parquet":
        return pl.read_parquet(path)
    if suffix in {".csv", ".txt"}:
        return pl.read_csv(path, infer_schema_length=10_000)
    raise ValueError(f"Unsupported activity table format: {path.suffix} (expected .parquet or .csv)")


def normalize_daily_activity(frame: pl.DataFrame, *, raw_column: str = "activity") -> pl.DataFrame:
    """Express activity as a percentage of each individual's daily total.

    Days with zero total activity are kept at 0.
    """

    daily_total = pl.col(raw_column).sum().over(["id", "day"])
    return frame.with_columns(
        pl.when(daily_total > 0)
        .then(pl.col(raw_column).cast(pl.Float64) / daily_total * 100.0)
        .otherwise(0.0)
        .alias("normact")
    )


def prepare_activity_frame(
    frame: pl.DataFrame,
    *,
    columns: InputColumnsConfig | None = None,
) -> pl.DataFrame:
    """Rename to canonical columns, derive missing day/normact, and validate."""

    cols = columns or InputColumnsConfig()
    renames = {
        cols.individual_id: "id",
        cols.day: "day",
        cols.time_offset: "t",
        cols.normalized_activity: "normact",
        cols.genotype: "genotype",
        cols.raw_activity: "activity",
    }
    df = frame.rename({source: target for source, target in renames.items() if source in frame.columns and source != target})

    missing = [column for column in ("id", "t", "genotype") if column not in df.columns]
    if missing:
        raise ValueError(f"Activity table is missing required columns: {missing}")

    df = df.with_columns(
        [
            pl.col("id").cast(pl.String),
            pl.col("genotype").cast(pl.String),
            pl.col("t").cast(pl.Float64),
        ]
    )
    if "day" not in df.columns:
        df = df.with_columns((pl.col("t") // SECONDS_PER_DAY + 1).cast(pl.Int64).alias("day"))
    df = df.with_columns(pl.col("day").cast(pl.Int64))

    if "normact" not in df.columns:
        if "activity" not in df.columns:
            raise ValueError("Activity table needs either a normalized activity column or a raw activity column.")
        df = normalize_daily_activity(df)
    df = df.with_columns(pl.col("normact").cast(pl.Float64))

    null_rows = df.filter(pl.any_horizontal([pl.col(column).is_null() for column in CANONICAL_COLUMNS])).height
    if null_rows > 0:
        raise ValueError(f"Activity table contains {null_rows} rows with nulls in {list(CANONICAL_COLUMNS)}.")
    bad_days = df.filter(pl.col("day") < 1).height
    if bad_days > 0:
        raise ValueError(f"Activity table contains {bad_days} rows with day < 1.")
    out_of_range = df.filter((pl.col("normact") < 0.0) | (pl.col("normact") > 100.0) | pl.col("normact").is_nan()).height
    if out_of_range > 0:
        raise ValueError(f"normact must lie in [0, 100]; {out_of_range} rows are outside that range.")

    trailing = [column for column in df.columns if column not in CANONICAL_COLUMNS]
    return df.select([*CANONICAL_COLUMNS, *trailing]).sort(["id", "day", "t"])


def load_activity_table(
    path: Path,
    *,
    columns: InputColumnsConfig | None = None,
    logger: logging.Logger | None = None,
) -> LoadedActivityTable:
    """Read a prepared activity table from parquet or CSV and validate it."""

    effective_logger = logger or LOGGER
    if not path.exists():
        raise FileNotFoundError(f"Activity table not found: {path}")

    df = prepare_activity_frame(_read_table(path), columns=columns)
    stats = {
        "rows": df.height,
        "individuals": int(df.select(pl.col("id").n_unique()).item()) if df.height > 0 else 0,
        "individual_days": int(df.select(pl.struct(["id", "day"]).n_unique()).item()) if df.height > 0 else 0,
        "genotypes": sorted(df.get_column("genotype").unique().to_list()),
        "columns": df.columns,
        "dataset_path": str(path),
    }
    effective_logger.info(
        "dataset_loader.loaded rows=%s individuals=%s individual_days=%s path=%s",
        stats["rows"],
        stats["individuals"],
        stats["individual_days"],
        path,
    )
    return LoadedActivityTable(frame=df, stats=stats)


def _constant_metadata(group: pl.DataFrame) -> dict[str, Any]:
    metadata: dict[str, Any] = {}
    for column in group.columns:
        if column in CANONICAL_COLUMNS or column == "activity":
            continue
        values = group.get_column(column).unique()
        if values.len() == 1:
            metadata[column] = values[0]
    return metadata


def iter_activity_series(frame: pl.DataFrame) -> Iterator[ActivitySeries]:
    """Yield one ``ActivitySeries`` per (id, day), in id/day order."""

    for group in frame.sort(["id", "day", "t"]).partition_by(["id", "day"], maintain_order=True):
        yield ActivitySeries(
            individual_id=str(group["id"][0]),
            day=int(group["day"][0]),
            genotype=str(group["genotype"][0]),
            time_offset_seconds=group["t"].to_numpy().astype(np.float64, copy=False),
            activity=group["normact"].to_numpy().astype(np.float64, copy=False),
            metadata=_constant_metadata(group),
        )
