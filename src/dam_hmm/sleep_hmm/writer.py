"""HMM run artifact writers with atomic file replacement."""

from __future__ import annotations

import json
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator
from uuid import uuid4

import polars as pl

from dam_hmm.config import ParquetConfig


@contextmanager
def _atomic_target(output_path: Path) -> Iterator[Path]:
    """Yield a sibling temp path that replaces ``output_path`` once the block succeeds."""

    output_path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = output_path.parent / f".{output_path.name}.{uuid4().hex}.tmp"
    try:
        yield temp_path
        os.replace(temp_path, output_path)
    finally:
        temp_path.unlink(missing_ok=True)


def write_json_atomically(payload: dict[str, Any], output_path: Path) -> Path:
    with _atomic_target(output_path) as temp_path:
        temp_path.write_text(json.dumps(payload, indent=2, sort_keys=True, default=str) + "\n", encoding="utf-8")
    return output_path


def write_parquet_atomically(
    df: pl.DataFrame,
    output_path: Path,
    *,
    parquet: ParquetConfig | None = None,
) -> Path:
    """Write parquet with the configured compression settings."""

    options = parquet or ParquetConfig()
    with _atomic_target(output_path) as temp_path:
        df.write_parquet(
            temp_path,
            compression=options.compression,
            compression_level=options.compression_level,
            statistics=options.statistics,
        )
    return output_path


def write_csv_atomically(df: pl.DataFrame, output_path: Path) -> Path:
    with _atomic_target(output_path) as temp_path:
        df.write_csv(temp_path)
    return output_path
