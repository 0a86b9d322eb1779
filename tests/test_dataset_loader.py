"""Tests for loading, validating and partitioning activity tables."""

from __future__ import annotations

import numpy as np
import polars as pl
import pytest

from dam_hmm.config import InputColumnsConfig
from dam_hmm.sleep_hmm.dataset_loader import (
    CANONICAL_COLUMNS,
    iter_activity_series,
    load_activity_table,
    normalize_daily_activity,
    prepare_activity_frame,
)

from conftest import make_activity_frame


class TestPrepareActivityFrame:
    def test_canonical_columns_come_first(self):
        frame = make_activity_frame({"b": np.ones(3), "a": np.ones(3)})

        prepared = prepare_activity_frame(frame)

        assert tuple(prepared.columns[:5]) == CANONICAL_COLUMNS
        assert "replicate" in prepared.columns
        assert prepared.get_column("id").to_list() == ["a"] * 3 + ["b"] * 3

    def test_renames_configured_columns(self):
        frame = pl.DataFrame(
            {
                "fly": ["x", "x"],
                "seconds": [0.0, 60.0],
                "pct": [10.0, 20.0],
                "line": ["mut", "mut"],
            }
        )
        columns = InputColumnsConfig(
            individual_id="fly",
            time_offset="seconds",
            normalized_activity="pct",
            genotype="line",
        )

        prepared = prepare_activity_frame(frame, columns=columns)

        assert prepared.get_column("normact").to_list() == [10.0, 20.0]
        assert prepared.get_column("genotype").to_list() == ["mut", "mut"]

    def test_day_is_derived_from_time_offset(self):
        frame = pl.DataFrame(
            {
                "id": ["x"] * 3,
                "t": [0.0, 86_399.0, 86_400.0],
                "normact": [1.0, 1.0, 1.0],
                "genotype": ["wt"] * 3,
            }
        )

        prepared = prepare_activity_frame(frame)

        assert prepared.get_column("day").to_list() == [1, 1, 2]

    def test_raw_activity_is_normalized_per_day(self):
        frame = pl.DataFrame(
            {
                "id": ["x"] * 4,
                "day": [1, 1, 2, 2],
                "t": [0.0, 60.0, 86_400.0, 86_460.0],
                "activity": [1, 3, 0, 0],
                "genotype": ["wt"] * 4,
            }
        )

        prepared = prepare_activity_frame(frame)

        assert prepared.get_column("normact").to_list() == pytest.approx([25.0, 75.0, 0.0, 0.0])

    def test_normalize_daily_activity_sums_to_hundred(self):
        frame = pl.DataFrame({"id": ["x"] * 3, "day": [1] * 3, "activity": [2, 2, 4]})
        normalized = normalize_daily_activity(frame)
        assert normalized.get_column("normact").sum() == pytest.approx(100.0)

    @pytest.mark.parametrize("value", [-0.5, 100.5])
    def test_out_of_range_activity_is_rejected(self, value):
        frame = make_activity_frame({"x": np.array([1.0, 2.0])}).with_columns(
            pl.when(pl.col("t") == 0.0).then(value).otherwise(pl.col("normact")).alias("normact")
        )
        with pytest.raises(ValueError, match=r"\[0, 100\]"):
            prepare_activity_frame(frame)

    def test_missing_required_columns_are_reported(self):
        frame = pl.DataFrame({"id": ["x"], "normact": [1.0]})
        with pytest.raises(ValueError, match="missing required columns"):
            prepare_activity_frame(frame)

    def test_missing_activity_is_reported(self):
        frame = pl.DataFrame({"id": ["x"], "t": [0.0], "genotype": ["wt"]})
        with pytest.raises(ValueError, match="activity column"):
            prepare_activity_frame(frame)

    def test_null_rows_are_rejected(self):
        frame = pl.DataFrame(
            {"id": ["x", None], "t": [0.0, 60.0], "normact": [1.0, 2.0], "genotype": ["wt", "wt"]}
        )
        with pytest.raises(ValueError, match="nulls"):
            prepare_activity_frame(frame)


class TestLoadActivityTable:
    def test_loads_csv_and_parquet(self, tmp_path):
        frame = make_activity_frame({"x": np.ones(5), "y": [np.ones(5), np.ones(5)]})
        csv_path = tmp_path / "activity.csv"
        parquet_path = tmp_path / "activity.parquet"
        frame.write_csv(csv_path)
        frame.write_parquet(parquet_path)

        from_csv = load_activity_table(csv_path)
        from_parquet = load_activity_table(parquet_path)

        for loaded in (from_csv, from_parquet):
            assert loaded.stats["rows"] == 15
            assert loaded.stats["individuals"] == 2
            assert loaded.stats["individual_days"] == 3
            assert loaded.stats["genotypes"] == ["wt"]

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_activity_table(tmp_path / "nope.parquet")

    def test_unsupported_format_raises(self, tmp_path):
        path = tmp_path / "activity.xlsx"
        path.write_bytes(b"")
        with pytest.raises(ValueError, match="Unsupported"):
            load_activity_table(path)


class TestIterActivitySeries:
    def test_one_series_per_individual_day(self):
        frame = prepare_activity_frame(
            make_activity_frame({"x": [np.full(4, 2.0), np.full(3, 5.0)], "y": np.full(2, 1.0)})
        )

        series = list(iter_activity_series(frame))

        assert [(item.individual_id, item.day) for item in series] == [("x", 1), ("x", 2), ("y", 1)]
        assert [len(item) for item in series] == [4, 3, 2]
        assert series[1].time_offset_seconds[0] == pytest.approx(86_400.0)
        assert series[0].metadata == {"replicate": 1}
        assert series[0].genotype == "wt"
