"""Tests for atomic artifact writers."""

from __future__ import annotations

import json

import polars as pl
import pytest

from dam_hmm.config import ParquetConfig
from dam_hmm.sleep_hmm.writer import write_csv_atomically, write_json_atomically, write_parquet_atomically


@pytest.fixture
def frame():
    return pl.DataFrame({"ID": ["a", "b"], "Day": [1, 2], "ErrorMessage": ["x", "y"]})


def test_writers_leave_no_temp_files(tmp_path, frame):
    write_parquet_atomically(frame, tmp_path / "out" / "t.parquet", parquet=ParquetConfig(compression="snappy"))
    write_csv_atomically(frame, tmp_path / "out" / "t.csv")
    write_json_atomically({"rows": frame.height}, tmp_path / "out" / "t.json")

    assert sorted(path.name for path in (tmp_path / "out").iterdir()) == ["t.csv", "t.json", "t.parquet"]
    assert pl.read_parquet(tmp_path / "out" / "t.parquet").equals(frame)
    assert json.loads((tmp_path / "out" / "t.json").read_text(encoding="utf-8")) == {"rows": 2}


def test_failed_write_keeps_previous_file(tmp_path, frame):
    target = tmp_path / "summary.json"
    write_json_atomically({"version": 1}, target)

    with pytest.raises(TypeError):
        write_json_atomically({"bad": {(1, 2): "tuple keys are not JSON"}}, target)

    assert json.loads(target.read_text(encoding="utf-8")) == {"version": 1}
    assert [path.name for path in tmp_path.iterdir()] == ["summary.json"]
