"""Tests for time-in-state and transition summary tables."""

from __future__ import annotations

import numpy as np
import polars as pl

from dam_hmm.sleep_hmm.summaries import (
    TIME_SPENT_SCHEMA,
    TRANSITION_SCHEMA,
    build_state_time_summary,
    build_transition_summary,
    empty_profile,
    time_in_states,
    transition_counts,
)


def make_profile(individual_id: str, day: int, names: list[str], phases: list[str]) -> pl.DataFrame:
    n_points = len(names)
    return pl.DataFrame(
        {
            "ID": [individual_id] * n_points,
            "Genotype": ["wt"] * n_points,
            "day": [day] * n_points,
            "timestamp": list(range(1, n_points + 1)),
            "phase": phases,
            "state_name": names,
        }
    )


class TestPathTables:
    def test_time_in_states_counts_pairs(self):
        names = np.array(["State0", "State0", "State3", "State3", "State3"], dtype=object)
        phase = np.array(["light", "light", "light", "dark", "dark"], dtype=object)

        table = time_in_states(names, phase)

        assert table.rows() == [("State0", "light", 2), ("State3", "dark", 2), ("State3", "light", 1)]

    def test_transition_counts_include_self_transitions(self):
        names = np.array(["State0", "State0", "State1", "State0"], dtype=object)

        table = transition_counts(names)

        assert table.rows() == [
            ("State0", "State0", 1),
            ("State0", "State1", 1),
            ("State1", "State0", 1),
        ]


class TestStateTimeSummary:
    def test_every_state_and_phase_has_a_row(self):
        profile = make_profile("fly-1", 1, ["State0", "State0", "State2"], ["light", "dark", "dark"])

        summary = build_state_time_summary(profile)

        assert summary.height == 8
        assert summary.columns == list(TIME_SPENT_SCHEMA)
        assert summary.get_column("time_spent").sum() == 3
        state1 = summary.filter(pl.col("state_name") == "State1")
        assert state1.get_column("time_spent").to_list() == [0, 0]
        dark_state2 = summary.filter((pl.col("state_name") == "State2") & (pl.col("phase") == "dark"))
        assert dark_state2.item(0, "time_spent") == 1

    def test_rows_per_individual_day(self):
        profile = pl.concat(
            [
                make_profile("fly-1", 1, ["State0"] * 4, ["light"] * 4),
                make_profile("fly-1", 2, ["State3"] * 4, ["dark"] * 4),
                make_profile("fly-2", 1, ["State1"] * 4, ["light"] * 4),
            ]
        )

        summary = build_state_time_summary(profile)

        assert summary.height == 24
        per_day = summary.group_by(["ID", "day"]).agg(pl.col("time_spent").sum()).sort(["ID", "day"])
        assert per_day.get_column("time_spent").to_list() == [4, 4, 4]

    def test_empty_profile_gives_empty_table(self):
        summary = build_state_time_summary(empty_profile())
        assert summary.height == 0
        assert summary.schema == pl.Schema(TIME_SPENT_SCHEMA)


class TestTransitionSummary:
    def test_sixteen_pairs_per_individual_day(self):
        names = ["State0", "State0", "State1", "State3", "State3"]
        profile = make_profile("fly-1", 1, names, ["light"] * 5)

        summary = build_transition_summary(profile)

        assert summary.height == 16
        assert summary.columns == list(TRANSITION_SCHEMA)
        assert summary.get_column("transition_count").sum() == len(names) - 1
        counts = {
            (row["from_state"], row["to_state"]): row["transition_count"]
            for row in summary.iter_rows(named=True)
        }
        assert counts[("State0", "State0")] == 1
        assert counts[("State1", "State3")] == 1
        assert counts[("State3", "State0")] == 0

    def test_transitions_do_not_cross_days(self):
        profile = pl.concat(
            [
                make_profile("fly-1", 1, ["State0", "State0"], ["light"] * 2),
                make_profile("fly-1", 2, ["State3", "State3"], ["light"] * 2),
            ]
        )

        summary = build_transition_summary(profile)

        assert summary.height == 32
        assert summary.get_column("transition_count").sum() == 2
        crossing = summary.filter((pl.col("from_state") == "State0") & (pl.col("to_state") == "State3"))
        assert crossing.get_column("transition_count").sum() == 0
