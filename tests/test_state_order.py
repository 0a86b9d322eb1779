"""Tests for activity-ranked state naming and light/dark phases."""

from __future__ import annotations

import numpy as np
import pytest

from dam_hmm.sleep_hmm.state_order import assign_phase, order_states, relabel_path


class TestOrderStates:
    def test_highest_median_becomes_state0(self):
        states = np.array([0, 0, 1, 1, 2, 2, 3, 3])
        activity = np.array([5.0, 5.0, 0.1, 0.1, 40.0, 40.0, 12.0, 12.0])

        mapping = order_states(states, activity)

        assert mapping == {2: "State0", 3: "State1", 0: "State2", 1: "State3"}

    def test_median_not_mean_decides_rank(self):
        # State 0 has a higher mean because of one spike, state 1 a higher median.
        states = np.array([0, 0, 0, 1, 1, 1])
        activity = np.array([1.0, 1.0, 90.0, 10.0, 10.0, 10.0])

        mapping = order_states(states, activity)

        assert mapping[1] == "State0"
        assert mapping[0] == "State1"

    def test_equal_medians_keep_raw_index_order(self):
        states = np.array([3, 1, 3, 1])
        activity = np.array([7.0, 7.0, 7.0, 7.0])

        assert order_states(states, activity) == {1: "State0", 3: "State1"}

    def test_unoccupied_states_get_no_name(self):
        mapping = order_states(np.array([0, 0, 2]), np.array([1.0, 1.0, 9.0]))
        assert set(mapping) == {0, 2}

    def test_shape_mismatch_raises(self):
        with pytest.raises(ValueError):
            order_states(np.array([0, 1]), np.array([1.0]))


class TestRelabelPath:
    def test_relabel_returns_names_per_timepoint(self):
        states = np.array([1, 0, 0, 1])
        activity = np.array([0.0, 30.0, 20.0, 0.5])

        names = relabel_path(states, activity)

        assert list(names) == ["State1", "State0", "State0", "State1"]

    def test_relabeling_is_idempotent(self):
        rng = np.random.default_rng(4)
        states = rng.integers(0, 4, size=200)
        activity = rng.uniform(0.0, 100.0, size=200)

        names = relabel_path(states, activity)
        as_indices = np.array([int(name.removeprefix("State")) for name in names])

        np.testing.assert_array_equal(relabel_path(as_indices, activity), names)


class TestAssignPhase:
    def test_twelve_hour_light_phase(self):
        t = np.array([0.0, 43_199.0, 43_200.0, 86_399.0])
        assert list(assign_phase(t)) == ["light", "light", "dark", "dark"]

    def test_phase_wraps_every_day(self):
        t = np.array([86_400.0, 86_400.0 + 43_200.0, 3 * 86_400.0 + 60.0])
        assert list(assign_phase(t)) == ["light", "dark", "light"]

    def test_custom_light_phase_hours(self):
        t = np.array([15 * 3_600.0, 16 * 3_600.0])
        assert list(assign_phase(t, light_phase_hours=16)) == ["light", "dark"]

    def test_full_day_light_phase(self):
        t = np.arange(0.0, 86_400.0, 3_600.0)
        assert set(assign_phase(t, light_phase_hours=24)) == {"light"}

    @pytest.mark.parametrize("hours", [0.0, -1.0, 24.5])
    def test_invalid_hours_raise(self, hours):
        with pytest.raises(ValueError):
            assign_phase(np.array([0.0]), light_phase_hours=hours)
