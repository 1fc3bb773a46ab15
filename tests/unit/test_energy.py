"""Energy clock: lazy recovery, carried remainder, saturation, unlimited window."""

from datetime import datetime, timedelta, timezone

import pytest

from mindgym.training.energy import ENERGY_MAX, RECOVERY_INTERVAL, as_utc, read_energy, recover

T0 = datetime(2026, 1, 5, 8, 0, tzinfo=timezone.utc)
H = timedelta(hours=1)


class TestRecover:
    def test_no_elapsed_time_is_unchanged(self):
        state = recover(2, T0, T0)
        assert state.current == 2
        assert state.last_updated == T0

    def test_partial_interval_keeps_timestamp(self):
        """Less than one interval must not reset the clock (progress would be lost)."""
        state = recover(2, T0, T0 + 3 * H + timedelta(minutes=59))
        assert state.current == 2
        assert state.last_updated == T0

    def test_one_unit_carries_remainder(self):
        state = recover(2, T0, T0 + 4 * H + timedelta(minutes=30))
        assert state.current == 3
        assert state.last_updated == T0 + RECOVERY_INTERVAL

    def test_multiple_units(self):
        state = recover(0, T0, T0 + 9 * H)
        assert state.current == 2
        assert state.last_updated == T0 + 8 * H

    def test_caps_at_max_but_still_advances_clock(self):
        state = recover(4, T0, T0 + 13 * H)
        assert state.current == ENERGY_MAX
        assert state.last_updated == T0 + 12 * H

    def test_full_bar_does_not_bank_regeneration(self):
        """Units recovered while full are spent, so spending later starts from the carried remainder."""
        state = recover(ENERGY_MAX, T0, T0 + 100 * H)
        assert state.current == ENERGY_MAX
        assert state.last_updated == T0 + 100 * H
        after_spend = recover(ENERGY_MAX - 1, state.last_updated, T0 + 101 * H)
        assert after_spend.current == ENERGY_MAX - 1

    def test_very_long_absence(self):
        state = recover(0, T0, T0 + timedelta(days=3650, minutes=7))
        assert state.current == ENERGY_MAX
        assert T0 + timedelta(days=3650, minutes=7) - state.last_updated < RECOVERY_INTERVAL

    def test_missing_timestamp_means_no_elapsed_time(self):
        state = recover(1, None, T0)
        assert state.current == 1
        assert state.last_updated is None

    def test_clock_in_the_future_is_treated_as_zero_elapsed(self):
        state = recover(1, T0 + 2 * H, T0)
        assert state.current == 1
        assert state.last_updated == T0 + 2 * H

    def test_naive_timestamps_are_read_as_utc(self):
        naive = T0.replace(tzinfo=None)
        state = recover(1, naive, T0 + 4 * H)
        assert state.current == 2
        assert state.last_updated == T0 + 4 * H

    def test_custom_max_and_interval(self):
        state = recover(0, T0, T0 + 50 * timedelta(minutes=1), max_energy=3, interval=timedelta(minutes=10))
        assert state.current == 3
        assert state.last_updated == T0 + timedelta(minutes=50)


class TestSplitInvariance:
    """Recovering across [t0, t1] then [t1, t2] equals recovering across [t0, t2]."""

    @pytest.mark.parametrize("start_energy", [0, 2, 4, 5])
    @pytest.mark.parametrize("total_minutes", [0, 59, 240, 479, 725, 1441, 5000])
    def test_any_split_point(self, start_energy, total_minutes):
        t2 = T0 + timedelta(minutes=total_minutes)
        direct = recover(start_energy, T0, t2)
        for split in range(0, total_minutes + 1, 37):
            t1 = T0 + timedelta(minutes=split)
            first = recover(start_energy, T0, t1)
            second = recover(first.current, first.last_updated, t2)
            assert second == direct, f"split at {split} minutes"


class TestReadEnergy:
    def test_unlimited_reads_full_and_keeps_clock(self):
        state, unlimited = read_energy(0, T0, T0 + timedelta(days=1), T0 + 10 * H)
        assert unlimited is True
        assert state.current == ENERGY_MAX
        assert state.last_updated == T0

    def test_expired_unlimited_window_recovers_normally(self):
        state, unlimited = read_energy(0, T0, T0 + H, T0 + 5 * H)
        assert unlimited is False
        assert state.current == 1

    def test_as_utc_leaves_aware_values_alone(self):
        assert as_utc(T0) is T0
        assert as_utc(None) is None
