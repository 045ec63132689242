"""Tests for the temporal window evaluator."""

from datetime import datetime, timedelta, timezone

import pytest

from cadence.scheduling import window

T = datetime(2025, 6, 1, 20, 0, tzinfo=timezone.utc)


class TestIsActive:
    def test_exact_event_time(self):
        assert window.is_active(T, T) is True

    @pytest.mark.parametrize(
        "offset", [timedelta(hours=-1), timedelta(minutes=-30), timedelta(minutes=59), timedelta(hours=1)]
    )
    def test_within_one_hour_either_side(self, offset):
        """Active from one hour before until one hour after, inclusive."""
        assert window.is_active(T, T + offset) is True

    @pytest.mark.parametrize(
        "offset", [timedelta(hours=-2), timedelta(minutes=-61), timedelta(minutes=61)]
    )
    def test_outside_window(self, offset):
        assert window.is_active(T, T + offset) is False

    def test_canonical_string(self):
        assert window.is_active("2025-06-01T20:00:00Z", T) is True

    def test_unparseable_string_inactive(self):
        assert window.is_active("next friday", T) is False

    def test_naive_time_inactive(self):
        """A stored time without an offset is not an absolute instant."""
        assert window.is_active("2025-06-01T20:00:00", T) is False
        assert window.is_active(datetime(2025, 6, 1, 20, 0), T) is False


class TestPriority:
    def test_exact_time_is_90(self):
        """At T, zero minutes remain, which is under 30."""
        assert window.priority(T, T) == 90

    def test_59_minutes_before_is_80(self):
        """Event at now + 59 minutes."""
        now = T - timedelta(minutes=59)
        assert window.priority(T, now) == 80

    def test_started_is_100(self):
        assert window.priority(T, T + timedelta(minutes=5)) == 100

    def test_two_hours_after_is_inactive_but_100(self):
        now = T + timedelta(hours=2)
        assert window.is_active(T, now) is False
        assert window.priority(T, now) == 100

    def test_later_is_50(self):
        assert window.priority(T, T - timedelta(hours=3)) == 50

    def test_boundaries(self):
        assert window.priority(T, T - timedelta(minutes=29)) == 90
        assert window.priority(T, T - timedelta(minutes=30)) == 80
        assert window.priority(T, T - timedelta(minutes=60)) == 50

    def test_truncation_toward_zero(self):
        """29 min 59 s counts as 29 minutes; -30 s counts as 0."""
        assert window.priority(T, T - timedelta(minutes=29, seconds=59)) == 90
        assert window.priority(T, T + timedelta(seconds=30)) == 90

    def test_invalid_is_zero(self):
        assert window.priority("garbage", T) == 0
