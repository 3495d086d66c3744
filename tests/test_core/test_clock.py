"""
Tests for injectable clocks.
"""
from datetime import datetime, timedelta, timezone

from debt_agent.core.clock import FixedClock, SystemClock


class TestClocks:

    def test_system_clock_is_utc_aware(self):
        now = SystemClock().now()
        assert now.tzinfo is not None
        assert now.utcoffset() == timedelta(0)

    def test_fixed_clock_naive_becomes_utc(self):
        clock = FixedClock(datetime(2024, 1, 1, 12, 0))
        assert clock.now() == datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def test_fixed_clock_advance_and_set(self):
        clock = FixedClock(datetime(2024, 1, 1, tzinfo=timezone.utc))

        assert clock.advance(hours=25) == datetime(2024, 1, 2, 1, 0, tzinfo=timezone.utc)
        assert clock.now() == datetime(2024, 1, 2, 1, 0, tzinfo=timezone.utc)

        clock.set(datetime(2025, 5, 5))
        assert clock.now() == datetime(2025, 5, 5, tzinfo=timezone.utc)
