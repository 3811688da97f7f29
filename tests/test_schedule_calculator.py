"""Unit tests for routine schedule calculations."""

import sys
import unittest
from datetime import datetime, time, timedelta
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from routine.models import RoutineSchedule, ScheduleType
from routine.schedule_calculator import (
    is_routine_active_now,
    is_stale,
    max_routine_duration,
    next_trigger_time,
)

# 2024-01-01 is a Monday
MONDAY = datetime(2024, 1, 1)
TUESDAY = datetime(2024, 1, 2)


class TestIsRoutineActiveNow(unittest.TestCase):
    """Test the active-window check."""

    def setUp(self):
        self.daily = RoutineSchedule.daily(time(9, 0), time(17, 0))

    def test_daily_inside_window(self):
        self.assertTrue(is_routine_active_now(self.daily, MONDAY.replace(hour=10)))

    def test_daily_boundaries_are_exclusive(self):
        """Exactly at start or end is not active."""
        self.assertFalse(is_routine_active_now(self.daily, MONDAY.replace(hour=9)))
        self.assertFalse(is_routine_active_now(self.daily, MONDAY.replace(hour=17)))
        self.assertTrue(is_routine_active_now(self.daily, MONDAY.replace(hour=9, second=1)))
        self.assertFalse(is_routine_active_now(self.daily, MONDAY.replace(hour=8, minute=59)))

    def test_daily_outside_window(self):
        self.assertFalse(is_routine_active_now(self.daily, MONDAY.replace(hour=18)))

    def test_weekly_monday_scenario(self):
        """Mon 09:00-17:00: active Monday 10:00, not Tuesday 10:00."""
        schedule = RoutineSchedule.weekly(time(9, 0), time(17, 0), days=[0])
        self.assertTrue(is_routine_active_now(schedule, MONDAY.replace(hour=10)))
        self.assertFalse(is_routine_active_now(schedule, TUESDAY.replace(hour=10)))

    def test_manual_never_active(self):
        self.assertFalse(is_routine_active_now(RoutineSchedule.manual(), MONDAY.replace(hour=10)))

    def test_missing_end_time_never_active(self):
        schedule = RoutineSchedule.daily(time(9, 0))
        self.assertFalse(is_routine_active_now(schedule, MONDAY.replace(hour=10)))

    def test_overnight_window_not_active_by_time_check(self):
        """Overnight windows are carried by triggers, not by this check."""
        schedule = RoutineSchedule.daily(time(22, 0), time(6, 0))
        self.assertFalse(is_routine_active_now(schedule, MONDAY.replace(hour=23)))


class TestNextTriggerTime(unittest.TestCase):
    """Test next activation/deactivation instants."""

    def test_daily_later_today(self):
        schedule = RoutineSchedule.daily(time(9, 0), time(17, 0))
        now = MONDAY.replace(hour=8)
        self.assertEqual(next_trigger_time(schedule, now, True), MONDAY.replace(hour=9))
        self.assertEqual(next_trigger_time(schedule, now, False), MONDAY.replace(hour=17))

    def test_daily_rolls_to_tomorrow(self):
        schedule = RoutineSchedule.daily(time(9, 0), time(17, 0))
        now = MONDAY.replace(hour=10)
        self.assertEqual(next_trigger_time(schedule, now, True), TUESDAY.replace(hour=9))

    def test_daily_equal_to_now_rolls_over(self):
        """A trigger is always strictly in the future."""
        schedule = RoutineSchedule.daily(time(9, 0), time(17, 0))
        now = MONDAY.replace(hour=9)
        result = next_trigger_time(schedule, now, True)
        self.assertEqual(result, TUESDAY.replace(hour=9))
        self.assertGreater(result, now)

    def test_daily_always_in_future(self):
        schedule = RoutineSchedule.daily(time(13, 30), time(14, 0))
        start = MONDAY
        for minutes in range(0, 24 * 60, 17):
            now = start + timedelta(minutes=minutes, seconds=5)
            self.assertGreater(next_trigger_time(schedule, now, True), now)

    def test_weekly_next_selected_day(self):
        """Wednesday-only routine evaluated on Monday fires Wednesday."""
        schedule = RoutineSchedule.weekly(time(9, 0), time(17, 0), days=[2])
        result = next_trigger_time(schedule, MONDAY.replace(hour=10), True)
        self.assertEqual(result, datetime(2024, 1, 3, 9, 0))

    def test_weekly_same_day_passed_goes_to_next_week(self):
        schedule = RoutineSchedule.weekly(time(9, 0), time(17, 0), days=[0])
        result = next_trigger_time(schedule, MONDAY.replace(hour=10), True)
        self.assertEqual(result, datetime(2024, 1, 8, 9, 0))

    def test_weekly_same_day_upcoming(self):
        schedule = RoutineSchedule.weekly(time(9, 0), time(17, 0), days=[0])
        result = next_trigger_time(schedule, MONDAY.replace(hour=10), False)
        self.assertEqual(result, MONDAY.replace(hour=17))

    def test_weekly_no_days_returns_none(self):
        schedule = RoutineSchedule.weekly(time(9, 0), time(17, 0), days=[])
        self.assertIsNone(next_trigger_time(schedule, MONDAY, True))

    def test_manual_returns_none(self):
        self.assertIsNone(next_trigger_time(RoutineSchedule.manual(), MONDAY, True))

    def test_manual_with_times_returns_none(self):
        schedule = RoutineSchedule(ScheduleType.MANUAL, time(9, 0), time(10, 0))
        self.assertIsNone(next_trigger_time(schedule, MONDAY, True))

    def test_missing_end_time_returns_none_for_deactivation(self):
        schedule = RoutineSchedule.daily(time(9, 0))
        self.assertIsNone(next_trigger_time(schedule, MONDAY, False))
        self.assertIsNotNone(next_trigger_time(schedule, MONDAY, True))

    def test_seconds_are_zeroed(self):
        schedule = RoutineSchedule.daily(time(9, 0), time(17, 0))
        now = MONDAY.replace(hour=8, minute=59, second=30, microsecond=123)
        self.assertEqual(next_trigger_time(schedule, now, True), MONDAY.replace(hour=9))


class TestMaxRoutineDuration(unittest.TestCase):
    """Test routine duration bounds."""

    def test_same_day(self):
        schedule = RoutineSchedule.daily(time(9, 0), time(17, 30))
        self.assertEqual(max_routine_duration(schedule), timedelta(hours=8, minutes=30))

    def test_overnight_wrap(self):
        schedule = RoutineSchedule.daily(time(22, 0), time(6, 0))
        self.assertEqual(max_routine_duration(schedule), timedelta(hours=8))

    def test_missing_bound_defaults_to_day(self):
        self.assertEqual(max_routine_duration(RoutineSchedule.daily(time(9, 0))), timedelta(hours=24))
        self.assertEqual(max_routine_duration(RoutineSchedule.manual()), timedelta(hours=24))

    def test_is_stale(self):
        schedule = RoutineSchedule.daily(time(9, 0), time(10, 0))
        activated = MONDAY.replace(hour=9)
        self.assertFalse(is_stale(schedule, activated, MONDAY.replace(hour=9, minute=59)))
        self.assertTrue(is_stale(schedule, activated, MONDAY.replace(hour=10, minute=1)))


if __name__ == "__main__":
    unittest.main()
