"""
Tests for usage limit tracking.

Tests cover:
- Reminder / grace period / block state machine
- Shared reminder throttle
- Daily rollover of regular limits
- Limit persistence
- In-process foreground usage recording
"""

import sys
import tempfile
import unittest
from datetime import datetime, timedelta
from pathlib import Path
from unittest.mock import MagicMock

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from core.prefs import PrefsStore
from tracking.limit_tracker import LimitDecision, LimitTracker, ReminderThrottle
from tracking.usage_stats import ForegroundUsageRecorder

PKG = "com.instagram.android"
T0 = datetime(2024, 1, 1, 12, 0)


class StubUsage:
    """Usage provider returning fixed per-package seconds."""

    def __init__(self):
        self.seconds = {}
        self.calls = []

    def usage_seconds(self, package_name, since):
        self.calls.append((package_name, since))
        return self.seconds.get(package_name, 0.0)


class TestLimitStateMachine(unittest.TestCase):
    """Reminder, grace period and block decisions."""

    def setUp(self):
        self.clock = MagicMock(return_value=T0)
        self.usage = StubUsage()
        self.tracker = LimitTracker(
            "regular",
            self.usage,
            clock=self.clock,
            grace_period_seconds=120,
            reminder_window_seconds=600,
        )
        self.tracker.set_limit(PKG, 30)

    def _advance(self, seconds):
        self.clock.return_value = self.clock.return_value + timedelta(seconds=seconds)

    def test_no_limit(self):
        self.assertEqual(self.tracker.evaluate("com.other", True), LimitDecision.NO_LIMIT)

    def test_under_limit_allows(self):
        self.usage.seconds[PKG] = 10 * 60
        self.assertEqual(self.tracker.evaluate(PKG, True), LimitDecision.ALLOW)

    def test_reminder_fires_once(self):
        self.usage.seconds[PKG] = 25 * 60
        self.assertEqual(self.tracker.evaluate(PKG, True), LimitDecision.REMINDER)
        self.assertEqual(self.tracker.evaluate(PKG, True), LimitDecision.ALLOW)
        self.assertTrue(self.tracker.state(PKG).reminder_sent)

    def test_reminder_skipped_when_throttled(self):
        self.usage.seconds[PKG] = 25 * 60
        self.assertEqual(self.tracker.evaluate(PKG, False), LimitDecision.ALLOW)
        self.assertFalse(self.tracker.state(PKG).reminder_sent)

    def test_no_reminder_once_over_limit(self):
        self.usage.seconds[PKG] = 31 * 60
        self.assertEqual(self.tracker.evaluate(PKG, True), LimitDecision.GRACE_STARTED)
        self.assertFalse(self.tracker.state(PKG).reminder_sent)

    def test_grace_then_block(self):
        self.usage.seconds[PKG] = 30 * 60

        self.assertEqual(self.tracker.evaluate(PKG, True), LimitDecision.GRACE_STARTED)
        self.assertEqual(self.tracker.state(PKG).grace_started_at, T0)

        self._advance(60)
        self.assertEqual(self.tracker.evaluate(PKG, True), LimitDecision.IN_GRACE)
        self.assertTrue(self.tracker.is_in_grace_period(PKG))

        self._advance(59)
        self.assertEqual(self.tracker.evaluate(PKG, True), LimitDecision.IN_GRACE)

        self._advance(1)
        self.assertEqual(self.tracker.evaluate(PKG, True), LimitDecision.BLOCK)
        self.assertFalse(self.tracker.is_in_grace_period(PKG))

    def test_grace_start_is_idempotent(self):
        self.usage.seconds[PKG] = 30 * 60
        self.tracker.evaluate(PKG, True)
        self._advance(30)
        self.tracker.evaluate(PKG, True)
        self._advance(30)
        self.tracker.evaluate(PKG, True)
        self.assertEqual(self.tracker.state(PKG).grace_started_at, T0)

    def test_block_notified_once_then_blocked(self):
        self.usage.seconds[PKG] = 30 * 60
        self.tracker.evaluate(PKG, True)
        self._advance(121)

        decisions = [self.tracker.evaluate(PKG, True) for _ in range(4)]

        self.assertEqual(decisions[0], LimitDecision.BLOCK)
        self.assertEqual(decisions[1:], [LimitDecision.BLOCKED] * 3)
        self.assertTrue(all(d.blocks for d in decisions))

    def test_zero_minute_limit(self):
        self.tracker.set_limit("com.reddit", 0)
        self.assertEqual(self.tracker.evaluate("com.reddit", True), LimitDecision.GRACE_STARTED)

    def test_is_over_limit(self):
        self.usage.seconds[PKG] = 29 * 60
        self.assertFalse(self.tracker.is_over_limit(PKG))
        self.usage.seconds[PKG] = 30 * 60
        self.assertTrue(self.tracker.is_over_limit(PKG))
        self.assertFalse(self.tracker.is_over_limit("com.unlimited"))

    def test_configure_resets_state(self):
        self.usage.seconds[PKG] = 30 * 60
        self.tracker.evaluate(PKG, True)

        later = T0 + timedelta(hours=1)
        self.tracker.configure({PKG: 45}, window_start=later)

        self.assertEqual(self.tracker.limits(), {PKG: 45})
        self.assertIsNone(self.tracker.state(PKG).grace_started_at)
        self.assertEqual(self.tracker.window_start, later)

    def test_clear(self):
        self.tracker.clear()
        self.assertEqual(self.tracker.limits(), {})
        self.assertEqual(self.tracker.evaluate(PKG, True), LimitDecision.NO_LIMIT)

    def test_negative_limit_rejected(self):
        with self.assertRaises(ValueError):
            self.tracker.set_limit(PKG, -1)

    def test_remove_limit(self):
        self.assertTrue(self.tracker.remove_limit(PKG))
        self.assertFalse(self.tracker.remove_limit(PKG))
        self.assertFalse(self.tracker.has_limit(PKG))

    def test_usage_measured_from_window_start(self):
        self.tracker.usage_seconds(PKG)
        self.assertEqual(self.usage.calls[-1], (PKG, T0))


class TestDailyRollover(unittest.TestCase):
    """Regular limits reset at midnight."""

    def setUp(self):
        self.clock = MagicMock(return_value=datetime(2024, 1, 1, 23, 50))
        self.usage = StubUsage()
        self.tracker = LimitTracker(
            "regular", self.usage, clock=self.clock,
            grace_period_seconds=120, daily_rollover=True,
        )
        self.tracker.set_limit(PKG, 30)

    def test_window_starts_at_midnight(self):
        self.assertEqual(self.tracker.window_start, datetime(2024, 1, 1))

    def test_state_resets_on_new_day(self):
        self.usage.seconds[PKG] = 30 * 60
        self.tracker.evaluate(PKG, True)
        self.clock.return_value = datetime(2024, 1, 1, 23, 55)
        self.assertEqual(self.tracker.evaluate(PKG, True), LimitDecision.BLOCK)

        self.clock.return_value = datetime(2024, 1, 2, 0, 5)
        self.assertEqual(self.tracker.evaluate(PKG, True), LimitDecision.GRACE_STARTED)
        self.assertEqual(self.tracker.window_start, datetime(2024, 1, 2))
        self.assertEqual(self.usage.calls[-1], (PKG, datetime(2024, 1, 2)))


class TestLimitPersistence(unittest.TestCase):

    def test_limits_survive_restart(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "prefs.json"
            usage = StubUsage()

            tracker = LimitTracker("regular", usage, prefs=PrefsStore(path), prefs_key="app_limits")
            tracker.set_limit(PKG, 20)
            tracker.set_limit("com.reddit", 5)
            tracker.remove_limit("com.reddit")

            reloaded = LimitTracker("regular", usage, prefs=PrefsStore(path), prefs_key="app_limits")
            self.assertEqual(reloaded.limits(), {PKG: 20})

    def test_invalid_persisted_limits_skipped(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            prefs = PrefsStore(Path(tmpdir) / "prefs.json")
            prefs.put("app_limits", {PKG: 15, "com.bad": "ten", "com.neg": -3})

            tracker = LimitTracker("regular", StubUsage(), prefs=prefs, prefs_key="app_limits")
            self.assertEqual(tracker.limits(), {PKG: 15})

    def test_prefs_requires_key(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            with self.assertRaises(ValueError):
                LimitTracker("regular", StubUsage(), prefs=PrefsStore(Path(tmpdir) / "p.json"))


class TestReminderThrottle(unittest.TestCase):

    def test_interval_must_be_exceeded(self):
        throttle = ReminderThrottle(interval_seconds=30)
        self.assertTrue(throttle.is_due(T0))

        throttle.mark_checked(T0)
        self.assertFalse(throttle.is_due(T0 + timedelta(seconds=10)))
        self.assertFalse(throttle.is_due(T0 + timedelta(seconds=30)))
        self.assertTrue(throttle.is_due(T0 + timedelta(seconds=31)))


class TestForegroundUsageRecorder(unittest.TestCase):

    def setUp(self):
        self.clock = MagicMock(return_value=T0)
        self.recorder = ForegroundUsageRecorder(clock=self.clock)

    def test_open_interval_counts_to_now(self):
        self.recorder.record_foreground(PKG, at=T0)
        self.clock.return_value = T0 + timedelta(minutes=10)
        self.assertEqual(self.recorder.usage_seconds(PKG, T0 - timedelta(hours=1)), 600)

    def test_switching_apps_closes_interval(self):
        self.recorder.record_foreground(PKG, at=T0)
        self.recorder.record_foreground("com.reddit", at=T0 + timedelta(minutes=10))
        self.clock.return_value = T0 + timedelta(minutes=15)

        since = T0 - timedelta(hours=1)
        self.assertEqual(self.recorder.usage_seconds(PKG, since), 600)
        self.assertEqual(self.recorder.usage_seconds("com.reddit", since), 300)

    def test_interval_clipped_to_since(self):
        self.recorder.record_foreground(PKG, at=T0)
        self.recorder.record_background(at=T0 + timedelta(minutes=10))
        self.assertEqual(self.recorder.usage_seconds(PKG, T0 + timedelta(minutes=5)), 300)
        self.assertEqual(self.recorder.usage_seconds(PKG, T0 + timedelta(minutes=20)), 0)

    def test_same_package_does_not_restart_interval(self):
        self.recorder.record_foreground(PKG, at=T0)
        self.recorder.record_foreground(PKG, at=T0 + timedelta(minutes=5))
        self.clock.return_value = T0 + timedelta(minutes=10)
        self.assertEqual(self.recorder.usage_seconds(PKG, T0), 600)


if __name__ == "__main__":
    unittest.main()
