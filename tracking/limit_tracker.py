"""
Per-app usage limit tracking.

Two LimitTracker instances run side by side: one for the user's regular
daily limits and one for the limits of the currently active routine. Both
share the same reminder / grace period state machine:

    under limit --(remaining <= reminder window)--> REMINDER (once)
    usage >= limit --> GRACE_STARTED --> IN_GRACE ... --> BLOCK (notify once)
                                                         --> BLOCKED (every later check)

State resets when the tracker's window rolls over (midnight for regular
limits, routine deactivation for routine limits).
"""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Dict, Optional

import config
from core.prefs import PrefsStore
from tracking.usage_stats import UsageStatsProvider

logger = logging.getLogger(__name__)


class LimitDecision(Enum):
    NO_LIMIT = "no_limit"
    ALLOW = "allow"
    REMINDER = "reminder"
    GRACE_STARTED = "grace_started"
    IN_GRACE = "in_grace"
    BLOCK = "block"        # first block of the episode, notify
    BLOCKED = "blocked"    # already notified, just block again

    @property
    def blocks(self) -> bool:
        return self in (LimitDecision.BLOCK, LimitDecision.BLOCKED)

    @property
    def over_limit(self) -> bool:
        return self in (
            LimitDecision.GRACE_STARTED,
            LimitDecision.IN_GRACE,
            LimitDecision.BLOCK,
            LimitDecision.BLOCKED,
        )


@dataclass
class LimitState:
    """Runtime state of one package's limit within the current window."""

    reminder_sent: bool = False
    grace_started_at: Optional[datetime] = None
    block_notified: bool = False


class ReminderThrottle:
    """
    Rate limit for reminder checks.

    Shared by both trackers and all packages: once a check has run, no
    other reminder check runs until `interval` has passed.
    """

    def __init__(self, interval_seconds: float = config.REMINDER_CHECK_INTERVAL) -> None:
        self.interval = timedelta(seconds=interval_seconds)
        self._last_check: Optional[datetime] = None
        self._lock = threading.Lock()

    def is_due(self, now: datetime) -> bool:
        with self._lock:
            return self._last_check is None or now - self._last_check > self.interval

    def mark_checked(self, now: datetime) -> None:
        with self._lock:
            self._last_check = now


def start_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


class LimitTracker:
    """
    Tracks usage limits and their reminder/grace state for a set of packages.

    Usage time is not owned here; it comes from the usage provider, measured
    from the tracker's window start.
    """

    def __init__(
        self,
        name: str,
        usage_provider: UsageStatsProvider,
        clock: Callable[[], datetime] = datetime.now,
        grace_period_seconds: float = config.GRACE_PERIOD_SECONDS,
        reminder_window_seconds: float = config.REMINDER_WINDOW_SECONDS,
        daily_rollover: bool = False,
        prefs: Optional[PrefsStore] = None,
        prefs_key: Optional[str] = None
    ) -> None:
        """
        Initialize the tracker.

        Args:
            name: Label used in logs ("regular", "routine").
            usage_provider: Source of foreground usage time.
            clock: Returns the current local time.
            grace_period_seconds: How long an over-limit app stays usable.
            reminder_window_seconds: Remaining time at which the reminder fires.
            daily_rollover: Reset state and usage window at midnight.
            prefs: Optional store to persist configured limits in.
            prefs_key: Key to persist limits under (required with prefs).
        """
        if prefs is not None and not prefs_key:
            raise ValueError("prefs_key is required when prefs is given")

        self.name = name
        self._usage = usage_provider
        self._clock = clock
        self.grace_period = timedelta(seconds=grace_period_seconds)
        self.reminder_window_seconds = reminder_window_seconds
        self._daily_rollover = daily_rollover
        self._prefs = prefs
        self._prefs_key = prefs_key
        self._lock = threading.RLock()

        self._limits: Dict[str, int] = {}
        self._states: Dict[str, LimitState] = {}
        now = clock()
        self.window_start: datetime = start_of_day(now) if daily_rollover else now

        if prefs is not None:
            self._limits = self._load_limits()

    # ------------------------------------------------------------------
    # Limit configuration
    # ------------------------------------------------------------------

    def _load_limits(self) -> Dict[str, int]:
        raw = self._prefs.get(self._prefs_key, {})
        if not isinstance(raw, dict):
            logger.warning(f"Ignoring malformed {self.name} limits in prefs")
            return {}
        limits = {}
        for pkg, minutes in raw.items():
            if isinstance(minutes, int) and not isinstance(minutes, bool) and minutes >= 0:
                limits[pkg] = minutes
            else:
                logger.warning(f"Skipping invalid {self.name} limit for {pkg}: {minutes!r}")
        return limits

    def _persist(self) -> None:
        if self._prefs is not None:
            self._prefs.put(self._prefs_key, dict(self._limits))

    def set_limit(self, package_name: str, limit_minutes: int) -> None:
        """
        Set (or replace) the limit for a package.

        Raises:
            ValueError: If limit_minutes is negative.
        """
        if limit_minutes < 0:
            raise ValueError("limit_minutes must be non-negative")
        with self._lock:
            self._limits[package_name] = limit_minutes
            self._persist()
        logger.info(f"Set {self.name} limit for {package_name}: {limit_minutes} min")

    def remove_limit(self, package_name: str) -> bool:
        """Remove a package's limit. Returns False if it had none."""
        with self._lock:
            if package_name not in self._limits:
                return False
            del self._limits[package_name]
            self._states.pop(package_name, None)
            self._persist()
        logger.info(f"Removed {self.name} limit for {package_name}")
        return True

    def configure(self, limits: Dict[str, int], window_start: Optional[datetime] = None) -> None:
        """
        Replace all limits and reset runtime state.

        Args:
            limits: Package name -> limit in minutes.
            window_start: Start of the usage window (defaults to now).
        """
        with self._lock:
            self._limits = dict(limits)
            self._states.clear()
            self.window_start = window_start or self._clock()
            self._persist()

    def clear(self) -> None:
        """Drop all limits and runtime state."""
        self.configure({})

    def limits(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._limits)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def has_limit(self, package_name: str) -> bool:
        with self._lock:
            return package_name in self._limits

    def limit_seconds(self, package_name: str) -> float:
        with self._lock:
            return self._limits.get(package_name, 0) * 60

    def usage_seconds(self, package_name: str) -> float:
        self._check_rollover()
        return self._usage.usage_seconds(package_name, self.window_start)

    def remaining_seconds(self, package_name: str) -> float:
        return self.limit_seconds(package_name) - self.usage_seconds(package_name)

    def state(self, package_name: str) -> LimitState:
        """Runtime state for a package (created lazily)."""
        with self._lock:
            return self._states.setdefault(package_name, LimitState())

    def is_over_limit(self, package_name: str) -> bool:
        """True if the package has a limit and has used all of it."""
        if not self.has_limit(package_name):
            return False
        return self.usage_seconds(package_name) >= self.limit_seconds(package_name)

    def is_in_grace_period(self, package_name: str, now: Optional[datetime] = None) -> bool:
        now = now or self._clock()
        with self._lock:
            started = self.state(package_name).grace_started_at
            return started is not None and now - started < self.grace_period

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    def _check_rollover(self) -> None:
        """Reset state when the day changes (regular limits only)."""
        if not self._daily_rollover:
            return
        today = start_of_day(self._clock())
        with self._lock:
            if today != self.window_start:
                logger.info(f"New day detected, resetting {self.name} limit state")
                self._states.clear()
                self.window_start = today

    def evaluate(self, package_name: str, check_reminders: bool) -> LimitDecision:
        """
        Run one observation of a package through the limit state machine.

        Args:
            package_name: Package now in the foreground.
            check_reminders: Whether the shared reminder throttle allows a
                             reminder check on this observation.

        Returns:
            The decision for this observation.
        """
        if not self.has_limit(package_name):
            return LimitDecision.NO_LIMIT

        now = self._clock()
        usage = self.usage_seconds(package_name)

        with self._lock:
            limit = self.limit_seconds(package_name)
            state = self.state(package_name)

            if check_reminders:
                remaining = limit - usage
                if 0 < remaining <= self.reminder_window_seconds and not state.reminder_sent:
                    state.reminder_sent = True
                    logger.debug(
                        f"Reminder for {package_name}: {int(remaining // 60)} minutes remaining"
                    )
                    return LimitDecision.REMINDER

            if usage < limit:
                return LimitDecision.ALLOW

            if state.grace_started_at is None:
                state.grace_started_at = now
                logger.info(f"{self.name} limit reached for {package_name}, grace period started")
                return LimitDecision.GRACE_STARTED

            if now - state.grace_started_at < self.grace_period:
                return LimitDecision.IN_GRACE

            if not state.block_notified:
                state.block_notified = True
                logger.info(f"Grace period over for {package_name}, blocking ({self.name} limit)")
                return LimitDecision.BLOCK

            return LimitDecision.BLOCKED
