"""
Enforcement loop.

Called synchronously on every foreground-app change. Decides whether the
app may stay in the foreground, sends reminder / grace / block
notifications and sends the app home when it must be blocked.

The loop never raises: a failure while deciding is logged and the app is
allowed, so the signal source is never disturbed.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

import config
from core.focus_mode import FocusMode
from core.notifier import Notifier
from routine.executor import RoutineExecutor
from tracking.limit_tracker import LimitDecision, LimitTracker, ReminderThrottle
from tracking.whitelist import Whitelist

logger = logging.getLogger(__name__)

# Block reasons
REASON_FOCUS_MODE = "focus_mode"
REASON_ROUTINE_LIMIT = "routine_limit"
REASON_REGULAR_LIMIT = "regular_limit"


@dataclass(frozen=True)
class EnforcementResult:
    package_name: Optional[str]
    blocked: bool
    reason: Optional[str] = None
    decision: Optional[LimitDecision] = None


class EnforcementLoop:
    """
    Per-foreground-change decision point.

    Args:
        whitelist: Packages that are never blocked.
        focus_mode: Global focus mode flag.
        routine_limits: Limits of the active routine (checked first).
        regular_limits: The user's daily limits.
        executor: Active routine owner (for stale expiry and names).
        notifier: Notification delivery.
        go_home: Sends the foreground app to the home screen.
        clock: Returns the current local time.
        throttle: Shared reminder check throttle.
    """

    def __init__(
        self,
        whitelist: Whitelist,
        focus_mode: FocusMode,
        routine_limits: LimitTracker,
        regular_limits: LimitTracker,
        executor: RoutineExecutor,
        notifier: Notifier,
        go_home: Callable[[], None],
        clock: Callable[[], datetime] = datetime.now,
        throttle: Optional[ReminderThrottle] = None,
        own_package: str = config.APP_PACKAGE_NAME
    ) -> None:
        self.whitelist = whitelist
        self.focus_mode = focus_mode
        self.routine_limits = routine_limits
        self.regular_limits = regular_limits
        self.executor = executor
        self.notifier = notifier
        self._go_home = go_home
        self._clock = clock
        self.throttle = throttle or ReminderThrottle()
        self._own_package = own_package

        # Called with (package_name, reason) after an app is sent home
        self.on_block: Optional[Callable[[str, str], None]] = None

    def on_foreground_change(
        self,
        package_name: Optional[str],
        event_kind: str = "window_state_changed"
    ) -> EnforcementResult:
        """
        Handle one foreground-app change.

        Args:
            package_name: Package now in the foreground.
            event_kind: Kind of UI event that reported it.

        Returns:
            What was decided. Never raises.
        """
        try:
            return self._decide(package_name, event_kind)
        except Exception as e:
            logger.error(f"Enforcement failed for {package_name}: {e}", exc_info=True)
            return EnforcementResult(package_name, blocked=False)

    def _decide(self, package_name: Optional[str], event_kind: str) -> EnforcementResult:
        if event_kind not in config.FOREGROUND_EVENT_KINDS:
            return EnforcementResult(package_name, blocked=False)
        if not package_name or package_name == self._own_package:
            return EnforcementResult(package_name, blocked=False)
        if self.whitelist.is_whitelisted(package_name):
            return EnforcementResult(package_name, blocked=False)

        now = self._clock()
        self.executor.expire_if_stale(now)

        if self.focus_mode.is_active(now):
            logger.debug(f"Blocking {package_name} in focus mode")
            self._block(package_name, REASON_FOCUS_MODE)
            self.notifier.notify(config.NOTIFY_BLOCKED, package_name)
            return EnforcementResult(package_name, blocked=True, reason=REASON_FOCUS_MODE)

        check_reminders = self.throttle.is_due(now)

        for tracker, reason in (
            (self.routine_limits, REASON_ROUTINE_LIMIT),
            (self.regular_limits, REASON_REGULAR_LIMIT),
        ):
            if not tracker.has_limit(package_name):
                continue
            decision = tracker.evaluate(package_name, check_reminders)
            if check_reminders:
                self.throttle.mark_checked(now)
            result = self._apply(tracker, package_name, decision, reason)
            if result is not None:
                return result

        return EnforcementResult(package_name, blocked=False)

    def _apply(
        self,
        tracker: LimitTracker,
        package_name: str,
        decision: LimitDecision,
        reason: str
    ) -> Optional[EnforcementResult]:
        """
        Carry out a tracker decision.

        Returns:
            A final result when the decision ends the evaluation (grace or
            block), None to fall through to the next tracker.
        """
        if decision == LimitDecision.REMINDER:
            self.notifier.notify(
                config.NOTIFY_REMINDER,
                package_name,
                {"remaining_seconds": tracker.remaining_seconds(package_name)},
            )
            return None

        if decision in (LimitDecision.GRACE_STARTED, LimitDecision.IN_GRACE):
            if decision == LimitDecision.GRACE_STARTED:
                self.notifier.notify(config.NOTIFY_GRACE_PERIOD_STARTED, package_name)
            return EnforcementResult(package_name, blocked=False, reason=reason, decision=decision)

        if decision.blocks:
            if decision == LimitDecision.BLOCK:
                self.notifier.notify(
                    config.NOTIFY_LIMIT_REACHED,
                    package_name,
                    {
                        "limit_seconds": tracker.limit_seconds(package_name),
                        "limit_source": self._limit_source(reason),
                    },
                )
            self._block(package_name, reason)
            return EnforcementResult(package_name, blocked=True, reason=reason, decision=decision)

        return None

    def _limit_source(self, reason: str) -> str:
        if reason == REASON_ROUTINE_LIMIT:
            return f"routine limit ({self.executor.active_routine_name() or 'Active Routine'})"
        return "daily limit"

    def _block(self, package_name: str, reason: str) -> None:
        try:
            self._go_home()
        except Exception as e:
            logger.error(f"Failed to send {package_name} home: {e}")
            return
        if self.on_block:
            try:
                self.on_block(package_name, reason)
            except Exception as e:
                logger.error(f"on_block callback failed: {e}")
