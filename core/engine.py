"""
WellbeingEngine: wires Reef's collaborators together.

This module has ZERO platform dependencies. A host (Android bridge, desktop
tray, the CLI in main.py) supplies the platform pieces (how to send an app
home, how to show a notification, which launchers exist) and forwards
foreground-app changes to on_foreground_change().

Callbacks:
    on_notification(notification: Notification)
    on_block(package_name: str, reason: str)
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, Iterable, Optional

import config
from core.enforcer import EnforcementLoop, EnforcementResult
from core.focus_mode import FocusMode
from core.notifier import Notification, Notifier
from core.prefs import PrefsStore
from routine.executor import RoutineExecutor
from routine.scheduler import RoutineScheduler
from routine.store import RoutineStore
from routine.triggers import TimerTriggerAdapter, TriggerAdapter
from tracking.limit_tracker import LimitTracker, ReminderThrottle
from tracking.usage_stats import ForegroundUsageRecorder, UsageStatsProvider
from tracking.whitelist import Whitelist

logger = logging.getLogger(__name__)


class WellbeingEngine:
    """
    Owns every Reef component and the boot/shutdown sequence.

    Handles:
    - Routine storage, scheduling and activation
    - Regular and routine-scoped app limits
    - Focus mode and the whitelist
    - Enforcement on foreground-app changes
    """

    def __init__(
        self,
        prefs_path: Optional[Path] = None,
        clock: Callable[[], datetime] = datetime.now,
        trigger_adapter: Optional[TriggerAdapter] = None,
        usage_provider: Optional[UsageStatsProvider] = None,
        go_home: Optional[Callable[[], None]] = None,
        permission_granted: Callable[[], bool] = lambda: True,
        app_label: Optional[Callable[[str], Optional[str]]] = None
    ) -> None:
        """
        Build the engine.

        Args:
            prefs_path: Prefs JSON file (defaults to config.PREFS_FILE).
            clock: Returns the current local time.
            trigger_adapter: Deferred-trigger service (defaults to threading timers).
            usage_provider: Usage stats source (defaults to recording
                            foreground changes in-process).
            go_home: Sends the foreground app to the home screen.
            permission_granted: Whether notifications may be shown.
            app_label: Resolves package names to display names.
        """
        self.clock = clock
        self.prefs = PrefsStore(prefs_path)

        self.usage_recorder: Optional[ForegroundUsageRecorder] = None
        if usage_provider is None:
            self.usage_recorder = ForegroundUsageRecorder(clock=clock)
            usage_provider = self.usage_recorder

        # ---- Callbacks (set by the host) ----
        self.on_notification: Optional[Callable[[Notification], None]] = None
        self.on_block: Optional[Callable[[str, str], None]] = None

        self.notifier = Notifier(
            sink=self._deliver,
            permission_granted=permission_granted,
            app_label=app_label,
        )

        self.regular_limits = LimitTracker(
            "regular",
            usage_provider,
            clock=clock,
            daily_rollover=True,
            prefs=self.prefs,
            prefs_key=config.KEY_APP_LIMITS,
        )
        self.routine_limits = LimitTracker("routine", usage_provider, clock=clock)

        self.executor = RoutineExecutor(self.prefs, self.routine_limits, self.notifier, clock=clock)
        self.store = RoutineStore(self.prefs, executor=self.executor)

        self._owns_adapter = trigger_adapter is None
        self.trigger_adapter = trigger_adapter or TimerTriggerAdapter(clock=clock)
        self.scheduler = RoutineScheduler(
            self.trigger_adapter, self.executor, self.store.list, clock=clock
        )
        self.store.scheduler = self.scheduler
        if isinstance(self.trigger_adapter, TimerTriggerAdapter) and self.trigger_adapter.handler is None:
            self.trigger_adapter.handler = self.scheduler.handle_trigger

        self.whitelist = Whitelist(self.prefs)
        self.focus_mode = FocusMode(self.prefs, clock=clock)

        self.enforcer = EnforcementLoop(
            whitelist=self.whitelist,
            focus_mode=self.focus_mode,
            routine_limits=self.routine_limits,
            regular_limits=self.regular_limits,
            executor=self.executor,
            notifier=self.notifier,
            go_home=go_home or self._log_go_home,
            clock=clock,
            throttle=ReminderThrottle(),
        )
        self.enforcer.on_block = self._blocked

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self, launcher_packages: Iterable[str] = ()) -> None:
        """
        Boot sequence.

        Whitelists launchers, restores the active routine (expiring it if a
        deactivation was missed while we were down), clears an expired focus
        mode, seeds default routines on first run and arms every enabled
        routine's triggers.
        """
        added = self.whitelist.add_launchers(launcher_packages)
        if added:
            logger.info(f"Whitelisted {added} launcher(s)")

        self.executor.load()
        self.executor.expire_if_stale()
        self.focus_mode.is_active()

        if self.prefs.get(config.KEY_FIRST_RUN, True):
            self.store.create_default_routines()
            self.prefs.put(config.KEY_FIRST_RUN, False)

        self.scheduler.schedule_all()
        logger.info("Engine started")

    def shutdown(self) -> None:
        """Cancel pending timers. Call before the process exits."""
        if self._owns_adapter and isinstance(self.trigger_adapter, TimerTriggerAdapter):
            self.trigger_adapter.cancel_all()
        logger.info("Engine shutdown complete")

    # ------------------------------------------------------------------
    # Signals from the host
    # ------------------------------------------------------------------

    def on_foreground_change(self, package_name: Optional[str], event_kind: str = "window_state_changed") -> EnforcementResult:
        """Record usage and run enforcement for a foreground change."""
        if (
            self.usage_recorder is not None
            and package_name
            and event_kind in config.FOREGROUND_EVENT_KINDS
        ):
            self.usage_recorder.record_foreground(package_name)
        result = self.enforcer.on_foreground_change(package_name, event_kind)
        if result.blocked and self.usage_recorder is not None:
            self.usage_recorder.record_background()
        return result

    def get_status(self) -> Dict:
        """
        Snapshot of the engine state (polled by the host UI).

        Returns:
            dict with keys: active_routine, focus_mode, focus_remaining_seconds,
            routines, app_limits.
        """
        return {
            "active_routine": self.executor.active_routine_name(),
            "focus_mode": self.focus_mode.is_active(),
            "focus_remaining_seconds": self.focus_mode.remaining_seconds(),
            "routines": len(self.store.list()),
            "app_limits": self.regular_limits.limits(),
        }

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _deliver(self, notification: Notification) -> None:
        logger.info(f"[{notification.kind}] {notification.title} - {notification.text}")
        if self.on_notification:
            self.on_notification(notification)

    def _blocked(self, package_name: str, reason: str) -> None:
        if self.on_block:
            self.on_block(package_name, reason)

    @staticmethod
    def _log_go_home() -> None:
        logger.info("Sending foreground app to the home screen")
