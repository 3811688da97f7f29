"""
Deferred triggers for routine activation and deactivation.

A trigger is identified by (routine_id, is_activation); arming an identity
that is already armed replaces the pending trigger, so each identity is
pending at most once. TimerTriggerAdapter runs triggers on threading.Timer
threads; on a device this is the platform alarm service.
"""

import logging
import math
import threading
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional, Protocol, Tuple

import config

logger = logging.getLogger(__name__)

TriggerKey = Tuple[str, bool]
TriggerHandler = Callable[[str, bool], None]


class ExactAlarmDenied(Exception):
    """The platform refused a precise, idle-tolerant trigger."""


class TriggerAdapter(Protocol):
    def arm(self, routine_id: str, is_activation: bool, at: datetime, exact: bool = True) -> None:
        ...

    def cancel(self, routine_id: str, is_activation: bool) -> None:
        ...


class TimerTriggerAdapter:
    """
    Deferred triggers backed by threading.Timer.

    Args:
        handler: Called as handler(routine_id, is_activation) when a trigger fires.
        clock: Returns the current local time.
        exact_allowed: When False, exact requests raise ExactAlarmDenied.
        batch_seconds: Inexact triggers are delayed to the next multiple of
                       this many seconds.
    """

    def __init__(
        self,
        handler: Optional[TriggerHandler] = None,
        clock: Callable[[], datetime] = datetime.now,
        exact_allowed: bool = config.EXACT_ALARMS_ALLOWED,
        batch_seconds: int = config.INEXACT_BATCH_SECONDS
    ) -> None:
        self.handler = handler
        self._clock = clock
        self.exact_allowed = exact_allowed
        self._batch_seconds = batch_seconds
        self._timers: Dict[TriggerKey, threading.Timer] = {}
        self._due: Dict[TriggerKey, datetime] = {}
        self._lock = threading.Lock()

    def arm(self, routine_id: str, is_activation: bool, at: datetime, exact: bool = True) -> None:
        """
        Arm a trigger, replacing any pending one with the same identity.

        Raises:
            ExactAlarmDenied: If exact delivery was requested but is not allowed.
        """
        if exact and not self.exact_allowed:
            raise ExactAlarmDenied("exact alarms are not permitted")

        if not exact and self._batch_seconds > 0:
            at = self._batched(at)

        key = (routine_id, is_activation)
        delay = max(0.0, (at - self._clock()).total_seconds())
        timer = threading.Timer(delay, self._fire, args=(routine_id, is_activation))
        timer.daemon = True

        with self._lock:
            previous = self._timers.pop(key, None)
            if previous is not None:
                previous.cancel()
            self._timers[key] = timer
            self._due[key] = at
        timer.start()

    def _batched(self, at: datetime) -> datetime:
        stamp = at.timestamp()
        rounded = math.ceil(stamp / self._batch_seconds) * self._batch_seconds
        return at + timedelta(seconds=rounded - stamp)

    def cancel(self, routine_id: str, is_activation: bool) -> None:
        """Cancel a pending trigger. Absent triggers are ignored."""
        key = (routine_id, is_activation)
        with self._lock:
            timer = self._timers.pop(key, None)
            self._due.pop(key, None)
        if timer is not None:
            timer.cancel()

    def pending(self) -> Dict[TriggerKey, datetime]:
        """Armed triggers and when they are due."""
        with self._lock:
            return dict(self._due)

    def cancel_all(self) -> None:
        with self._lock:
            timers = list(self._timers.values())
            self._timers.clear()
            self._due.clear()
        for timer in timers:
            timer.cancel()

    def _fire(self, routine_id: str, is_activation: bool) -> None:
        key = (routine_id, is_activation)
        with self._lock:
            # Drop our own entry unless it was re-armed meanwhile
            if self._timers.get(key) is threading.current_thread():
                self._timers.pop(key, None)
                self._due.pop(key, None)
        if self.handler is None:
            logger.warning(f"Trigger fired for routine {routine_id} with no handler")
            return
        try:
            self.handler(routine_id, is_activation)
        except Exception as e:
            logger.error(f"Routine trigger handler failed for {routine_id}: {e}", exc_info=True)
