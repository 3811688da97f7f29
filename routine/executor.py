"""
Routine activation and deactivation.

RoutineExecutor is the only owner of the "active routine" pointer. At most
one routine is active at a time; activation and deactivation are the only
mutators. The pointer is persisted so an active routine survives a restart
and is expired if it outlived its schedule while the process was down.
"""

import logging
import threading
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable, Dict, Optional

import config
from core.notifier import Notifier
from core.prefs import PrefsStore
from routine.models import Routine, RoutineParseError, RoutineSchedule
from routine.schedule_calculator import is_stale
from tracking.limit_tracker import LimitTracker

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ActiveRoutine:
    """Snapshot of the routine that is currently active."""

    routine_id: str
    name: str
    activated_at: datetime
    schedule: RoutineSchedule
    limits: Dict[str, int]

    def to_dict(self) -> Dict:
        return {
            "id": self.routine_id,
            "name": self.name,
            "activatedAt": self.activated_at.isoformat(),
            "schedule": self.schedule.to_dict(),
            "limits": dict(self.limits),
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'ActiveRoutine':
        try:
            return cls(
                routine_id=data["id"],
                name=data.get("name", ""),
                activated_at=datetime.fromisoformat(data["activatedAt"]),
                schedule=RoutineSchedule.from_dict(data["schedule"]),
                limits={str(k): int(v) for k, v in data.get("limits", {}).items()},
            )
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise RoutineParseError(f"invalid active routine record: {e}") from e


class RoutineExecutor:
    """
    Applies routine activation/deactivation side effects.

    Holds the active-routine pointer, configures the routine-scoped
    LimitTracker and emits routine notifications.
    """

    def __init__(
        self,
        prefs: PrefsStore,
        routine_limits: LimitTracker,
        notifier: Notifier,
        clock: Callable[[], datetime] = datetime.now
    ) -> None:
        self._prefs = prefs
        self._routine_limits = routine_limits
        self._notifier = notifier
        self._clock = clock
        self._lock = threading.RLock()
        self._active: Optional[ActiveRoutine] = None

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def active(self) -> Optional[ActiveRoutine]:
        with self._lock:
            return self._active

    def active_routine_id(self) -> Optional[str]:
        with self._lock:
            return self._active.routine_id if self._active else None

    def active_routine_name(self) -> Optional[str]:
        with self._lock:
            return self._active.name if self._active else None

    def is_active(self, routine_id: str) -> bool:
        return self.active_routine_id() == routine_id

    # ------------------------------------------------------------------
    # Mutators
    # ------------------------------------------------------------------

    def activate_routine(self, routine: Routine) -> bool:
        """
        Make routine the active routine.

        Any other active routine is deactivated first. Activating the routine
        that is already active does nothing.

        Returns:
            True if the routine became active, False if it already was.
        """
        with self._lock:
            current = self._active
            if current is not None:
                if current.routine_id == routine.id:
                    logger.debug(f"Routine {routine.name} already active")
                    return False
                self._deactivate_locked(current.routine_id, current.name)

            now = self._clock()
            limits = routine.limits_by_package()
            self._active = ActiveRoutine(
                routine_id=routine.id,
                name=routine.name,
                activated_at=now,
                schedule=routine.schedule,
                limits=limits,
            )
            self._routine_limits.configure(limits, window_start=now)
            self._prefs.put(config.KEY_ACTIVE_ROUTINE, self._active.to_dict())

        logger.info(f"Activated routine {routine.name} ({len(limits)} limits)")
        self._notifier.notify(
            config.NOTIFY_ROUTINE_ACTIVATED, None, {"routine_name": routine.name}
        )
        return True

    def deactivate_routine(self, routine: Routine) -> bool:
        """
        Deactivate routine if it is the active one.

        A trigger for a routine that is no longer active (replaced, or
        already deactivated) is ignored.

        Returns:
            True if the routine was active and is now deactivated.
        """
        with self._lock:
            if self._active is None or self._active.routine_id != routine.id:
                logger.debug(f"Ignoring deactivation of inactive routine {routine.name}")
                return False
            self._deactivate_locked(routine.id, routine.name)
        return True

    def refresh_routine(self, routine: Routine) -> bool:
        """
        Apply an edited routine to the active snapshot.

        Keeps the activation time. Routine limit state is reset only when
        the limits changed.

        Returns:
            True if routine is the active one and was refreshed.
        """
        with self._lock:
            current = self._active
            if current is None or current.routine_id != routine.id:
                return False
            limits = routine.limits_by_package()
            self._active = replace(current, name=routine.name, schedule=routine.schedule, limits=limits)
            if limits != current.limits:
                self._routine_limits.configure(limits, window_start=current.activated_at)
            self._prefs.put(config.KEY_ACTIVE_ROUTINE, self._active.to_dict())
        logger.info(f"Refreshed active routine {routine.name} ({len(limits)} limits)")
        return True

    def _deactivate_locked(self, routine_id: str, name: str) -> None:
        self._active = None
        self._routine_limits.clear()
        self._prefs.remove(config.KEY_ACTIVE_ROUTINE)
        logger.info(f"Deactivated routine {name}")
        self._notifier.notify(config.NOTIFY_ROUTINE_DEACTIVATED, None, {"routine_name": name})

    def clear(self, routine_id: Optional[str] = None) -> bool:
        """
        Drop the active routine without a notification.

        Args:
            routine_id: Only clear if this routine is the active one
                        (None clears whatever is active).

        Returns:
            True if something was cleared.
        """
        with self._lock:
            if self._active is None:
                return False
            if routine_id is not None and self._active.routine_id != routine_id:
                return False
            name = self._active.name
            self._active = None
            self._routine_limits.clear()
            self._prefs.remove(config.KEY_ACTIVE_ROUTINE)
        logger.info(f"Cleared active routine {name}")
        return True

    # ------------------------------------------------------------------
    # Persistence and self-healing
    # ------------------------------------------------------------------

    def load(self) -> Optional[ActiveRoutine]:
        """
        Restore the persisted active routine (call once at startup).

        Returns:
            The restored routine snapshot, or None.
        """
        raw = self._prefs.get(config.KEY_ACTIVE_ROUTINE)
        if raw is None:
            return None
        try:
            active = ActiveRoutine.from_dict(raw)
        except RoutineParseError as e:
            logger.warning(f"Discarding corrupt active routine record: {e}")
            self._prefs.remove(config.KEY_ACTIVE_ROUTINE)
            return None

        with self._lock:
            self._active = active
            self._routine_limits.configure(active.limits, window_start=active.activated_at)
        logger.info(f"Restored active routine {active.name}")
        return active

    def expire_if_stale(self, now: Optional[datetime] = None) -> bool:
        """
        Deactivate the active routine if it has been active longer than its
        schedule allows (a deactivation trigger was missed).

        Returns:
            True if a stale routine was expired.
        """
        now = now or self._clock()
        with self._lock:
            active = self._active
            if active is None or not is_stale(active.schedule, active.activated_at, now):
                return False
            logger.warning(
                f"Routine {active.name} active since {active.activated_at:%Y-%m-%d %H:%M}, "
                f"past its maximum duration; deactivating"
            )
            self._deactivate_locked(active.routine_id, active.name)
        return True
