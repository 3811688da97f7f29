"""
Routine persistence and CRUD.

Routines are stored as one list under the "routines" prefs key. Every
mutation reads the whole list, changes it and writes it back under the
store lock. Corrupt records are skipped one by one on load so a single bad
entry never hides the others.
"""

import logging
import threading
from datetime import time
from typing import List, Optional

import config
from core.prefs import PrefsStore
from routine.executor import RoutineExecutor
from routine.models import Routine, RoutineParseError, RoutineSchedule, ScheduleType
from routine.scheduler import RoutineScheduler

logger = logging.getLogger(__name__)


class RoutineStore:
    """
    CRUD over the persisted routine list.

    The scheduler and executor are optional so the store can be used on its
    own (e.g. to inspect routines); without them mutations only persist.
    """

    def __init__(
        self,
        prefs: PrefsStore,
        scheduler: Optional[RoutineScheduler] = None,
        executor: Optional[RoutineExecutor] = None
    ) -> None:
        self._prefs = prefs
        self.scheduler = scheduler
        self.executor = executor
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Load / save
    # ------------------------------------------------------------------

    def list(self) -> List[Routine]:
        """
        Load all routines.

        Returns:
            Routines in stored order, without any that failed to parse.
        """
        raw = self._prefs.get(config.KEY_ROUTINES, [])
        if not isinstance(raw, list):
            logger.warning("Stored routines are not a list, ignoring them")
            return []

        routines = []
        for index, record in enumerate(raw):
            try:
                routines.append(Routine.from_dict(record))
            except RoutineParseError as e:
                logger.warning(f"Skipping malformed routine record #{index}: {e}")
        return routines

    def get(self, routine_id: str) -> Optional[Routine]:
        return next((r for r in self.list() if r.id == routine_id), None)

    def _save(self, routines: List[Routine]) -> bool:
        return self._prefs.put(config.KEY_ROUTINES, [r.to_dict() for r in routines])

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add(self, routine: Routine) -> None:
        """Append a routine and schedule it if enabled."""
        with self._lock:
            routines = self.list()
            if any(r.id == routine.id for r in routines):
                raise ValueError(f"Routine id {routine.id} already exists")
            routines.append(routine)
            self._save(routines)
        logger.info(f"Added routine {routine.name}")

        if self.scheduler is not None:
            self.scheduler.schedule_routine(routine)

    def update(self, routine: Routine) -> bool:
        """
        Replace the routine with the same id.

        If the routine is active, new limits apply immediately. Disabling it
        or changing its schedule deactivates it, after which scheduling may
        activate it again.

        Returns:
            False (and changes nothing) if no routine has that id.
        """
        with self._lock:
            routines = self.list()
            index = next((i for i, r in enumerate(routines) if r.id == routine.id), None)
            if index is None:
                return False
            previous = routines[index]
            routines[index] = routine
            self._save(routines)
        logger.info(f"Updated routine {routine.name}")

        if self.executor is not None and self.executor.is_active(routine.id):
            # A new schedule is re-evaluated from scratch below
            if not routine.is_enabled or routine.schedule != previous.schedule:
                self.executor.deactivate_routine(routine)
            else:
                self.executor.refresh_routine(routine)

        if self.scheduler is not None:
            self.scheduler.cancel_routine(routine.id)
            self.scheduler.schedule_routine(routine)
        return True

    def delete(self, routine_id: str) -> bool:
        """
        Delete a routine, cancelling its triggers first.

        Returns:
            True if a routine was removed.
        """
        if self.scheduler is not None:
            self.scheduler.cancel_routine(routine_id)

        with self._lock:
            routines = self.list()
            remaining = [r for r in routines if r.id != routine_id]
            if len(remaining) == len(routines):
                return False
            self._save(remaining)

        if self.executor is not None:
            self.executor.clear(routine_id)
        logger.info(f"Deleted routine {routine_id}")
        return True

    def toggle(self, routine_id: str) -> Optional[Routine]:
        """
        Flip a routine's enabled flag and apply the side effects.

        Manual routines are activated/deactivated immediately. Scheduled
        routines get their triggers armed (which may activate them right
        away) or cancelled.

        Returns:
            The updated routine, or None if the id is unknown.
        """
        with self._lock:
            routines = self.list()
            index = next((i for i, r in enumerate(routines) if r.id == routine_id), None)
            if index is None:
                return None

            old = routines[index]
            new = old.with_enabled(not old.is_enabled)
            routines[index] = new

            if old.is_enabled:
                self._on_toggled_off(old)
            else:
                self._on_toggled_on(new)

            self._save(routines)

        logger.info(f"Routine {new.name} {'enabled' if new.is_enabled else 'disabled'}")
        return new

    def _on_toggled_on(self, routine: Routine) -> None:
        if routine.schedule.type == ScheduleType.MANUAL:
            if self.executor is not None:
                self.executor.activate_routine(routine)
        elif self.scheduler is not None:
            self.scheduler.schedule_routine(routine)

    def _on_toggled_off(self, routine: Routine) -> None:
        if routine.schedule.type == ScheduleType.MANUAL:
            if self.executor is not None:
                self.executor.deactivate_routine(routine)
        else:
            if self.scheduler is not None:
                self.scheduler.cancel_routine(routine.id)
            if self.executor is not None:
                self.executor.clear(routine.id)

    # ------------------------------------------------------------------
    # First run
    # ------------------------------------------------------------------

    def create_default_routines(self) -> List[Routine]:
        """
        Seed the store with the built-in routines (both disabled).

        Returns:
            The routines that were added.
        """
        defaults = [
            Routine.create(
                "Weekend Digital Detox",
                RoutineSchedule.weekly(time(9, 0), time(18, 0), days=[5, 6]),
            ),
            Routine.create(
                "Workday Focus",
                RoutineSchedule.weekly(time(9, 0), time(17, 0), days=[0, 1, 2, 3, 4]),
            ),
        ]
        for routine in defaults:
            self.add(routine)
        return defaults
