"""
Routine scheduling.

Turns schedule calculations into armed deferred triggers and handles the
triggers when they fire. Per routine:

    idle -> activation armed -> (fires) activate -> deactivation armed
         -> (fires) deactivate -> (recurring) activation armed again

handle_trigger() is the single place triggers are re-armed. Arming replaces
any pending trigger with the same identity, so scheduling a routine twice
never leaves duplicate triggers behind.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from routine.executor import RoutineExecutor
from routine.models import Routine, ScheduleType
from routine.schedule_calculator import is_routine_active_now, next_trigger_time
from routine.triggers import ExactAlarmDenied, TriggerAdapter

logger = logging.getLogger(__name__)

# How early a timer may fire and still count as firing at its due time
EARLY_FIRE_TOLERANCE = timedelta(seconds=5)


class RoutineScheduler:
    """
    Arms, cancels and handles routine triggers.

    Args:
        adapter: Deferred-trigger service.
        executor: Applies activation/deactivation.
        routines: Returns the current routine list (the store's list()).
        clock: Returns the current local time.
    """

    def __init__(
        self,
        adapter: TriggerAdapter,
        executor: RoutineExecutor,
        routines: Callable[[], List[Routine]],
        clock: Callable[[], datetime] = datetime.now
    ) -> None:
        self._adapter = adapter
        self._executor = executor
        self._routines = routines
        self._clock = clock

    def schedule_all(self) -> None:
        """Schedule every enabled routine (startup path)."""
        for routine in self._routines():
            if routine.is_enabled:
                self.schedule_routine(routine)

    def schedule_routine(self, routine: Routine) -> None:
        """
        Schedule a single routine.

        If the routine should be active right now it is activated immediately
        and only its deactivation is armed; otherwise its activation (and,
        with an end time, its deactivation) is armed.
        """
        if not routine.is_enabled or routine.schedule.type == ScheduleType.MANUAL:
            return

        if is_routine_active_now(routine.schedule, self._clock()):
            self._executor.activate_routine(routine)
        else:
            self.schedule_activation(routine)

        if routine.schedule.end_time is not None:
            self.schedule_deactivation(routine)

    def schedule_activation(self, routine: Routine) -> Optional[datetime]:
        return self._arm(routine, is_activation=True)

    def schedule_deactivation(self, routine: Routine) -> Optional[datetime]:
        return self._arm(routine, is_activation=False)

    def cancel_routine(self, routine_id: str) -> None:
        """Cancel both triggers of a routine. Safe to call if none are armed."""
        for is_activation in (True, False):
            self._adapter.cancel(routine_id, is_activation)
        logger.debug(f"Cancelled all triggers for routine: {routine_id}")

    def _arm(self, routine: Routine, is_activation: bool, now: Optional[datetime] = None) -> Optional[datetime]:
        """
        Arm one trigger for the routine's next activation/deactivation.

        Args:
            routine: Routine to arm.
            is_activation: True for the activation trigger.
            now: Reference time (defaults to the clock).

        Returns:
            When the trigger is due, or None if nothing could be scheduled.
        """
        trigger_time = next_trigger_time(
            routine.schedule, now or self._clock(), use_start_time=is_activation
        )
        if trigger_time is None:
            return None

        action = "activation" if is_activation else "deactivation"
        try:
            self._adapter.arm(routine.id, is_activation, trigger_time, exact=True)
            logger.debug(f"Scheduled {routine.name} {action} for {trigger_time}")
        except ExactAlarmDenied:
            self._adapter.arm(routine.id, is_activation, trigger_time, exact=False)
            logger.warning(
                f"Exact triggers not permitted, scheduled {routine.name} {action} (inexact) for {trigger_time}"
            )
        return trigger_time

    def _fired_at(self, routine: Routine, is_activation: bool) -> datetime:
        """
        Reference time for re-arming after a trigger fired.

        Timers can fire slightly before their wall-clock due time; within
        EARLY_FIRE_TOLERANCE the due time itself is used so the trigger that
        just fired is never armed again for the same instant.
        """
        now = self._clock()
        moment = routine.schedule.time if is_activation else routine.schedule.end_time
        if moment is None:
            return now
        due = now.replace(hour=moment.hour, minute=moment.minute, second=0, microsecond=0)
        if due <= now:
            due += timedelta(days=1)
        if now < due <= now + EARLY_FIRE_TOLERANCE:
            return due
        return now

    def handle_trigger(self, routine_id: str, is_activation: bool) -> None:
        """
        Handle a fired trigger.

        Args:
            routine_id: Routine the trigger belongs to.
            is_activation: True for an activation trigger.
        """
        routine = next((r for r in self._routines() if r.id == routine_id), None)
        if routine is None or not routine.is_enabled:
            logger.warning(f"Routine {routine_id} not found or disabled")
            return

        fired_at = self._fired_at(routine, is_activation)
        if is_activation:
            self._executor.activate_routine(routine)
            if routine.schedule.is_recurring:
                self._arm(routine, is_activation=True, now=fired_at)
        else:
            self._executor.deactivate_routine(routine)
            if routine.schedule.is_recurring:
                self._arm(routine, is_activation=True, now=fired_at)
                self._arm(routine, is_activation=False, now=fired_at)
