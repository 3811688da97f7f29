"""
Schedule calculations for routines.

Pure functions: given a schedule and the current time, decide whether the
routine should be active and when it next activates or deactivates. No I/O,
no clock access; callers pass `now` in.
"""

from datetime import datetime, timedelta
from typing import Optional

from routine.models import RoutineSchedule, ScheduleType, TimeOfDay

DAY = timedelta(hours=24)


def _at(now: datetime, moment: TimeOfDay) -> datetime:
    """Today's date at the given time of day, seconds zeroed."""
    return now.replace(hour=moment.hour, minute=moment.minute, second=0, microsecond=0)


def is_routine_active_now(schedule: RoutineSchedule, now: datetime) -> bool:
    """
    Check if a routine should be active at `now`.

    The window is exclusive at both ends and uses today's start/end times,
    so a window whose end is earlier than its start never matches here;
    overnight routines are carried by their triggers instead.

    Args:
        schedule: The routine's schedule.
        now: Current local time.

    Returns:
        True if now falls strictly inside today's window.
    """
    if schedule.type == ScheduleType.MANUAL:
        return False
    if schedule.time is None or schedule.end_time is None:
        return False

    today_start = _at(now, schedule.time)
    today_end = _at(now, schedule.end_time)
    in_window = today_start < now < today_end

    if schedule.type == ScheduleType.WEEKLY:
        return now.weekday() in schedule.days_of_week and in_window
    return in_window


def next_trigger_time(
    schedule: RoutineSchedule,
    now: datetime,
    use_start_time: bool
) -> Optional[datetime]:
    """
    Calculate the next activation (or deactivation) instant.

    Args:
        schedule: The routine's schedule.
        now: Current local time.
        use_start_time: True for the activation time, False for the end time.

    Returns:
        The next trigger strictly after now, or None if the routine can't be
        scheduled (manual routine, missing time, no weekdays selected).
    """
    moment = schedule.time if use_start_time else schedule.end_time
    if moment is None:
        return None

    if schedule.type == ScheduleType.DAILY:
        candidate = _at(now, moment)
        if candidate <= now:
            candidate += DAY
        return candidate

    if schedule.type == ScheduleType.WEEKLY:
        if not schedule.days_of_week:
            return None
        candidate = _at(now, moment)
        # Today plus the following seven days covers "same weekday, time passed"
        for _ in range(8):
            if candidate.weekday() in schedule.days_of_week and candidate > now:
                return candidate
            candidate += DAY
        return None

    return None


def max_routine_duration(schedule: RoutineSchedule) -> timedelta:
    """
    Maximum length of one activation of the routine.

    An end time at or before the start time wraps past midnight
    (22:00 -> 06:00 is eight hours). Defaults to 24 hours when either
    bound is missing.
    """
    if schedule.time is None or schedule.end_time is None:
        return DAY

    start_minutes = schedule.time.hour * 60 + schedule.time.minute
    end_minutes = schedule.end_time.hour * 60 + schedule.end_time.minute

    if end_minutes > start_minutes:
        duration_minutes = end_minutes - start_minutes
    else:
        duration_minutes = (24 * 60 - start_minutes) + end_minutes

    return timedelta(minutes=duration_minutes)


def is_stale(schedule: RoutineSchedule, activated_at: datetime, now: datetime) -> bool:
    """True if a routine activated at `activated_at` has outlived its window."""
    return now - activated_at > max_routine_duration(schedule)
