"""
Routine data model.

A routine is a named, schedulable bundle of per-app usage limits. Routines
are persisted as JSON records; parsing validates each record and raises
RoutineParseError so a single corrupt entry can be skipped without losing
the rest of the list.
"""

import logging
import uuid
from dataclasses import dataclass, field, replace
from datetime import time as TimeOfDay
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, List, Optional

logger = logging.getLogger(__name__)

# Python weekday() index -> persisted day name
DAY_NAMES = ("MONDAY", "TUESDAY", "WEDNESDAY", "THURSDAY", "FRIDAY", "SATURDAY", "SUNDAY")


class RoutineParseError(ValueError):
    """A persisted routine record could not be turned into a Routine."""


class ScheduleType(Enum):
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MANUAL = "MANUAL"


@dataclass(frozen=True)
class AppLimit:
    """Usage limit for one app while the owning routine is active."""

    package_name: str
    limit_minutes: int

    def __post_init__(self):
        if not self.package_name:
            raise ValueError("package_name must not be empty")
        if self.limit_minutes < 0:
            raise ValueError("limit_minutes must be non-negative")

    @property
    def limit_seconds(self) -> int:
        return self.limit_minutes * 60

    def to_dict(self) -> Dict[str, Any]:
        return {"packageName": self.package_name, "limitMinutes": self.limit_minutes}


@dataclass(frozen=True)
class RoutineSchedule:
    """
    When a routine runs.

    DAILY and WEEKLY schedules need `time` to be activated automatically and
    `end_time` to be deactivated automatically. MANUAL schedules are only ever
    activated by toggling the routine. `days_of_week` holds weekday indexes
    (Monday == 0) and is only meaningful for WEEKLY.
    """

    type: ScheduleType
    time: Optional[TimeOfDay] = None
    end_time: Optional[TimeOfDay] = None
    days_of_week: FrozenSet[int] = frozenset()
    is_recurring: bool = True

    def __post_init__(self):
        bad_days = [d for d in self.days_of_week if not 0 <= d <= 6]
        if bad_days:
            raise ValueError(f"Invalid weekday index(es): {bad_days}")
        # Accept any iterable of days, store as frozenset
        object.__setattr__(self, "days_of_week", frozenset(self.days_of_week))

    @classmethod
    def daily(cls, start: TimeOfDay, end: Optional[TimeOfDay] = None, is_recurring: bool = True) -> 'RoutineSchedule':
        return cls(ScheduleType.DAILY, start, end, frozenset(), is_recurring)

    @classmethod
    def weekly(
        cls,
        start: TimeOfDay,
        end: Optional[TimeOfDay],
        days: Iterable[int],
        is_recurring: bool = True
    ) -> 'RoutineSchedule':
        return cls(ScheduleType.WEEKLY, start, end, frozenset(days), is_recurring)

    @classmethod
    def manual(cls) -> 'RoutineSchedule':
        return cls(ScheduleType.MANUAL)

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert the schedule to its persisted form.

        Times are split into hour/minute fields which are omitted when unset.
        """
        data: Dict[str, Any] = {"type": self.type.value}
        if self.time is not None:
            data["timeHour"] = self.time.hour
            data["timeMinute"] = self.time.minute
        if self.end_time is not None:
            data["endTimeHour"] = self.end_time.hour
            data["endTimeMinute"] = self.end_time.minute
        data["daysOfWeek"] = [DAY_NAMES[d] for d in sorted(self.days_of_week)]
        data["isRecurring"] = self.is_recurring
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RoutineSchedule':
        """
        Create a RoutineSchedule from its persisted form.

        Unknown day names are dropped. A missing isRecurring defaults to True.

        Raises:
            RoutineParseError: If the type is unknown or a time field is invalid.
        """
        if not isinstance(data, dict):
            raise RoutineParseError("schedule must be an object")
        try:
            schedule_type = ScheduleType(data["type"])
        except (KeyError, ValueError) as e:
            raise RoutineParseError(f"invalid schedule type: {data.get('type')!r}") from e

        raw_days = data.get("daysOfWeek") or []
        if not isinstance(raw_days, list):
            raise RoutineParseError("daysOfWeek must be a list")

        days = set()
        for name in raw_days:
            if name in DAY_NAMES:
                days.add(DAY_NAMES.index(name))
            else:
                logger.debug(f"Skipping unknown day of week {name!r}")

        return cls(
            type=schedule_type,
            time=_parse_time(data, "timeHour", "timeMinute"),
            end_time=_parse_time(data, "endTimeHour", "endTimeMinute"),
            days_of_week=frozenset(days),
            is_recurring=bool(data.get("isRecurring", True)),
        )


def _parse_time(data: Dict[str, Any], hour_key: str, minute_key: str) -> Optional[TimeOfDay]:
    """Build a time from optional hour/minute fields (both needed)."""
    if hour_key not in data or minute_key not in data:
        return None
    hour, minute = data[hour_key], data[minute_key]
    if not isinstance(hour, int) or not isinstance(minute, int) or isinstance(hour, bool) or isinstance(minute, bool):
        raise RoutineParseError(f"{hour_key}/{minute_key} must be integers")
    try:
        return TimeOfDay(hour, minute)
    except ValueError as e:
        raise RoutineParseError(f"invalid time {hour}:{minute}") from e


def _parse_limit(entry: Any) -> AppLimit:
    """Build an AppLimit from a persisted {packageName, limitMinutes} entry."""
    if not isinstance(entry, dict):
        raise RoutineParseError(f"invalid limit entry {entry!r}")
    package_name = entry.get("packageName")
    minutes = entry.get("limitMinutes")
    if not isinstance(package_name, str) or not package_name:
        raise RoutineParseError(f"packageName must be a non-empty string: {entry!r}")
    if not isinstance(minutes, int) or isinstance(minutes, bool) or minutes < 0:
        raise RoutineParseError(f"limitMinutes must be a non-negative integer: {entry!r}")
    return AppLimit(package_name, minutes)


@dataclass(frozen=True)
class Routine:
    """A named, schedulable bundle of app limits plus an enable flag."""

    id: str
    name: str
    schedule: RoutineSchedule
    is_enabled: bool = False
    limits: List[AppLimit] = field(default_factory=list)

    @classmethod
    def create(
        cls,
        name: str,
        schedule: RoutineSchedule,
        limits: Optional[Iterable[AppLimit]] = None,
        is_enabled: bool = False
    ) -> 'Routine':
        """Create a routine with a fresh random id."""
        return cls(
            id=str(uuid.uuid4()),
            name=name,
            schedule=schedule,
            is_enabled=is_enabled,
            limits=list(limits or []),
        )

    def with_enabled(self, enabled: bool) -> 'Routine':
        return replace(self, is_enabled=enabled)

    def limits_by_package(self) -> Dict[str, int]:
        """Map package name -> limit in minutes (last entry wins on duplicates)."""
        return {limit.package_name: limit.limit_minutes for limit in self.limits}

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert routine to dictionary for JSON serialization.

        Returns:
            Dictionary using the persisted camelCase field names.
        """
        return {
            "id": self.id,
            "name": self.name,
            "isEnabled": self.is_enabled,
            "schedule": self.schedule.to_dict(),
            "limits": [limit.to_dict() for limit in self.limits],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Routine':
        """
        Create a Routine from a persisted record.

        Args:
            data: Dictionary as produced by to_dict()

        Returns:
            New Routine instance

        Raises:
            RoutineParseError: If a required field is missing or has the wrong type.
        """
        if not isinstance(data, dict):
            raise RoutineParseError("routine record must be an object")

        try:
            routine_id = data["id"]
            name = data["name"]
            is_enabled = data["isEnabled"]
            schedule_data = data["schedule"]
            limits_data = data["limits"]
        except KeyError as e:
            raise RoutineParseError(f"missing field {e.args[0]!r}") from e

        if not isinstance(routine_id, str) or not routine_id:
            raise RoutineParseError("id must be a non-empty string")
        if not isinstance(name, str):
            raise RoutineParseError("name must be a string")
        if not isinstance(is_enabled, bool):
            raise RoutineParseError("isEnabled must be a boolean")
        if not isinstance(limits_data, list):
            raise RoutineParseError("limits must be a list")

        limits = []
        for entry in limits_data:
            limits.append(_parse_limit(entry))

        try:
            schedule = RoutineSchedule.from_dict(schedule_data)
        except ValueError as e:
            # RoutineParseError is a ValueError; bad weekday indexes land here too
            raise RoutineParseError(str(e)) from e

        return cls(
            id=routine_id,
            name=name,
            schedule=schedule,
            is_enabled=is_enabled,
            limits=limits,
        )
