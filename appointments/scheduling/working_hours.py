"""
Working hours resolution.

Times inside the engine are plain minutes since midnight so interval
arithmetic never has to deal with ``datetime.time``.
"""

from dataclasses import dataclass
from datetime import time
from typing import Optional

from ..models import Weekday
from ..validators import match_clock

MINUTES_PER_DAY = 24 * 60


def to_minutes(value: time) -> int:
    return value.hour * 60 + value.minute


def minutes_to_time(minutes: int) -> time:
    if not 0 <= minutes < MINUTES_PER_DAY:
        raise ValueError(f"{minutes} minutes is outside a single day")
    return time(minutes // 60, minutes % 60)


def format_minutes(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


@dataclass(frozen=True)
class WorkingWindow:
    start: int
    end: int

    @property
    def is_empty(self) -> bool:
        return self.end <= self.start

    def contains(self, start: int, end: int) -> bool:
        return self.start <= start and end <= self.end


def working_hours_for(working_hours, weekday: Weekday) -> Optional[dict]:
    """Entry of a working-hours map for ``weekday``; full or short keys, any case."""
    if not isinstance(working_hours, dict):
        return None
    for key, hours in working_hours.items():
        if Weekday.from_key(key) == weekday:
            return hours
    return None


def resolve_working_window(doctor, day) -> Optional[WorkingWindow]:
    """
    Doctor's open window on ``day``, or None when not working.

    Malformed entries count as not working rather than failing the query.
    """
    hours = working_hours_for(doctor.working_hours, Weekday.from_date(day))
    if not isinstance(hours, dict):
        return None

    start = match_clock(hours.get("start"))
    end = match_clock(hours.get("end"))
    if start is None or end is None:
        return None

    window = WorkingWindow(to_minutes(start), to_minutes(end))
    if window.is_empty:
        return None
    return window
