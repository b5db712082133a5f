"""
Overlap detection.

Intervals are half-open ``[start, end)``: an appointment ending at 09:30
never conflicts with one starting at 09:30. The same predicate backs slot
listing, specific-time checks and the final booking re-check.
"""

from collections import defaultdict
from typing import Dict, Iterable, List, Tuple

from ..models import Appointment
from .working_hours import to_minutes

Interval = Tuple[int, int]


def intervals_overlap(start: int, end: int, other_start: int, other_end: int) -> bool:
    return start < other_end and end > other_start


def has_conflict(busy: Iterable[Interval], start: int, end: int) -> bool:
    return any(intervals_overlap(start, end, busy_start, busy_end) for busy_start, busy_end in busy)


def active_appointments(doctor_ids, day):
    """Non-cancelled appointments of the given doctors on ``day``."""
    return Appointment.objects.filter(
        doctor_id__in=list(doctor_ids), appointment_date=day
    ).exclude(status=Appointment.CANCELLED)


def busy_intervals(doctor_id, day) -> List[Interval]:
    rows = active_appointments([doctor_id], day).values_list("start_time", "end_time")
    return [(to_minutes(start), to_minutes(end)) for start, end in rows]


def busy_intervals_by_doctor(doctor_ids, day) -> Dict[object, List[Interval]]:
    """Busy intervals of several doctors on one day, fetched in a single query."""
    busy = defaultdict(list)
    rows = active_appointments(doctor_ids, day).values_list("doctor_id", "start_time", "end_time")
    for doctor_id, start, end in rows:
        busy[doctor_id].append((to_minutes(start), to_minutes(end)))
    return busy


def find_overlapping_appointments(doctor_id, day, start_time, end_time, exclude=None):
    """Appointments that overlap ``[start_time, end_time)`` for one doctor on one day."""
    queryset = active_appointments([doctor_id], day).filter(
        start_time__lt=end_time, end_time__gt=start_time
    )
    if exclude is not None:
        queryset = queryset.exclude(pk=exclude)
    return list(queryset.order_by("start_time"))
