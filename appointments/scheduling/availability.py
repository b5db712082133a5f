"""
Availability queries.

Answers "is this time free" and "which slots are free on this day" for
one doctor or every active doctor of a clinic. Doctors are always
considered in ascending id order so results are stable between calls.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from ..conf import scheduling_setting
from ..models import Doctor
from ..validators import parse_clock_time, parse_date, parse_uuid
from .durations import resolve_service_duration
from .overlap import busy_intervals_by_doctor, has_conflict
from .slots import generate_slots
from .working_hours import format_minutes, resolve_working_window, to_minutes

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AvailableSlot:
    doctor: Doctor
    start: int
    end: int

    @property
    def start_label(self):
        return format_minutes(self.start)

    @property
    def end_label(self):
        return format_minutes(self.end)


@dataclass
class SpecificTimeResult:
    available: bool
    requested_time: str
    service_duration: int
    end_time: Optional[str] = None
    doctor: Optional[Doctor] = None
    suggested_slots: List[AvailableSlot] = field(default_factory=list)


@dataclass
class DaySlots:
    service_duration: int
    slots: List[AvailableSlot]
    slots_count: int
    doctors: List[Doctor]

    @property
    def available(self):
        return self.slots_count > 0


class AvailabilityService:
    def __init__(
        self,
        default_clinic_id=None,
        step_minutes=30,
        default_duration=30,
        max_suggestions=3,
        max_listed_slots=20,
    ):
        self.default_clinic_id = default_clinic_id
        self.step_minutes = step_minutes
        self.default_duration = default_duration
        self.max_suggestions = max_suggestions
        self.max_listed_slots = max_listed_slots

    @classmethod
    def from_settings(cls):
        return cls(
            default_clinic_id=scheduling_setting("DEFAULT_CLINIC_ID"),
            step_minutes=scheduling_setting("SLOT_STEP_MINUTES"),
            default_duration=scheduling_setting("DEFAULT_SERVICE_DURATION"),
            max_suggestions=scheduling_setting("MAX_SUGGESTED_SLOTS"),
            max_listed_slots=scheduling_setting("MAX_LISTED_SLOTS"),
        )

    def check_specific_time(self, date, start_time, clinic_id=None, doctor_id=None, service_type=None):
        day = parse_date(date, field="date")
        requested = to_minutes(parse_clock_time(start_time, field="startTime"))
        clinic_id = self._clinic_id(clinic_id)
        doctors = self.eligible_doctors(clinic_id, doctor_id)

        duration = resolve_service_duration(clinic_id, service_type, self.default_duration)
        end = requested + duration
        busy = busy_intervals_by_doctor([doctor.pk for doctor in doctors], day)

        for doctor in doctors:
            window = resolve_working_window(doctor, day)
            if window is None or not window.contains(requested, end):
                continue
            if has_conflict(busy[doctor.pk], requested, end):
                continue
            return SpecificTimeResult(
                available=True,
                requested_time=format_minutes(requested),
                service_duration=duration,
                end_time=format_minutes(end),
                doctor=doctor,
            )

        suggestions = []
        for doctor in doctors:
            suggestions.extend(
                slot
                for slot in self._free_slots(doctor, day, duration, busy[doctor.pk])
                if slot.start >= requested
            )
        order = {doctor.pk: index for index, doctor in enumerate(doctors)}
        suggestions.sort(key=lambda slot: (slot.start, order[slot.doctor.pk]))

        logger.debug(
            "%s %s not available for clinic %s, %d alternative(s) found",
            day,
            format_minutes(requested),
            clinic_id,
            len(suggestions),
        )
        return SpecificTimeResult(
            available=False,
            requested_time=format_minutes(requested),
            service_duration=duration,
            suggested_slots=suggestions[: self.max_suggestions],
        )

    def list_day_slots(self, date, clinic_id=None, doctor_id=None, service_type=None):
        day = parse_date(date, field="date")
        clinic_id = self._clinic_id(clinic_id)
        doctors = self.eligible_doctors(clinic_id, doctor_id)

        duration = resolve_service_duration(clinic_id, service_type, self.default_duration)
        busy = busy_intervals_by_doctor([doctor.pk for doctor in doctors], day)

        slots = []
        for doctor in doctors:
            slots.extend(self._free_slots(doctor, day, duration, busy[doctor.pk]))

        return DaySlots(
            service_duration=duration,
            slots=slots[: self.max_listed_slots],
            slots_count=len(slots),
            doctors=doctors,
        )

    def eligible_doctors(self, clinic_id, doctor_id=None):
        """Active doctors of the clinic, optionally narrowed to one doctor."""
        doctor_pk = parse_uuid(doctor_id, field="doctorId") if doctor_id else None
        if clinic_id is None:
            return []
        queryset = Doctor.objects.filter(clinic_id=clinic_id, is_active=True)
        if doctor_pk is not None:
            queryset = queryset.filter(pk=doctor_pk)
        return list(queryset.order_by("id"))

    def _free_slots(self, doctor, day, duration, busy):
        window = resolve_working_window(doctor, day)
        return [
            AvailableSlot(doctor, slot.start, slot.end)
            for slot in generate_slots(window, duration, self.step_minutes)
            if not has_conflict(busy, slot.start, slot.end)
        ]

    def _clinic_id(self, clinic_id):
        clinic_id = clinic_id or self.default_clinic_id
        if clinic_id is None:
            return None
        return parse_uuid(clinic_id, field="clinicId")
