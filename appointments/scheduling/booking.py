"""
Booking commit.

Validation happens in two passes before anything is written: the shape of
the input first, then the existence of the clinic and doctor. The conflict
re-check and the insert run in one transaction holding a row lock on the
doctor, so concurrent bookings for the same doctor queue up behind each
other; the partial unique constraint on (doctor, date, start) catches
anything that slips through on backends without row locks.
"""

import logging
from dataclasses import dataclass, field
from typing import List, NamedTuple, Optional

from django.db import DatabaseError, IntegrityError, transaction
from django.utils import formats, timezone, translation
from django.utils.translation import gettext as _

from ..conf import scheduling_setting
from ..conversations import ConversationLinker
from ..exceptions import ConflictError, NotFoundError, ValidationError, DependencyError
from ..models import Appointment, Clinic, Doctor, Patient, Reminder
from ..validators import canonicalize_phone, parse_clock_time, parse_date, parse_uuid
from .durations import resolve_service_duration
from .overlap import busy_intervals, has_conflict
from .reminders import create_reminders
from .working_hours import MINUTES_PER_DAY, format_minutes, minutes_to_time, to_minutes

logger = logging.getLogger(__name__)

SOURCES = {value for value, _label in Appointment.SOURCE_CHOICES}


@dataclass
class BookingRequest:
    doctor_id: str
    patient_phone: str
    appointment_date: str
    start_time: str
    clinic_id: Optional[str] = None
    patient_name: Optional[str] = None
    end_time: Optional[str] = None
    service_type: Optional[str] = None
    notes: Optional[str] = None
    conversation_id: Optional[str] = None
    source: str = Appointment.SOURCE_WHATSAPP


@dataclass
class BookingResult:
    appointment: Appointment
    doctor: Doctor
    patient: Patient
    formatted_date: str
    reminders: List[Reminder] = field(default_factory=list)


class ValidatedBooking(NamedTuple):
    clinic_id: object
    doctor_id: object
    phone: str
    day: object
    start: int
    end: Optional[int]
    conversation_id: Optional[object]


def format_booking_date(day, language):
    """Weekday, day and month in ``language``, e.g. ``понеделник, 10 февруари``."""
    with translation.override(language):
        return formats.date_format(day, "l, j F")


class BookingService:
    def __init__(
        self,
        default_clinic_id=None,
        country_code="359",
        default_duration=30,
        default_type="",
        default_notes="",
        default_patient_name="",
        date_language="bg",
        clock=timezone.now,
        conversation_linker=None,
    ):
        self.default_clinic_id = default_clinic_id
        self.country_code = country_code
        self.default_duration = default_duration
        self.default_type = default_type
        self.default_notes = default_notes
        self.default_patient_name = default_patient_name
        self.date_language = date_language
        self.clock = clock
        self.conversation_linker = conversation_linker or ConversationLinker()

    @classmethod
    def from_settings(cls, **overrides):
        options = {
            "default_clinic_id": scheduling_setting("DEFAULT_CLINIC_ID"),
            "country_code": scheduling_setting("PHONE_COUNTRY_CODE"),
            "default_duration": scheduling_setting("DEFAULT_SERVICE_DURATION"),
            "default_type": scheduling_setting("DEFAULT_APPOINTMENT_TYPE"),
            "default_notes": scheduling_setting("DEFAULT_BOOKING_NOTES"),
            "default_patient_name": scheduling_setting("DEFAULT_PATIENT_NAME"),
            "date_language": scheduling_setting("DATE_LANGUAGE"),
        }
        options.update(overrides)
        return cls(**options)

    def book(self, request: BookingRequest) -> BookingResult:
        validated = self.validate(request)

        try:
            clinic = self._get_clinic(validated.clinic_id)
            doctor = self._get_doctor(clinic, validated.doctor_id)

            duration = resolve_service_duration(clinic.pk, request.service_type, self.default_duration)
            end = validated.end if validated.end is not None else validated.start + duration
            if end >= MINUTES_PER_DAY:
                raise ValidationError(_("The appointment must end on the same day."), field="startTime")

            appointment, patient = self._commit(clinic, doctor, validated, end, request)
        except IntegrityError as exc:
            logger.info(
                "Unique constraint rejected booking for doctor %s on %s at %s",
                validated.doctor_id,
                validated.day,
                format_minutes(validated.start),
            )
            raise ConflictError() from exc
        except DatabaseError as exc:
            logger.exception("Booking failed for doctor %s on %s", validated.doctor_id, validated.day)
            raise DependencyError() from exc

        logger.info(
            "Booked appointment %s: doctor %s, patient %s, %s %s-%s, source %s",
            appointment.pk,
            doctor.pk,
            patient.pk,
            appointment.appointment_date,
            format_minutes(validated.start),
            format_minutes(end),
            appointment.source,
        )

        reminders = self._schedule_reminders(appointment)
        if validated.conversation_id is not None:
            self._link_conversation(validated.conversation_id, patient)

        return BookingResult(
            appointment=appointment,
            doctor=doctor,
            patient=patient,
            formatted_date=format_booking_date(appointment.appointment_date, self.date_language),
            reminders=reminders,
        )

    def validate(self, request: BookingRequest) -> ValidatedBooking:
        """Structural checks only; nothing here touches the database."""
        required = (
            ("doctorId", request.doctor_id),
            ("patientPhone", request.patient_phone),
            ("appointmentDate", request.appointment_date),
            ("startTime", request.start_time),
        )
        missing = [name for name, value in required if value in (None, "")]
        if missing:
            raise ValidationError(
                _("Missing required fields: %(fields)s") % {"fields": ", ".join(missing)}
            )

        clinic_id = request.clinic_id or self.default_clinic_id
        if not clinic_id:
            raise ValidationError(_("Missing required fields: %(fields)s") % {"fields": "clinicId"})

        if request.source not in SOURCES:
            raise ValidationError(_("Unknown booking source."), field="source")

        for name, value, model_field in (
            ("patientName", (request.patient_name or "").strip(), Patient._meta.get_field("name")),
            ("type", request.service_type or "", Appointment._meta.get_field("type")),
        ):
            if len(value) > model_field.max_length:
                raise ValidationError(
                    _("%(field)s must be at most %(limit)d characters.")
                    % {"field": name, "limit": model_field.max_length},
                    field=name,
                )

        day = parse_date(request.appointment_date, field="appointmentDate")
        start = to_minutes(parse_clock_time(request.start_time, field="startTime"))

        end = None
        if request.end_time:
            end = to_minutes(parse_clock_time(request.end_time, field="endTime"))
            if end <= start:
                raise ValidationError(_("End time must be after start time."), field="endTime")

        conversation_id = None
        if request.conversation_id:
            conversation_id = parse_uuid(request.conversation_id, field="conversationId")

        return ValidatedBooking(
            clinic_id=parse_uuid(clinic_id, field="clinicId"),
            doctor_id=parse_uuid(request.doctor_id, field="doctorId"),
            phone=canonicalize_phone(request.patient_phone, self.country_code),
            day=day,
            start=start,
            end=end,
            conversation_id=conversation_id,
        )

    def _get_clinic(self, clinic_id):
        try:
            return Clinic.objects.get(pk=clinic_id)
        except Clinic.DoesNotExist:
            raise NotFoundError(_("Clinic not found."), field="clinicId")

    def _get_doctor(self, clinic, doctor_id):
        try:
            return Doctor.objects.get(pk=doctor_id, clinic=clinic, is_active=True)
        except Doctor.DoesNotExist:
            raise NotFoundError(_("Doctor not found or not active in this clinic."), field="doctorId")

    def _commit(self, clinic, doctor, validated, end, request):
        with transaction.atomic():
            # Row lock: concurrent bookings for this doctor wait here
            Doctor.objects.select_for_update().get(pk=doctor.pk)

            patient = self._resolve_patient(clinic, validated.phone, request.patient_name)

            if has_conflict(busy_intervals(doctor.pk, validated.day), validated.start, end):
                logger.info(
                    "Slot %s %s-%s taken for doctor %s",
                    validated.day,
                    format_minutes(validated.start),
                    format_minutes(end),
                    doctor.pk,
                )
                raise ConflictError()

            notes = request.notes
            if not notes and request.source == Appointment.SOURCE_WHATSAPP:
                notes = self.default_notes

            appointment = Appointment.objects.create(
                clinic=clinic,
                doctor=doctor,
                patient=patient,
                appointment_date=validated.day,
                start_time=minutes_to_time(validated.start),
                end_time=minutes_to_time(end),
                status=Appointment.SCHEDULED,
                type=request.service_type or self.default_type,
                notes=notes or "",
                source=request.source,
            )
        return appointment, patient

    def _resolve_patient(self, clinic, phone, name):
        patient, created = Patient.objects.get_or_create(
            clinic=clinic,
            phone=phone,
            defaults={"name": (name or "").strip() or self.default_patient_name},
        )
        if created:
            logger.info("Created patient %s for clinic %s", patient.pk, clinic.pk)
        return patient

    def _schedule_reminders(self, appointment):
        try:
            with transaction.atomic():
                return create_reminders(appointment, now=self.clock())
        except DatabaseError:
            logger.exception("Could not create reminders for appointment %s", appointment.pk)
            return []

    def _link_conversation(self, conversation_id, patient):
        try:
            with transaction.atomic():
                self.conversation_linker.resolve(conversation_id, patient, when=self.clock())
        except DatabaseError:
            logger.exception("Could not resolve conversation %s", conversation_id)
