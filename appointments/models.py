import uuid
from datetime import datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator, MaxValueValidator
from django.db import models
from django.db.models import F, Q

from .validators import match_clock


def default_clinic_timezone():
    return settings.TIME_ZONE


class Weekday(models.IntegerChoices):
    MONDAY = 1, "Monday"
    TUESDAY = 2, "Tuesday"
    WEDNESDAY = 3, "Wednesday"
    THURSDAY = 4, "Thursday"
    FRIDAY = 5, "Friday"
    SATURDAY = 6, "Saturday"
    SUNDAY = 7, "Sunday"

    @classmethod
    def from_date(cls, day):
        return cls(day.isoweekday())

    @classmethod
    def from_key(cls, key):
        """Map ``monday`` or ``mon`` (any case) to a member, None if unknown."""
        if not isinstance(key, str):
            return None
        key = key.strip().lower()
        for member in cls:
            if key in (member.key, member.key[:3]):
                return member
        return None

    @property
    def key(self):
        return self.name.lower()


class Clinic(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=200)
    phone = models.CharField(max_length=20, blank=True)
    timezone = models.CharField(max_length=64, default=default_clinic_timezone)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return self.name

    @property
    def tzinfo(self):
        try:
            return ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError):
            return ZoneInfo(settings.TIME_ZONE)

    def clean(self):
        super().clean()
        try:
            ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValidationError({"timezone": f"Unknown time zone: {self.timezone}"})


class ServiceType(models.Model):
    clinic = models.ForeignKey(
        Clinic, on_delete=models.CASCADE, related_name="service_types"
    )
    name = models.CharField(max_length=100)
    duration_minutes = models.PositiveIntegerField(
        validators=[MinValueValidator(5), MaxValueValidator(480)]
    )
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ["id"]

    def __str__(self):
        return f"{self.name} ({self.duration_minutes} mins)"


class Doctor(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    clinic = models.ForeignKey(Clinic, on_delete=models.CASCADE, related_name="doctors")
    name = models.CharField(max_length=200)
    specialty = models.CharField(max_length=100, blank=True)
    is_active = models.BooleanField(default=True)
    # {"monday": {"start": "09:00", "end": "17:00"}, ...}
    working_hours = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["id"]

    def __str__(self):
        return f"Dr. {self.name}"

    def clean(self):
        """Validate the shape of the weekday-keyed working hours map"""
        super().clean()
        if not isinstance(self.working_hours, dict):
            raise ValidationError({"working_hours": "Working hours must be a mapping of weekdays."})

        errors = []
        for key, hours in self.working_hours.items():
            if Weekday.from_key(key) is None:
                errors.append(f"Unknown weekday: {key}")
                continue
            if not isinstance(hours, dict):
                errors.append(f"{key}: expected start and end times")
                continue
            start = match_clock(hours.get("start"))
            end = match_clock(hours.get("end"))
            if start is None or end is None:
                errors.append(f"{key}: times must use HH:MM")
            elif end <= start:
                errors.append(f"{key}: end must be after start")

        if errors:
            raise ValidationError({"working_hours": errors})


class Patient(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    clinic = models.ForeignKey(Clinic, on_delete=models.CASCADE, related_name="patients")
    # Canonical international digits, see validators.canonicalize_phone
    phone = models.CharField(max_length=20)
    name = models.CharField(max_length=200)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["clinic", "phone"], name="uq_patient_clinic_phone"
            ),
        ]

    def __str__(self):
        return f"{self.name} ({self.phone})"


class Appointment(models.Model):
    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"

    STATUS_CHOICES = [
        (SCHEDULED, "Scheduled"),
        (CONFIRMED, "Confirmed"),
        (COMPLETED, "Completed"),
        (CANCELLED, "Cancelled"),
        (NO_SHOW, "No Show"),
    ]

    SOURCE_MANUAL = "manual"
    SOURCE_WHATSAPP = "whatsapp"
    SOURCE_GOOGLE_CALENDAR = "google_calendar"

    SOURCE_CHOICES = [
        (SOURCE_MANUAL, "Manual"),
        (SOURCE_WHATSAPP, "WhatsApp"),
        (SOURCE_GOOGLE_CALENDAR, "Google Calendar"),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    clinic = models.ForeignKey(Clinic, on_delete=models.CASCADE, related_name="appointments")
    doctor = models.ForeignKey(Doctor, on_delete=models.CASCADE, related_name="appointments")
    patient = models.ForeignKey(
        Patient,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="appointments",
    )
    appointment_date = models.DateField()
    start_time = models.TimeField()
    end_time = models.TimeField()
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=SCHEDULED)
    type = models.CharField(max_length=100, blank=True)
    notes = models.TextField(blank=True)
    source = models.CharField(max_length=20, choices=SOURCE_CHOICES, default=SOURCE_MANUAL)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["appointment_date", "start_time"]
        indexes = [
            models.Index(fields=["doctor", "appointment_date"], name="appointment_doctor_day_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(end_time__gt=F("start_time")),
                name="appointment_end_after_start",
            ),
            # Last line of defence against double booking of the same start
            models.UniqueConstraint(
                fields=["doctor", "appointment_date", "start_time"],
                condition=~Q(status="cancelled"),
                name="uq_active_appointment_doctor_start",
            ),
        ]

    def __str__(self):
        return f"{self.patient} with {self.doctor} on {self.appointment_date} at {self.start_time:%H:%M}"

    @property
    def starts_at(self):
        """Aware start instant in the clinic's time zone"""
        return datetime.combine(self.appointment_date, self.start_time, tzinfo=self.clinic.tzinfo)

    def clean(self):
        """Validate times and that the appointment doesn't overlap an existing one"""
        super().clean()

        if self.start_time and self.end_time and self.end_time <= self.start_time:
            raise ValidationError({"end_time": "End time must be after start time."})

        if self.status == self.CANCELLED or not (
            self.doctor_id and self.appointment_date and self.start_time and self.end_time
        ):
            return

        from .scheduling.overlap import find_overlapping_appointments

        overlapping = find_overlapping_appointments(
            self.doctor_id,
            self.appointment_date,
            self.start_time,
            self.end_time,
            exclude=self.pk if not self._state.adding else None,
        )
        if overlapping:
            first = overlapping[0]
            raise ValidationError(
                f"This appointment overlaps with an existing appointment. "
                f"Doctor has an appointment from {first.start_time:%H:%M} "
                f"to {first.end_time:%H:%M}."
            )


class Reminder(models.Model):
    KIND_24H = "24h"
    KIND_3H = "3h"

    KIND_CHOICES = [
        (KIND_24H, "24 hours before"),
        (KIND_3H, "3 hours before"),
    ]

    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"

    STATUS_CHOICES = [
        (PENDING, "Pending"),
        (SENT, "Sent"),
        (FAILED, "Failed"),
    ]

    appointment = models.ForeignKey(
        Appointment, on_delete=models.CASCADE, related_name="reminders"
    )
    kind = models.CharField(max_length=10, choices=KIND_CHOICES)
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default=PENDING)
    scheduled_for = models.DateTimeField()
    sent_at = models.DateTimeField(null=True, blank=True)
    error_message = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["scheduled_for"]
        constraints = [
            models.UniqueConstraint(
                fields=["appointment", "kind"], name="uq_reminder_appointment_kind"
            ),
        ]

    def __str__(self):
        return f"{self.get_kind_display()} reminder for {self.appointment_id}"


class Conversation(models.Model):
    """Chat thread owned by the messaging integration; booking only resolves it."""

    ACTIVE = "active"
    BOOKING_COMPLETE = "booking_complete"
    CLOSED = "closed"

    STATUS_CHOICES = [
        (ACTIVE, "Active"),
        (BOOKING_COMPLETE, "Booking complete"),
        (CLOSED, "Closed"),
    ]

    CHANNEL_CHOICES = [
        ("whatsapp", "WhatsApp"),
        ("messenger", "Messenger"),
        ("instagram", "Instagram"),
        ("viber", "Viber"),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    clinic = models.ForeignKey(Clinic, on_delete=models.CASCADE, related_name="conversations")
    channel = models.CharField(max_length=20, choices=CHANNEL_CHOICES, default="whatsapp")
    channel_user_id = models.CharField(max_length=100, blank=True)
    patient = models.ForeignKey(
        Patient,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="conversations",
    )
    patient_phone = models.CharField(max_length=20, blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=ACTIVE)
    resolved_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.get_channel_display()} conversation {self.id}"
