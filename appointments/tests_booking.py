"""
Booking service: validation, patient resolution, conflicts and side effects
"""

import threading
from datetime import date, datetime, time, timedelta, timezone as dt_timezone
from time import sleep
from unittest import mock

from django.db import OperationalError, connection
from django.test import SimpleTestCase, TestCase, TransactionTestCase
from django.utils import translation

from .exceptions import ConflictError, DependencyError, NotFoundError, SchedulingError, ValidationError
from .models import Appointment, Clinic, Conversation, Doctor, Patient, Reminder, ServiceType
from .scheduling.booking import BookingRequest, BookingService, format_booking_date
from .scheduling.overlap import busy_intervals

# 2030-01-07 is a Monday
BOOKING_DAY = "2030-01-07"
NOW = datetime(2030, 1, 5, 12, 0, tzinfo=dt_timezone.utc)


class BookingServiceTests(TestCase):
    def setUp(self):
        self.clinic = Clinic.objects.create(name="Main Clinic", timezone="UTC")
        ServiceType.objects.create(clinic=self.clinic, name="Consultation", duration_minutes=30)
        ServiceType.objects.create(clinic=self.clinic, name="Procedure", duration_minutes=60)

        self.doctor = Doctor.objects.create(
            clinic=self.clinic,
            name="John Smith",
            working_hours={"monday": {"start": "09:00", "end": "17:00"}},
        )
        self.service = self.make_service()

    def make_service(self, now=NOW, **kwargs):
        options = {
            "default_clinic_id": self.clinic.pk,
            "default_type": "Consultation",
            "default_notes": "Booked via WhatsApp",
            "default_patient_name": "WhatsApp patient",
            "date_language": "en",
            "clock": lambda: now,
        }
        options.update(kwargs)
        return BookingService(**options)

    def request(self, **overrides):
        data = {
            "doctor_id": str(self.doctor.pk),
            "patient_phone": "0888 123 456",
            "patient_name": "Jane Doe",
            "appointment_date": BOOKING_DAY,
            "start_time": "10:00",
        }
        data.update(overrides)
        return BookingRequest(**data)

    def test_successful_booking(self):
        result = self.service.book(self.request(service_type="procedure"))
        appointment = result.appointment

        self.assertEqual(appointment.appointment_date, date(2030, 1, 7))
        self.assertEqual(appointment.start_time, time(10, 0))
        self.assertEqual(appointment.end_time, time(11, 0))
        self.assertEqual(appointment.status, Appointment.SCHEDULED)
        self.assertEqual(appointment.source, Appointment.SOURCE_WHATSAPP)
        self.assertEqual(appointment.type, "procedure")
        self.assertEqual(appointment.notes, "Booked via WhatsApp")
        self.assertEqual(result.doctor, self.doctor)
        self.assertEqual(result.patient.phone, "359888123456")
        self.assertEqual(result.patient.name, "Jane Doe")
        self.assertEqual(result.formatted_date, "Monday, 7 January")

    def test_default_duration_and_type(self):
        result = self.service.book(self.request())

        self.assertEqual(result.appointment.end_time, time(10, 30))
        self.assertEqual(result.appointment.type, "Consultation")

    def test_explicit_end_time_is_stored_verbatim(self):
        result = self.service.book(self.request(end_time="10:45", service_type="procedure"))

        self.assertEqual(result.appointment.end_time, time(10, 45))

    def test_same_phone_reuses_patient(self):
        first = self.service.book(self.request(patient_phone="0888 123 456"))
        second = self.service.book(
            self.request(patient_phone="+359 888-123-456", patient_name="Someone Else", start_time="11:00")
        )

        self.assertEqual(first.patient.pk, second.patient.pk)
        self.assertEqual(Patient.objects.count(), 1)
        self.assertEqual(second.patient.name, "Jane Doe")

    def test_missing_name_uses_placeholder(self):
        result = self.service.book(self.request(patient_name=None))

        self.assertEqual(result.patient.name, "WhatsApp patient")

    def test_invalid_start_time_persists_nothing(self):
        with self.assertRaises(ValidationError):
            self.service.book(self.request(start_time="25:00"))

        self.assertEqual(Patient.objects.count(), 0)
        self.assertEqual(Appointment.objects.count(), 0)

    def test_structural_validation(self):
        cases = {
            "missing doctor": {"doctor_id": ""},
            "missing phone": {"patient_phone": None},
            "bad date": {"appointment_date": "07.01.2030"},
            "impossible date": {"appointment_date": "2030-02-30"},
            "bad minutes": {"start_time": "10:75"},
            "bad doctor id": {"doctor_id": "doctor-1"},
            "letters in phone": {"patient_phone": "call me"},
            "short phone": {"patient_phone": "123"},
            "end before start": {"end_time": "09:30"},
            "bad conversation id": {"conversation_id": "abc"},
            "unknown source": {"source": "fax"},
        }
        for label, overrides in cases.items():
            with self.subTest(label):
                with self.assertRaises(ValidationError):
                    self.service.book(self.request(**overrides))

        self.assertEqual(Patient.objects.count(), 0)
        self.assertEqual(Appointment.objects.count(), 0)

    def test_overlong_text_fields_are_rejected_before_writing(self):
        cases = {
            "patientName": {"patient_name": "x" * 201},
            "type": {"service_type": "x" * 101},
        }
        for field, overrides in cases.items():
            with self.subTest(field):
                with self.assertRaises(ValidationError) as ctx:
                    self.service.book(self.request(**overrides))
                self.assertEqual(ctx.exception.field, field)

        self.assertEqual(Patient.objects.count(), 0)
        self.assertEqual(Appointment.objects.count(), 0)

    def test_longest_allowed_name_is_accepted(self):
        result = self.service.book(self.request(patient_name="x" * 200))

        self.assertEqual(len(result.patient.name), 200)

    def test_errors_are_translated(self):
        with translation.override("bg"):
            with self.assertRaises(ValidationError) as ctx:
                self.service.book(self.request(start_time="25:00"))

        self.assertEqual(
            ctx.exception.as_payload()["error"],
            "Невалиден час, очаква се ЧЧ:ММ между 00:00 и 23:59.",
        )

    def test_booking_past_midnight_is_rejected(self):
        with self.assertRaises(ValidationError):
            self.service.book(self.request(start_time="23:30", service_type="procedure"))

    def test_unknown_clinic(self):
        service = self.make_service(default_clinic_id="00000000-0000-0000-0000-00000000dead")

        with self.assertRaises(NotFoundError):
            service.book(self.request())

    def test_doctor_must_be_active_and_in_clinic(self):
        other_clinic = Clinic.objects.create(name="Other Clinic")
        stranger = Doctor.objects.create(clinic=other_clinic, name="Bob Jones")
        retired = Doctor.objects.create(clinic=self.clinic, name="Old Timer", is_active=False)

        for doctor in (stranger, retired):
            with self.subTest(doctor=doctor.name):
                with self.assertRaises(NotFoundError):
                    self.service.book(self.request(doctor_id=str(doctor.pk)))

        self.assertEqual(Patient.objects.count(), 0)

    def test_conflicting_booking_is_rejected(self):
        self.service.book(self.request(service_type="procedure"))

        with self.assertRaises(ConflictError):
            self.service.book(self.request(patient_phone="0899 000 111", start_time="10:30"))

        self.assertEqual(Appointment.objects.count(), 1)
        self.assertEqual(Patient.objects.count(), 1)

    def test_back_to_back_and_cancelled_slots_are_bookable(self):
        first = self.service.book(self.request())
        self.service.book(self.request(start_time="10:30"))

        first.appointment.status = Appointment.CANCELLED
        first.appointment.save()
        self.service.book(self.request(start_time="10:00"))

        self.assertEqual(Appointment.objects.exclude(status=Appointment.CANCELLED).count(), 2)

    def test_identical_booking_rejected_by_database(self):
        """Two bookings that both passed the conflict check: only one commits"""
        self.service.book(self.request())

        with mock.patch("appointments.scheduling.booking.has_conflict", return_value=False):
            with self.assertRaises(ConflictError):
                self.service.book(self.request(patient_phone="0899 000 111"))

        self.assertEqual(Appointment.objects.count(), 1)

    def test_database_failure_is_a_dependency_error(self):
        with mock.patch.object(Appointment.objects, "create", side_effect=OperationalError("db down")):
            with self.assertRaises(DependencyError):
                self.service.book(self.request())

    def test_reminders_created_for_distant_appointment(self):
        result = self.service.book(self.request())
        starts_at = datetime(2030, 1, 7, 10, 0, tzinfo=dt_timezone.utc)

        reminders = Reminder.objects.filter(appointment=result.appointment).order_by("scheduled_for")
        self.assertEqual([r.kind for r in reminders], ["24h", "3h"])
        self.assertEqual(reminders[0].scheduled_for, starts_at - timedelta(hours=24))
        self.assertEqual(reminders[1].scheduled_for, starts_at - timedelta(hours=3))
        self.assertTrue(all(r.status == Reminder.PENDING for r in reminders))

    def test_no_reminders_for_appointment_in_ninety_minutes(self):
        now = datetime(2030, 1, 7, 8, 30, tzinfo=dt_timezone.utc)
        result = self.make_service(now=now).book(self.request())

        self.assertEqual(result.reminders, [])
        self.assertFalse(Reminder.objects.exists())

    def test_only_three_hour_reminder_when_day_is_close(self):
        now = datetime(2030, 1, 7, 0, 0, tzinfo=dt_timezone.utc)
        result = self.make_service(now=now).book(self.request())

        self.assertEqual([r.kind for r in result.reminders], ["3h"])

    def test_reminder_failure_keeps_appointment(self):
        with mock.patch(
            "appointments.scheduling.booking.create_reminders",
            side_effect=OperationalError("reminders table locked"),
        ):
            with self.assertLogs("appointments.scheduling.booking", level="ERROR"):
                result = self.service.book(self.request())

        self.assertEqual(result.reminders, [])
        self.assertTrue(Appointment.objects.filter(pk=result.appointment.pk).exists())

    def test_conversation_is_resolved(self):
        conversation = Conversation.objects.create(clinic=self.clinic, channel_user_id="wa-1")

        result = self.service.book(self.request(conversation_id=str(conversation.pk)))

        conversation.refresh_from_db()
        self.assertEqual(conversation.status, Conversation.BOOKING_COMPLETE)
        self.assertEqual(conversation.patient, result.patient)
        self.assertEqual(conversation.patient_phone, "359888123456")
        self.assertEqual(conversation.resolved_at, NOW)

    def test_unknown_conversation_does_not_fail_booking(self):
        with self.assertLogs("appointments.conversations", level="WARNING"):
            result = self.service.book(
                self.request(conversation_id="11111111-1111-1111-1111-111111111111")
            )

        self.assertTrue(Appointment.objects.filter(pk=result.appointment.pk).exists())

    def test_manual_source_has_no_chat_notes(self):
        result = self.service.book(self.request(source=Appointment.SOURCE_MANUAL))

        self.assertEqual(result.appointment.source, Appointment.SOURCE_MANUAL)
        self.assertEqual(result.appointment.notes, "")


class LocalizedOutputTests(SimpleTestCase):
    def test_english_format(self):
        self.assertEqual(format_booking_date(date(2030, 1, 7), "en"), "Monday, 7 January")

    def test_bulgarian_format(self):
        self.assertEqual(format_booking_date(date(2030, 1, 7), "bg"), "понеделник, 7 Януари")

    def test_conflict_message_in_bulgarian(self):
        with translation.override("bg"):
            error = ConflictError()

        self.assertEqual(error.as_payload()["error"], "Този час вече не е свободен.")


def slow_busy_intervals(doctor_id, day):
    """Widen the window between reading the schedule and inserting."""
    busy = busy_intervals(doctor_id, day)
    sleep(0.3)
    return busy


class ConcurrentBookingTests(TransactionTestCase):
    def setUp(self):
        if connection.vendor == "sqlite" and connection.is_in_memory_db():
            self.skipTest("threads need a file-backed test database")

        self.clinic = Clinic.objects.create(name="Main Clinic", timezone="UTC")
        ServiceType.objects.create(clinic=self.clinic, name="Procedure", duration_minutes=60)
        self.doctor = Doctor.objects.create(clinic=self.clinic, name="John Smith")

    def book_in_thread(self, label, phone, start_time, barrier, outcomes):
        service = BookingService(default_clinic_id=self.clinic.pk, date_language="en", clock=lambda: NOW)
        request = BookingRequest(
            doctor_id=str(self.doctor.pk),
            patient_phone=phone,
            appointment_date=BOOKING_DAY,
            start_time=start_time,
            service_type="procedure",
        )
        try:
            barrier.wait(timeout=10)
            service.book(request)
            outcomes[label] = "ok"
        except SchedulingError as exc:
            outcomes[label] = exc.category
        finally:
            connection.close()

    def test_overlapping_bookings_one_wins(self):
        barrier = threading.Barrier(2)
        outcomes = {}
        threads = [
            threading.Thread(
                target=self.book_in_thread, args=("a", "0888 111 111", "10:00", barrier, outcomes)
            ),
            threading.Thread(
                target=self.book_in_thread, args=("b", "0888 222 222", "10:30", barrier, outcomes)
            ),
        ]

        with mock.patch("appointments.scheduling.booking.busy_intervals", side_effect=slow_busy_intervals):
            for thread in threads:
                thread.start()
            for thread in threads:
                thread.join(timeout=30)

        self.assertEqual(sorted(outcomes.values()), ["conflict", "ok"])
        self.assertEqual(Appointment.objects.filter(doctor=self.doctor).count(), 1)
