"""
Test coverage for core scheduling logic
"""

from datetime import date, datetime, time, timedelta, timezone as dt_timezone

from django.core.exceptions import ValidationError as ModelValidationError
from django.test import SimpleTestCase, TestCase

from .exceptions import ValidationError
from .models import Appointment, Clinic, Doctor, ServiceType, Weekday
from .scheduling.availability import AvailabilityService
from .scheduling.durations import resolve_service_duration
from .scheduling.overlap import busy_intervals, has_conflict, intervals_overlap
from .scheduling.reminders import plan_reminders
from .scheduling.slots import generate_slots
from .scheduling.working_hours import WorkingWindow, resolve_working_window

MONDAY = date(2024, 1, 1)
SATURDAY = date(2024, 1, 6)

WEEKDAY_HOURS = {
    day: {"start": "09:00", "end": "17:00"}
    for day in ["monday", "tuesday", "wednesday", "thursday", "friday"]
}


def minutes(hour, minute=0):
    return hour * 60 + minute


class SlotAndOverlapTests(SimpleTestCase):
    """Pure functions: no database involved"""

    def test_full_day_of_half_hour_slots(self):
        """Monday 09:00-17:00 with a 30 minute service gives 16 slots"""
        slots = generate_slots(WorkingWindow(minutes(9), minutes(17)), 30)

        self.assertEqual(len(slots), 16)
        self.assertEqual(slots[0].start_label, "09:00")
        self.assertEqual(slots[-1].start_label, "16:30")
        self.assertEqual(slots[-1].end_label, "17:00")

    def test_slots_are_aligned_and_fit_the_window(self):
        window = WorkingWindow(minutes(8, 30), minutes(13, 15))
        for duration in (15, 30, 45, 60, 90, 120):
            for slot in generate_slots(window, duration):
                self.assertEqual((slot.start - window.start) % 30, 0)
                self.assertLessEqual(slot.start + duration, window.end)
                self.assertEqual(slot.end - slot.start, duration)

    def test_long_service_keeps_half_hour_step(self):
        slots = generate_slots(WorkingWindow(minutes(9), minutes(12)), 60)
        self.assertEqual(
            [slot.start_label for slot in slots],
            ["09:00", "09:30", "10:00", "10:30", "11:00"],
        )

    def test_no_slots_when_duration_exceeds_window(self):
        self.assertEqual(generate_slots(WorkingWindow(minutes(9), minutes(10)), 90), [])

    def test_no_slots_when_not_working(self):
        self.assertEqual(generate_slots(None, 30), [])
        self.assertEqual(generate_slots(WorkingWindow(minutes(9), minutes(9)), 30), [])

    def test_touching_intervals_never_conflict(self):
        self.assertFalse(intervals_overlap(minutes(9), minutes(9, 30), minutes(9, 30), minutes(10)))
        self.assertFalse(intervals_overlap(minutes(9, 30), minutes(10), minutes(9), minutes(9, 30)))

    def test_partial_and_contained_intervals_conflict(self):
        self.assertTrue(intervals_overlap(minutes(9), minutes(9, 30), minutes(9, 15), minutes(9, 45)))
        self.assertTrue(intervals_overlap(minutes(9), minutes(11), minutes(9, 30), minutes(10)))
        self.assertTrue(intervals_overlap(minutes(10), minutes(10, 30), minutes(10), minutes(10, 30)))

    def test_has_conflict_checks_every_busy_interval(self):
        busy = [(minutes(9), minutes(9, 30)), (minutes(11), minutes(12))]
        self.assertFalse(has_conflict(busy, minutes(9, 30), minutes(11)))
        self.assertTrue(has_conflict(busy, minutes(11, 30), minutes(12, 30)))
        self.assertFalse(has_conflict([], minutes(0), minutes(23, 59)))


class ReminderPlanningTests(SimpleTestCase):
    def setUp(self):
        self.now = datetime(2030, 1, 5, 12, 0, tzinfo=dt_timezone.utc)

    def plan_in(self, delta):
        return plan_reminders(self.now + delta, self.now)

    def test_reminder_count_follows_lead_time(self):
        cases = [
            (timedelta(minutes=90), []),
            (timedelta(hours=3), []),
            (timedelta(hours=3, minutes=1), ["3h"]),
            (timedelta(hours=24), ["3h"]),
            (timedelta(hours=25), ["24h", "3h"]),
        ]
        for delta, expected in cases:
            with self.subTest(delta=delta):
                self.assertEqual([item.kind for item in self.plan_in(delta)], expected)

    def test_reminders_are_scheduled_before_start(self):
        starts_at = self.now + timedelta(days=2)
        planned = plan_reminders(starts_at, self.now)

        self.assertEqual(planned[0].scheduled_for, starts_at - timedelta(hours=24))
        self.assertEqual(planned[1].scheduled_for, starts_at - timedelta(hours=3))
        for item in planned:
            self.assertLess(item.scheduled_for, starts_at)
            self.assertGreater(item.scheduled_for, self.now)

    def test_past_appointment_gets_no_reminders(self):
        self.assertEqual(self.plan_in(-timedelta(hours=30)), [])


class CoreSchedulingLogicTests(TestCase):
    """Test core scheduling logic without API calls"""

    def setUp(self):
        self.clinic = Clinic.objects.create(name="Main Clinic", timezone="UTC")

        self.consultation = ServiceType.objects.create(
            clinic=self.clinic, name="Consultation", duration_minutes=30
        )
        self.procedure = ServiceType.objects.create(
            clinic=self.clinic, name="Procedure", duration_minutes=60
        )

        self.doctor = Doctor.objects.create(
            clinic=self.clinic, name="John Smith", specialty="Cardiology", working_hours=WEEKDAY_HOURS
        )

    def create_appointment(self, start, end, status=Appointment.SCHEDULED, day=MONDAY, doctor=None):
        return Appointment.objects.create(
            clinic=self.clinic,
            doctor=doctor or self.doctor,
            appointment_date=day,
            start_time=start,
            end_time=end,
            status=status,
        )

    def test_weekday_mapping(self):
        self.assertEqual(Weekday.from_date(MONDAY), Weekday.MONDAY)
        self.assertEqual(Weekday.from_date(SATURDAY), Weekday.SATURDAY)
        self.assertEqual(Weekday.from_key("Sun"), Weekday.SUNDAY)
        self.assertEqual(Weekday.from_key("wednesday"), Weekday.WEDNESDAY)
        self.assertIsNone(Weekday.from_key("someday"))

    def test_working_window_for_working_day(self):
        window = resolve_working_window(self.doctor, MONDAY)
        self.assertEqual(window, WorkingWindow(minutes(9), minutes(17)))

    def test_no_working_window_on_day_off(self):
        self.assertIsNone(resolve_working_window(self.doctor, SATURDAY))

    def test_short_weekday_keys_are_accepted(self):
        self.doctor.working_hours = {"Sat": {"start": "10:00", "end": "12:00"}}
        self.assertEqual(
            resolve_working_window(self.doctor, SATURDAY), WorkingWindow(minutes(10), minutes(12))
        )

    def test_malformed_hours_count_as_not_working(self):
        self.doctor.working_hours = {"monday": {"start": "9am", "end": "17:00"}}
        self.assertIsNone(resolve_working_window(self.doctor, MONDAY))

        self.doctor.working_hours = {"monday": {"start": "17:00", "end": "09:00"}}
        self.assertIsNone(resolve_working_window(self.doctor, MONDAY))

    def test_doctor_clean_rejects_bad_working_hours(self):
        self.doctor.working_hours = {"funday": {"start": "09:00", "end": "17:00"}}
        with self.assertRaises(ModelValidationError):
            self.doctor.clean()

        self.doctor.working_hours = {"monday": {"start": "12:00", "end": "11:00"}}
        with self.assertRaises(ModelValidationError):
            self.doctor.clean()

        self.doctor.working_hours = WEEKDAY_HOURS
        self.doctor.clean()

    def test_service_duration_lookup(self):
        self.assertEqual(resolve_service_duration(self.clinic.pk, "consult"), 30)
        self.assertEqual(resolve_service_duration(self.clinic.pk, "PROCEDURE"), 60)

    def test_service_duration_defaults(self):
        self.assertEqual(resolve_service_duration(self.clinic.pk, None), 30)
        self.assertEqual(resolve_service_duration(self.clinic.pk, "   "), 30)
        self.assertEqual(resolve_service_duration(self.clinic.pk, "x-ray"), 30)
        self.assertEqual(resolve_service_duration(self.clinic.pk, "x-ray", default=45), 45)

    def test_service_duration_first_match_wins(self):
        ServiceType.objects.create(clinic=self.clinic, name="Procedure extended", duration_minutes=120)
        self.assertEqual(resolve_service_duration(self.clinic.pk, "procedure"), 60)

    def test_service_duration_matches_cyrillic_names(self):
        ServiceType.objects.create(clinic=self.clinic, name="Профилактичен преглед", duration_minutes=45)
        self.assertEqual(resolve_service_duration(self.clinic.pk, "ПРЕГЛЕД"), 45)

    def test_service_duration_ignores_inactive_and_other_clinics(self):
        other = Clinic.objects.create(name="Other Clinic")
        ServiceType.objects.create(clinic=other, name="Surgery", duration_minutes=240)
        ServiceType.objects.create(
            clinic=self.clinic, name="Cleaning", duration_minutes=90, is_active=False
        )

        self.assertEqual(resolve_service_duration(self.clinic.pk, "surgery"), 30)
        self.assertEqual(resolve_service_duration(self.clinic.pk, "cleaning"), 30)

    def test_busy_intervals_skip_cancelled(self):
        self.create_appointment(time(9, 0), time(9, 30), status=Appointment.CANCELLED)
        self.create_appointment(time(10, 0), time(10, 30), status=Appointment.COMPLETED)
        self.create_appointment(time(11, 0), time(12, 0))

        self.assertEqual(
            sorted(busy_intervals(self.doctor.pk, MONDAY)),
            [(minutes(10), minutes(10, 30)), (minutes(11), minutes(12))],
        )

    def test_appointment_overlap_detection(self):
        """Test that overlapping appointments are detected and prevented"""
        self.create_appointment(time(10, 0), time(10, 30))

        for start, end in [
            (time(10, 0), time(10, 30)),  # exact overlap
            (time(10, 15), time(10, 45)),  # partial overlap
            (time(10, 5), time(10, 25)),  # contained within
        ]:
            with self.subTest(start=start):
                appointment = Appointment(
                    clinic=self.clinic,
                    doctor=self.doctor,
                    appointment_date=MONDAY,
                    start_time=start,
                    end_time=end,
                )
                with self.assertRaises(ModelValidationError):
                    appointment.clean()

    def test_back_to_back_and_cancelled_do_not_block(self):
        self.create_appointment(time(10, 0), time(10, 30))
        self.create_appointment(time(11, 0), time(11, 30), status=Appointment.CANCELLED)

        for start, end in [(time(10, 30), time(11, 0)), (time(11, 0), time(11, 30))]:
            appointment = Appointment(
                clinic=self.clinic,
                doctor=self.doctor,
                appointment_date=MONDAY,
                start_time=start,
                end_time=end,
            )
            try:
                appointment.clean()
            except ModelValidationError as e:
                self.fail(f"Appointment at {start} should not conflict: {e}")

    def test_appointment_end_must_follow_start(self):
        appointment = Appointment(
            clinic=self.clinic,
            doctor=self.doctor,
            appointment_date=MONDAY,
            start_time=time(10, 0),
            end_time=time(10, 0),
        )
        with self.assertRaises(ModelValidationError):
            appointment.clean()


class AvailabilityServiceTests(TestCase):
    def setUp(self):
        self.clinic = Clinic.objects.create(name="Main Clinic", timezone="UTC")
        ServiceType.objects.create(clinic=self.clinic, name="Consultation", duration_minutes=30)
        ServiceType.objects.create(clinic=self.clinic, name="Procedure", duration_minutes=60)

        self.doctor = Doctor.objects.create(
            clinic=self.clinic, name="John Smith", working_hours=WEEKDAY_HOURS
        )
        self.service = AvailabilityService(default_clinic_id=self.clinic.pk)

    def add_doctor(self, name, working_hours=None, is_active=True):
        return Doctor.objects.create(
            clinic=self.clinic,
            name=name,
            working_hours=WEEKDAY_HOURS if working_hours is None else working_hours,
            is_active=is_active,
        )

    def book(self, doctor, start, end, status=Appointment.SCHEDULED):
        return Appointment.objects.create(
            clinic=self.clinic,
            doctor=doctor,
            appointment_date=MONDAY,
            start_time=start,
            end_time=end,
            status=status,
        )

    def test_list_day_slots_for_free_monday(self):
        result = self.service.list_day_slots("2024-01-01")

        self.assertTrue(result.available)
        self.assertEqual(result.service_duration, 30)
        self.assertEqual(result.slots_count, 16)
        self.assertEqual(result.slots[0].start_label, "09:00")
        self.assertEqual(result.slots[-1].start_label, "16:30")
        self.assertEqual(result.doctors, [self.doctor])

    def test_list_day_slots_drops_conflicts(self):
        self.book(self.doctor, time(10, 0), time(11, 0))
        self.book(self.doctor, time(12, 0), time(12, 30), status=Appointment.CANCELLED)

        result = self.service.list_day_slots("2024-01-01")
        starts = [slot.start_label for slot in result.slots]

        self.assertEqual(result.slots_count, 14)
        self.assertNotIn("10:00", starts)
        self.assertNotIn("10:30", starts)
        self.assertIn("11:00", starts)
        self.assertIn("12:00", starts)

    def test_list_day_slots_uses_service_duration(self):
        result = self.service.list_day_slots("2024-01-01", service_type="procedure")

        self.assertEqual(result.service_duration, 60)
        self.assertEqual(result.slots_count, 15)
        self.assertEqual(result.slots[-1].end_label, "17:00")

    def test_listing_is_capped_but_counted(self):
        self.add_doctor("Bob Jones")

        result = self.service.list_day_slots("2024-01-01")

        self.assertEqual(result.slots_count, 32)
        self.assertEqual(len(result.slots), 20)

    def test_doctor_without_hours_that_day_gets_no_slots(self):
        weekend = self.add_doctor("Weekend Doctor", {"saturday": {"start": "09:00", "end": "13:00"}})

        monday = self.service.list_day_slots("2024-01-01")
        saturday = self.service.list_day_slots("2024-01-06")

        self.assertFalse(any(slot.doctor == weekend for slot in monday.slots))
        self.assertTrue(all(slot.doctor == weekend for slot in saturday.slots))
        self.assertEqual(saturday.slots_count, 8)

    def test_inactive_doctors_are_ignored(self):
        self.doctor.is_active = False
        self.doctor.save()

        result = self.service.list_day_slots("2024-01-01")

        self.assertFalse(result.available)
        self.assertEqual(result.slots, [])
        self.assertEqual(result.doctors, [])

    def test_doctor_filter(self):
        other = self.add_doctor("Bob Jones")

        result = self.service.list_day_slots("2024-01-01", doctor_id=str(other.pk))

        self.assertEqual(result.doctors, [other])
        self.assertTrue(all(slot.doctor == other for slot in result.slots))

    def test_specific_time_available(self):
        result = self.service.check_specific_time("2024-01-01", "10:00", service_type="procedure")

        self.assertTrue(result.available)
        self.assertEqual(result.doctor, self.doctor)
        self.assertEqual(result.requested_time, "10:00")
        self.assertEqual(result.end_time, "11:00")
        self.assertEqual(result.service_duration, 60)

    def test_specific_time_first_doctor_by_id_wins(self):
        self.add_doctor("Bob Jones")
        self.add_doctor("Ann Lee")
        first = Doctor.objects.order_by("id").first()

        result = self.service.check_specific_time("2024-01-01", "10:00")

        self.assertEqual(result.doctor, first)

    def test_specific_time_falls_through_to_free_doctor(self):
        other = self.add_doctor("Bob Jones")
        first, second = sorted([self.doctor, other], key=lambda doctor: doctor.pk)
        self.book(first, time(10, 0), time(10, 30))

        result = self.service.check_specific_time("2024-01-01", "10:15")

        self.assertTrue(result.available)
        self.assertEqual(result.doctor, second)

    def test_specific_time_conflict_suggests_later_slots(self):
        """10:00-10:30 booked, 10:15 requested: alternatives start at 10:30 or later"""
        self.book(self.doctor, time(10, 0), time(10, 30))

        result = self.service.check_specific_time(
            "2024-01-01", "10:15", doctor_id=str(self.doctor.pk)
        )

        self.assertFalse(result.available)
        self.assertIsNone(result.doctor)
        self.assertEqual(len(result.suggested_slots), 3)
        self.assertEqual(result.suggested_slots[0].start_label, "10:30")
        for slot in result.suggested_slots:
            self.assertGreaterEqual(slot.start_label, "10:30")

    def test_specific_time_outside_working_hours(self):
        result = self.service.check_specific_time("2024-01-01", "16:45")

        self.assertFalse(result.available)
        self.assertEqual(result.suggested_slots, [])

        saturday = self.service.check_specific_time("2024-01-06", "10:00")
        self.assertFalse(saturday.available)

    def test_no_active_doctors_is_not_an_error(self):
        empty = Clinic.objects.create(name="Empty Clinic")

        result = self.service.check_specific_time("2024-01-01", "10:00", clinic_id=str(empty.pk))

        self.assertFalse(result.available)
        self.assertEqual(result.suggested_slots, [])

    def test_malformed_input_is_rejected(self):
        with self.assertRaises(ValidationError):
            self.service.list_day_slots("01/01/2024")
        with self.assertRaises(ValidationError):
            self.service.list_day_slots("2024-02-30")
        with self.assertRaises(ValidationError):
            self.service.check_specific_time("2024-01-01", "25:00")
        with self.assertRaises(ValidationError):
            self.service.list_day_slots("2024-01-01", doctor_id="not-a-uuid")
