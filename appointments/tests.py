import importlib
import os
import uuid
from datetime import date, time
from unittest import mock

from django.test import SimpleTestCase, override_settings
from django.utils import translation
from rest_framework import status
from rest_framework.test import APITestCase

from clinic_scheduler import settings as project_settings

from .conf import DEFAULTS
from .models import Appointment, Clinic, Doctor, Patient, ServiceType

CLINIC_ID = uuid.UUID("6f1c1d2e-9a43-4c55-8d7e-2b1f0c3a4d5e")
API_KEY = "test-key"

WEEKDAY_HOURS = {
    day: {"start": "09:00", "end": "17:00"}
    for day in ("monday", "tuesday", "wednesday", "thursday", "friday")
}


@override_settings(
    SCHEDULING={"API_KEY": API_KEY, "DEFAULT_CLINIC_ID": str(CLINIC_ID), "DATE_LANGUAGE": "en"}
)
class SchedulingApiTests(APITestCase):
    def setUp(self):
        self.clinic = Clinic.objects.create(id=CLINIC_ID, name="Test Clinic", timezone="UTC")
        ServiceType.objects.create(clinic=self.clinic, name="Consultation", duration_minutes=30)
        ServiceType.objects.create(clinic=self.clinic, name="Procedure", duration_minutes=60)

        self.doctor = Doctor.objects.create(
            clinic=self.clinic,
            name="John Smith",
            specialty="Cardiology",
            working_hours=WEEKDAY_HOURS,
        )
        self.client.credentials(HTTP_X_API_KEY=API_KEY)

    def booking_payload(self, **overrides):
        payload = {
            "doctorId": str(self.doctor.id),
            "patientPhone": "0888 123 456",
            "patientName": "Jane Doe",
            "appointmentDate": "2030-01-07",
            "startTime": "10:00",
        }
        payload.update(overrides)
        return payload

    def test_requests_without_api_key_are_rejected(self):
        self.client.credentials()
        response = self.client.get("/api/scheduling/availability/", {"date": "2024-01-01"})
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        self.client.credentials(HTTP_X_API_KEY="wrong")
        response = self.client.post("/api/scheduling/book-appointment/", self.booking_payload(), format="json")
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(Appointment.objects.count(), 0)

    def test_day_availability(self):
        response = self.client.get("/api/scheduling/availability/", {"date": "2024-01-01"})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data["available"])
        self.assertEqual(response.data["serviceDuration"], 30)
        self.assertEqual(response.data["slotsCount"], 16)
        self.assertEqual(response.data["slots"][0]["startTime"], "09:00")
        self.assertEqual(response.data["slots"][0]["doctorName"], "John Smith")
        self.assertEqual(response.data["doctors"][0]["name"], "John Smith")

    def test_day_availability_for_service(self):
        response = self.client.get(
            "/api/scheduling/availability/", {"date": "2024-01-01", "serviceType": "procedure"}
        )

        self.assertEqual(response.data["serviceDuration"], 60)
        self.assertEqual(response.data["slotsCount"], 15)

    def test_weekend_has_no_slots(self):
        response = self.client.get("/api/scheduling/availability/", {"date": "2024-01-06"})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(response.data["available"])
        self.assertEqual(response.data["slots"], [])

    def test_specific_time_available(self):
        response = self.client.get(
            "/api/scheduling/availability/", {"date": "2024-01-01", "startTime": "10:00"}
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data["available"])
        self.assertEqual(response.data["endTime"], "10:30")
        self.assertEqual(response.data["doctor"]["id"], str(self.doctor.id))

    def test_specific_time_taken_suggests_later_slots(self):
        Appointment.objects.create(
            clinic=self.clinic,
            doctor=self.doctor,
            appointment_date=date(2024, 1, 1),
            start_time=time(10, 0),
            end_time=time(10, 30),
        )

        response = self.client.get(
            "/api/scheduling/availability/", {"date": "2024-01-01", "startTime": "10:00"}
        )

        self.assertFalse(response.data["available"])
        self.assertIn("message", response.data)
        starts = [slot["startTime"] for slot in response.data["suggestedSlots"]]
        self.assertEqual(starts, ["10:30", "11:00", "11:30"])

    def test_availability_validation_errors(self):
        for params in ({}, {"date": "01/01/2024"}, {"date": "2024-01-01", "startTime": "25:00"}):
            with self.subTest(params=params):
                response = self.client.get("/api/scheduling/availability/", params)
                self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
                self.assertEqual(response.data["category"], "validation")
                self.assertIn("error", response.data)

    def test_book_appointment(self):
        response = self.client.post(
            "/api/scheduling/book-appointment/", self.booking_payload(type="Procedure"), format="json"
        )

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(response.data["success"])
        appointment = response.data["appointment"]
        self.assertEqual(appointment["date"], "2030-01-07")
        self.assertEqual(appointment["formattedDate"], "Monday, 7 January")
        self.assertEqual(appointment["startTime"], "10:00")
        self.assertEqual(appointment["endTime"], "11:00")
        self.assertEqual(appointment["doctorName"], "John Smith")
        self.assertEqual(appointment["patientPhone"], "359888123456")

        stored = Appointment.objects.get(id=appointment["id"])
        self.assertEqual(stored.clinic, self.clinic)
        self.assertEqual(stored.source, Appointment.SOURCE_WHATSAPP)
        self.assertEqual(stored.reminders.count(), 2)

    def test_book_taken_slot_returns_conflict(self):
        self.client.post("/api/scheduling/book-appointment/", self.booking_payload(), format="json")

        response = self.client.post(
            "/api/scheduling/book-appointment/",
            self.booking_payload(patientPhone="0899 000 111"),
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data["category"], "conflict")
        self.assertTrue(response.data["conflict"])
        self.assertEqual(Appointment.objects.count(), 1)

    def test_book_invalid_time_persists_nothing(self):
        response = self.client.post(
            "/api/scheduling/book-appointment/", self.booking_payload(startTime="25:00"), format="json"
        )

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["category"], "validation")
        self.assertEqual(response.data["field"], "startTime")
        self.assertEqual(Patient.objects.count(), 0)
        self.assertEqual(Appointment.objects.count(), 0)

    def test_book_missing_fields(self):
        response = self.client.post("/api/scheduling/book-appointment/", {}, format="json")

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("doctorId", response.data["error"])

    def test_book_unknown_doctor(self):
        response = self.client.post(
            "/api/scheduling/book-appointment/", self.booking_payload(doctorId=str(uuid.uuid4())), format="json"
        )

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data["category"], "not_found")

    def test_doctor_list(self):
        Doctor.objects.create(clinic=self.clinic, name="Anna Petrova")
        Doctor.objects.create(clinic=self.clinic, name="Retired", is_active=False)

        response = self.client.get("/api/scheduling/doctors/")

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        names = [doctor["name"] for doctor in response.data["doctors"]]
        self.assertEqual(names, ["Anna Petrova", "John Smith"])

    def test_patient_lookup_unknown_phone(self):
        response = self.client.get("/api/scheduling/patient-lookup/", {"phone": "0888 123 456"})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(response.data["found"])
        self.assertTrue(response.data["isNewPatient"])
        self.assertEqual(response.data["phone"], "359888123456")

    def test_patient_lookup_with_history(self):
        patient = Patient.objects.create(clinic=self.clinic, phone="359888123456", name="Jane Doe")
        Appointment.objects.create(
            clinic=self.clinic,
            doctor=self.doctor,
            patient=patient,
            appointment_date=date(2024, 1, 1),
            start_time=time(9, 0),
            end_time=time(9, 30),
            status=Appointment.COMPLETED,
            type="Consultation",
        )
        Appointment.objects.create(
            clinic=self.clinic,
            doctor=self.doctor,
            patient=patient,
            appointment_date=date(2030, 1, 7),
            start_time=time(10, 0),
            end_time=time(10, 30),
        )

        response = self.client.get("/api/scheduling/patient-lookup/", {"phone": "+359 888 123 456"})

        self.assertTrue(response.data["found"])
        self.assertEqual(response.data["patient"]["name"], "Jane Doe")
        self.assertEqual(response.data["stats"]["totalVisits"], 1)
        self.assertEqual(response.data["stats"]["upcomingCount"], 1)
        self.assertEqual(response.data["lastVisit"]["date"], "2024-01-01")
        self.assertEqual(response.data["preferredDoctor"], {"name": "John Smith", "visitCount": 1})

    def test_patient_lookup_requires_phone(self):
        response = self.client.get("/api/scheduling/patient-lookup/")

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["field"], "phone")

    def test_book_overlong_name_is_rejected(self):
        response = self.client.post(
            "/api/scheduling/book-appointment/", self.booking_payload(patientName="x" * 201), format="json"
        )

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["category"], "validation")
        self.assertEqual(response.data["field"], "patientName")
        self.assertEqual(Appointment.objects.count(), 0)

    def test_errors_follow_accept_language(self):
        self.addCleanup(translation.deactivate)
        self.client.post("/api/scheduling/book-appointment/", self.booking_payload(), format="json")

        response = self.client.post(
            "/api/scheduling/book-appointment/",
            self.booking_payload(patientPhone="0899 000 111"),
            format="json",
            HTTP_ACCEPT_LANGUAGE="bg",
        )

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data["error"], "Този час вече не е свободен.")

        response = self.client.get("/api/scheduling/patient-lookup/", HTTP_ACCEPT_LANGUAGE="bg")
        self.assertEqual(response.data["error"], "Липсва задължителен параметър: phone")

        self.client.credentials()
        response = self.client.get("/api/scheduling/doctors/", HTTP_ACCEPT_LANGUAGE="bg")
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(response.data["error"], "Липсващ или невалиден API ключ.")


class SchedulingSettingsTests(SimpleTestCase):
    def test_every_scheduling_key_is_read_from_environment(self):
        env = {
            "MAX_SUGGESTED_SLOTS": "5",
            "MAX_LISTED_SLOTS": "40",
            "DEFAULT_APPOINTMENT_TYPE": "Консултация",
            "DEFAULT_BOOKING_NOTES": "Booked by phone",
            "DEFAULT_PATIENT_NAME": "Caller",
        }
        try:
            with mock.patch.dict(os.environ, env):
                scheduling = importlib.reload(project_settings).SCHEDULING
        finally:
            importlib.reload(project_settings)

        self.assertEqual(set(scheduling), set(DEFAULTS))
        self.assertEqual(scheduling["MAX_SUGGESTED_SLOTS"], 5)
        self.assertEqual(scheduling["MAX_LISTED_SLOTS"], 40)
        self.assertEqual(scheduling["DEFAULT_APPOINTMENT_TYPE"], "Консултация")
        self.assertEqual(scheduling["DEFAULT_BOOKING_NOTES"], "Booked by phone")
        self.assertEqual(scheduling["DEFAULT_PATIENT_NAME"], "Caller")
