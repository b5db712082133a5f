"""Patient lookup for chat channels: who is writing and what is their history."""

from collections import Counter
from dataclasses import dataclass, field
from typing import List, Optional

from .models import Appointment, Patient
from .validators import canonicalize_phone

HISTORY_LIMIT = 10
RECENT_LIMIT = 5
UPCOMING_STATUSES = (Appointment.SCHEDULED, Appointment.CONFIRMED)


@dataclass
class PatientHistory:
    phone: str
    patient: Optional[Patient] = None
    appointments: List[Appointment] = field(default_factory=list)

    @property
    def found(self):
        return self.patient is not None

    def count(self, *statuses):
        return sum(1 for appointment in self.appointments if appointment.status in statuses)

    @property
    def upcoming(self):
        return [a for a in self.appointments if a.status in UPCOMING_STATUSES]

    @property
    def recent(self):
        return self.appointments[:RECENT_LIMIT]

    @property
    def last_visit(self):
        return next((a for a in self.appointments if a.status == Appointment.COMPLETED), None)

    @property
    def preferred_doctor(self):
        """(doctor, completed visit count) of the most visited doctor, or None."""
        visits = Counter(a.doctor for a in self.appointments if a.status == Appointment.COMPLETED)
        if not visits:
            return None
        return visits.most_common(1)[0]


def lookup_patient(clinic_id, phone, country_code="359"):
    canonical = canonicalize_phone(phone, country_code)
    patient = Patient.objects.filter(clinic_id=clinic_id, phone=canonical).first()
    if patient is None:
        return PatientHistory(phone=canonical)

    appointments = list(
        Appointment.objects.filter(patient=patient, clinic_id=clinic_id)
        .select_related("doctor")
        .order_by("-appointment_date", "-start_time")[:HISTORY_LIMIT]
    )
    return PatientHistory(phone=canonical, patient=patient, appointments=appointments)
