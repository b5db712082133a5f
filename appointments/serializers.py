from django.utils.translation import gettext as _
from rest_framework import serializers

from .exceptions import ValidationError
from .models import Doctor, Appointment
from .scheduling.booking import BookingRequest


def first_error(errors):
    """Flatten DRF serializer errors into one readable line."""
    field, messages = next(iter(errors.items()))
    message = messages[0] if isinstance(messages, list) else messages
    return field, f"{field}: {message}"


class DoctorSerializer(serializers.ModelSerializer):
    class Meta:
        model = Doctor
        fields = ["id", "name", "specialty", "working_hours"]


class DoctorSummarySerializer(serializers.ModelSerializer):
    class Meta:
        model = Doctor
        fields = ["id", "name", "specialty"]


class AvailabilityQuerySerializer(serializers.Serializer):
    clinicId = serializers.CharField(source="clinic_id", required=False, allow_blank=True)
    date = serializers.CharField()
    doctorId = serializers.CharField(source="doctor_id", required=False, allow_blank=True)
    serviceType = serializers.CharField(source="service_type", required=False, allow_blank=True)
    startTime = serializers.CharField(source="start_time", required=False, allow_blank=True)

    def to_query(self):
        if not self.is_valid():
            field, message = first_error(self.errors)
            raise ValidationError(message, field=field)
        return self.validated_data


class AvailableSlotSerializer(serializers.Serializer):
    startTime = serializers.CharField(source="start_label")
    endTime = serializers.CharField(source="end_label")
    doctorId = serializers.UUIDField(source="doctor.id")
    doctorName = serializers.CharField(source="doctor.name")


class SpecificTimeResultSerializer(serializers.Serializer):
    def to_representation(self, result):
        data = {
            "available": result.available,
            "requestedTime": result.requested_time,
            "serviceDuration": result.service_duration,
        }
        if result.available:
            data["endTime"] = result.end_time
            data["doctor"] = {"id": str(result.doctor.id), "name": result.doctor.name}
        else:
            data["message"] = _("The requested time is not available.")
            data["suggestedSlots"] = AvailableSlotSerializer(result.suggested_slots, many=True).data
        return data


class DaySlotsSerializer(serializers.Serializer):
    available = serializers.BooleanField()
    serviceDuration = serializers.IntegerField(source="service_duration")
    slotsCount = serializers.IntegerField(source="slots_count")
    slots = AvailableSlotSerializer(many=True)
    doctors = DoctorSummarySerializer(many=True)


class BookingRequestSerializer(serializers.Serializer):
    """Maps the chatbot's camelCase payload onto a BookingRequest."""

    clinicId = serializers.CharField(source="clinic_id", required=False, allow_blank=True, allow_null=True)
    doctorId = serializers.CharField(source="doctor_id", required=False, allow_blank=True, allow_null=True)
    patientPhone = serializers.CharField(source="patient_phone", required=False, allow_blank=True, allow_null=True)
    patientName = serializers.CharField(
        source="patient_name", required=False, allow_blank=True, allow_null=True, max_length=200
    )
    appointmentDate = serializers.CharField(
        source="appointment_date", required=False, allow_blank=True, allow_null=True
    )
    startTime = serializers.CharField(source="start_time", required=False, allow_blank=True, allow_null=True)
    endTime = serializers.CharField(source="end_time", required=False, allow_blank=True, allow_null=True)
    type = serializers.CharField(
        source="service_type", required=False, allow_blank=True, allow_null=True, max_length=100
    )
    notes = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    conversationId = serializers.CharField(
        source="conversation_id", required=False, allow_blank=True, allow_null=True
    )

    def to_booking_request(self, source=Appointment.SOURCE_WHATSAPP):
        if not self.is_valid():
            field, message = first_error(self.errors)
            raise ValidationError(message, field=field)
        data = self.validated_data
        return BookingRequest(
            clinic_id=data.get("clinic_id"),
            doctor_id=data.get("doctor_id"),
            patient_phone=data.get("patient_phone"),
            patient_name=data.get("patient_name"),
            appointment_date=data.get("appointment_date"),
            start_time=data.get("start_time"),
            end_time=data.get("end_time"),
            service_type=data.get("service_type"),
            notes=data.get("notes"),
            conversation_id=data.get("conversation_id"),
            source=source,
        )


class BookedAppointmentSerializer(serializers.Serializer):
    """Confirmation payload, ready for a chatbot reply."""

    def to_representation(self, result):
        appointment = result.appointment
        return {
            "id": str(appointment.id),
            "date": appointment.appointment_date.isoformat(),
            "formattedDate": result.formatted_date,
            "startTime": appointment.start_time.strftime("%H:%M"),
            "endTime": appointment.end_time.strftime("%H:%M"),
            "doctorId": str(result.doctor.id),
            "doctorName": result.doctor.name,
            "patientId": str(result.patient.id),
            "patientName": result.patient.name,
            "patientPhone": result.patient.phone,
            "type": appointment.type,
            "source": appointment.source,
        }


class HistoryAppointmentSerializer(serializers.ModelSerializer):
    date = serializers.DateField(source="appointment_date")
    time = serializers.TimeField(source="start_time", format="%H:%M")
    doctor = serializers.CharField(source="doctor.name")

    class Meta:
        model = Appointment
        fields = ["date", "time", "type", "doctor", "status"]


class PatientLookupSerializer(serializers.Serializer):
    def to_representation(self, history):
        if not history.found:
            return {
                "found": False,
                "isNewPatient": True,
                "phone": history.phone,
            }

        patient = history.patient
        last_visit = history.last_visit
        preferred = history.preferred_doctor
        return {
            "found": True,
            "isNewPatient": False,
            "patient": {
                "id": str(patient.id),
                "name": patient.name,
                "phone": patient.phone,
                "memberSince": patient.created_at.isoformat(),
            },
            "stats": {
                "totalVisits": history.count(Appointment.COMPLETED),
                "totalAppointments": len(history.appointments),
                "cancelledAppointments": history.count(Appointment.CANCELLED),
                "noShowAppointments": history.count(Appointment.NO_SHOW),
                "upcomingCount": len(history.upcoming),
            },
            "lastVisit": (
                {
                    "date": last_visit.appointment_date.isoformat(),
                    "type": last_visit.type,
                    "doctor": last_visit.doctor.name,
                }
                if last_visit
                else None
            ),
            "preferredDoctor": (
                {"name": preferred[0].name, "visitCount": preferred[1]} if preferred else None
            ),
            "upcomingAppointments": HistoryAppointmentSerializer(history.upcoming, many=True).data,
            "recentAppointments": HistoryAppointmentSerializer(history.recent, many=True).data,
        }
