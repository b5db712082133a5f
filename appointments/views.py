import logging

from django.db import DatabaseError
from django.utils.translation import gettext as _
from rest_framework import status
from rest_framework.decorators import api_view
from rest_framework.response import Response

from .conf import scheduling_setting
from .exceptions import DependencyError, ValidationError
from .models import Doctor
from .patients import lookup_patient
from .scheduling.availability import AvailabilityService
from .scheduling.booking import BookingService
from .serializers import (
    AvailabilityQuerySerializer,
    BookedAppointmentSerializer,
    BookingRequestSerializer,
    DaySlotsSerializer,
    DoctorSerializer,
    PatientLookupSerializer,
    SpecificTimeResultSerializer,
)
from .validators import parse_uuid

logger = logging.getLogger(__name__)


def requested_clinic_id(request):
    clinic_id = request.query_params.get("clinicId") or scheduling_setting("DEFAULT_CLINIC_ID")
    return parse_uuid(clinic_id, field="clinicId")


@api_view(["GET"])
def availability(request):
    """Specific-time check when startTime is given, otherwise the day's free slots"""
    query = AvailabilityQuerySerializer(data=request.query_params).to_query()
    service = AvailabilityService.from_settings()

    try:
        if query.get("start_time"):
            result = service.check_specific_time(
                query["date"],
                query["start_time"],
                clinic_id=query.get("clinic_id"),
                doctor_id=query.get("doctor_id"),
                service_type=query.get("service_type"),
            )
            return Response(SpecificTimeResultSerializer(result).data)

        result = service.list_day_slots(
            query["date"],
            clinic_id=query.get("clinic_id"),
            doctor_id=query.get("doctor_id"),
            service_type=query.get("service_type"),
        )
    except DatabaseError as exc:
        logger.exception("Availability query failed")
        raise DependencyError() from exc

    return Response(DaySlotsSerializer(result).data)


@api_view(["POST"])
def book_appointment(request):
    booking_request = BookingRequestSerializer(data=request.data).to_booking_request()
    result = BookingService.from_settings().book(booking_request)
    return Response(
        {"success": True, "appointment": BookedAppointmentSerializer(result).data},
        status=status.HTTP_201_CREATED,
    )


@api_view(["GET"])
def doctor_list(request):
    clinic_id = requested_clinic_id(request)
    try:
        doctors = list(Doctor.objects.filter(clinic_id=clinic_id, is_active=True).order_by("name", "id"))
    except DatabaseError as exc:
        logger.exception("Doctor listing failed for clinic %s", clinic_id)
        raise DependencyError() from exc
    return Response({"doctors": DoctorSerializer(doctors, many=True).data})


@api_view(["GET"])
def patient_lookup(request):
    phone = request.query_params.get("phone")
    if not phone:
        raise ValidationError(_("Missing required parameter: %(name)s") % {"name": "phone"}, field="phone")

    clinic_id = requested_clinic_id(request)
    try:
        history = lookup_patient(clinic_id, phone, scheduling_setting("PHONE_COUNTRY_CODE"))
    except DatabaseError as exc:
        logger.exception("Patient lookup failed for clinic %s", clinic_id)
        raise DependencyError() from exc
    return Response(PatientLookupSerializer(history).data)
