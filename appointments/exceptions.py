"""
Error taxonomy for the scheduling engine.

Every error carries a localized message and a machine-checkable category
so automated callers (chatbot workflows) can branch without parsing prose.
"""

import logging

from rest_framework import status
from rest_framework.exceptions import APIException
from rest_framework.views import exception_handler
from django.utils.translation import gettext_lazy as _

logger = logging.getLogger(__name__)


class SchedulingError(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = _("The request could not be processed.")
    default_code = "error"

    def __init__(self, detail=None, field=None):
        super().__init__(detail=detail)
        self.field = field

    @property
    def category(self):
        return self.default_code

    def as_payload(self):
        payload = {"error": str(self.detail), "category": self.category}
        if self.field:
            payload["field"] = self.field
        return payload


class ValidationError(SchedulingError):
    """Malformed input. Never retried automatically."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = _("Invalid request.")
    default_code = "validation"


class NotFoundError(SchedulingError):
    """Missing or inactive clinic or doctor."""

    status_code = status.HTTP_404_NOT_FOUND
    default_detail = _("Not found.")
    default_code = "not_found"


class ConflictError(SchedulingError):
    """The slot was taken. Safe to retry with a different slot."""

    status_code = status.HTTP_409_CONFLICT
    default_detail = _("This time slot is no longer available.")
    default_code = "conflict"

    def as_payload(self):
        payload = super().as_payload()
        payload["conflict"] = True
        return payload


class DependencyError(SchedulingError):
    """Persistence failure. The caller only sees a generic message."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = _("Server error, please try again later.")
    default_code = "dependency"


def scheduling_exception_handler(exc, context):
    """DRF exception handler rendering errors as ``{"error", "category"}``."""
    if isinstance(exc, SchedulingError):
        response = exception_handler(exc, context)
        response.data = exc.as_payload()
        return response

    response = exception_handler(exc, context)
    if response is None:
        return None

    data = response.data
    if isinstance(data, dict) and "detail" in data:
        data = data["detail"]
    response.data = {
        "error": data if isinstance(data, (dict, list)) else str(data),
        "category": getattr(exc, "default_code", "error"),
    }
    return response
