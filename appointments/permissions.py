from django.utils.crypto import constant_time_compare
from django.utils.translation import gettext_lazy as _
from rest_framework import permissions

from .conf import scheduling_setting


class HasSchedulingApiKey(permissions.BasePermission):
    """Check the X-API-Key header sent by the chatbot workflow"""

    message = _("Missing or invalid API key.")

    def has_permission(self, request, view):
        expected = scheduling_setting("API_KEY")
        provided = request.headers.get("X-API-Key", "")
        if not expected or not provided:
            return False
        return constant_time_compare(provided, expected)
