import logging

from ..models import ServiceType

logger = logging.getLogger(__name__)

DEFAULT_DURATION_MINUTES = 30


def resolve_service_duration(clinic_id, service_name=None, default=DEFAULT_DURATION_MINUTES):
    """
    Duration in minutes for a free-text service name.

    The requested text is matched case-insensitively as a substring of the
    clinic's active service names, scanned in id order; the first match
    wins. Unknown or missing names fall back to ``default``.
    """
    if not service_name or not str(service_name).strip():
        return default

    needle = str(service_name).strip().casefold()
    # Matched in Python: icontains is ASCII-only on SQLite and names are often Cyrillic
    services = ServiceType.objects.filter(clinic_id=clinic_id, is_active=True).order_by("id")
    for service in services.only("id", "name", "duration_minutes"):
        if needle in service.name.casefold():
            return service.duration_minutes

    logger.debug("No service type matching %r in clinic %s, using %s minutes", service_name, clinic_id, default)
    return default
