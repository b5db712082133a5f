"""
Structural validation of booking and availability input.

All parsers raise ``appointments.exceptions.ValidationError`` with a
localized message naming the offending field.
"""

import re
import uuid
from datetime import date, datetime, time

from django.utils.translation import gettext_lazy as _

from .exceptions import ValidationError

DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
CLOCK_PATTERN = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")
PHONE_PATTERN = re.compile(r"^\+?[\d\s().\-]+$")
PHONE_MIN_DIGITS = 6
PHONE_MAX_DIGITS = 15


def match_clock(value):
    """Return a ``time`` for an ``HH:MM`` string, or None if it does not match."""
    if not isinstance(value, str):
        return None
    match = CLOCK_PATTERN.match(value.strip())
    if not match:
        return None
    return time(int(match.group(1)), int(match.group(2)))


def parse_date(value, field="date"):
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    if not isinstance(value, str) or not DATE_PATTERN.match(value.strip()):
        raise ValidationError(_("Invalid date, expected YYYY-MM-DD."), field=field)
    try:
        return datetime.strptime(value.strip(), "%Y-%m-%d").date()
    except ValueError:
        raise ValidationError(_("Invalid date, expected YYYY-MM-DD."), field=field)


def parse_clock_time(value, field="startTime"):
    if isinstance(value, time):
        return value.replace(second=0, microsecond=0)
    parsed = match_clock(value)
    if parsed is None:
        raise ValidationError(_("Invalid time, expected HH:MM between 00:00 and 23:59."), field=field)
    return parsed


def parse_uuid(value, field="id"):
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value).strip())
    except (TypeError, ValueError, AttributeError):
        raise ValidationError(_("Invalid identifier format."), field=field)


def parse_phone(value, field="patientPhone"):
    """Check the phone character class and return the bare digit string."""
    if not isinstance(value, str) or not PHONE_PATTERN.match(value.strip()):
        raise ValidationError(_("Invalid phone number."), field=field)
    digits = re.sub(r"\D", "", value)
    if not PHONE_MIN_DIGITS <= len(digits) <= PHONE_MAX_DIGITS:
        raise ValidationError(_("Invalid phone number."), field=field)
    return digits


def canonicalize_phone(value, country_code="359"):
    """
    Canonical international digit string used for every patient lookup.

    ``0888 123 456`` and ``+359 888 123 456`` both become ``359888123456``.
    Numbers written with ``+`` or ``00`` are already international; a single
    leading ``0`` is the national trunk prefix and is replaced by the
    country code; anything else without the country code gets it prepended.
    """
    digits = parse_phone(value)
    if value.strip().startswith("+"):
        return digits
    if digits.startswith("00"):
        return digits[2:]
    if digits.startswith("0"):
        return country_code + digits[1:]
    if not digits.startswith(country_code):
        return country_code + digits
    return digits
