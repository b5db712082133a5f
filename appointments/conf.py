from django.conf import settings

DEFAULTS = {
    "DEFAULT_CLINIC_ID": None,
    "API_KEY": "",
    "PHONE_COUNTRY_CODE": "359",
    "SLOT_STEP_MINUTES": 30,
    "DEFAULT_SERVICE_DURATION": 30,
    "MAX_SUGGESTED_SLOTS": 3,
    "MAX_LISTED_SLOTS": 20,
    "DEFAULT_APPOINTMENT_TYPE": "Преглед",
    "DEFAULT_BOOKING_NOTES": "Запазен през WhatsApp",
    "DEFAULT_PATIENT_NAME": "WhatsApp пациент",
    "DATE_LANGUAGE": "bg",
}


def scheduling_setting(name):
    """Read one key of ``settings.SCHEDULING``, falling back to DEFAULTS."""
    if name not in DEFAULTS:
        raise KeyError(f"Unknown scheduling setting: {name}")
    overrides = getattr(settings, "SCHEDULING", None) or {}
    return overrides.get(name, DEFAULTS[name])
