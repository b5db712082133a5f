"""
Django settings for the clinic scheduling service.

Values come from the environment; a local ``.env`` file is loaded first.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent.parent

load_dotenv(BASE_DIR / ".env")


def env_bool(name, default=False):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


SECRET_KEY = os.environ.get("DJANGO_SECRET_KEY", "insecure-development-key")

DEBUG = env_bool("DJANGO_DEBUG", False)

ALLOWED_HOSTS = [
    host.strip()
    for host in os.environ.get("DJANGO_ALLOWED_HOSTS", "localhost,127.0.0.1,testserver").split(",")
    if host.strip()
]

INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "rest_framework",
    "appointments",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.locale.LocaleMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
]

ROOT_URLCONF = "clinic_scheduler.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

WSGI_APPLICATION = "clinic_scheduler.wsgi.application"

if os.environ.get("DB_NAME") and os.environ.get("DB_ENGINE", "postgresql") == "postgresql":
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.postgresql",
            "NAME": os.environ["DB_NAME"],
            "USER": os.environ.get("DB_USER", ""),
            "PASSWORD": os.environ.get("DB_PASSWORD", ""),
            "HOST": os.environ.get("DB_HOST", "localhost"),
            "PORT": os.environ.get("DB_PORT", "5432"),
            "ATOMIC_REQUESTS": False,
        }
    }
else:
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.sqlite3",
            "NAME": BASE_DIR / os.environ.get("SQLITE_NAME", "db.sqlite3"),
            # Writers take the database lock at BEGIN, so concurrent bookings
            # queue up instead of failing with "database is locked"
            "OPTIONS": {"transaction_mode": "IMMEDIATE", "timeout": 20},
            # File-backed so that tests using threads share one database
            "TEST": {"NAME": BASE_DIR / "test_db.sqlite3"},
        }
    }

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

LANGUAGE_CODE = os.environ.get("DJANGO_LANGUAGE_CODE", "en")
LANGUAGES = [
    ("bg", "Bulgarian"),
    ("en", "English"),
]
TIME_ZONE = os.environ.get("DJANGO_TIME_ZONE", "Europe/Sofia")
USE_I18N = True
USE_TZ = True

STATIC_URL = "static/"

REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": [],
    "DEFAULT_PERMISSION_CLASSES": ["appointments.permissions.HasSchedulingApiKey"],
    "EXCEPTION_HANDLER": "appointments.exceptions.scheduling_exception_handler",
    "UNAUTHENTICATED_USER": None,
}

# Scheduling engine knobs, see appointments/conf.py for defaults
SCHEDULING = {
    "DEFAULT_CLINIC_ID": os.environ.get("DEFAULT_CLINIC_ID", "00000000-0000-0000-0000-000000000001"),
    "API_KEY": os.environ.get("SCHEDULING_API_KEY", ""),
    "PHONE_COUNTRY_CODE": os.environ.get("PHONE_COUNTRY_CODE", "359"),
    "SLOT_STEP_MINUTES": int(os.environ.get("SLOT_STEP_MINUTES", "30")),
    "DEFAULT_SERVICE_DURATION": int(os.environ.get("DEFAULT_SERVICE_DURATION", "30")),
    "MAX_SUGGESTED_SLOTS": int(os.environ.get("MAX_SUGGESTED_SLOTS", "3")),
    "MAX_LISTED_SLOTS": int(os.environ.get("MAX_LISTED_SLOTS", "20")),
    "DEFAULT_APPOINTMENT_TYPE": os.environ.get("DEFAULT_APPOINTMENT_TYPE", "Преглед"),
    "DEFAULT_BOOKING_NOTES": os.environ.get("DEFAULT_BOOKING_NOTES", "Запазен през WhatsApp"),
    "DEFAULT_PATIENT_NAME": os.environ.get("DEFAULT_PATIENT_NAME", "WhatsApp пациент"),
    "DATE_LANGUAGE": os.environ.get("BOOKING_DATE_LANGUAGE", "bg"),
}

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {
            "format": "%(asctime)s %(levelname)s %(name)s %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "verbose",
        },
    },
    "root": {
        "handlers": ["console"],
        "level": "WARNING",
    },
    "loggers": {
        "appointments": {
            "handlers": ["console"],
            "level": os.environ.get("LOG_LEVEL", "INFO"),
            "propagate": False,
        },
    },
}
