"""WSGI config for the clinic scheduling service."""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "clinic_scheduler.settings")

application = get_wsgi_application()
