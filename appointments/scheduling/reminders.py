"""
Reminder planning.

Each offset is evaluated on its own: a reminder is only planned when its
send time is still strictly in the future.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional

from django.utils import timezone

from ..models import Reminder

logger = logging.getLogger(__name__)

REMINDER_OFFSETS = (
    (Reminder.KIND_24H, timedelta(hours=24)),
    (Reminder.KIND_3H, timedelta(hours=3)),
)


@dataclass(frozen=True)
class PlannedReminder:
    kind: str
    scheduled_for: datetime


def plan_reminders(starts_at: datetime, now: datetime) -> List[PlannedReminder]:
    planned = []
    for kind, offset in REMINDER_OFFSETS:
        send_at = starts_at - offset
        if send_at > now:
            planned.append(PlannedReminder(kind, send_at))
    return planned


def create_reminders(appointment, now: Optional[datetime] = None) -> List[Reminder]:
    """Persist the pending reminders for a freshly booked appointment."""
    now = now or timezone.now()
    planned = plan_reminders(appointment.starts_at, now)
    if not planned:
        logger.info("No reminders due for appointment %s", appointment.pk)
        return []

    reminders = Reminder.objects.bulk_create(
        [
            Reminder(
                appointment=appointment,
                kind=item.kind,
                status=Reminder.PENDING,
                scheduled_for=item.scheduled_for,
            )
            for item in planned
        ]
    )
    logger.info(
        "Created %d reminder(s) for appointment %s: %s",
        len(reminders),
        appointment.pk,
        ", ".join(item.kind for item in planned),
    )
    return reminders
