"""
Scheduling services for the appointments app.

- Working hours resolution (working_hours.py)
- Service duration lookup (durations.py)
- Slot generation (slots.py)
- Overlap detection (overlap.py)
- Availability queries (availability.py)
- Reminder planning (reminders.py)
- Booking commit (booking.py)
"""
