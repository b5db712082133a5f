"""
Slot generation.

Candidate slots start every ``step`` minutes from the opening of the
working window and must finish by its close.
"""

from dataclasses import dataclass
from typing import List, Optional

from .working_hours import WorkingWindow, format_minutes

SLOT_STEP_MINUTES = 30


@dataclass(frozen=True)
class Slot:
    start: int
    end: int

    @property
    def start_label(self) -> str:
        return format_minutes(self.start)

    @property
    def end_label(self) -> str:
        return format_minutes(self.end)


def generate_slots(
    window: Optional[WorkingWindow],
    duration: int,
    step: int = SLOT_STEP_MINUTES,
) -> List[Slot]:
    if duration <= 0 or step <= 0:
        raise ValueError("duration and step must be positive")
    if window is None or window.is_empty:
        return []

    slots = []
    start = window.start
    while start + duration <= window.end:
        slots.append(Slot(start, start + duration))
        start += step
    return slots
