# backend/booking_engine/services/slots/grid.py
"""
Slot grid mapping.

Turns an operating window and a granularity into fixed slot boundaries,
and places appointments on that grid (index + span) for display.
The grid is never used for conflict checking.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from math import ceil, floor
from typing import Iterable

from .calendar import Interval
from .store import AppointmentRecord, ServiceRules


def build_slots(open_at: datetime, close_at: datetime, granularity_minutes: int) -> list[datetime]:
    """
    Slot start boundaries from open to close.

    A trailing partial slot is dropped, not padded.
    """
    if granularity_minutes <= 0:
        raise ValueError(f"granularity must be positive, got {granularity_minutes}")

    step = timedelta(minutes=granularity_minutes)
    slots = []
    t = open_at
    while t + step <= close_at:
        slots.append(t)
        t += step
    return slots


def slot_index(open_at: datetime, start: datetime, granularity_minutes: int, slot_count: int) -> int:
    """floor((start - open) / granularity), clamped to [0, slot_count - 1]."""
    if granularity_minutes <= 0:
        raise ValueError(f"granularity must be positive, got {granularity_minutes}")
    if slot_count < 1:
        raise ValueError("slot_count must be at least 1")

    offset_minutes = (start - open_at).total_seconds() / 60
    index = floor(offset_minutes / granularity_minutes)
    return min(max(index, 0), slot_count - 1)


def slot_span(duration_minutes: int, granularity_minutes: int, slot_count: int, start_index: int) -> int:
    """
    Number of slots an appointment covers.

    Clamped so start_index + span <= slot_count; an appointment running
    past closing time is truncated for display only.
    """
    if granularity_minutes <= 0:
        raise ValueError(f"granularity must be positive, got {granularity_minutes}")

    span = ceil(max(granularity_minutes, duration_minutes) / granularity_minutes)
    return max(0, min(span, slot_count - start_index))


def effective_granularity(service: ServiceRules | None, default_minutes: int) -> int:
    """Service slot-length override if set, else the location default."""
    if service is not None and service.slot_length_minutes:
        return service.slot_length_minutes
    return default_minutes


@dataclass(frozen=True)
class GridPlacement:
    appointment_id: int
    provider_id: int
    start_index: int
    span: int
    start: datetime
    end: datetime


def place_appointments(
    window: Interval,
    granularity_minutes: int,
    appointments: Iterable[AppointmentRecord],
) -> list[GridPlacement]:
    """Grid placements for appointments that overlap the window."""
    slot_count = len(build_slots(window.start, window.end, granularity_minutes))
    if slot_count == 0:
        return []

    placements = []
    for appt in appointments:
        local = Interval(appt.start.astimezone(window.start.tzinfo), appt.end.astimezone(window.start.tzinfo))
        if not local.overlaps(window):
            continue
        # started before opening: show only the part inside the window
        visible = Interval(max(local.start, window.start), local.end)
        index = slot_index(window.start, visible.start, granularity_minutes, slot_count)
        span = slot_span(visible.minutes, granularity_minutes, slot_count, index)
        placements.append(GridPlacement(
            appointment_id=appt.id,
            provider_id=appt.provider_id,
            start_index=index,
            span=span,
            start=local.start,
            end=local.end,
        ))
    return placements
