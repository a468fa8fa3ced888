# backend/booking_engine/services/slots/calendar.py
"""
Calendar primitives.

Weekly hours, holidays, breaks and time intervals. Value objects only:
the single piece of behaviour here is containment / overlap arithmetic.

Weekdays are ISO numbered: 1 = Monday ... 7 = Sunday.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, tzinfo
from typing import Iterable


@dataclass(frozen=True, order=True)
class Interval:
    """Half-open [start, end) span between two aware datetimes."""
    start: datetime
    end: datetime

    @property
    def minutes(self) -> int:
        return int((self.end - self.start).total_seconds() // 60)

    @property
    def is_empty(self) -> bool:
        return self.end <= self.start

    def overlaps(self, other: "Interval") -> bool:
        """Touching endpoints do not count as overlap."""
        return self.start < other.end and other.start < self.end

    def contains(self, other: "Interval") -> bool:
        return self.start <= other.start and other.end <= self.end

    def intersect(self, other: "Interval") -> "Interval | None":
        start = max(self.start, other.start)
        end = min(self.end, other.end)
        if end <= start:
            return None
        return Interval(start, end)

    def padded(self, before_minutes: int, after_minutes: int) -> "Interval":
        return Interval(
            self.start - timedelta(minutes=before_minutes),
            self.end + timedelta(minutes=after_minutes),
        )


@dataclass(frozen=True)
class DayHours:
    """Open/close pair for one weekday (business hours or working hours)."""
    day_of_week: int
    open_time: time | None
    close_time: time | None
    is_closed: bool = False

    @property
    def is_open(self) -> bool:
        # zero-length or inverted ranges are treated as closed
        if self.is_closed or self.open_time is None or self.close_time is None:
            return False
        return self.close_time > self.open_time

    def interval_on(self, day: date, tz: tzinfo) -> Interval | None:
        if not self.is_open:
            return None
        return Interval(
            datetime.combine(day, self.open_time, tzinfo=tz),
            datetime.combine(day, self.close_time, tzinfo=tz),
        )


class WeeklySchedule:
    """At most one DayHours entry per weekday; missing weekdays are closed."""

    def __init__(self, entries: dict[int, DayHours] | None = None):
        self._entries = dict(entries or {})

    @classmethod
    def from_entries(cls, entries: Iterable[DayHours]) -> "WeeklySchedule":
        by_day: dict[int, DayHours] = {}
        for entry in entries:
            if not 1 <= entry.day_of_week <= 7:
                raise ValueError(f"day_of_week must be 1..7, got {entry.day_of_week}")
            if entry.day_of_week in by_day:
                raise ValueError(f"Duplicate hours for weekday {entry.day_of_week}")
            by_day[entry.day_of_week] = entry
        return cls(by_day)

    def hours_for(self, day: date) -> DayHours | None:
        return self._entries.get(day.isoweekday())

    def interval_on(self, day: date, tz: tzinfo) -> Interval | None:
        hours = self.hours_for(day)
        if hours is None:
            return None
        return hours.interval_on(day, tz)


@dataclass(frozen=True)
class Holiday:
    holiday_date: date
    is_recurring: bool = False
    note: str = ""

    @property
    def month_day(self) -> tuple[int, int]:
        return self.holiday_date.month, self.holiday_date.day

    def matches(self, day: date) -> bool:
        if self.is_recurring:
            return (day.month, day.day) == self.month_day
        return day == self.holiday_date


def is_holiday(holidays: Iterable[Holiday], day: date) -> bool:
    return any(h.matches(day) for h in holidays)


@dataclass(frozen=True)
class BreakPeriod:
    day_of_week: int
    start_time: time
    end_time: time

    def interval_on(self, day: date, tz: tzinfo) -> Interval | None:
        if day.isoweekday() != self.day_of_week or self.end_time <= self.start_time:
            return None
        return Interval(
            datetime.combine(day, self.start_time, tzinfo=tz),
            datetime.combine(day, self.end_time, tzinfo=tz),
        )


def day_bounds(day: date, tz: tzinfo) -> Interval:
    """Local midnight to next local midnight."""
    start = datetime.combine(day, time.min, tzinfo=tz)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
    return Interval(start, end)


def merge_intervals(intervals: Iterable[Interval]) -> list[Interval]:
    """Sort and coalesce overlapping or touching intervals."""
    merged: list[Interval] = []
    for interval in sorted(i for i in intervals if not i.is_empty):
        if merged and interval.start <= merged[-1].end:
            last = merged[-1]
            merged[-1] = Interval(last.start, max(last.end, interval.end))
        else:
            merged.append(interval)
    return merged


def subtract_intervals(
    free: Iterable[Interval],
    closed: Iterable[Interval],
) -> list[Interval]:
    """
    Remove closed intervals from free ones.

    Closed intervals outside every free interval are ignored; partial
    overlaps are clipped. Result is disjoint and chronological.
    """
    remaining = merge_intervals(free)
    for block in merge_intervals(closed):
        next_remaining: list[Interval] = []
        for interval in remaining:
            if not interval.overlaps(block):
                next_remaining.append(interval)
                continue
            if interval.start < block.start:
                next_remaining.append(Interval(interval.start, block.start))
            if block.end < interval.end:
                next_remaining.append(Interval(block.end, interval.end))
        remaining = next_remaining
    return remaining
