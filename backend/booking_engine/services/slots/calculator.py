# backend/booking_engine/services/slots/calculator.py
"""
Level 1: location operating window.

For one (location, date) pair:
✓ holidays of the location (exact date or recurring month-day)
✓ weekly business hours of the location

Does NOT contain:
✗ Appointments (Level 2)
✗ Provider hours and breaks (Level 2)
"""

import logging
from dataclasses import dataclass
from datetime import date
from zoneinfo import ZoneInfo

from redis import Redis
from sqlalchemy.orm import Session

from .store import LocationRecord, load_location
from .calendar import Interval, is_holiday
from .config import BookingConfig, get_booking_config
from .redis_store import SlotsRedisStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OperatingWindow:
    location_id: int
    day: date
    tz: ZoneInfo
    window: Interval | None
    holiday: bool = False

    @property
    def closed(self) -> bool:
        return self.window is None


def calculate_operating_window(location: LocationRecord, target_date: date) -> OperatingWindow:
    """Holiday closes the whole day; otherwise the weekday's business hours."""
    if is_holiday(location.holidays, target_date):
        return OperatingWindow(location.id, target_date, location.tz, None, holiday=True)

    window = location.hours.interval_on(target_date, location.tz)
    return OperatingWindow(location.id, target_date, location.tz, window)


def get_operating_window(
    db: Session,
    location_id: int,
    target_date: date,
    config: BookingConfig | None = None,
    redis: Redis | None = None,
) -> OperatingWindow | None:
    """
    Get the operating window, using the Redis cache when available.

    Returns None for unknown or inactive locations.
    """
    config = config or get_booking_config()

    if redis is not None:
        store = SlotsRedisStore(redis, config)
        cached = store.get_window(location_id, target_date)
        if cached is not None:
            return cached

    location = load_location(db, location_id)
    if location is None:
        return None

    window = calculate_operating_window(location, target_date)

    if redis is not None:
        # Cache miss: store for the next reader
        store.store_window(window)

    return window
