# backend/booking_engine/services/slots/invalidator.py
"""
Cache invalidation for location operating windows.

Triggers (called by the configuration layer):
✓ Location business hours changed → invalidate all dates
✓ Location holiday created/deleted → invalidate affected dates

Does NOT trigger:
✗ Appointment created/canceled (Level 2 calculates on-the-fly)
✗ Provider hours or breaks changed (Level 2)
"""

from datetime import date, timedelta

from redis import Redis

from .redis_store import SlotsRedisStore


def invalidate_location_cache(
    redis: Redis,
    location_id: int,
    dates: list[date] | None = None,
) -> int:
    """
    Invalidate cached windows for location.

    Args:
        redis: Redis client
        location_id: Location ID
        dates: List of specific dates to invalidate,
               or None to invalidate all cached dates

    Returns:
        Number of deleted cache keys
    """
    store = SlotsRedisStore(redis)
    return store.delete_day_windows(location_id, dates)


def get_affected_dates(date_start: date, date_end: date) -> list[date]:
    """List of dates in range [date_start, date_end]."""
    if date_start > date_end:
        date_start, date_end = date_end, date_start

    dates = []
    current = date_start
    while current <= date_end:
        dates.append(current)
        current += timedelta(days=1)

    return dates
