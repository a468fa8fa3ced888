# backend/booking_engine/services/slots/config.py
"""
Booking configuration for slots calculation.
"""

from dataclasses import dataclass
from datetime import time
from functools import lru_cache

from ...config import settings


ALLOWED_SLOT_LENGTHS = (5, 10, 15, 20, 30, 45, 60, 90, 120)


@dataclass(frozen=True)
class BookingConfig:
    """
    Configuration for booking/slots system.

    Attributes:
        default_slot_length: Location grid step in minutes, used when a
            service does not override it
        horizon_days: How many days ahead availability may be requested
        cache_ttl_seconds: Redis cache TTL for operating windows
        lock_timeout_seconds: How long a reservation waits for the
            provider lock before giving up
    """
    default_slot_length: int = 30
    horizon_days: int = 60
    cache_ttl_seconds: int = 86400  # 24 hours
    lock_timeout_seconds: float = 5.0

    def __post_init__(self):
        """Validate configuration."""
        if self.default_slot_length not in ALLOWED_SLOT_LENGTHS:
            raise ValueError(
                f"default_slot_length must be one of {ALLOWED_SLOT_LENGTHS}, "
                f"got {self.default_slot_length}"
            )
        if self.horizon_days <= 0:
            raise ValueError(f"horizon_days must be positive, got {self.horizon_days}")
        if self.lock_timeout_seconds <= 0:
            raise ValueError(
                f"lock_timeout_seconds must be positive, got {self.lock_timeout_seconds}"
            )


@lru_cache
def get_booking_config() -> BookingConfig:
    """Get booking configuration (singleton), read from settings."""
    return BookingConfig(
        default_slot_length=settings.default_slot_length,
        horizon_days=settings.horizon_days,
        cache_ttl_seconds=settings.cache_ttl_seconds,
        lock_timeout_seconds=settings.lock_timeout_seconds,
    )


def time_str_to_minutes(value: str) -> int:
    """Convert "HH:MM" (or "HH:MM:SS") to minutes since midnight."""
    parts = value.strip().split(":")
    if len(parts) < 2:
        raise ValueError(f"Expected HH:MM, got {value!r}")
    return int(parts[0]) * 60 + int(parts[1])


def parse_time_str(value: str | None) -> time | None:
    """Parse "HH:MM" into a time; empty values become None."""
    if not value:
        return None
    minutes = time_str_to_minutes(value)
    if minutes >= 24 * 60:
        raise ValueError(f"Time out of range: {value!r}")
    return time(minutes // 60, minutes % 60)
