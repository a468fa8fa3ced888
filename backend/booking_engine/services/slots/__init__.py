# backend/booking_engine/services/slots/__init__.py
"""
Slots calculation module.

Level 1: Location operating window (cached in Redis)
Level 2: Service availability per provider (calculated on-the-fly)
"""

from .config import BookingConfig, get_booking_config
from .calendar import BreakPeriod, DayHours, Holiday, Interval, WeeklySchedule
from .store import ServiceRules
from .grid import build_slots, slot_index, slot_span, effective_granularity
from .redis_store import SlotsRedisStore
from .calculator import OperatingWindow, get_operating_window
from .invalidator import invalidate_location_cache
from .availability import DayAvailability, ProviderAvailability, get_availability

__all__ = [
    "BookingConfig",
    "get_booking_config",
    "BreakPeriod",
    "DayHours",
    "Holiday",
    "Interval",
    "WeeklySchedule",
    "ServiceRules",
    "build_slots",
    "slot_index",
    "slot_span",
    "effective_granularity",
    "SlotsRedisStore",
    "OperatingWindow",
    "get_operating_window",
    "invalidate_location_cache",
    "DayAvailability",
    "ProviderAvailability",
    "get_availability",
]
