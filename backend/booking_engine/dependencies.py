# backend/booking_engine/dependencies.py
"""
Shared FastAPI dependencies and error mapping for the routers.
"""

from functools import lru_cache

from fastapi import HTTPException, status

from .redis_client import get_redis
from .services.booking_guard import BookingGuard
from .services.errors import BookingError
from .services.locks import ProviderLocks
from .services.slots.config import get_booking_config

ERROR_STATUS = {
    "validation_error": 422,
    "closed_day": status.HTTP_409_CONFLICT,
    "no_eligible_provider": status.HTTP_404_NOT_FOUND,
    "no_available_slot": status.HTTP_409_CONFLICT,
    "conflict": status.HTTP_409_CONFLICT,
}


@lru_cache
def get_guard() -> BookingGuard:
    """One guard per process, so every request shares the provider locks."""
    config = get_booking_config()
    redis = get_redis()
    locks = ProviderLocks(redis, timeout=config.lock_timeout_seconds)
    return BookingGuard(locks, config, redis)


def raise_for_error(error: BookingError) -> None:
    if error.code == "not_found":
        status_code = status.HTTP_404_NOT_FOUND
    else:
        status_code = ERROR_STATUS.get(error.kind, status.HTTP_400_BAD_REQUEST)
    raise HTTPException(status_code=status_code, detail=error.to_dict())
