# backend/booking_engine/redis_client.py
"""
Shared Redis client.

Redis is optional: without REDIS_URL the slot cache, the distributed
provider locks and event emission are all skipped.
"""

from functools import lru_cache
from redis import Redis

from .config import settings


@lru_cache
def get_redis() -> Redis | None:
    """Return the process-wide Redis client, or None when not configured."""
    if not settings.redis_url:
        return None
    return Redis.from_url(settings.redis_url, decode_responses=True)
