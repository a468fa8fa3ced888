"""
backend/booking_engine/services/events.py

Event emitter: pushes booking outcomes to a Redis queue for downstream
consumers (notifications, calendar sync).

Queue:
- events:p2p: appointment_reserved / appointment_rescheduled /
  appointment_canceled / appointment_restored
"""

import json
import time
import logging

from redis import Redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

QUEUE_KEY = "events:p2p"


def emit_event(redis: Redis | None, event_type: str, payload: dict) -> None:
    """
    Emit an event for instant delivery.

    Best effort: the booking is already committed, so a failed push is
    logged and dropped.
    """
    if redis is None:
        logger.debug(f"Event {event_type} skipped: no Redis configured")
        return

    event = {
        "type": event_type,
        **payload,
        "ts": int(time.time()),
    }
    try:
        redis.rpush(QUEUE_KEY, json.dumps(event))
        logger.info(f"Event emitted: {event_type} → {QUEUE_KEY}")
    except RedisError as e:
        logger.error(f"Failed to emit event {event_type}: {e}")
