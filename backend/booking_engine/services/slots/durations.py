# backend/booking_engine/services/slots/durations.py
"""
Normalization of symbolic duration keys.

Services are configured with keys such as "30_minutes", "one_day",
"one_week" or "off". Everything past the store boundary works in
integer minutes.
"""

import re

MINUTES_PER_DAY = 24 * 60
MINUTES_PER_WEEK = 7 * MINUTES_PER_DAY

_COUNT_WORDS = {
    "one": 1,
    "two": 2,
    "three": 3,
    "four": 4,
    "five": 5,
    "six": 6,
    "seven": 7,
}

_MINUTES_RE = re.compile(r"^(\d+)_minutes?$")
_DAYS_RE = re.compile(r"^(\w+)_days?$")
_WEEKS_RE = re.compile(r"^(\w+)_weeks?$")


def _count(word: str) -> int | None:
    return int(word) if word.isdigit() else _COUNT_WORDS.get(word)


def duration_key_to_minutes(key: str) -> int:
    """
    Convert a duration/padding key to minutes.

    "off" and "0" map to 0. Raises ValueError on unknown keys.
    """
    key = (key or "").strip().lower()
    if key in ("off", "0", ""):
        return 0

    match = _MINUTES_RE.match(key)
    if match:
        return int(match.group(1))

    for pattern, unit in ((_DAYS_RE, MINUTES_PER_DAY), (_WEEKS_RE, MINUTES_PER_WEEK)):
        match = pattern.match(key)
        if match:
            count = _count(match.group(1))
            if count:
                return count * unit

    raise ValueError(f"Unknown duration key: {key!r}")


def slot_length_key_to_minutes(key: str, service_duration: int | None = None) -> int | None:
    """
    Convert a slot length key.

    "default" means inherit the location step (None). "service_duration"
    steps by the service's own duration.
    """
    key = (key or "").strip().lower()
    if key in ("", "default"):
        return None
    if key == "service_duration":
        if not service_duration or service_duration <= 0:
            raise ValueError("service_duration slot length needs a positive service duration")
        return service_duration
    minutes = duration_key_to_minutes(key)
    if minutes <= 0:
        raise ValueError(f"Slot length must be positive: {key!r}")
    return minutes
