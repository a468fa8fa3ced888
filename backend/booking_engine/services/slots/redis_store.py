# backend/booking_engine/services/slots/redis_store.py
"""
Redis storage for location operating windows.

Key format: slots:window:{location_id}:{date}
Value: JSON {"tz": "...", "open": "HH:MM", "close": "HH:MM", "holiday": bool}
       or the closed sentinel {"tz": "...", "closed": true, ...}.

Display-side cache only. The booking guard never reads it.
"""

import json
from datetime import date, datetime, time
from zoneinfo import ZoneInfo

from redis import Redis

from .calendar import Interval
from .config import BookingConfig, get_booking_config


def _decode(value):
    return value.decode() if isinstance(value, bytes) else value


class SlotsRedisStore:
    """Redis storage wrapper for Level 1 operating windows."""

    KEY_PREFIX = "slots:window"

    def __init__(self, redis: Redis, config: BookingConfig | None = None):
        self.redis = redis
        self.config = config or get_booking_config()

    def _key(self, location_id: int, dt: date) -> str:
        return f"{self.KEY_PREFIX}:{location_id}:{dt.isoformat()}"

    # ── Serialization ────────────────────────────────────────────────────

    @staticmethod
    def _dump(window) -> str:
        payload = {"tz": window.tz.key, "holiday": window.holiday}
        if window.closed:
            payload["closed"] = True
        else:
            payload["open"] = window.window.start.strftime("%H:%M")
            payload["close"] = window.window.end.strftime("%H:%M")
        return json.dumps(payload)

    @staticmethod
    def _load(location_id: int, dt: date, raw):
        from .calculator import OperatingWindow

        data = json.loads(_decode(raw))
        tz = ZoneInfo(data["tz"])
        if data.get("closed"):
            return OperatingWindow(location_id, dt, tz, None, holiday=data.get("holiday", False))

        open_at = datetime.combine(dt, time.fromisoformat(data["open"]), tzinfo=tz)
        close_at = datetime.combine(dt, time.fromisoformat(data["close"]), tzinfo=tz)
        return OperatingWindow(location_id, dt, tz, Interval(open_at, close_at))

    # ── Write ────────────────────────────────────────────────────────────

    def store_window(self, window) -> None:
        """Store the calculated window for one day."""
        key = self._key(window.location_id, window.day)
        self.redis.set(key, self._dump(window), ex=self.config.cache_ttl_seconds)

    def store_multiple_days(self, windows: list) -> None:
        """Batch store windows via pipeline."""
        if not windows:
            return

        pipe = self.redis.pipeline()
        for window in windows:
            key = self._key(window.location_id, window.day)
            pipe.set(key, self._dump(window), ex=self.config.cache_ttl_seconds)
        pipe.execute()

    # ── Read ─────────────────────────────────────────────────────────────

    def get_window(self, location_id: int, dt: date):
        """
        Get cached window for a day.

        Returns:
            OperatingWindow, or None on cache miss.
        """
        raw = self.redis.get(self._key(location_id, dt))
        if raw is None:
            return None
        return self._load(location_id, dt, raw)

    def mget_windows(self, location_id: int, dates: list[date]) -> dict:
        """
        Batch get windows for multiple dates.

        Returns:
            Dict mapping date → OperatingWindow (or None on cache miss).
        """
        if not dates:
            return {}

        keys = [self._key(location_id, dt) for dt in dates]
        values = self.redis.mget(keys)

        return {
            dt: (self._load(location_id, dt, raw) if raw is not None else None)
            for dt, raw in zip(dates, values)
        }

    # ── Delete ───────────────────────────────────────────────────────────

    def delete_day_windows(
        self,
        location_id: int,
        dates: list[date] | None = None,
    ) -> int:
        """
        Delete cached windows.

        Args:
            location_id: Location ID
            dates: Specific dates, or None to delete all for location.

        Returns:
            Number of deleted keys.
        """
        if dates:
            keys = [self._key(location_id, dt) for dt in dates]
        else:
            pattern = f"{self.KEY_PREFIX}:{location_id}:*"
            keys = list(self.redis.scan_iter(match=pattern))

        if not keys:
            return 0

        return self.redis.delete(*keys)
