"""Tests for the Redis window cache, locks and events (mocked Redis)."""
import json
from datetime import date, datetime, time
from unittest.mock import MagicMock
from zoneinfo import ZoneInfo

import pytest
from redis.exceptions import RedisError

from booking_engine.services.errors import StorageError
from booking_engine.services.events import QUEUE_KEY, emit_event
from booking_engine.services.locks import ProviderBusy, ProviderLocks
from booking_engine.services.slots.calculator import OperatingWindow
from booking_engine.services.slots.calendar import Interval
from booking_engine.services.slots.config import BookingConfig
from booking_engine.services.slots.invalidator import (
    get_affected_dates,
    invalidate_location_cache,
)
from booking_engine.services.slots.redis_store import SlotsRedisStore

TZ = ZoneInfo("Europe/Berlin")
DAY = date(2030, 3, 5)


def open_window(day=DAY):
    return OperatingWindow(
        location_id=1,
        day=day,
        tz=TZ,
        window=Interval(
            datetime.combine(day, time(9), tzinfo=TZ),
            datetime.combine(day, time(17), tzinfo=TZ),
        ),
    )


@pytest.fixture
def redis():
    return MagicMock()


@pytest.fixture
def store(redis):
    return SlotsRedisStore(redis, BookingConfig(cache_ttl_seconds=600))


class TestSlotsRedisStore:
    def test_store_window(self, store, redis):
        store.store_window(open_window())

        key, payload = redis.set.call_args.args
        assert key == "slots:window:1:2030-03-05"
        assert json.loads(payload) == {"tz": "Europe/Berlin", "holiday": False, "open": "09:00", "close": "17:00"}
        assert redis.set.call_args.kwargs["ex"] == 600

    def test_get_window_round_trip(self, store, redis):
        store.store_window(open_window())
        redis.get.return_value = redis.set.call_args.args[1]

        assert store.get_window(1, DAY) == open_window()

    def test_closed_sentinel(self, store, redis):
        redis.get.return_value = json.dumps({"tz": "Europe/Berlin", "holiday": True, "closed": True})

        window = store.get_window(1, DAY)

        assert window.closed
        assert window.holiday

    def test_cache_miss(self, store, redis):
        redis.get.return_value = None
        assert store.get_window(1, DAY) is None

    def test_mget_windows(self, store, redis):
        other = date(2030, 3, 6)
        redis.mget.return_value = [SlotsRedisStore._dump(open_window()).encode(), None]

        windows = store.mget_windows(1, [DAY, other])

        redis.mget.assert_called_once_with(["slots:window:1:2030-03-05", "slots:window:1:2030-03-06"])
        assert windows[DAY] == open_window()
        assert windows[other] is None

    def test_store_multiple_days_uses_pipeline(self, store, redis):
        pipe = redis.pipeline.return_value

        store.store_multiple_days([open_window(), open_window(date(2030, 3, 6))])

        assert pipe.set.call_count == 2
        pipe.execute.assert_called_once()

    def test_delete_all_days_scans(self, store, redis):
        redis.scan_iter.return_value = iter(["slots:window:1:2030-03-05"])
        redis.delete.return_value = 1

        assert store.delete_day_windows(1) == 1
        redis.scan_iter.assert_called_once_with(match="slots:window:1:*")


class TestInvalidator:
    def test_invalidate_specific_dates(self, redis):
        redis.delete.return_value = 2

        deleted = invalidate_location_cache(redis, 1, [DAY, date(2030, 3, 6)])

        assert deleted == 2
        redis.delete.assert_called_once_with("slots:window:1:2030-03-05", "slots:window:1:2030-03-06")

    def test_affected_dates_inclusive(self):
        assert get_affected_dates(date(2030, 3, 6), date(2030, 3, 4)) == [
            date(2030, 3, 4), date(2030, 3, 5), date(2030, 3, 6),
        ]


class TestProviderLocks:
    def test_redis_lock_used_when_configured(self, redis):
        remote = redis.lock.return_value
        remote.acquire.return_value = True
        locks = ProviderLocks(redis, timeout=1.0, lease_seconds=10.0)

        with locks.hold(7):
            pass

        redis.lock.assert_called_once_with("lock:provider:7", timeout=10.0, blocking_timeout=1.0)
        remote.release.assert_called_once()

    def test_redis_lock_timeout(self, redis):
        redis.lock.return_value.acquire.return_value = False
        locks = ProviderLocks(redis, timeout=0.01)

        with pytest.raises(ProviderBusy):
            with locks.hold(7):
                pass

    def test_redis_failure_is_storage_error(self, redis):
        redis.lock.return_value.acquire.side_effect = RedisError("down")
        locks = ProviderLocks(redis)

        with pytest.raises(StorageError):
            with locks.hold(7):
                pass

        # local lock released again
        assert locks._local_lock(7).acquire(blocking=False)


class TestEvents:
    def test_event_pushed(self, redis):
        emit_event(redis, "appointment_reserved", {"appointment_id": 5})

        key, payload = redis.rpush.call_args.args
        assert key == QUEUE_KEY
        event = json.loads(payload)
        assert event["type"] == "appointment_reserved"
        assert event["appointment_id"] == 5

    def test_skipped_without_redis(self):
        emit_event(None, "appointment_reserved", {"appointment_id": 5})

    def test_redis_error_swallowed(self, redis):
        redis.rpush.side_effect = RedisError("down")
        emit_event(redis, "appointment_reserved", {"appointment_id": 5})
