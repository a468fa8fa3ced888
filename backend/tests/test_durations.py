"""Tests for duration key normalization and slot configuration."""
import pytest

from booking_engine.services.slots.config import (
    BookingConfig,
    parse_time_str,
    time_str_to_minutes,
)
from booking_engine.services.slots.durations import (
    duration_key_to_minutes,
    slot_length_key_to_minutes,
)


@pytest.mark.parametrize(
    "key, minutes",
    [
        ("off", 0),
        ("", 0),
        ("5_minutes", 5),
        ("30_minutes", 30),
        ("90_minutes", 90),
        ("one_day", 1440),
        ("two_days", 2880),
        ("3_days", 4320),
    ],
)
def test_duration_keys(key, minutes):
    assert duration_key_to_minutes(key) == minutes


MINUTE_STEPS = (15, 30, 45, 60, 75, 90, 105, 120, 135, 150, 165, 180, 195, 210, 225, 240,
                255, 270, 285, 300, 360, 420, 480, 540, 600, 660, 720)
DAY_KEYS = ["one_day", "two_days", "three_days", "four_days", "five_days", "six_days", "one_week"]

DURATION_KEYS = [f"{m}_minutes" for m in MINUTE_STEPS] + DAY_KEYS
PADDING_KEYS = ["off"] + [f"{m}_minutes" for m in MINUTE_STEPS] + ["one_day"]
SLOT_LENGTH_KEYS = [f"{m}_minutes" for m in (2, 4, 5, 10, 12, 15, 20, 30, 45, 60, 90, 120, 180, 240, 360)]


@pytest.mark.parametrize("key", DURATION_KEYS)
def test_every_service_duration_key_is_positive(key):
    assert duration_key_to_minutes(key) > 0


@pytest.mark.parametrize("key", PADDING_KEYS)
def test_every_padding_key_is_understood(key):
    assert duration_key_to_minutes(key) >= 0


@pytest.mark.parametrize("key", SLOT_LENGTH_KEYS)
def test_every_slot_length_key_is_positive(key):
    assert slot_length_key_to_minutes(key) > 0


def test_week_keys():
    assert duration_key_to_minutes("one_week") == 7 * 1440
    assert duration_key_to_minutes("2_weeks") == 14 * 1440


def test_unknown_duration_key_rejected():
    with pytest.raises(ValueError):
        duration_key_to_minutes("forever")


def test_default_slot_length_inherits():
    assert slot_length_key_to_minutes("default") is None
    assert slot_length_key_to_minutes("15_minutes") == 15


def test_service_duration_slot_length_follows_the_service():
    assert slot_length_key_to_minutes("service_duration", 45) == 45
    with pytest.raises(ValueError):
        slot_length_key_to_minutes("service_duration")


def test_zero_slot_length_rejected():
    with pytest.raises(ValueError):
        slot_length_key_to_minutes("off")


def test_time_strings():
    assert time_str_to_minutes("09:30") == 570
    assert time_str_to_minutes("09:30:00") == 570
    assert parse_time_str(None) is None


def test_malformed_time_string_raises_value_error():
    with pytest.raises(ValueError):
        parse_time_str("9")
    with pytest.raises(ValueError):
        parse_time_str("24:00")


class TestBookingConfig:
    def test_defaults(self):
        config = BookingConfig()
        assert config.default_slot_length == 30
        assert config.horizon_days == 60

    def test_slot_length_must_be_allowed(self):
        with pytest.raises(ValueError):
            BookingConfig(default_slot_length=25)

    def test_lock_timeout_must_be_positive(self):
        with pytest.raises(ValueError):
            BookingConfig(lock_timeout_seconds=0)
