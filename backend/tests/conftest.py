"""Pytest configuration and fixtures."""
import os
import tempfile
from datetime import date, datetime
from types import SimpleNamespace
from zoneinfo import ZoneInfo

import pytest

# Set test environment before importing app
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(tempfile.gettempdir(), 'booking_engine_test.db')}"
os.environ.pop("REDIS_URL", None)

from fastapi.testclient import TestClient
from sqlalchemy import insert
from sqlalchemy.orm import sessionmaker

from booking_engine.database import build_engine, get_db, init_db
from booking_engine.dependencies import get_guard
from booking_engine.main import app
from booking_engine.models import (
    Appointments,
    Breaks,
    BusinessHours,
    Customers,
    Locations,
    Providers,
    Services,
    WorkingHours,
    t_provider_locations,
    t_provider_services,
)
from booking_engine.services.booking_guard import BookingGuard
from booking_engine.services.locks import ProviderLocks
from booking_engine.services.slots.config import BookingConfig
from booking_engine.services.slots.store import to_db_datetime

TZ_NAME = "Europe/Berlin"

# 2030-03-04 is a Monday, before the spring DST switch
MONDAY = date(2030, 3, 4)
TUESDAY = date(2030, 3, 5)
WEDNESDAY = date(2030, 3, 6)
SATURDAY = date(2030, 3, 9)


@pytest.fixture
def engine(tmp_path):
    """SQLite database file per test."""
    engine = build_engine(f"sqlite:///{tmp_path / 'booking.db'}")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def config():
    return BookingConfig()


@pytest.fixture
def guard(config):
    """Guard with its own lock registry and no Redis."""
    return BookingGuard(ProviderLocks(timeout=config.lock_timeout_seconds), config)


@pytest.fixture
def world(db):
    """
    One location in Europe/Berlin, open Mon-Fri 09:00-17:00, closed Saturday.

    Anna works Mon-Fri with a Monday lunch break 12:00-13:00.
    Ben works Mon, Tue, Thu, Fri and is off on Wednesdays.
    Both offer a plain haircut (30 min) and a consultation (30 min,
    5 min padding on each side); Anna first in display order.
    """
    location = Locations(name="Main Street", timezone=TZ_NAME)
    db.add(location)
    db.flush()

    for dow in range(1, 6):
        db.add(BusinessHours(location_id=location.id, day_of_week=dow, open_time="09:00", close_time="17:00"))
    db.add(BusinessHours(location_id=location.id, day_of_week=6, is_closed=1))

    haircut = Services(name="Haircut", duration_key="30_minutes", price=30.0)
    consult = Services(
        name="Consultation",
        duration_key="30_minutes",
        padding_before_key="5_minutes",
        padding_after_key="5_minutes",
        price=50.0,
    )
    db.add_all([haircut, consult])

    anna = Providers(display_name="Anna")
    ben = Providers(display_name="Ben")
    db.add_all([anna, ben])

    customer = Customers(name="Carla", email="carla@example.com")
    db.add(customer)
    db.flush()

    for dow in range(1, 6):
        db.add(WorkingHours(provider_id=anna.id, day_of_week=dow, start_time="09:00", end_time="17:00"))
    db.add(Breaks(provider_id=anna.id, day_of_week=1, start_time="12:00", end_time="13:00"))

    for dow in (1, 2, 4, 5):
        db.add(WorkingHours(provider_id=ben.id, day_of_week=dow, start_time="09:00", end_time="17:00"))
    db.add(WorkingHours(provider_id=ben.id, day_of_week=3, is_off_day=1))

    for provider in (anna, ben):
        db.execute(insert(t_provider_locations).values(provider_id=provider.id, location_id=location.id))

    db.execute(insert(t_provider_services).values(service_id=haircut.id, provider_id=anna.id, display_order=1))
    db.execute(insert(t_provider_services).values(
        service_id=haircut.id, provider_id=ben.id, display_order=2, price_override=45.0,
    ))
    db.execute(insert(t_provider_services).values(service_id=consult.id, provider_id=anna.id, display_order=1))
    db.execute(insert(t_provider_services).values(service_id=consult.id, provider_id=ben.id, display_order=2))

    db.commit()

    return SimpleNamespace(
        location_id=location.id,
        haircut_id=haircut.id,
        consult_id=consult.id,
        anna_id=anna.id,
        ben_id=ben.id,
        customer_id=customer.id,
        tz=ZoneInfo(TZ_NAME),
    )


@pytest.fixture
def at(world):
    """Local (location timezone) aware datetime on a given day."""
    def _at(day: date, hour: int, minute: int = 0) -> datetime:
        return datetime(day.year, day.month, day.day, hour, minute, tzinfo=world.tz)
    return _at


@pytest.fixture
def add_appointment(db, world):
    """Insert an appointment row directly, bypassing the guard."""
    def _add(provider_id, service_id, start, end, status="confirmed", is_deleted=0):
        appointment = Appointments(
            provider_id=provider_id,
            service_id=service_id,
            customer_id=world.customer_id,
            location_id=world.location_id,
            scheduled_start=to_db_datetime(start),
            scheduled_end=to_db_datetime(end),
            status=status,
            is_deleted=is_deleted,
        )
        db.add(appointment)
        db.commit()
        return appointment
    return _add


@pytest.fixture
def client(session_factory, guard):
    """Test client bound to the per-test database."""
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_guard] = lambda: guard
    yield TestClient(app)
    app.dependency_overrides.clear()
