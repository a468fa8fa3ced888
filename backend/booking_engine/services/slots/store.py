# backend/booking_engine/services/slots/store.py
"""
Store adapters for the availability engine and the booking guard.

Reads configuration rows (locations, hours, holidays, providers, services)
and appointment rows, and normalizes them into immutable values:
- "HH:MM" strings become time objects
- duration keys become integer minutes
- stored UTC text becomes aware datetimes

Soft-deleted and canceled rows are filtered here, so the engine only ever
sees active records.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Iterable
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...models import (
    Appointments,
    Breaks,
    BusinessHours,
    Customers,
    Holidays,
    Locations,
    Providers,
    Services,
    WorkingHours,
    t_provider_locations,
    t_provider_services,
)
from ..errors import StorageError
from .calendar import BreakPeriod, DayHours, Holiday, Interval, WeeklySchedule
from .config import parse_time_str
from .durations import duration_key_to_minutes, slot_length_key_to_minutes

logger = logging.getLogger(__name__)

DB_DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"

# Padding keys top out at "one_day"; appointments further away than this
# can never reach into the queried window.
PADDING_LOOKAROUND = timedelta(days=1)

INACTIVE_STATUSES = ("canceled",)


# ── Values ───────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class LocationRecord:
    id: int
    name: str
    tz: ZoneInfo
    hours: WeeklySchedule
    holidays: tuple[Holiday, ...]


@dataclass(frozen=True)
class ServiceRules:
    id: int
    name: str
    duration_minutes: int
    slot_length_minutes: int | None
    padding_before: int
    padding_after: int
    price: float | None
    preference: str
    random_tie: bool
    occupancy_before: int
    occupancy_after: int

    @property
    def total_minutes(self) -> int:
        """Contiguous free time a booking of this service needs."""
        return self.duration_minutes + self.padding_before + self.padding_after


@dataclass(frozen=True)
class ServiceAssignment:
    service_id: int
    display_order: int
    price_override: float | None


@dataclass(frozen=True)
class ProviderRecord:
    id: int
    display_name: str
    location_ids: frozenset[int]
    hours: WeeklySchedule
    breaks: tuple[BreakPeriod, ...]
    services: dict[int, ServiceAssignment]

    def break_intervals(self, day: date, tz) -> list[Interval]:
        intervals = [b.interval_on(day, tz) for b in self.breaks]
        return [i for i in intervals if i is not None]


@dataclass(frozen=True)
class AppointmentRecord:
    id: int
    provider_id: int
    service_id: int
    customer_id: int | None
    location_id: int | None
    start: datetime  # aware, UTC
    end: datetime
    status: str
    padding_before: int  # padding of the booked service
    padding_after: int

    @property
    def interval(self) -> Interval:
        return Interval(self.start, self.end)

    @property
    def padded_interval(self) -> Interval:
        return self.interval.padded(self.padding_before, self.padding_after)


# ── Conversions ──────────────────────────────────────────────────────────


def to_db_datetime(value: datetime) -> str:
    """Aware datetime -> UTC text column value."""
    return value.astimezone(timezone.utc).strftime(DB_DATETIME_FORMAT)


def from_db_datetime(value: str) -> datetime:
    """UTC text column value -> aware UTC datetime."""
    return datetime.strptime(value[:19], DB_DATETIME_FORMAT).replace(tzinfo=timezone.utc)


def resolve_timezone(name: str | None) -> ZoneInfo:
    try:
        return ZoneInfo(name or "UTC")
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown timezone {name!r}, falling back to UTC")
        return ZoneInfo("UTC")


def _day_hours(day_of_week: int, start: str | None, end: str | None, closed: bool) -> DayHours:
    try:
        open_time = parse_time_str(start)
        close_time = parse_time_str(end)
    except ValueError:
        logger.warning(f"Malformed hours {start!r}-{end!r} for weekday {day_of_week}, treating as closed")
        return DayHours(day_of_week, None, None, is_closed=True)
    return DayHours(day_of_week, open_time, close_time, is_closed=closed)


def _padding(row: Services) -> tuple[int, int]:
    try:
        return (
            duration_key_to_minutes(row.padding_before_key),
            duration_key_to_minutes(row.padding_after_key),
        )
    except ValueError as e:
        logger.error(f"Service {row.id} has an unusable padding setting: {e}")
        raise StorageError(f"Service {row.id} configuration is invalid") from e


def _service_rules(row: Services) -> ServiceRules:
    padding_before, padding_after = _padding(row)
    try:
        duration = duration_key_to_minutes(row.duration_key)
        slot_length = slot_length_key_to_minutes(row.slot_length_key, duration)
    except ValueError as e:
        logger.error(f"Service {row.id} has an unusable duration setting: {e}")
        raise StorageError(f"Service {row.id} configuration is invalid") from e

    return ServiceRules(
        id=row.id,
        name=row.name,
        duration_minutes=duration,
        slot_length_minutes=slot_length,
        padding_before=padding_before,
        padding_after=padding_after,
        price=row.price,
        preference=row.providers_preference,
        random_tie=bool(row.providers_random_tie),
        occupancy_before=row.occupancy_period_before or 0,
        occupancy_after=row.occupancy_period_after or 0,
    )


@contextmanager
def storage_errors(operation: str, db: Session | None = None):
    """Translate SQLAlchemy failures into StorageError, rolling back db."""
    try:
        yield
    except SQLAlchemyError as e:
        logger.error(f"Storage failure during {operation}: {e}")
        if db is not None:
            db.rollback()
        raise StorageError(f"Storage unavailable during {operation}") from e


# ── Configuration reads ──────────────────────────────────────────────────


def load_location(db: Session, location_id: int) -> LocationRecord | None:
    """Get active location with its weekly hours and holidays."""
    location = db.get(Locations, location_id)
    if not location or not location.is_active:
        return None

    hours = (
        db.query(BusinessHours)
        .filter(BusinessHours.location_id == location_id)
        .all()
    )
    holidays = (
        db.query(Holidays)
        .filter(
            Holidays.location_id == location_id,
            Holidays.is_deleted == 0,
        )
        .all()
    )

    return LocationRecord(
        id=location.id,
        name=location.name,
        tz=resolve_timezone(location.timezone),
        hours=WeeklySchedule.from_entries(
            _day_hours(h.day_of_week, h.open_time, h.close_time, bool(h.is_closed))
            for h in hours
        ),
        holidays=tuple(
            Holiday(
                holiday_date=date.fromisoformat(h.holiday_date[:10]),
                is_recurring=bool(h.is_recurring),
                note=h.note or "",
            )
            for h in holidays
        ),
    )


def load_service(db: Session, service_id: int) -> ServiceRules | None:
    """Get active service with duration keys normalized to minutes."""
    service = db.get(Services, service_id)
    if not service or not service.is_active:
        return None
    return _service_rules(service)


def load_providers(db: Session, provider_ids: Iterable[int]) -> dict[int, ProviderRecord]:
    """Get active providers by id. Unknown or inactive ids are absent."""
    ids = sorted(set(provider_ids))
    if not ids:
        return {}

    providers = (
        db.query(Providers)
        .filter(Providers.id.in_(ids), Providers.is_active == 1)
        .all()
    )
    if not providers:
        return {}
    active_ids = [p.id for p in providers]

    hours_rows = db.query(WorkingHours).filter(WorkingHours.provider_id.in_(active_ids)).all()
    break_rows = (
        db.query(Breaks)
        .filter(Breaks.provider_id.in_(active_ids))
        .order_by(Breaks.day_of_week, Breaks.start_time)
        .all()
    )
    location_rows = db.execute(
        select(t_provider_locations.c.provider_id, t_provider_locations.c.location_id)
        .where(
            t_provider_locations.c.provider_id.in_(active_ids),
            t_provider_locations.c.is_active == 1,
        )
    ).all()
    service_rows = db.execute(
        select(
            t_provider_services.c.provider_id,
            t_provider_services.c.service_id,
            t_provider_services.c.display_order,
            t_provider_services.c.price_override,
        )
        .where(
            t_provider_services.c.provider_id.in_(active_ids),
            t_provider_services.c.is_active == 1,
        )
    ).all()

    result: dict[int, ProviderRecord] = {}
    for provider in providers:
        breaks = []
        for b in break_rows:
            if b.provider_id != provider.id:
                continue
            try:
                start, end = parse_time_str(b.start_time), parse_time_str(b.end_time)
            except ValueError:
                logger.warning(f"Skipping malformed break #{b.id} of provider #{provider.id}")
                continue
            if start and end:
                breaks.append(BreakPeriod(b.day_of_week, start, end))

        result[provider.id] = ProviderRecord(
            id=provider.id,
            display_name=provider.display_name,
            location_ids=frozenset(
                loc_id for prov_id, loc_id in location_rows if prov_id == provider.id
            ),
            hours=WeeklySchedule.from_entries(
                _day_hours(h.day_of_week, h.start_time, h.end_time, bool(h.is_off_day))
                for h in hours_rows
                if h.provider_id == provider.id
            ),
            breaks=tuple(breaks),
            services={
                service_id: ServiceAssignment(service_id, display_order or 0, price_override)
                for prov_id, service_id, display_order, price_override in service_rows
                if prov_id == provider.id
            },
        )

    return result


def load_provider(db: Session, provider_id: int) -> ProviderRecord | None:
    return load_providers(db, [provider_id]).get(provider_id)


def eligible_provider_ids(db: Session, location_id: int, service_id: int) -> list[int]:
    """Active providers assigned to both the location and the service."""
    rows = db.execute(
        select(t_provider_services.c.provider_id)
        .join(Providers, Providers.id == t_provider_services.c.provider_id)
        .join(
            t_provider_locations,
            t_provider_locations.c.provider_id == t_provider_services.c.provider_id,
        )
        .where(
            t_provider_services.c.service_id == service_id,
            t_provider_services.c.is_active == 1,
            t_provider_locations.c.location_id == location_id,
            t_provider_locations.c.is_active == 1,
            Providers.is_active == 1,
        )
        .order_by(t_provider_services.c.display_order, t_provider_services.c.provider_id)
    ).all()
    return [row[0] for row in rows]


def location_provider_ids(db: Session, location_id: int) -> list[int]:
    """Active providers assigned to the location, by id."""
    rows = db.execute(
        select(t_provider_locations.c.provider_id)
        .join(Providers, Providers.id == t_provider_locations.c.provider_id)
        .where(
            t_provider_locations.c.location_id == location_id,
            t_provider_locations.c.is_active == 1,
            Providers.is_active == 1,
        )
        .order_by(t_provider_locations.c.provider_id)
    ).all()
    return [row[0] for row in rows]


def customer_exists(db: Session, customer_id: int) -> bool:
    customer = db.get(Customers, customer_id)
    return bool(customer and customer.is_active)


# ── Appointment reads ────────────────────────────────────────────────────


def _appointment_record(row: Appointments, service: Services) -> AppointmentRecord:
    padding_before, padding_after = _padding(service)
    return AppointmentRecord(
        id=row.id,
        provider_id=row.provider_id,
        service_id=row.service_id,
        customer_id=row.customer_id,
        location_id=row.location_id,
        start=from_db_datetime(row.scheduled_start),
        end=from_db_datetime(row.scheduled_end),
        status=row.status,
        padding_before=padding_before,
        padding_after=padding_after,
    )


def load_active_appointments(
    db: Session,
    provider_ids: Iterable[int],
    window: Interval,
    exclude_id: int | None = None,
) -> list[AppointmentRecord]:
    """
    Active appointments whose padded interval reaches into window.

    Padding comes from each appointment's own (booked) service.
    """
    ids = sorted(set(provider_ids))
    if not ids:
        return []

    lower = to_db_datetime(window.start - PADDING_LOOKAROUND)
    upper = to_db_datetime(window.end + PADDING_LOOKAROUND)

    query = (
        db.query(Appointments, Services)
        .join(Services, Services.id == Appointments.service_id)
        .filter(
            Appointments.provider_id.in_(ids),
            Appointments.is_deleted == 0,
            Appointments.status.notin_(INACTIVE_STATUSES),
            Appointments.scheduled_start < upper,
            Appointments.scheduled_end > lower,
        )
        .order_by(Appointments.scheduled_start)
    )
    if exclude_id is not None:
        query = query.filter(Appointments.id != exclude_id)

    records = [_appointment_record(row, service) for row, service in query.all()]
    return [r for r in records if r.padded_interval.overlaps(window)]


def count_appointments(
    db: Session,
    provider_ids: Iterable[int],
    window: Interval,
) -> dict[int, int]:
    """Active appointments per provider with start inside window."""
    ids = sorted(set(provider_ids))
    if not ids:
        return {}

    rows = (
        db.query(Appointments.provider_id, func.count(Appointments.id))
        .filter(
            Appointments.provider_id.in_(ids),
            Appointments.is_deleted == 0,
            Appointments.status.notin_(INACTIVE_STATUSES),
            Appointments.scheduled_start >= to_db_datetime(window.start),
            Appointments.scheduled_start < to_db_datetime(window.end),
        )
        .group_by(Appointments.provider_id)
        .all()
    )
    counts = {provider_id: 0 for provider_id in ids}
    counts.update({provider_id: count for provider_id, count in rows})
    return counts
