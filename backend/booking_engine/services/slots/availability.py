# backend/booking_engine/services/slots/availability.py
"""
Level 2: service availability calculation.

For a (location, date, service) and a set of candidate providers,
computes per-provider free intervals and bookable start times.

Takes into account:
- Location operating window (Level 1, optionally cached in Redis)
- Provider working hours for the weekday (never outside location hours)
- Provider breaks for the weekday
- Existing active appointments, padded with their own service's padding

Pure read: nothing is written, so results are repeatable for unchanged data.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterable, Sequence
from zoneinfo import ZoneInfo

from redis import Redis
from sqlalchemy.orm import Session

from ..errors import BookingError, NoEligibleProviderError, ValidationError
from .calculator import OperatingWindow, get_operating_window
from .calendar import Interval, day_bounds, subtract_intervals
from .config import BookingConfig, get_booking_config
from .grid import build_slots, effective_granularity
from .store import (
    AppointmentRecord,
    ProviderRecord,
    ServiceRules,
    eligible_provider_ids,
    load_active_appointments,
    load_providers,
    load_service,
    storage_errors,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProviderAvailability:
    provider_id: int
    display_name: str
    closed: bool
    working_window: Interval | None
    free_intervals: tuple[Interval, ...]
    start_times: tuple[datetime, ...]


@dataclass(frozen=True)
class DayAvailability:
    location_id: int
    service_id: int
    date: date
    tz: ZoneInfo
    closed: bool
    window: Interval | None
    granularity_minutes: int
    required_minutes: int
    providers: tuple[ProviderAvailability, ...]

    @property
    def available_times(self) -> list[datetime]:
        """Start times at which at least one provider is free."""
        return sorted({t for p in self.providers for t in p.start_times})


def candidate_interval(start: datetime, service: ServiceRules, end: datetime | None = None) -> Interval:
    """The padded interval a booking of service starting at start would occupy."""
    end = end or start + timedelta(minutes=service.duration_minutes)
    return Interval(start, end).padded(service.padding_before, service.padding_after)


def fits(free_intervals: Iterable[Interval], candidate: Interval) -> bool:
    """True if one contiguous free interval holds the whole candidate."""
    return any(free.contains(candidate) for free in free_intervals)


def provider_free_intervals(
    provider: ProviderRecord,
    operating: OperatingWindow,
    appointments: Iterable[AppointmentRecord],
) -> tuple[Interval | None, list[Interval]]:
    """
    Working window and free intervals of one provider on one day.

    Returns (None, []) when the location is closed or the provider is off.
    """
    if operating.closed:
        return None, []

    tz = operating.tz
    working = provider.hours.interval_on(operating.day, tz)
    if working is None:
        return None, []

    window = operating.window.intersect(working)
    if window is None:
        return None, []

    closed_blocks = provider.break_intervals(operating.day, tz)
    for appt in appointments:
        padded = appt.padded_interval
        closed_blocks.append(Interval(padded.start.astimezone(tz), padded.end.astimezone(tz)))

    return window, subtract_intervals([window], closed_blocks)


def build_provider_availability(
    provider: ProviderRecord,
    service: ServiceRules,
    operating: OperatingWindow,
    appointments: Iterable[AppointmentRecord],
    granularity_minutes: int,
) -> ProviderAvailability:
    working, free = provider_free_intervals(provider, operating, appointments)
    if working is None:
        return ProviderAvailability(provider.id, provider.display_name, True, None, (), ())

    # Start times follow the location grid, not the provider's own start
    grid = build_slots(operating.window.start, operating.window.end, granularity_minutes)
    start_times = tuple(t for t in grid if fits(free, candidate_interval(t, service)))

    return ProviderAvailability(
        provider_id=provider.id,
        display_name=provider.display_name,
        closed=False,
        working_window=working,
        free_intervals=tuple(free),
        start_times=start_times,
    )


def resolve_candidates(
    db: Session,
    location_id: int,
    service_id: int,
    provider_ids: Sequence[int] | None,
) -> list[int] | BookingError:
    """
    Eligible providers for the request, in display order.

    Explicit provider_ids must exist; ones not offering the service at the
    location are dropped.
    """
    eligible = eligible_provider_ids(db, location_id, service_id)

    if provider_ids:
        known = load_providers(db, provider_ids)
        unknown = sorted(set(provider_ids) - set(known))
        if unknown:
            return ValidationError(
                "Unknown or inactive provider ids",
                details={"provider_ids": unknown},
            )
        requested = set(provider_ids)
        candidates = [p for p in eligible if p in requested]
    else:
        candidates = eligible

    if not candidates:
        return NoEligibleProviderError(
            "No provider offers this service at this location",
            details={"location_id": location_id, "service_id": service_id},
        )
    return candidates


def get_availability(
    db: Session,
    location_id: int,
    target_date: date,
    service_id: int,
    provider_ids: Sequence[int] | None = None,
    config: BookingConfig | None = None,
    redis: Redis | None = None,
) -> DayAvailability | BookingError:
    """
    Calculate per-provider availability for a service on a day.

    Returns:
        DayAvailability (closed=True on holidays / closed weekdays), or
        ValidationError / NoEligibleProviderError.
    """
    config = config or get_booking_config()

    with storage_errors("availability"):
        service = load_service(db, service_id)
        if service is None:
            return ValidationError("Service not found or inactive", details={"service_id": service_id})

        operating = get_operating_window(db, location_id, target_date, config, redis)
        if operating is None:
            return ValidationError("Location not found or inactive", details={"location_id": location_id})

        candidates = resolve_candidates(db, location_id, service_id, provider_ids)
        if isinstance(candidates, BookingError):
            return candidates

        providers = load_providers(db, candidates)
        granularity = effective_granularity(service, config.default_slot_length)

        appointments: dict[int, list[AppointmentRecord]] = {p: [] for p in candidates}
        if not operating.closed:
            day = day_bounds(target_date, operating.tz)
            for appt in load_active_appointments(db, candidates, day):
                appointments[appt.provider_id].append(appt)

    results = tuple(
        build_provider_availability(
            providers[provider_id],
            service,
            operating,
            appointments[provider_id],
            granularity,
        )
        for provider_id in candidates
        if provider_id in providers
    )

    logger.debug(
        f"Availability location={location_id} date={target_date} service={service_id}: "
        f"closed={operating.closed}, providers={len(results)}"
    )

    return DayAvailability(
        location_id=location_id,
        service_id=service_id,
        date=target_date,
        tz=operating.tz,
        closed=operating.closed,
        window=operating.window,
        granularity_minutes=granularity,
        required_minutes=service.total_minutes,
        providers=results,
    )


def find_free_providers(
    availability: DayAvailability,
    service: ServiceRules,
    start: datetime,
    end: datetime | None = None,
) -> list[int]:
    """
    Providers whose free intervals hold [start, end] plus padding.

    Unlike start_times this accepts off-grid start times.
    """
    candidate = candidate_interval(start, service, end)
    local = Interval(candidate.start.astimezone(availability.tz), candidate.end.astimezone(availability.tz))
    return [
        p.provider_id
        for p in availability.providers
        if not p.closed and fits(p.free_intervals, local)
    ]
