# backend/booking_engine/services/booking_flow.py
"""
Booking with an optional provider.

1. provider given      -> straight to the guard
2. provider omitted    -> availability for the local day
                       -> providers free at start
                       -> ranked by the service's preference
                       -> guard tried on each in turn until one reserves

"No qualified provider" and "no free provider" are reported separately.
"""

import logging
import random
from datetime import datetime, timedelta

from redis import Redis
from sqlalchemy.orm import Session

from .booking_guard import BookingGuard, ReservationResult, validate_period
from .errors import BookingError, ClosedDayError, NoAvailableSlotError, ValidationError
from .provider_selector import select_providers
from .slots.availability import find_free_providers, get_availability
from .slots.store import load_location, load_service, storage_errors

logger = logging.getLogger(__name__)


def book(
    db: Session,
    guard: BookingGuard,
    service_id: int,
    customer_id: int | None,
    start: datetime,
    end: datetime | None = None,
    provider_id: int | None = None,
    location_id: int | None = None,
    status: str = "pending",
    notes: str | None = None,
    redis: Redis | None = None,
    rng: random.Random | None = None,
) -> ReservationResult:
    """
    Reserve an appointment, picking the provider when none is given.

    end defaults to start + the service duration.
    """
    if start.tzinfo is None or start.utcoffset() is None:
        return ReservationResult.rejected(
            ValidationError("start must carry a timezone offset", details={"field": "start"})
        )

    with storage_errors("booking lookup", db):
        service = load_service(db, service_id)
        location = load_location(db, location_id) if location_id is not None else None
    if service is None:
        return ReservationResult.rejected(
            ValidationError("Service not found or inactive", details={"service_id": service_id})
        )

    if end is None:
        end = start + timedelta(minutes=service.duration_minutes)

    if provider_id is not None:
        return guard.reserve(
            db, provider_id, service_id, start, end, customer_id,
            location_id=location_id, status=status, notes=notes,
        )

    if location_id is None:
        return ReservationResult.rejected(
            ValidationError("location_id is required when provider_id is omitted", details={"field": "location_id"})
        )
    if location is None:
        return ReservationResult.rejected(
            ValidationError("Location not found or inactive", details={"location_id": location_id})
        )

    error = validate_period(start, end)
    if error is not None:
        return ReservationResult.rejected(error)

    target_date = start.astimezone(location.tz).date()
    availability = get_availability(db, location_id, target_date, service_id, config=guard.config, redis=redis)
    if isinstance(availability, BookingError):
        return ReservationResult.rejected(availability)

    if availability.closed:
        return ReservationResult.rejected(ClosedDayError(
            "The location is closed on that day",
            details={"location_id": location_id, "date": target_date.isoformat()},
        ))

    free = find_free_providers(availability, service, start, end)
    if not free:
        return ReservationResult.rejected(NoAvailableSlotError(
            "No provider is free at the requested time",
            details={
                "location_id": location_id,
                "service_id": service_id,
                "start": start.isoformat(),
            },
        ))

    ranked = select_providers(db, service, free, target_date, location.tz, rng)

    last: ReservationResult | None = None
    for candidate in ranked:
        last = guard.reserve(
            db, candidate.provider_id, service_id, start, end, customer_id,
            location_id=location_id, status=status, notes=notes,
        )
        if last.ok:
            logger.info(
                f"Auto-assigned provider #{candidate.provider_id} "
                f"({service.preference}, score={candidate.score}) for service #{service_id}"
            )
            return last
        if last.error.kind == "validation_error":
            # same request for every provider, no point trying the rest
            return last
        logger.info(f"Provider #{candidate.provider_id} lost the slot, trying next")

    return ReservationResult.rejected(NoAvailableSlotError(
        "Every free provider was taken before the reservation completed",
        details={
            "location_id": location_id,
            "service_id": service_id,
            "start": start.isoformat(),
            "last_error": last.error.code if last and last.error else None,
        },
    ))
