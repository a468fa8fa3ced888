# backend/booking_engine/routers/slots.py
"""
Slots API endpoints.

Level 1: GET /slots/calendar - Operating window per day for a location
Day view: GET /slots/grid - Slot boundaries and appointment placements
Admin:   POST /slots/invalidate - Drop cached operating windows
"""

from datetime import date, timedelta
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..database import get_db
from ..redis_client import get_redis
from ..schemas.slots import (
    GridPlacementRead,
    GridProviderRow,
    SlotsCalendarResponse,
    SlotsDayStatus,
    SlotsGridResponse,
    SlotsInvalidateResponse,
)
from ..services.slots import (
    SlotsRedisStore,
    build_slots,
    effective_granularity,
    get_booking_config,
    get_operating_window,
    invalidate_location_cache,
)
from ..services.slots.calculator import calculate_operating_window
from ..services.slots.grid import place_appointments
from ..services.slots.invalidator import get_affected_dates
from ..services.slots.store import (
    eligible_provider_ids,
    load_active_appointments,
    load_location,
    load_providers,
    load_service,
    location_provider_ids,
    storage_errors,
)


router = APIRouter(prefix="/slots", tags=["slots"])


def _day_status(window) -> SlotsDayStatus:
    if window.closed:
        return SlotsDayStatus(date=window.day, closed=True, holiday=window.holiday)
    return SlotsDayStatus(
        date=window.day,
        closed=False,
        open=window.window.start.strftime("%H:%M"),
        close=window.window.end.strftime("%H:%M"),
    )


@router.get("/calendar", response_model=SlotsCalendarResponse)
def get_slots_calendar(
    location_id: int,
    start_date: date | None = None,
    end_date: date | None = None,
    db: Session = Depends(get_db),
):
    """Get calendar of operating days for a location (Level 1)."""
    config = get_booking_config()
    redis = get_redis()

    today = date.today()
    if start_date is None:
        start_date = today
    if end_date is None:
        end_date = start_date + timedelta(days=config.horizon_days)

    if start_date < today:
        start_date = today
    if end_date > today + timedelta(days=config.horizon_days):
        end_date = today + timedelta(days=config.horizon_days)
    if end_date < start_date:
        end_date = start_date

    dates = get_affected_dates(start_date, end_date)

    # Batch check cached windows
    store = SlotsRedisStore(redis, config) if redis is not None else None
    cached = store.mget_windows(location_id, dates) if store else {}
    missing = [dt for dt in dates if cached.get(dt) is None]

    calculated = {}
    if missing:
        with storage_errors("slots calendar"):
            location = load_location(db, location_id)
        if location is None:
            raise HTTPException(status_code=404, detail="Location not found")
        # Cache miss: calculate
        calculated = {dt: calculate_operating_window(location, dt) for dt in missing}

    # Store calculated days in batch
    if store and calculated:
        store.store_multiple_days(list(calculated.values()))

    days = [_day_status(cached.get(dt) or calculated[dt]) for dt in dates]

    return SlotsCalendarResponse(
        location_id=location_id,
        start_date=start_date,
        end_date=end_date,
        days=days,
        horizon_days=config.horizon_days,
        cached_days=len(dates) - len(missing),
    )


@router.get("/grid", response_model=SlotsGridResponse)
def get_slots_grid(
    location_id: int,
    target_date: date = Query(..., alias="date"),
    service_id: int | None = None,
    db: Session = Depends(get_db),
):
    """Day view of a location: grid boundaries and bookings per provider."""
    config = get_booking_config()

    with storage_errors("slots grid"):
        operating = get_operating_window(db, location_id, target_date, config, get_redis())
        if operating is None:
            raise HTTPException(status_code=404, detail="Location not found")

        service = None
        if service_id is not None:
            service = load_service(db, service_id)
            if service is None:
                raise HTTPException(status_code=404, detail="Service not found")
            provider_ids = eligible_provider_ids(db, location_id, service_id)
        else:
            provider_ids = location_provider_ids(db, location_id)

        providers = load_providers(db, provider_ids)
        appointments = (
            load_active_appointments(db, provider_ids, operating.window)
            if not operating.closed
            else []
        )

    granularity = effective_granularity(service, config.default_slot_length)

    if operating.closed:
        slots = []
        rows = [
            GridProviderRow(provider_id=p, display_name=providers[p].display_name, appointments=[])
            for p in provider_ids
            if p in providers
        ]
    else:
        slots = [t.strftime("%H:%M") for t in build_slots(operating.window.start, operating.window.end, granularity)]
        placements = place_appointments(operating.window, granularity, appointments)
        rows = [
            GridProviderRow(
                provider_id=p,
                display_name=providers[p].display_name,
                appointments=[
                    GridPlacementRead(
                        appointment_id=pl.appointment_id,
                        start_index=pl.start_index,
                        span=pl.span,
                        start=pl.start,
                        end=pl.end,
                    )
                    for pl in placements
                    if pl.provider_id == p
                ],
            )
            for p in provider_ids
            if p in providers
        ]

    return SlotsGridResponse(
        location_id=location_id,
        date=target_date,
        closed=operating.closed,
        granularity_minutes=granularity,
        slots=slots,
        providers=rows,
    )


@router.post("/invalidate", response_model=SlotsInvalidateResponse)
def invalidate_slots_cache(
    location_id: int,
    dates: list[date] | None = Query(None),
):
    """Manually invalidate operating window cache for location (admin endpoint)."""
    redis = get_redis()
    deleted = invalidate_location_cache(redis, location_id, dates) if redis is not None else 0

    return SlotsInvalidateResponse(
        location_id=location_id,
        deleted_keys=deleted,
        dates=dates if dates else "all",
    )
