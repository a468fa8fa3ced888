# backend/booking_engine/routers/availability.py
"""
Availability API endpoint.

GET /availability - per-provider free intervals and bookable start times
                    for a service on one day (Level 2)
"""

from datetime import date, timedelta
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..database import get_db
from ..dependencies import raise_for_error
from ..redis_client import get_redis
from ..schemas.availability import (
    AvailabilityResponse,
    IntervalRead,
    ProviderAvailabilityRead,
)
from ..services.errors import BookingError
from ..services.slots import get_availability, get_booking_config


router = APIRouter(prefix="/availability", tags=["availability"])


def _interval(value) -> IntervalRead | None:
    if value is None:
        return None
    return IntervalRead(start=value.start, end=value.end)


@router.get("", response_model=AvailabilityResponse)
def read_availability(
    location_id: int,
    service_id: int,
    target_date: date = Query(..., alias="date"),
    provider_ids: list[int] | None = Query(None),
    db: Session = Depends(get_db),
):
    """Get availability of a service at a location for one day."""
    config = get_booking_config()

    today = date.today()
    max_date = today + timedelta(days=config.horizon_days)

    if target_date < today:
        raise HTTPException(status_code=400, detail="Date cannot be in the past")

    if target_date > max_date:
        raise HTTPException(status_code=400, detail=f"Date cannot be more than {config.horizon_days} days ahead")

    result = get_availability(
        db=db,
        location_id=location_id,
        target_date=target_date,
        service_id=service_id,
        provider_ids=provider_ids,
        config=config,
        redis=get_redis(),
    )
    if isinstance(result, BookingError):
        raise_for_error(result)

    return AvailabilityResponse(
        location_id=result.location_id,
        service_id=result.service_id,
        date=result.date,
        timezone=result.tz.key,
        closed=result.closed,
        window=_interval(result.window),
        granularity_minutes=result.granularity_minutes,
        required_minutes=result.required_minutes,
        available_times=result.available_times,
        providers=[
            ProviderAvailabilityRead(
                provider_id=p.provider_id,
                display_name=p.display_name,
                closed=p.closed,
                working_window=_interval(p.working_window),
                free_intervals=[_interval(i) for i in p.free_intervals],
                start_times=list(p.start_times),
            )
            for p in result.providers
        ],
    )
