# backend/booking_engine/schemas/availability.py
"""
Pydantic schemas for the availability API.

All datetimes are ISO-8601 with the location's offset.
"""

from datetime import date, datetime
from pydantic import BaseModel, Field


class IntervalRead(BaseModel):
    start: datetime
    end: datetime

    model_config = {"from_attributes": True}


class ProviderAvailabilityRead(BaseModel):
    """Free time of one provider on the requested day."""
    provider_id: int
    display_name: str
    closed: bool
    working_window: IntervalRead | None = None
    free_intervals: list[IntervalRead]
    start_times: list[datetime]

    model_config = {"from_attributes": True}


class AvailabilityResponse(BaseModel):
    """Response with per-provider availability for a service (Level 2)."""
    location_id: int
    service_id: int
    date: date
    timezone: str
    closed: bool
    window: IntervalRead | None = None
    granularity_minutes: int = Field(description="Grid step used for start times")
    required_minutes: int = Field(description="Duration plus padding before and after")
    available_times: list[datetime]
    providers: list[ProviderAvailabilityRead]

    model_config = {"from_attributes": True}
