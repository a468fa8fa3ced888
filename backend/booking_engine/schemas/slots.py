# backend/booking_engine/schemas/slots.py
"""
Pydantic schemas for slots API.
"""

from datetime import date, datetime
from pydantic import BaseModel, Field


class SlotsDayStatus(BaseModel):
    """Status of a single day in calendar."""
    date: date
    closed: bool
    holiday: bool = False
    open: str | None = None   # "HH:MM"
    close: str | None = None

    model_config = {"from_attributes": True}


class SlotsCalendarResponse(BaseModel):
    """Response with calendar of operating days (Level 1)."""
    location_id: int
    start_date: date
    end_date: date
    days: list[SlotsDayStatus]

    # Metadata
    horizon_days: int
    cached_days: int = Field(description="Days served from the Redis cache")

    model_config = {"from_attributes": True}


class GridPlacementRead(BaseModel):
    """Appointment placed on the grid."""
    appointment_id: int
    start_index: int
    span: int
    start: datetime
    end: datetime

    model_config = {"from_attributes": True}


class GridProviderRow(BaseModel):
    provider_id: int
    display_name: str
    appointments: list[GridPlacementRead]

    model_config = {"from_attributes": True}


class SlotsGridResponse(BaseModel):
    """Day view: slot boundaries and appointment placements per provider."""
    location_id: int
    date: date
    closed: bool
    granularity_minutes: int
    slots: list[str] = Field(description="Slot start times, 'HH:MM' in location time")
    providers: list[GridProviderRow]

    model_config = {"from_attributes": True}


class SlotsInvalidateResponse(BaseModel):
    location_id: int
    deleted_keys: int
    dates: list[date] | str
