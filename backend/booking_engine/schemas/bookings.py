# backend/booking_engine/schemas/bookings.py

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field, field_validator

from ..services.slots.store import from_db_datetime


class BookingCreate(BaseModel):
    provider_id: Optional[int] = Field(None, description="Omit to let the service's preference pick one")
    location_id: Optional[int] = None
    service_id: int
    customer_id: Optional[int] = None

    start: datetime = Field(description="ISO-8601 with offset")
    end: Optional[datetime] = Field(None, description="Defaults to start + service duration")

    status: str = "pending"
    notes: Optional[str] = None

    model_config = {"from_attributes": True}


class BookingReschedule(BaseModel):
    start: datetime
    end: Optional[datetime] = None

    provider_id: Optional[int] = None
    service_id: Optional[int] = None
    location_id: Optional[int] = None

    model_config = {"from_attributes": True}


class BookingRead(BaseModel):
    id: int

    provider_id: int
    service_id: int
    customer_id: Optional[int] = None
    location_id: Optional[int] = None

    start: datetime = Field(validation_alias="scheduled_start")
    end: datetime = Field(validation_alias="scheduled_end")

    status: str
    is_deleted: bool
    notes: Optional[str] = None

    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    model_config = {"from_attributes": True, "populate_by_name": True}

    @field_validator("start", "end", mode="before")
    @classmethod
    def parse_stored_utc(cls, v):
        # stored as naive UTC text "YYYY-MM-DD HH:MM:SS"
        if isinstance(v, str) and "T" not in v:
            return from_db_datetime(v)
        return v
