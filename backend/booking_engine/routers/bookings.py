# backend/booking_engine/routers/bookings.py
"""
Bookings API endpoints.

Every write goes through the booking guard:
POST   /bookings               reserve (provider optional)
PATCH  /bookings/{id}          reschedule
DELETE /bookings/{id}          soft-delete
POST   /bookings/{id}/restore  undo a soft-delete
"""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from ..database import get_db
from ..dependencies import get_guard, raise_for_error
from ..models import Appointments as DBAppointments
from ..redis_client import get_redis
from ..schemas.bookings import (
    BookingCreate,
    BookingRead,
    BookingReschedule,
)
from ..services.booking_flow import book
from ..services.booking_guard import BookingGuard, ReservationResult

router = APIRouter(prefix="/bookings", tags=["bookings"])


def _read(result: ReservationResult) -> BookingRead:
    if not result.ok:
        raise_for_error(result.error)
    return BookingRead.model_validate(result.appointment)


@router.get("/{id}", response_model=BookingRead)
def get_booking(id: int, db: Session = Depends(get_db)):
    obj = db.get(DBAppointments, id)
    if not obj:
        raise HTTPException(status_code=404, detail="Not found")
    return BookingRead.model_validate(obj)


@router.post("", response_model=BookingRead, status_code=status.HTTP_201_CREATED)
def create_booking(
    data: BookingCreate,
    db: Session = Depends(get_db),
    guard: BookingGuard = Depends(get_guard),
):
    result = book(
        db,
        guard,
        service_id=data.service_id,
        customer_id=data.customer_id,
        start=data.start,
        end=data.end,
        provider_id=data.provider_id,
        location_id=data.location_id,
        status=data.status,
        notes=data.notes,
        redis=get_redis(),
    )
    return _read(result)


@router.patch("/{id}", response_model=BookingRead)
def reschedule_booking(
    id: int,
    data: BookingReschedule,
    db: Session = Depends(get_db),
    guard: BookingGuard = Depends(get_guard),
):
    result = guard.reschedule(
        db,
        id,
        start=data.start,
        end=data.end,
        provider_id=data.provider_id,
        service_id=data.service_id,
        location_id=data.location_id,
    )
    return _read(result)


@router.delete("/{id}", response_model=BookingRead)
def cancel_booking(
    id: int,
    db: Session = Depends(get_db),
    guard: BookingGuard = Depends(get_guard),
):
    return _read(guard.cancel(db, id))


@router.post("/{id}/restore", response_model=BookingRead)
def restore_booking(
    id: int,
    db: Session = Depends(get_db),
    guard: BookingGuard = Depends(get_guard),
):
    return _read(guard.restore(db, id))
