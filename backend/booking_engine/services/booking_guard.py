# backend/booking_engine/services/booking_guard.py
"""
Booking conflict guard.

The only writer of appointments. Each attempt goes

    Requested -> Validated -> Reserved      (success)
    Requested -> Rejected                   (any failure)

Validation happens before any read. The conflict check and the write run
under the provider's lock against freshly read appointments, never against
a caller's (possibly stale) availability snapshot or the slot cache.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone

from redis import Redis
from sqlalchemy.orm import Session

from ..models import Appointments
from .errors import (
    BookingError,
    ClosedDayError,
    ConflictError,
    NoAvailableSlotError,
    ValidationError,
)
from .events import emit_event
from .locks import ProviderBusy, ProviderLocks
from .slots.availability import candidate_interval, fits, provider_free_intervals
from .slots.calculator import get_operating_window
from .slots.calendar import Interval
from .slots.config import BookingConfig, get_booking_config
from .slots.store import (
    ProviderRecord,
    ServiceRules,
    customer_exists,
    load_active_appointments,
    load_location,
    load_provider,
    load_service,
    storage_errors,
    from_db_datetime,
    to_db_datetime,
)

logger = logging.getLogger(__name__)

RESERVE_STATUSES = ("pending", "confirmed")

RESERVED = "reserved"
REJECTED = "rejected"


@dataclass(frozen=True)
class ReservationResult:
    state: str
    appointment: Appointments | None = None
    error: BookingError | None = None

    @property
    def ok(self) -> bool:
        return self.state == RESERVED

    @classmethod
    def reserved(cls, appointment: Appointments) -> "ReservationResult":
        return cls(RESERVED, appointment=appointment)

    @classmethod
    def rejected(cls, error: BookingError) -> "ReservationResult":
        return cls(REJECTED, error=error)


def _now_str() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


def validate_period(start: datetime, end: datetime) -> ValidationError | None:
    if start.tzinfo is None or start.utcoffset() is None:
        return ValidationError("start must carry a timezone offset", details={"field": "start"})
    if end.tzinfo is None or end.utcoffset() is None:
        return ValidationError("end must carry a timezone offset", details={"field": "end"})
    if end <= start:
        return ValidationError(
            "The end time must be after the start time",
            code="invalid_period",
            details={"start": start.isoformat(), "end": end.isoformat()},
        )
    return None


def resolve_location_id(provider: ProviderRecord, location_id: int | None) -> int | ValidationError:
    """Explicit location must be one of the provider's; otherwise the provider's only one."""
    if location_id is not None:
        if location_id not in provider.location_ids:
            return ValidationError(
                "Provider does not work at this location",
                details={"provider_id": provider.id, "location_id": location_id},
            )
        return location_id

    if len(provider.location_ids) == 1:
        return next(iter(provider.location_ids))

    return ValidationError(
        "location_id is required for providers with several locations",
        details={"provider_id": provider.id, "location_ids": sorted(provider.location_ids)},
    )


class BookingGuard:
    """Serialized check-and-reserve per provider."""

    def __init__(
        self,
        locks: ProviderLocks | None = None,
        config: BookingConfig | None = None,
        redis: Redis | None = None,
    ):
        self.config = config or get_booking_config()
        self.locks = locks or ProviderLocks(timeout=self.config.lock_timeout_seconds)
        # used for events only; the guard never reads the slot cache
        self.redis = redis

    # ── Public operations ────────────────────────────────────────────────

    def reserve(
        self,
        db: Session,
        provider_id: int,
        service_id: int,
        start: datetime,
        end: datetime,
        customer_id: int | None,
        location_id: int | None = None,
        status: str = "pending",
        notes: str | None = None,
        enforce_schedule: bool = True,
    ) -> ReservationResult:
        """Validate, then atomically check for conflicts and insert."""
        error = validate_period(start, end)
        if error is None and status not in RESERVE_STATUSES:
            error = ValidationError(
                f"status must be one of {', '.join(RESERVE_STATUSES)}",
                details={"status": status},
            )
        if error is not None:
            return self._reject(error)

        with storage_errors("reservation lookup", db):
            checked = self._load_and_validate(db, provider_id, service_id, customer_id, location_id)
        if isinstance(checked, BookingError):
            return self._reject(checked)
        provider, service, location_id = checked

        def write() -> Appointments:
            now = _now_str()
            appointment = Appointments(
                provider_id=provider_id,
                service_id=service_id,
                customer_id=customer_id,
                location_id=location_id,
                scheduled_start=to_db_datetime(start),
                scheduled_end=to_db_datetime(end),
                status=status,
                is_deleted=0,
                notes=notes,
                created_at=now,
                updated_at=now,
            )
            db.add(appointment)
            return appointment

        result = self._locked_write(
            db, provider, service, location_id, start, end,
            write=write,
            enforce_schedule=enforce_schedule,
        )
        if result.ok:
            appt = result.appointment
            logger.info(
                f"Appointment #{appt.id} reserved for provider #{provider_id}, "
                f"service #{service_id}: {appt.scheduled_start} - {appt.scheduled_end} UTC"
            )
            emit_event(self.redis, "appointment_reserved", {
                "appointment_id": appt.id,
                "provider_id": provider_id,
                "customer_id": customer_id,
            })
        return result

    def reschedule(
        self,
        db: Session,
        appointment_id: int,
        start: datetime,
        end: datetime | None = None,
        provider_id: int | None = None,
        service_id: int | None = None,
        location_id: int | None = None,
        enforce_schedule: bool = True,
    ) -> ReservationResult:
        """
        Move an appointment. The conflict check ignores the appointment itself.

        Without end the current length is kept.
        """
        with storage_errors("reschedule lookup", db):
            existing = db.get(Appointments, appointment_id)
        if existing is None or existing.is_deleted:
            return self._reject(ValidationError(
                "The requested appointment could not be found",
                code="not_found",
                details={"appointment_id": appointment_id},
            ))

        if end is None:
            length = from_db_datetime(existing.scheduled_end) - from_db_datetime(existing.scheduled_start)
            end = start + length

        error = validate_period(start, end)
        if error is not None:
            return self._reject(error)

        provider_id = provider_id or existing.provider_id
        service_id = service_id or existing.service_id
        if location_id is None and provider_id == existing.provider_id:
            location_id = existing.location_id

        with storage_errors("reschedule lookup", db):
            checked = self._load_and_validate(db, provider_id, service_id, existing.customer_id, location_id)
        if isinstance(checked, BookingError):
            return self._reject(checked)
        provider, service, location_id = checked

        previous = (existing.provider_id, existing.scheduled_start, existing.scheduled_end)

        def write() -> Appointments:
            existing.provider_id = provider_id
            existing.service_id = service_id
            existing.location_id = location_id
            existing.scheduled_start = to_db_datetime(start)
            existing.scheduled_end = to_db_datetime(end)
            existing.updated_at = _now_str()
            return existing

        result = self._locked_write(
            db, provider, service, location_id, start, end,
            write=write,
            enforce_schedule=enforce_schedule,
            exclude_id=appointment_id,
        )
        if result.ok:
            logger.info(
                f"Rescheduled appointment #{appointment_id} from {previous[1]} - {previous[2]} "
                f"(provider #{previous[0]}) to {existing.scheduled_start} - {existing.scheduled_end} "
                f"for provider #{provider_id}, service #{service_id}"
            )
            emit_event(self.redis, "appointment_rescheduled", {
                "appointment_id": appointment_id,
                "provider_id": provider_id,
            })
        return result

    def cancel(self, db: Session, appointment_id: int) -> ReservationResult:
        """Soft-delete an appointment, freeing its interval."""
        with storage_errors("cancel lookup", db):
            existing = db.get(Appointments, appointment_id)
        if existing is None or existing.is_deleted:
            return self._reject(ValidationError(
                "The requested appointment could not be found",
                code="not_found",
                details={"appointment_id": appointment_id},
            ))

        try:
            with self.locks.hold(existing.provider_id):
                with storage_errors("cancel", db):
                    existing.is_deleted = 1
                    existing.updated_at = _now_str()
                    db.commit()
                    db.refresh(existing)
        except ProviderBusy as e:
            return self._reject(self._busy(e))

        logger.info(f"Appointment #{appointment_id} canceled (soft-deleted)")
        emit_event(self.redis, "appointment_canceled", {
            "appointment_id": appointment_id,
            "provider_id": existing.provider_id,
        })
        return ReservationResult.reserved(existing)

    def restore(self, db: Session, appointment_id: int) -> ReservationResult:
        """Undo a soft-delete, unless the interval has been taken since."""
        with storage_errors("restore lookup", db):
            existing = db.get(Appointments, appointment_id)
            service = load_service(db, existing.service_id) if existing else None
        if existing is None:
            return self._reject(ValidationError(
                "The requested appointment could not be found",
                code="not_found",
                details={"appointment_id": appointment_id},
            ))
        if not existing.is_deleted:
            return ReservationResult.reserved(existing)
        if service is None:
            return self._reject(ValidationError(
                "Service not found or inactive",
                details={"service_id": existing.service_id},
            ))

        start = from_db_datetime(existing.scheduled_start)
        end = from_db_datetime(existing.scheduled_end)
        try:
            with self.locks.hold(existing.provider_id):
                with storage_errors("restore", db):
                    db.expire_all()
                    conflict = self._find_conflict(db, existing.provider_id, service, start, end, appointment_id)
                    if conflict is not None:
                        return self._reject(conflict)
                    existing.is_deleted = 0
                    existing.updated_at = _now_str()
                    db.commit()
                    db.refresh(existing)
        except ProviderBusy as e:
            return self._reject(self._busy(e))

        logger.info(f"Appointment #{appointment_id} restored")
        emit_event(self.redis, "appointment_restored", {
            "appointment_id": appointment_id,
            "provider_id": existing.provider_id,
        })
        return ReservationResult.reserved(existing)

    # ── Internals ────────────────────────────────────────────────────────

    def _load_and_validate(
        self,
        db: Session,
        provider_id: int,
        service_id: int,
        customer_id: int | None,
        location_id: int | None,
    ) -> tuple[ProviderRecord, ServiceRules, int] | BookingError:
        service = load_service(db, service_id)
        if service is None:
            return ValidationError("Service not found or inactive", details={"service_id": service_id})

        provider = load_provider(db, provider_id)
        if provider is None:
            return ValidationError("Provider not found or inactive", details={"provider_id": provider_id})

        if service_id not in provider.services:
            return ValidationError(
                "Provider does not offer this service",
                details={"provider_id": provider_id, "service_id": service_id},
            )

        if customer_id is not None and not customer_exists(db, customer_id):
            return ValidationError("Customer not found or inactive", details={"customer_id": customer_id})

        resolved = resolve_location_id(provider, location_id)
        if isinstance(resolved, BookingError):
            return resolved
        return provider, service, resolved

    def _locked_write(
        self,
        db: Session,
        provider: ProviderRecord,
        service: ServiceRules,
        location_id: int,
        start: datetime,
        end: datetime,
        write,
        enforce_schedule: bool,
        exclude_id: int | None = None,
    ) -> ReservationResult:
        try:
            with self.locks.hold(provider.id):
                with storage_errors("reservation", db):
                    # fresh state only: drop anything this session cached
                    db.expire_all()

                    if enforce_schedule:
                        error = self._check_schedule(db, provider, service, location_id, start, end)
                        if error is not None:
                            return self._reject(error)

                    conflict = self._find_conflict(db, provider.id, service, start, end, exclude_id)
                    if conflict is not None:
                        return self._reject(conflict)

                    appointment = write()
                    db.commit()
                    db.refresh(appointment)
        except ProviderBusy as e:
            return self._reject(self._busy(e))

        return ReservationResult.reserved(appointment)

    def _check_schedule(
        self,
        db: Session,
        provider: ProviderRecord,
        service: ServiceRules,
        location_id: int,
        start: datetime,
        end: datetime,
    ) -> BookingError | None:
        """Candidate must fall on an open day, inside working hours and outside breaks."""
        operating = get_operating_window(db, location_id, self._local_date(db, location_id, start), self.config)
        if operating is None:
            return ValidationError("Location not found or inactive", details={"location_id": location_id})
        if operating.closed:
            return ClosedDayError(
                "The location is closed on that day",
                details={"location_id": location_id, "date": operating.day.isoformat()},
            )

        working, free = provider_free_intervals(provider, operating, appointments=[])
        if working is None:
            return ClosedDayError(
                "The provider is not working on that day",
                details={"provider_id": provider.id, "date": operating.day.isoformat()},
            )

        padded = candidate_interval(start, service, end)
        local = Interval(padded.start.astimezone(operating.tz), padded.end.astimezone(operating.tz))
        if not fits(free, local):
            return NoAvailableSlotError(
                "The requested time is outside the provider's working hours",
                details={"provider_id": provider.id, "start": start.isoformat(), "end": end.isoformat()},
            )
        return None

    def _local_date(self, db: Session, location_id: int, start: datetime) -> date:
        location = load_location(db, location_id)
        tz = location.tz if location else timezone.utc
        return start.astimezone(tz).date()

    def _find_conflict(
        self,
        db: Session,
        provider_id: int,
        service: ServiceRules,
        start: datetime,
        end: datetime,
        exclude_id: int | None = None,
    ) -> ConflictError | None:
        """Padded candidate (requested service's padding) vs padded existing appointments, in UTC."""
        padded = candidate_interval(start, service, end)
        candidate = Interval(padded.start.astimezone(timezone.utc), padded.end.astimezone(timezone.utc))

        overlapping = load_active_appointments(db, [provider_id], candidate, exclude_id=exclude_id)
        if not overlapping:
            return None

        return ConflictError(
            "The requested time overlaps an existing appointment",
            details={
                "provider_id": provider_id,
                "conflicting_appointment_ids": [a.id for a in overlapping],
            },
        )

    @staticmethod
    def _busy(e: ProviderBusy) -> ConflictError:
        return ConflictError(
            "The provider is handling another reservation, try again",
            code="provider_busy",
            details={"provider_id": e.provider_id},
        )

    @staticmethod
    def _reject(error: BookingError) -> ReservationResult:
        # expected outcome, not a fault
        logger.info(f"Reservation rejected: {error.kind} ({error.code}): {error.message}")
        return ReservationResult.rejected(error)
