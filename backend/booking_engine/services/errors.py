# backend/booking_engine/services/errors.py
"""
Booking error taxonomy.

Expected outcomes (validation failures, conflicts, closed days, no
provider) are returned as values so callers can branch on them.
Only infrastructure failures raise (StorageError).
"""

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class BookingError:
    """Base for structured booking outcomes that are not successes."""
    message: str
    code: str = "booking_error"
    details: dict[str, Any] = field(default_factory=dict)

    kind = "booking_error"

    def to_dict(self) -> dict:
        return {
            "error": self.kind,
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


@dataclass(frozen=True)
class ValidationError(BookingError):
    """Malformed input: end <= start, unknown ids, naive timestamps."""
    code: str = "invalid_request"
    kind = "validation_error"


@dataclass(frozen=True)
class ClosedDayError(BookingError):
    """Location or provider is not operating on the requested day."""
    code: str = "closed_day"
    kind = "closed_day"


@dataclass(frozen=True)
class NoEligibleProviderError(BookingError):
    """No active provider offers the service at the location."""
    code: str = "no_eligible_provider"
    kind = "no_eligible_provider"


@dataclass(frozen=True)
class NoAvailableSlotError(BookingError):
    """Eligible providers exist, but none is free at the requested time."""
    code: str = "no_available_slot"
    kind = "no_available_slot"


@dataclass(frozen=True)
class ConflictError(BookingError):
    """Requested interval overlaps an existing reservation."""
    code: str = "conflict"
    kind = "conflict"


class StorageError(Exception):
    """Store (database / lock backend) unavailable. Fatal to the request."""
