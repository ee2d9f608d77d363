"""
Booking error taxonomy.

Services raise these instead of HTTPException so the admission and
lifecycle logic stays usable outside a request. The API layer renders
them through a single exception handler (see ticketing.main).

Categories:
- Validation errors: bad input shape, rejected before any store access.
- Admission errors: business-rule rejections (quota, inventory, seats).
  Rejections from the authoritative store guard use the same classes,
  so a caller never sees the difference between a static check and a lost race.
- InventoryUpdateFailed: system fault during commit; the half-written
  booking has been compensated before this is raised.
- Lifecycle errors: illegal state transitions on confirm/cancel.
"""

from enum import Enum
from typing import Any, Optional


class ErrorCode(Enum):
    INVALID_QUANTITY = "INVALID_QUANTITY"
    SEAT_COUNT_MISMATCH = "SEAT_COUNT_MISMATCH"
    DUPLICATE_SEAT_NUMBERS = "DUPLICATE_SEAT_NUMBERS"
    EVENT_UNAVAILABLE = "EVENT_UNAVAILABLE"
    EVENT_NOT_FOUND = "EVENT_NOT_FOUND"
    EVENT_ALREADY_STARTED = "EVENT_ALREADY_STARTED"
    PER_BOOKING_LIMIT_EXCEEDED = "PER_BOOKING_LIMIT_EXCEEDED"
    USER_QUOTA_EXCEEDED = "USER_QUOTA_EXCEEDED"
    INSUFFICIENT_INVENTORY = "INSUFFICIENT_INVENTORY"
    SEAT_CONFLICT = "SEAT_CONFLICT"
    INVENTORY_UPDATE_FAILED = "INVENTORY_UPDATE_FAILED"
    BOOKING_NOT_FOUND = "BOOKING_NOT_FOUND"
    BOOKING_NOT_PENDING = "BOOKING_NOT_PENDING"
    BOOKING_NOT_ACTIVE = "BOOKING_NOT_ACTIVE"
    ALLOCATION_EXHAUSTED = "ALLOCATION_EXHAUSTED"


class BookingError(Exception):
    """Base error with a stable code, a user-safe message and structured details."""

    status_code: int = 400

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        details: Optional[dict[str, Any]] = None,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or {}
        if status_code is not None:
            self.status_code = status_code

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.message, "code": self.code.value, "details": self.details}


class AdmissionError(BookingError):
    """A reservation request was not admitted."""


class LifecycleError(BookingError):
    """A confirm/cancel transition was not allowed."""


# --- validation ---------------------------------------------------------------

class InvalidQuantity(AdmissionError):
    def __init__(self, quantity: Any, maximum: int) -> None:
        super().__init__(
            ErrorCode.INVALID_QUANTITY,
            f"Quantity must be an integer between 1 and {maximum}",
            {"quantity": quantity, "max": maximum},
        )


class SeatCountMismatch(AdmissionError):
    def __init__(self, quantity: int, seat_count: int) -> None:
        super().__init__(
            ErrorCode.SEAT_COUNT_MISMATCH,
            "Number of seats must match the requested quantity",
            {"quantity": quantity, "seats": seat_count},
        )


class DuplicateSeatNumbers(AdmissionError):
    def __init__(self, seats: list[str]) -> None:
        super().__init__(
            ErrorCode.DUPLICATE_SEAT_NUMBERS,
            f"Seats requested more than once: {', '.join(seats)}",
            {"seats": seats},
        )


# --- admission rules ----------------------------------------------------------

class EventUnavailable(AdmissionError):
    status_code = 404

    def __init__(self, event_id: int) -> None:
        super().__init__(
            ErrorCode.EVENT_UNAVAILABLE,
            "Event not found or not available for booking",
            {"event_id": event_id},
        )


class EventAlreadyStarted(AdmissionError, LifecycleError):
    """Raised by admission and by cancellation once the event has begun."""

    def __init__(self, event_id: int, action: str = "book") -> None:
        super().__init__(
            ErrorCode.EVENT_ALREADY_STARTED,
            f"Cannot {action} tickets for an event that has already started",
            {"event_id": event_id},
        )


class PerBookingLimitExceeded(AdmissionError):
    def __init__(self, quantity: int, limit: int) -> None:
        super().__init__(
            ErrorCode.PER_BOOKING_LIMIT_EXCEEDED,
            f"Maximum of {limit} tickets per user for this event",
            {"quantity": quantity, "limit": limit},
        )


class UserQuotaExceeded(AdmissionError):
    def __init__(self, held: int, requested: int, limit: int) -> None:
        super().__init__(
            ErrorCode.USER_QUOTA_EXCEEDED,
            f"You already hold {held} tickets. Maximum allowed: {limit}",
            {"held": held, "requested": requested, "limit": limit},
        )


class InsufficientInventory(AdmissionError):
    status_code = 409

    def __init__(self, requested: int, available: Optional[int] = None) -> None:
        details = {"requested": requested}
        if available is not None:
            details["available"] = available
        super().__init__(
            ErrorCode.INSUFFICIENT_INVENTORY,
            "Not enough tickets available",
            details,
        )


class SeatConflict(AdmissionError):
    status_code = 409

    def __init__(self, seats: list[str]) -> None:
        super().__init__(
            ErrorCode.SEAT_CONFLICT,
            f"Seats already taken: {', '.join(seats)}",
            {"seats": seats},
        )
        self.seats = seats


class InventoryUpdateFailed(AdmissionError):
    status_code = 500

    def __init__(self, event_id: int) -> None:
        super().__init__(
            ErrorCode.INVENTORY_UPDATE_FAILED,
            "Could not reserve tickets, please try again",
            {"event_id": event_id},
        )


# --- lifecycle ----------------------------------------------------------------

class BookingNotFound(LifecycleError):
    status_code = 404

    def __init__(self, booking_id: int) -> None:
        super().__init__(
            ErrorCode.BOOKING_NOT_FOUND,
            "Booking not found",
            {"booking_id": booking_id},
        )


class BookingNotPending(LifecycleError):
    status_code = 409

    def __init__(self, booking_id: int, status: str) -> None:
        super().__init__(
            ErrorCode.BOOKING_NOT_PENDING,
            f"Booking is {status}, only pending bookings can be confirmed",
            {"booking_id": booking_id, "status": status},
        )


class BookingNotActive(LifecycleError):
    status_code = 409

    def __init__(self, booking_id: int, status: str) -> None:
        super().__init__(
            ErrorCode.BOOKING_NOT_ACTIVE,
            f"Booking is {status} and cannot be cancelled",
            {"booking_id": booking_id, "status": status},
        )


# --- catalog / internal -------------------------------------------------------

class EventNotFound(BookingError):
    status_code = 404

    def __init__(self, event_id: int) -> None:
        super().__init__(
            ErrorCode.EVENT_NOT_FOUND,
            f"Event {event_id} not found",
            {"event_id": event_id},
        )


class AllocationExhausted(BookingError):
    """No unique booking number after the configured attempts. Never reaches callers."""

    status_code = 500

    def __init__(self, attempts: int) -> None:
        super().__init__(
            ErrorCode.ALLOCATION_EXHAUSTED,
            f"Could not allocate a unique booking number after {attempts} attempts",
            {"attempts": attempts},
        )
