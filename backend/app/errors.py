# Overview: Error taxonomy shared by services and routes.

"""
Booking core errors.

Every error carries a stable ErrorCode, a user-safe message, the HTTP status
the transport layer answers with, and optional field-level details.

CATEGORIES:
- ValidationError: malformed input, out-of-range values, missing fields
- GuardViolationError: a business rule or state-machine precondition failed
- NotFoundError: a referenced booking/transaction/photographer/promo is missing
- ForbiddenError: the actor may use the operation but not on this record
- ConflictError: a concurrent writer won (slot taken, promo exhausted);
  the caller should retry with fresh data

Anything else (storage outages, programming errors) is not a BookingError and
propagates unchanged.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional


class ErrorCode(str, Enum):
    VALIDATION_FAILED = "VALIDATION_FAILED"

    INVALID_TRANSITION = "INVALID_TRANSITION"
    SLOT_UNAVAILABLE = "SLOT_UNAVAILABLE"
    PROMO_NOT_APPLICABLE = "PROMO_NOT_APPLICABLE"
    PAYMENT_INCOMPLETE = "PAYMENT_INCOMPLETE"
    PAYMENT_LIMIT_EXCEEDED = "PAYMENT_LIMIT_EXCEEDED"
    REFUND_NOT_ALLOWED = "REFUND_NOT_ALLOWED"
    STALE_BOOKING = "STALE_BOOKING"
    REQUEST_NOT_ALLOWED = "REQUEST_NOT_ALLOWED"

    FORBIDDEN = "FORBIDDEN"

    NOT_FOUND = "NOT_FOUND"

    SLOT_CONFLICT = "SLOT_CONFLICT"
    PROMO_EXHAUSTED = "PROMO_EXHAUSTED"


class BookingError(Exception):
    """Base class for every recoverable error raised by the booking core."""

    code: ErrorCode = ErrorCode.VALIDATION_FAILED
    status_code: int = 400
    category: str = "error"

    def __init__(self, message: str, *, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        body = {
            "error": self.message,
            "code": self.code.value,
            "category": self.category,
        }
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(BookingError):
    """400-level input problem; details maps field name -> message."""

    code = ErrorCode.VALIDATION_FAILED
    status_code = 400
    category = "validation"


class GuardViolationError(BookingError):
    """A lifecycle or business-rule precondition does not hold."""

    code = ErrorCode.INVALID_TRANSITION
    status_code = 400
    category = "guard"


class InvalidTransitionError(GuardViolationError):
    code = ErrorCode.INVALID_TRANSITION


class SlotUnavailableError(GuardViolationError):
    code = ErrorCode.SLOT_UNAVAILABLE


class PromoNotApplicableError(GuardViolationError):
    code = ErrorCode.PROMO_NOT_APPLICABLE


class PaymentIncompleteError(GuardViolationError):
    code = ErrorCode.PAYMENT_INCOMPLETE


class PaymentLimitExceededError(GuardViolationError):
    code = ErrorCode.PAYMENT_LIMIT_EXCEEDED


class RefundNotAllowedError(GuardViolationError):
    code = ErrorCode.REFUND_NOT_ALLOWED


class StaleBookingError(GuardViolationError):
    """
    Lost a race on the same booking.

    The message reports the status this writer read, so the caller sees the
    state its own decision was based on.
    """

    code = ErrorCode.STALE_BOOKING
    status_code = 409


class RequestNotAllowedError(GuardViolationError):
    """A customer request cannot be filed, reviewed or withdrawn in its current state."""

    code = ErrorCode.REQUEST_NOT_ALLOWED


class ForbiddenError(BookingError):
    code = ErrorCode.FORBIDDEN
    status_code = 403
    category = "forbidden"


class NotFoundError(BookingError):
    code = ErrorCode.NOT_FOUND
    status_code = 404
    category = "not_found"


class ConflictError(BookingError):
    """Concurrent modification detected; retry with fresh data."""

    code = ErrorCode.SLOT_CONFLICT
    status_code = 409
    category = "conflict"


class SlotConflictError(ConflictError):
    code = ErrorCode.SLOT_CONFLICT


class PromoExhaustedError(ConflictError):
    code = ErrorCode.PROMO_EXHAUSTED
