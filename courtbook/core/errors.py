"""Domain failures raised by the booking engine.

Each error carries the failure ``code`` reported to clients and a default
message. The API layer decides which HTTP status answers each failure.
"""


class BookingError(Exception):
    code = "booking_error"
    default_message = "Booking request failed"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)


class InvalidRange(BookingError):
    code = "invalid_range"
    default_message = "Invalid time range. Start must be in the future and before end."


class MissingClaimant(BookingError):
    code = "missing_claimant"
    default_message = "Either login or provide guest information"


class ResourceUnavailable(BookingError):
    code = "resource_unavailable"
    default_message = "Resource not found or inactive"


class BranchInactive(BookingError):
    code = "branch_inactive"
    default_message = "Branch is not active"


class InvalidPromoCode(BookingError):
    code = "invalid_promo_code"
    default_message = "Promo code is not valid for this resource"


class DuplicateRequest(BookingError):
    code = "conflict"
    default_message = (
        "You already have a pending booking for this time. "
        "Wait until it is approved or rejected."
    )


class SlotTaken(BookingError):
    code = "slot_taken"
    default_message = "This time slot is already booked"


class BookingNotFound(BookingError):
    code = "not_found"
    default_message = "Booking not found"


class BranchNotFound(BookingError):
    code = "not_found"
    default_message = "Branch not found"


class AlreadyTerminal(BookingError):
    code = "already_terminal"
    default_message = "Booking can no longer be cancelled"


class InvalidTransition(BookingError):
    code = "invalid_transition"
    default_message = "Only pending bookings can change approval state"


class Forbidden(BookingError):
    code = "forbidden"
    default_message = "Access denied"


class MissingReason(BookingError):
    code = "missing_reason"
    default_message = "Rejection reason is required"


__all__ = [
    "BookingError",
    "InvalidRange",
    "MissingClaimant",
    "ResourceUnavailable",
    "BranchInactive",
    "InvalidPromoCode",
    "DuplicateRequest",
    "SlotTaken",
    "BookingNotFound",
    "BranchNotFound",
    "AlreadyTerminal",
    "InvalidTransition",
    "Forbidden",
    "MissingReason",
]
