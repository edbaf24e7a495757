"""
Typed failures raised by the booking engine.

Business-rule violations are expected and recoverable; ``PaymentError`` and
``StoreError`` are infrastructure failures that callers may retry.
"""


class BookingEngineError(Exception):
    """Base class for every failure the engine reports to its callers."""

    code = "engine_error"
    retryable = False

    def __init__(self, message: str = ""):
        super().__init__(message or self.code)
        self.message = message or self.code


class InvalidInput(BookingEngineError):
    code = "invalid_input"


class NotFound(BookingEngineError):
    code = "not_found"


class InvalidTransition(BookingEngineError):
    """Raised when a status change violates the ride or booking state machine."""

    code = "invalid_transition"


class NotAuthorized(BookingEngineError):
    code = "not_authorized"


class SeatsUnavailable(BookingEngineError):
    code = "seats_unavailable"


class DuplicateBooking(BookingEngineError):
    code = "duplicate_booking"


class DeadlineExpired(BookingEngineError):
    code = "deadline_expired"


class AlreadyConfirmed(BookingEngineError):
    code = "already_confirmed"


class NotEligible(BookingEngineError):
    code = "not_eligible"


class InvalidParticipants(BookingEngineError):
    code = "invalid_participants"


class InfrastructureError(BookingEngineError):
    retryable = True


class PaymentError(InfrastructureError):
    code = "payment_error"


class StoreError(InfrastructureError):
    code = "store_error"
