"""Domain enumerations and state-transition rules.

Enum *values* are the wire vocabulary shared with external consumers;
renaming one is a breaking change.
"""

import enum


class RideStatus(str, enum.Enum):
    UPCOMING = "upcoming"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class EffectiveRideStatus(str, enum.Enum):
    """Ride status as seen by callers; ``IN_PROGRESS`` is derived, never stored."""

    UPCOMING = "upcoming"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class BookingStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class PaymentStatus(str, enum.Enum):
    NONE = "none"
    HELD = "held"
    RELEASED = "released"
    REFUNDED = "refunded"


class BookingDecision(str, enum.Enum):
    ACCEPT = "accept"
    DECLINE = "decline"


class ReviewDirection(str, enum.Enum):
    PASSENGER_TO_DRIVER = "passenger_to_driver"
    DRIVER_TO_PASSENGER = "driver_to_passenger"


class NotificationType(str, enum.Enum):
    BOOKING_REQUEST = "booking_request"
    BOOKING_ACCEPTED = "booking_accepted"
    BOOKING_DECLINED = "booking_declined"
    BOOKING_CANCELLED = "booking_cancelled"
    RIDE_CANCELLED = "ride_cancelled"
    RIDE_COMPLETED = "ride_completed"
    PAYMENT_RELEASED = "payment_released"
    REVIEW_RECEIVED = "review_received"


# State machines: maps current status -> set of valid next statuses
RIDE_TRANSITIONS: dict[RideStatus, set[RideStatus]] = {
    RideStatus.UPCOMING: {RideStatus.COMPLETED, RideStatus.CANCELLED},
    RideStatus.COMPLETED: set(),
    RideStatus.CANCELLED: set(),
}

BOOKING_TRANSITIONS: dict[BookingStatus, set[BookingStatus]] = {
    BookingStatus.PENDING: {
        BookingStatus.ACCEPTED,
        BookingStatus.DECLINED,
        BookingStatus.CANCELLED,
    },
    BookingStatus.ACCEPTED: {BookingStatus.CANCELLED, BookingStatus.COMPLETED},
    BookingStatus.DECLINED: set(),
    BookingStatus.CANCELLED: set(),
    BookingStatus.COMPLETED: set(),
}

# Bookings that count against a ride's seat inventory
SEAT_HOLDING_STATUSES = frozenset(
    {BookingStatus.PENDING, BookingStatus.ACCEPTED, BookingStatus.COMPLETED}
)

# Bookings a passenger may hold at most one of per ride
LIVE_BOOKING_STATUSES = frozenset({BookingStatus.PENDING, BookingStatus.ACCEPTED})
