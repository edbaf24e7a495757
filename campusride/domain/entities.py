"""
Domain behaviour shared by persisted rides and bookings.

Patterns used
-------------
- **State Pattern**: ``check_transition`` enforces the lifecycle tables in
  ``enums`` (ride: upcoming -> completed | cancelled; booking: pending ->
  accepted | declined | cancelled, accepted -> cancelled | completed).
- The mixins hold no state of their own; the ORM models in
  ``infrastructure.models`` inherit them, so the rules stay DB-agnostic and
  can be exercised on transient instances.
"""

from __future__ import annotations

from datetime import datetime, timezone

from .enums import (
    BOOKING_TRANSITIONS,
    LIVE_BOOKING_STATUSES,
    RIDE_TRANSITIONS,
    SEAT_HOLDING_STATUSES,
    BookingStatus,
    EffectiveRideStatus,
    RideStatus,
)
from .errors import InvalidTransition


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RideRules:
    """Expects ``status``, ``date_time`` and ``driver_id`` attributes."""

    def can_transition_to(self, new_status: RideStatus) -> bool:
        return new_status in RIDE_TRANSITIONS.get(RideStatus(self.status), set())

    def check_transition(self, new_status: RideStatus) -> None:
        """Raise unless *new_status* is a legal next state."""
        if not self.can_transition_to(new_status):
            raise InvalidTransition(
                f"Cannot transition ride from {RideStatus(self.status).value} "
                f"to {new_status.value}"
            )

    def has_departed(self, now: datetime) -> bool:
        return now >= self.date_time

    def effective_status(self, now: datetime) -> EffectiveRideStatus:
        """Stored status, except an upcoming ride past departure is in progress."""
        status = RideStatus(self.status)
        if status is RideStatus.UPCOMING and self.has_departed(now):
            return EffectiveRideStatus.IN_PROGRESS
        return EffectiveRideStatus(status.value)

    def is_driver(self, user_id: int) -> bool:
        return self.driver_id == user_id


class BookingRules:
    """Expects ``status`` and ``passenger_id`` attributes."""

    def can_transition_to(self, new_status: BookingStatus) -> bool:
        return new_status in BOOKING_TRANSITIONS.get(
            BookingStatus(self.status), set()
        )

    def check_transition(self, new_status: BookingStatus) -> None:
        if not self.can_transition_to(new_status):
            raise InvalidTransition(
                f"Cannot transition booking from {BookingStatus(self.status).value} "
                f"to {new_status.value}"
            )

    @property
    def holds_seat(self) -> bool:
        return BookingStatus(self.status) in SEAT_HOLDING_STATUSES

    @property
    def is_live(self) -> bool:
        return BookingStatus(self.status) in LIVE_BOOKING_STATUSES

    def is_passenger(self, user_id: int) -> bool:
        return self.passenger_id == user_id
