"""
Post-completion confirmation window.

When a driver marks a ride completed, every accepted booking gets a
``confirm_deadline``.  Until then the passenger may confirm (releasing the
escrow) and both sides may review each other; from the deadline on the
booking is settled automatically and reviews are closed.

Everything here is a pure function of its arguments -- callers pass ``now``.
"""

from __future__ import annotations

from collections.abc import Collection
from datetime import datetime, timedelta

from .enums import (
    BookingStatus,
    PaymentStatus,
    ReviewDirection,
    RideStatus,
)

_REVIEWABLE_BOOKINGS = {BookingStatus.ACCEPTED, BookingStatus.COMPLETED}
_REVIEWABLE_PAYMENTS = {PaymentStatus.HELD, PaymentStatus.RELEASED}


class ConfirmationWindow:
    def __init__(self, hours: int = 24):
        self.length = timedelta(hours=hours)

    def deadline_from(self, completed_at: datetime) -> datetime:
        return completed_at + self.length

    @staticmethod
    def is_expired(booking, now: datetime) -> bool:
        return booking.confirm_deadline is not None and now >= booking.confirm_deadline

    def settlement_due(self, booking, ride, now: datetime) -> bool:
        """True when the booking must be auto-settled without a confirmation."""
        return (
            BookingStatus(booking.status) is BookingStatus.ACCEPTED
            and RideStatus(ride.status) is RideStatus.COMPLETED
            and booking.confirmed_at is None
            and self.is_expired(booking, now)
        )

    def review_eligible(
        self,
        booking,
        ride,
        direction: ReviewDirection,
        now: datetime,
        reviewed: Collection[ReviewDirection] = (),
    ) -> bool:
        if RideStatus(ride.status) is not RideStatus.COMPLETED:
            return False
        if BookingStatus(booking.status) not in _REVIEWABLE_BOOKINGS:
            return False
        if PaymentStatus(booking.payment_status) not in _REVIEWABLE_PAYMENTS:
            return False
        if booking.confirm_deadline is None or self.is_expired(booking, now):
            return False
        return direction not in reviewed

    def time_left(self, booking, now: datetime) -> timedelta:
        """Remaining review time, zero once the window has closed."""
        if booking.confirm_deadline is None:
            return timedelta(0)
        return max(booking.confirm_deadline - now, timedelta(0))
