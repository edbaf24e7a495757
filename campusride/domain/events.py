"""Notification events emitted by the engine (delivery happens elsewhere)."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Optional

from .enums import NotificationType


@dataclass(frozen=True)
class NotificationEvent:
    type: NotificationType
    user_id: int
    title: str
    message: str
    ride_id: Optional[int] = None
    booking_id: Optional[int] = None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["type"] = self.type.value
        return data


def _route(ride) -> str:
    return f"from {ride.origin} to {ride.destination}"


def booking_requested(ride, booking, passenger_name: str) -> NotificationEvent:
    return NotificationEvent(
        type=NotificationType.BOOKING_REQUEST,
        user_id=ride.driver_id,
        title="New Booking Request",
        message=f"{passenger_name} wants to join your ride {_route(ride)}",
        ride_id=ride.id,
        booking_id=booking.id,
    )


def booking_accepted(ride, booking, driver_name: str) -> NotificationEvent:
    return NotificationEvent(
        type=NotificationType.BOOKING_ACCEPTED,
        user_id=booking.passenger_id,
        title="Booking Accepted",
        message=f"{driver_name} accepted your request for the ride {_route(ride)}",
        ride_id=ride.id,
        booking_id=booking.id,
    )


def booking_declined(ride, booking, driver_name: str) -> NotificationEvent:
    return NotificationEvent(
        type=NotificationType.BOOKING_DECLINED,
        user_id=booking.passenger_id,
        title="Booking Declined",
        message=(
            f"{driver_name} declined your request for the ride {_route(ride)}. "
            "Your payment has been refunded."
        ),
        ride_id=ride.id,
        booking_id=booking.id,
    )


def booking_cancelled(ride, booking, passenger_name: str) -> NotificationEvent:
    return NotificationEvent(
        type=NotificationType.BOOKING_CANCELLED,
        user_id=ride.driver_id,
        title="Booking Cancelled",
        message=(
            f"{passenger_name} cancelled their booking for your ride {_route(ride)}"
        ),
        ride_id=ride.id,
        booking_id=booking.id,
    )


def ride_cancelled(ride, booking, driver_name: str) -> NotificationEvent:
    return NotificationEvent(
        type=NotificationType.RIDE_CANCELLED,
        user_id=booking.passenger_id,
        title="Ride Cancelled",
        message=(
            f"{driver_name} cancelled the ride {_route(ride)}. "
            "Your payment has been fully refunded."
        ),
        ride_id=ride.id,
        booking_id=booking.id,
    )


def ride_completed(ride, booking, driver_name: str) -> NotificationEvent:
    return NotificationEvent(
        type=NotificationType.RIDE_COMPLETED,
        user_id=booking.passenger_id,
        title="Ride Completed - Please Confirm",
        message=(
            f"{driver_name} has marked your ride {_route(ride)} as complete. "
            "Please confirm and leave a review."
        ),
        ride_id=ride.id,
        booking_id=booking.id,
    )


def payment_released(ride, booking, amount: float) -> NotificationEvent:
    return NotificationEvent(
        type=NotificationType.PAYMENT_RELEASED,
        user_id=ride.driver_id,
        title="Payment Released",
        message=f"{amount:.2f} for your ride {_route(ride)} has been released to you",
        ride_id=ride.id,
        booking_id=booking.id,
    )


def review_received(ride, booking, reviewee_id: int, rating: int) -> NotificationEvent:
    return NotificationEvent(
        type=NotificationType.REVIEW_RECEIVED,
        user_id=reviewee_id,
        title="New Review",
        message=f"You received a {rating}-star review for the ride {_route(ride)}",
        ride_id=ride.id,
        booking_id=booking.id,
    )
