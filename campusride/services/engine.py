"""Wires the lifecycle services together around one gateway, sink and clock."""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .base import Clock
from .bookings import BookingLifecycle
from .escrow import EscrowSettler
from .reviews import ReviewGate
from .rides import RideLifecycle
from campusride.config import Settings, settings as default_settings
from campusride.domain.confirmation import ConfirmationWindow
from campusride.domain.entities import utcnow
from campusride.domain.policy import PassengerCancellationPolicy
from campusride.infrastructure.notifications import NotificationSink
from campusride.infrastructure.payments import PaymentGateway


@dataclass
class BookingEngine:
    rides: RideLifecycle
    bookings: BookingLifecycle
    reviews: ReviewGate
    escrow: EscrowSettler


def build_engine(
    session_factory: async_sessionmaker[AsyncSession],
    gateway: PaymentGateway,
    notifier: NotificationSink,
    clock: Clock = utcnow,
    config: Settings = default_settings,
) -> BookingEngine:
    window = ConfirmationWindow(hours=config.confirmation_window_hours)
    escrow = EscrowSettler(
        session_factory,
        notifier,
        gateway,
        clock=clock,
        attempts=config.infra_retry_attempts,
        backoff_seconds=config.infra_retry_backoff_seconds,
    )
    rides = RideLifecycle(
        session_factory,
        notifier,
        escrow,
        window,
        clock=clock,
        max_seats=config.max_seats_per_ride,
    )
    reviews = ReviewGate(session_factory, notifier, window, clock=clock)
    bookings = BookingLifecycle(
        session_factory,
        notifier,
        gateway,
        escrow,
        rides,
        reviews,
        window,
        clock=clock,
        cancellation_policy=PassengerCancellationPolicy(
            late_window_hours=config.late_cancellation_hours,
            driver_share=config.late_cancellation_driver_share,
        ),
    )
    return BookingEngine(rides=rides, bookings=bookings, reviews=reviews, escrow=escrow)
