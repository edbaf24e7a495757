"""Shared plumbing for the lifecycle services."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import TypeVar

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from campusride.domain.entities import utcnow
from campusride.domain.errors import InfrastructureError, NotFound
from campusride.infrastructure.models import BookingModel, RideModel
from campusride.infrastructure.notifications import NotificationSink
from campusride.infrastructure.unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]
T = TypeVar("T")


async def with_retries(
    operation: Callable[[], Awaitable[T]],
    attempts: int = 3,
    backoff_seconds: float = 0.2,
) -> T:
    """Re-run *operation* on ``PaymentError`` / ``StoreError``, then give up."""
    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except InfrastructureError as err:
            if attempt >= attempts:
                raise
            logger.warning(
                "%s on attempt %d/%d, retrying: %s",
                err.code, attempt, attempts, err.message,
            )
            await asyncio.sleep(backoff_seconds * attempt)
    raise AssertionError("unreachable")


class LifecycleService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        notifier: NotificationSink,
        clock: Clock = utcnow,
    ):
        self.session_factory = session_factory
        self.notifier = notifier
        self.clock = clock

    def unit_of_work(self) -> UnitOfWork:
        return UnitOfWork(self.session_factory, self.notifier)

    @staticmethod
    async def locked_ride(uow: UnitOfWork, ride_id: int) -> RideModel:
        ride = await uow.rides.get_for_update(ride_id)
        if ride is None:
            raise NotFound("Ride not found")
        return ride

    @staticmethod
    async def locked_booking(
        uow: UnitOfWork, booking_id: int
    ) -> tuple[BookingModel, RideModel]:
        """Lock ride then booking; every writer takes the two in this order."""
        booking = await uow.bookings.get_by_id(booking_id)
        if booking is None:
            raise NotFound("Booking not found")
        ride = await LifecycleService.locked_ride(uow, booking.ride_id)
        booking = await uow.bookings.get_for_update(booking_id)
        return booking, ride
