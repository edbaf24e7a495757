"""
RideLifecycle
=============

Owns a ride's status and is the only writer of ``seats_available``.

* ``create``          -- offer a ride (status ``upcoming``, all seats free)
* ``cancel``          -- driver cancels; every live booking is cancelled and
                         fully refunded
* ``mark_completed``  -- driver closes the ride after departure; accepted
                         bookings enter the confirmation window
* ``reserve_seat`` / ``release_seat`` -- conditional inventory updates used
  inside a caller's unit of work
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional

from .base import Clock, LifecycleService
from .escrow import EscrowSettler
from campusride.domain import events
from campusride.domain.confirmation import ConfirmationWindow
from campusride.domain.entities import utcnow
from campusride.domain.enums import (
    LIVE_BOOKING_STATUSES,
    BookingStatus,
    PaymentStatus,
    RideStatus,
)
from campusride.domain.errors import (
    InvalidInput,
    InvalidTransition,
    NotAuthorized,
    NotFound,
)
from campusride.domain.policy import (
    CancellationPolicy,
    DriverCancellationPolicy,
    RefundSplit,
)
from campusride.infrastructure.models import BookingModel, RideModel
from campusride.infrastructure.unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InventoryReport:
    ride_id: int
    seats_total: int
    seats_available: int
    seat_holding_bookings: int

    @property
    def consistent(self) -> bool:
        return (
            0 <= self.seats_available <= self.seats_total
            and self.seats_available == self.seats_total - self.seat_holding_bookings
        )


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class RideLifecycle(LifecycleService):
    def __init__(
        self,
        session_factory,
        notifier,
        escrow: EscrowSettler,
        window: ConfirmationWindow,
        clock: Clock = utcnow,
        max_seats: int = 10,
        cancellation_policy: CancellationPolicy | None = None,
    ):
        super().__init__(session_factory, notifier, clock)
        self.escrow = escrow
        self.window = window
        self.max_seats = max_seats
        self.cancellation_policy = cancellation_policy or DriverCancellationPolicy()

    # ── Inventory (shared with BookingLifecycle) ──────────────────────

    async def reserve_seat(self, uow: UnitOfWork, ride: RideModel) -> bool:
        return await uow.rides.take_seat(ride, self.clock())

    async def release_seat(self, uow: UnitOfWork, ride: RideModel) -> None:
        if not await uow.rides.return_seat(ride, self.clock()):
            logger.warning("Ride %s already had all %d seats free", ride.id, ride.seats_total)

    # ── Commands ──────────────────────────────────────────────────────

    async def create(
        self,
        *,
        driver_id: int,
        vehicle_id: int,
        origin: str,
        destination: str,
        date_time: datetime,
        price_per_seat: float,
        seats_total: int,
        origin_lat: Optional[float] = None,
        origin_lng: Optional[float] = None,
        destination_lat: Optional[float] = None,
        destination_lng: Optional[float] = None,
        notes: Optional[str] = None,
        luggage: bool = True,
        pets: bool = False,
        smoking: bool = False,
        music: bool = True,
    ) -> RideModel:
        now = self.clock()
        departure = _as_utc(date_time)
        if not origin or not origin.strip() or not destination or not destination.strip():
            raise InvalidInput("Origin and destination are required")
        if departure <= now:
            raise InvalidInput("Ride date must be in the future")
        if price_per_seat < 0:
            raise InvalidInput("Price must not be negative")
        if not 1 <= seats_total <= self.max_seats:
            raise InvalidInput(f"Seats must be between 1 and {self.max_seats}")

        async with self.unit_of_work() as uow:
            vehicle = await uow.vehicles.get_by_id(vehicle_id)
            if vehicle is None or vehicle.owner_id != driver_id:
                raise InvalidInput("You can only offer rides in a vehicle you own")

            ride = await uow.rides.create(
                RideModel(
                    driver_id=driver_id,
                    vehicle_id=vehicle_id,
                    origin=origin.strip(),
                    destination=destination.strip(),
                    origin_lat=origin_lat,
                    origin_lng=origin_lng,
                    destination_lat=destination_lat,
                    destination_lng=destination_lng,
                    notes=notes or None,
                    date_time=departure,
                    price_per_seat=round(price_per_seat, 2),
                    seats_total=seats_total,
                    seats_available=seats_total,
                    status=RideStatus.UPCOMING,
                    luggage=luggage,
                    pets=pets,
                    smoking=smoking,
                    music=music,
                    created_at=now,
                    updated_at=now,
                )
            )
        logger.info("Ride %s created by driver %s (%d seats)", ride.id, driver_id, seats_total)
        return ride

    async def cancel(self, ride_id: int, actor_id: int) -> RideModel:
        async with self.unit_of_work() as uow:
            ride = await self.locked_ride(uow, ride_id)
            if not ride.is_driver(actor_id):
                raise NotAuthorized("Only the driver can cancel this ride")
            ride.check_transition(RideStatus.CANCELLED)

            now = self.clock()
            if not await uow.rides.change_status(
                ride, RideStatus.UPCOMING, RideStatus.CANCELLED, now
            ):
                raise InvalidTransition("Ride is no longer upcoming")

            driver_name = await uow.users.display_name(ride.driver_id, "Driver")
            live = await uow.bookings.list_for_ride(
                ride.id, LIVE_BOOKING_STATUSES, for_update=True
            )
            split = self.cancellation_policy.split(ride.date_time, now)
            for booking in live:
                await self.close_booking(
                    uow, ride, booking, LIVE_BOOKING_STATUSES, BookingStatus.CANCELLED, split
                )
                uow.emit(events.ride_cancelled(ride, booking, driver_name))

        logger.info("Ride %s cancelled by driver; %d bookings refunded", ride_id, len(live))
        return ride

    async def mark_completed(self, ride_id: int, actor_id: int) -> RideModel:
        async with self.unit_of_work() as uow:
            ride = await self.locked_ride(uow, ride_id)
            if not ride.is_driver(actor_id):
                raise NotAuthorized("Only the driver can complete this ride")
            ride.check_transition(RideStatus.COMPLETED)

            now = self.clock()
            if not ride.has_departed(now):
                raise InvalidTransition("Ride cannot be completed before its departure time")
            if not await uow.rides.change_status(
                ride, RideStatus.UPCOMING, RideStatus.COMPLETED, now
            ):
                raise InvalidTransition("Ride is no longer upcoming")

            driver_name = await uow.users.display_name(ride.driver_id, "Driver")
            deadline = self.window.deadline_from(now)

            accepted = await uow.bookings.list_for_ride(
                ride.id, [BookingStatus.ACCEPTED], for_update=True
            )
            for booking in accepted:
                await uow.bookings.transition(
                    booking,
                    [BookingStatus.ACCEPTED],
                    confirm_deadline=deadline,
                    updated_at=now,
                )
                uow.emit(events.ride_completed(ride, booking, driver_name))

            # Requests the driver never answered cannot be confirmed any more
            unanswered = await uow.bookings.list_for_ride(
                ride.id, [BookingStatus.PENDING], for_update=True
            )
            for booking in unanswered:
                await self.close_booking(
                    uow, ride, booking, [BookingStatus.PENDING], BookingStatus.DECLINED,
                    self.cancellation_policy.split(ride.date_time, now),
                )
                uow.emit(events.booking_declined(ride, booking, driver_name))

        logger.info(
            "Ride %s completed; %d bookings awaiting confirmation until %s",
            ride_id, len(accepted), deadline.isoformat(),
        )
        return ride

    async def close_booking(
        self,
        uow: UnitOfWork,
        ride: RideModel,
        booking: BookingModel,
        expected: Iterable[BookingStatus],
        status: BookingStatus,
        split: RefundSplit,
    ) -> bool:
        """Move a live booking to a terminal state, free its seat, settle escrow.

        The refund split is stored with the status change and replayed onto
        the gateway after commit.
        """
        now = self.clock()
        amount = booking.payment_amount or 0.0
        if not await uow.bookings.transition(
            booking,
            expected,
            status=status,
            payment_status=PaymentStatus.REFUNDED,
            refund_amount=split.passenger_amount(amount),
            payout_amount=split.driver_amount(amount),
            escrow_pending=booking.payment_token is not None,
            updated_at=now,
        ):
            return False
        await self.release_seat(uow, ride)
        self.escrow.schedule(uow, booking)
        return True

    # ── Queries ───────────────────────────────────────────────────────

    async def get(self, ride_id: int) -> tuple[RideModel, list[BookingModel]]:
        async with self.unit_of_work() as uow:
            ride = await uow.rides.get_by_id(ride_id)
            if ride is None:
                raise NotFound("Ride not found")
            bookings = await uow.bookings.list_for_ride(ride_id)
        return ride, bookings

    async def search(
        self,
        origin: Optional[str] = None,
        destination: Optional[str] = None,
        day: Optional[date] = None,
        university: Optional[str] = None,
    ) -> list[RideModel]:
        day_start = day_end = None
        if day is not None:
            day_start = datetime.combine(day, time.min, tzinfo=timezone.utc)
            day_end = day_start + timedelta(days=1)
        async with self.unit_of_work() as uow:
            return await uow.rides.search(
                now=self.clock(),
                origin=origin,
                destination=destination,
                day_start=day_start,
                day_end=day_end,
                university=university,
            )

    async def inventory(self, ride_id: int) -> InventoryReport:
        async with self.unit_of_work() as uow:
            ride = await uow.rides.get_by_id(ride_id)
            if ride is None:
                raise NotFound("Ride not found")
            holding = await uow.rides.count_seat_holding(ride_id)
        return InventoryReport(
            ride_id=ride_id,
            seats_total=ride.seats_total,
            seats_available=ride.seats_available,
            seat_holding_bookings=holding,
        )
