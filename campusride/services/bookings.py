"""
BookingLifecycle
================

Owns a booking's status and its escrow sub-state::

    request ──> pending ──accept──> accepted ──confirm / settle──> completed
                   │                   │
                   ├──decline──> declined
                   └──cancel───> cancelled <──cancel──┘

Payment follows the status: ``held`` from the request on, ``refunded`` when
the booking is declined or cancelled, ``released`` to the driver once the
passenger confirms or the confirmation deadline passes.  The hold is taken
inside the transaction (and refunded if it does not commit); refunds and
releases reach the gateway after commit through ``EscrowSettler``.

Every transition is a conditional update on the current status, so a retried
or concurrent call loses cleanly instead of charging or refunding twice.
"""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError

from .base import Clock, LifecycleService
from .escrow import EscrowSettler
from .reviews import ReviewGate, validate_rating
from .rides import RideLifecycle
from campusride.domain import events
from campusride.domain.confirmation import ConfirmationWindow
from campusride.domain.entities import utcnow
from campusride.domain.enums import (
    LIVE_BOOKING_STATUSES,
    BookingDecision,
    BookingStatus,
    EffectiveRideStatus,
    PaymentStatus,
    ReviewDirection,
    RideStatus,
)
from campusride.domain.errors import (
    AlreadyConfirmed,
    DeadlineExpired,
    DuplicateBooking,
    InvalidInput,
    InvalidTransition,
    NotAuthorized,
    NotEligible,
    NotFound,
    SeatsUnavailable,
)
from campusride.domain.policy import (
    FULL_REFUND,
    CancellationPolicy,
    PassengerCancellationPolicy,
)
from campusride.infrastructure.models import BookingModel, ReviewModel, RideModel
from campusride.infrastructure.payments import PaymentGateway
from campusride.infrastructure.unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)


class BookingLifecycle(LifecycleService):
    def __init__(
        self,
        session_factory,
        notifier,
        gateway: PaymentGateway,
        escrow: EscrowSettler,
        rides: RideLifecycle,
        reviews: ReviewGate,
        window: ConfirmationWindow,
        clock: Clock = utcnow,
        cancellation_policy: CancellationPolicy | None = None,
    ):
        super().__init__(session_factory, notifier, clock)
        self.gateway = gateway
        self.escrow = escrow
        self.rides = rides
        self.reviews = reviews
        self.window = window
        self.cancellation_policy = cancellation_policy or PassengerCancellationPolicy()

    # ── Passenger request ─────────────────────────────────────────────

    async def request(
        self, ride_id: int, passenger_id: int, payment_confirmed: bool
    ) -> BookingModel:
        if not payment_confirmed:
            raise InvalidInput("Payment must be completed before requesting a seat")

        async with self.unit_of_work() as uow:
            ride = await self.locked_ride(uow, ride_id)
            if ride.is_driver(passenger_id):
                raise NotAuthorized("You cannot book your own ride")

            now = self.clock()
            if ride.effective_status(now) is not EffectiveRideStatus.UPCOMING:
                raise InvalidTransition("This ride is no longer open for booking")
            if await uow.bookings.find_live(ride.id, passenger_id):
                raise DuplicateBooking("You have already requested a seat for this ride")

            if not await self.rides.reserve_seat(uow, ride):
                if RideStatus(ride.status) is not RideStatus.UPCOMING:
                    raise InvalidTransition("This ride is no longer open for booking")
                raise SeatsUnavailable("No seats available")

            booking = BookingModel(
                ride_id=ride.id,
                passenger_id=passenger_id,
                status=BookingStatus.PENDING,
                payment_status=PaymentStatus.HELD,
                payment_amount=ride.price_per_seat,
                paid_at=now,
                created_at=now,
                updated_at=now,
            )
            try:
                await uow.bookings.create(booking)
            except IntegrityError as err:
                raise DuplicateBooking(
                    "You have already requested a seat for this ride"
                ) from err

            token = await self.gateway.hold(booking.payment_amount)
            uow.on_rollback(lambda: self.gateway.refund(token, 1.0))
            booking.payment_token = token
            await uow.session.flush()

            passenger_name = await uow.users.display_name(passenger_id)
            uow.emit(events.booking_requested(ride, booking, passenger_name))

        logger.info(
            "Booking %s requested on ride %s by passenger %s (%d seats left)",
            booking.id, ride_id, passenger_id, ride.seats_available,
        )
        return booking

    # ── Driver decision ───────────────────────────────────────────────

    async def decide(
        self, booking_id: int, actor_id: int, decision: BookingDecision
    ) -> BookingModel:
        async with self.unit_of_work() as uow:
            booking, ride = await self.locked_booking(uow, booking_id)
            if not ride.is_driver(actor_id):
                raise NotAuthorized("Only the driver can accept or decline bookings")
            if RideStatus(ride.status) is not RideStatus.UPCOMING:
                raise InvalidTransition("The ride is no longer upcoming")
            if BookingStatus(booking.status) is not BookingStatus.PENDING:
                raise InvalidTransition("Booking has already been processed")

            now = self.clock()
            driver_name = await uow.users.display_name(ride.driver_id, "Driver")
            if decision is BookingDecision.ACCEPT:
                if not await uow.bookings.transition(
                    booking,
                    [BookingStatus.PENDING],
                    status=BookingStatus.ACCEPTED,
                    updated_at=now,
                ):
                    raise InvalidTransition("Booking has already been processed")
                uow.emit(events.booking_accepted(ride, booking, driver_name))
            else:
                if not await self.rides.close_booking(
                    uow, ride, booking, [BookingStatus.PENDING],
                    BookingStatus.DECLINED, FULL_REFUND,
                ):
                    raise InvalidTransition("Booking has already been processed")
                uow.emit(events.booking_declined(ride, booking, driver_name))

        logger.info("Booking %s %s by driver %s", booking_id, booking.status.value, actor_id)
        return booking

    # ── Passenger cancellation ────────────────────────────────────────

    async def cancel(self, booking_id: int, actor_id: int) -> BookingModel:
        async with self.unit_of_work() as uow:
            booking, ride = await self.locked_booking(uow, booking_id)
            if not booking.is_passenger(actor_id):
                raise NotAuthorized("Only the passenger can cancel this booking")
            if RideStatus(ride.status) is not RideStatus.UPCOMING:
                raise InvalidTransition("The ride is no longer upcoming")
            if not booking.is_live:
                raise InvalidTransition("Booking is already closed")

            split = self.cancellation_policy.split(ride.date_time, self.clock())
            if not await self.rides.close_booking(
                uow, ride, booking, LIVE_BOOKING_STATUSES,
                BookingStatus.CANCELLED, split,
            ):
                raise InvalidTransition("Booking is already closed")

            passenger_name = await uow.users.display_name(booking.passenger_id)
            uow.emit(events.booking_cancelled(ride, booking, passenger_name))

        logger.info(
            "Booking %s cancelled by passenger; refunded %.2f, driver keeps %.2f",
            booking_id, booking.refund_amount, booking.payout_amount,
        )
        return booking

    # ── Post-completion ───────────────────────────────────────────────

    async def confirm(
        self,
        booking_id: int,
        actor_id: int,
        rating: int,
        comment: Optional[str] = None,
    ) -> tuple[BookingModel, Optional[ReviewModel]]:
        """Release escrow and leave the passenger's review.

        The review is skipped (``None``) when that direction already has one.
        """
        async with self.unit_of_work() as uow:
            booking, ride = await self.locked_booking(uow, booking_id)
            if not booking.is_passenger(actor_id):
                raise NotAuthorized("Only the passenger can confirm this booking")
            if booking.confirmed_at is not None:
                raise AlreadyConfirmed("This ride has already been confirmed")

            now = self.clock()
            if self.window.is_expired(booking, now):
                raise DeadlineExpired("The confirmation window for this ride has closed")
            if (
                BookingStatus(booking.status) is not BookingStatus.ACCEPTED
                or RideStatus(ride.status) is not RideStatus.COMPLETED
                or booking.confirm_deadline is None
            ):
                raise InvalidTransition(
                    "Only accepted bookings on completed rides can be confirmed"
                )
            validate_rating(rating)

            if not await self._release(uow, ride, booking, confirmed_at=now):
                raise AlreadyConfirmed("This ride has already been confirmed")

            review = None
            reviewed = await uow.reviews.directions_for(booking, ride)
            if ReviewDirection.PASSENGER_TO_DRIVER not in reviewed:
                try:
                    async with uow.session.begin_nested():
                        review = await self.reviews.record(
                            uow, booking, ride, booking.passenger_id, ride.driver_id,
                            rating, comment,
                        )
                except NotEligible:
                    # Review already left through ReviewGate.submit
                    logger.info("Booking %s already reviewed, confirming without one", booking_id)

        logger.info("Booking %s confirmed by passenger %s", booking_id, actor_id)
        return booking, review

    async def settle_expired(self, booking_id: int) -> BookingModel:
        """Release escrow for a booking whose confirmation deadline passed."""
        async with self.unit_of_work() as uow:
            booking, ride = await self.locked_booking(uow, booking_id)
            if not self.window.settlement_due(booking, ride, self.clock()):
                raise InvalidTransition("Booking is not due for settlement")
            if not await self._release(uow, ride, booking, confirmed_at=None):
                raise InvalidTransition("Booking is not due for settlement")

        logger.info("Booking %s auto-settled after its confirmation deadline", booking_id)
        return booking

    async def settle_all_expired(self) -> int:
        async with self.unit_of_work() as uow:
            due = await uow.bookings.settlement_due_ids(self.clock())

        settled = 0
        for booking_id in due:
            try:
                await self.settle_expired(booking_id)
            except InvalidTransition:
                # Confirmed or settled by someone else in the meantime
                continue
            settled += 1
        if settled:
            logger.info("Settlement sweep: %d bookings released", settled)
        return settled

    # ── Queries ───────────────────────────────────────────────────────

    async def get(self, booking_id: int) -> tuple[BookingModel, RideModel]:
        """Read a booking, settling it first if its deadline has passed."""
        async with self.unit_of_work() as uow:
            booking = await uow.bookings.get_by_id(booking_id)
            if booking is None:
                raise NotFound("Booking not found")
            ride = await uow.rides.get_by_id(booking.ride_id)
            if self.window.settlement_due(booking, ride, self.clock()):
                booking, ride = await self.locked_booking(uow, booking_id)
                if self.window.settlement_due(booking, ride, self.clock()):
                    await self._release(uow, ride, booking, confirmed_at=None)
                    logger.info("Booking %s settled on read", booking_id)
        return booking, ride

    async def pending_confirmations(
        self, passenger_id: int
    ) -> list[tuple[BookingModel, RideModel]]:
        async with self.unit_of_work() as uow:
            return await uow.bookings.awaiting_confirmation(passenger_id, self.clock())

    # ── Internals ─────────────────────────────────────────────────────

    async def _release(
        self,
        uow: UnitOfWork,
        ride: RideModel,
        booking: BookingModel,
        confirmed_at,
    ) -> bool:
        """Complete the booking and pay the held amount out to the driver."""
        if not await uow.bookings.transition(
            booking,
            [BookingStatus.ACCEPTED],
            unconfirmed_only=True,
            status=BookingStatus.COMPLETED,
            payment_status=PaymentStatus.RELEASED,
            confirmed_at=confirmed_at,
            refund_amount=0.0,
            payout_amount=booking.payment_amount,
            escrow_pending=booking.payment_token is not None,
            updated_at=self.clock(),
        ):
            return False
        self.escrow.schedule(uow, booking)
        uow.emit(events.payment_released(ride, booking, booking.payout_amount or 0.0))
        return True
