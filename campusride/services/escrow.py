"""
EscrowSettler
=============

Moves money on the gateway for bookings whose payment outcome is already
committed.  A transition that refunds or releases a booking stores the
outcome (``payment_status``, ``refund_amount``, ``payout_amount``) and sets
``escrow_pending`` in the same UPDATE; the settler then replays that
outcome onto the gateway after the commit and clears the flag.

The stored row is the source of truth, so replaying it is safe at any
time: the gateway tops refunds up to the requested share and releases only
what is still held.  Bookings whose replay kept failing stay pending and
are picked up again by ``settle_pending`` (run by the settlement worker).
"""

from __future__ import annotations

import logging

from .base import Clock, LifecycleService, with_retries
from campusride.domain.entities import utcnow
from campusride.domain.enums import PaymentStatus
from campusride.domain.errors import InfrastructureError, NotFound, PaymentError
from campusride.infrastructure.models import BookingModel
from campusride.infrastructure.payments import PaymentGateway
from campusride.infrastructure.unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)


class EscrowSettler(LifecycleService):
    def __init__(
        self,
        session_factory,
        notifier,
        gateway: PaymentGateway,
        clock: Clock = utcnow,
        attempts: int = 3,
        backoff_seconds: float = 0.2,
    ):
        super().__init__(session_factory, notifier, clock)
        self.gateway = gateway
        self.attempts = attempts
        self.backoff_seconds = backoff_seconds

    def schedule(self, uow: UnitOfWork, booking: BookingModel) -> None:
        """Settle *booking* on the gateway once *uow* has committed."""
        if booking.payment_token is None:
            return
        booking_id = booking.id
        uow.on_commit(lambda: self.settle(booking_id))

    async def apply(self, booking: BookingModel) -> None:
        """Issue the gateway calls matching the booking's stored outcome."""
        token = booking.payment_token
        status = PaymentStatus(booking.payment_status)
        if status is PaymentStatus.REFUNDED:
            held = booking.payment_amount or 0.0
            fraction = (booking.refund_amount or 0.0) / held if held else 1.0
            await self.gateway.refund(token, min(fraction, 1.0))
            if booking.payout_amount:
                await self.gateway.release(token)
        elif status is PaymentStatus.RELEASED:
            await self.gateway.release(token)
        else:
            raise PaymentError(f"Booking {booking.id} has nothing to settle ({status.value})")

    async def settle(self, booking_id: int) -> bool:
        async with self.unit_of_work() as uow:
            booking = await uow.bookings.get_by_id(booking_id)
        if booking is None:
            raise NotFound("Booking not found")
        if not booking.escrow_pending:
            return False

        await with_retries(
            lambda: self.apply(booking),
            attempts=self.attempts,
            backoff_seconds=self.backoff_seconds,
        )
        status = PaymentStatus(booking.payment_status)
        async with self.unit_of_work() as uow:
            synced = await uow.bookings.mark_escrow_synced(booking_id, status)
        if synced:
            logger.info(
                "Escrow for booking %s settled on the gateway (%s)",
                booking_id, status.value,
            )
        return synced

    async def settle_pending(self) -> int:
        async with self.unit_of_work() as uow:
            pending = await uow.bookings.escrow_pending_ids()

        settled = 0
        for booking_id in pending:
            try:
                if await self.settle(booking_id):
                    settled += 1
            except InfrastructureError:
                logger.exception("Escrow for booking %s still unsettled", booking_id)
        if settled:
            logger.info("Escrow sweep: %d bookings settled on the gateway", settled)
        return settled
