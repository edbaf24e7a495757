"""Integration tests for seat requests, decisions, cancellations and escrow."""

from datetime import timedelta

import pytest

from campusride.domain.enums import (
    BookingDecision,
    BookingStatus,
    NotificationType,
    PaymentStatus,
)
from campusride.domain.errors import (
    AlreadyConfirmed,
    DeadlineExpired,
    DuplicateBooking,
    InvalidInput,
    InvalidTransition,
    NotAuthorized,
    NotFound,
    SeatsUnavailable,
)


class TestRequestSeat:
    @pytest.mark.asyncio
    async def test_request_holds_payment_and_seat(
        self, booking_engine, make_ride, people, gateway, sink
    ):
        ride = await make_ride(seats=2, price=45.5)
        booking = await booking_engine.bookings.request(ride.id, people.passengers[0], True)

        assert booking.status is BookingStatus.PENDING
        assert booking.payment_status is PaymentStatus.HELD
        assert booking.payment_amount == 45.5
        assert gateway.entry(booking.payment_token).remaining == 45.5

        ride, _ = await booking_engine.rides.get(ride.id)
        assert ride.seats_available == 1

        assert sink.types() == [NotificationType.BOOKING_REQUEST]
        assert sink.events[0].user_id == people.driver

    @pytest.mark.asyncio
    async def test_payment_must_be_confirmed(self, booking_engine, make_ride, people, gateway):
        ride = await make_ride()
        with pytest.raises(InvalidInput):
            await booking_engine.bookings.request(ride.id, people.passengers[0], False)
        ride, bookings = await booking_engine.rides.get(ride.id)
        assert bookings == []
        assert ride.seats_available == ride.seats_total

    @pytest.mark.asyncio
    async def test_driver_cannot_book_own_ride(self, booking_engine, make_ride, people):
        ride = await make_ride()
        with pytest.raises(NotAuthorized):
            await booking_engine.bookings.request(ride.id, people.driver, True)

    @pytest.mark.asyncio
    async def test_duplicate_live_booking(self, booking_engine, make_ride, people, sink):
        ride = await make_ride()
        passenger = people.passengers[0]
        await booking_engine.bookings.request(ride.id, passenger, True)
        with pytest.raises(DuplicateBooking):
            await booking_engine.bookings.request(ride.id, passenger, True)
        ride, bookings = await booking_engine.rides.get(ride.id)
        assert len(bookings) == 1
        assert ride.seats_available == ride.seats_total - 1
        assert len(sink.events) == 1

    @pytest.mark.asyncio
    async def test_can_request_again_after_cancelling(
        self, booking_engine, make_ride, people
    ):
        ride = await make_ride()
        passenger = people.passengers[0]
        first = await booking_engine.bookings.request(ride.id, passenger, True)
        await booking_engine.bookings.cancel(first.id, passenger)
        second = await booking_engine.bookings.request(ride.id, passenger, True)
        assert second.id != first.id
        assert second.status is BookingStatus.PENDING

    @pytest.mark.asyncio
    async def test_full_ride(self, booking_engine, make_ride, people):
        ride = await make_ride(seats=1)
        await booking_engine.bookings.request(ride.id, people.passengers[0], True)
        with pytest.raises(SeatsUnavailable):
            await booking_engine.bookings.request(ride.id, people.passengers[1], True)

    @pytest.mark.asyncio
    async def test_departed_ride_not_bookable(self, booking_engine, make_ride, people, clock):
        ride = await make_ride(departs_in=timedelta(hours=1))
        clock.advance(hours=1)
        with pytest.raises(InvalidTransition):
            await booking_engine.bookings.request(ride.id, people.passengers[0], True)

    @pytest.mark.asyncio
    async def test_cancelled_ride_not_bookable(self, booking_engine, make_ride, people):
        ride = await make_ride()
        await booking_engine.rides.cancel(ride.id, people.driver)
        with pytest.raises(InvalidTransition):
            await booking_engine.bookings.request(ride.id, people.passengers[0], True)

    @pytest.mark.asyncio
    async def test_unknown_ride(self, booking_engine, people):
        with pytest.raises(NotFound):
            await booking_engine.bookings.request(4242, people.passengers[0], True)


class TestDriverDecision:
    @pytest.mark.asyncio
    async def test_accept(self, booking_engine, make_ride, people, sink):
        ride = await make_ride()
        booking = await booking_engine.bookings.request(ride.id, people.passengers[0], True)
        accepted = await booking_engine.bookings.decide(
            booking.id, people.driver, BookingDecision.ACCEPT
        )
        assert accepted.status is BookingStatus.ACCEPTED
        assert accepted.payment_status is PaymentStatus.HELD
        assert sink.types()[-1] is NotificationType.BOOKING_ACCEPTED

    @pytest.mark.asyncio
    async def test_decline_refunds_and_frees_seat(
        self, booking_engine, make_ride, people, gateway
    ):
        ride = await make_ride(seats=1)
        booking = await booking_engine.bookings.request(ride.id, people.passengers[0], True)
        declined = await booking_engine.bookings.decide(
            booking.id, people.driver, BookingDecision.DECLINE
        )
        assert declined.status is BookingStatus.DECLINED
        assert declined.payment_status is PaymentStatus.REFUNDED
        assert declined.refund_amount == 100.0
        assert gateway.entry(booking.payment_token).refunded == 100.0

        # The freed seat can be taken by someone else
        await booking_engine.bookings.request(ride.id, people.passengers[1], True)

    @pytest.mark.asyncio
    async def test_only_driver_decides(self, booking_engine, make_ride, people):
        ride = await make_ride()
        booking = await booking_engine.bookings.request(ride.id, people.passengers[0], True)
        with pytest.raises(NotAuthorized):
            await booking_engine.bookings.decide(
                booking.id, people.passengers[0], BookingDecision.ACCEPT
            )

    @pytest.mark.asyncio
    async def test_decide_twice(self, booking_engine, make_ride, people):
        ride = await make_ride()
        booking = await booking_engine.bookings.request(ride.id, people.passengers[0], True)
        await booking_engine.bookings.decide(booking.id, people.driver, BookingDecision.ACCEPT)
        with pytest.raises(InvalidTransition):
            await booking_engine.bookings.decide(
                booking.id, people.driver, BookingDecision.DECLINE
            )


class TestPassengerCancel:
    @pytest.mark.asyncio
    async def test_early_cancel_full_refund(self, booking_engine, make_ride, people, gateway):
        ride = await make_ride(seats=2, departs_in=timedelta(hours=72))
        passenger = people.passengers[0]
        booking = await booking_engine.bookings.request(ride.id, passenger, True)
        cancelled = await booking_engine.bookings.cancel(booking.id, passenger)

        assert cancelled.status is BookingStatus.CANCELLED
        assert cancelled.refund_amount == 100.0
        assert cancelled.payout_amount == 0.0
        entry = gateway.entry(booking.payment_token)
        assert entry.refunded == 100.0
        assert entry.released == 0.0

        ride, _ = await booking_engine.rides.get(ride.id)
        assert ride.seats_available == 2

    @pytest.mark.asyncio
    async def test_late_cancel_splits_payment(
        self, booking_engine, make_ride, people, gateway, sink
    ):
        ride = await make_ride(departs_in=timedelta(hours=30))
        passenger = people.passengers[0]
        booking = await booking_engine.bookings.request(ride.id, passenger, True)
        await booking_engine.bookings.decide(booking.id, people.driver, BookingDecision.ACCEPT)

        booking_engine.bookings.clock.advance(hours=6)  # exactly 24h to departure
        cancelled = await booking_engine.bookings.cancel(booking.id, passenger)

        assert cancelled.refund_amount == 50.0
        assert cancelled.payout_amount == 50.0
        entry = gateway.entry(booking.payment_token)
        assert entry.refunded == 50.0
        assert entry.released == 50.0
        assert sink.types()[-1] is NotificationType.BOOKING_CANCELLED

    @pytest.mark.asyncio
    async def test_only_passenger_cancels(self, booking_engine, make_ride, people):
        ride = await make_ride()
        booking = await booking_engine.bookings.request(ride.id, people.passengers[0], True)
        with pytest.raises(NotAuthorized):
            await booking_engine.bookings.cancel(booking.id, people.passengers[1])

    @pytest.mark.asyncio
    async def test_cancel_twice(self, booking_engine, make_ride, people, gateway):
        ride = await make_ride()
        passenger = people.passengers[0]
        booking = await booking_engine.bookings.request(ride.id, passenger, True)
        await booking_engine.bookings.cancel(booking.id, passenger)
        with pytest.raises(InvalidTransition):
            await booking_engine.bookings.cancel(booking.id, passenger)
        assert gateway.entry(booking.payment_token).refunded == 100.0

    @pytest.mark.asyncio
    async def test_cannot_cancel_after_completion(
        self, booking_engine, make_ride, complete_ride, people
    ):
        ride = await make_ride()
        passenger = people.passengers[0]
        booking = await booking_engine.bookings.request(ride.id, passenger, True)
        await booking_engine.bookings.decide(booking.id, people.driver, BookingDecision.ACCEPT)
        await complete_ride(ride)
        with pytest.raises(InvalidTransition):
            await booking_engine.bookings.cancel(booking.id, passenger)


@pytest.fixture
def accepted_on_completed(booking_engine, make_ride, complete_ride, people):
    """A booking accepted by the driver on a ride that has just been completed."""

    async def _build(price: float = 100.0):
        ride = await make_ride(price=price)
        booking = await booking_engine.bookings.request(ride.id, people.passengers[0], True)
        await booking_engine.bookings.decide(booking.id, people.driver, BookingDecision.ACCEPT)
        await complete_ride(ride)
        return ride, booking

    return _build


class TestConfirmation:
    @pytest.mark.asyncio
    async def test_confirm_releases_escrow_and_reviews_driver(
        self, booking_engine, accepted_on_completed, people, gateway, sink
    ):
        ride, booking = await accepted_on_completed(price=60.0)
        passenger = people.passengers[0]

        confirmed, review = await booking_engine.bookings.confirm(
            booking.id, passenger, 5, "Smooth ride"
        )
        assert confirmed.status is BookingStatus.COMPLETED
        assert confirmed.payment_status is PaymentStatus.RELEASED
        assert confirmed.payout_amount == 60.0
        assert confirmed.confirmed_at is not None
        assert gateway.entry(booking.payment_token).released == 60.0

        assert review.reviewer_id == passenger
        assert review.reviewee_id == people.driver
        assert review.rating == 5
        assert review.comment == "Smooth ride"

        driver_events = [e.type for e in sink.for_user(people.driver)]
        assert NotificationType.PAYMENT_RELEASED in driver_events
        assert NotificationType.REVIEW_RECEIVED in driver_events

    @pytest.mark.asyncio
    async def test_confirm_twice(self, booking_engine, accepted_on_completed, people, gateway):
        _, booking = await accepted_on_completed()
        passenger = people.passengers[0]
        await booking_engine.bookings.confirm(booking.id, passenger, 4)
        with pytest.raises(AlreadyConfirmed):
            await booking_engine.bookings.confirm(booking.id, passenger, 4)
        assert gateway.entry(booking.payment_token).released == 100.0

    @pytest.mark.asyncio
    async def test_only_passenger_confirms(self, booking_engine, accepted_on_completed, people):
        _, booking = await accepted_on_completed()
        with pytest.raises(NotAuthorized):
            await booking_engine.bookings.confirm(booking.id, people.driver, 5)

    @pytest.mark.asyncio
    async def test_confirm_after_deadline(
        self, booking_engine, accepted_on_completed, people, clock
    ):
        _, booking = await accepted_on_completed()
        clock.advance(hours=24)
        with pytest.raises(DeadlineExpired):
            await booking_engine.bookings.confirm(booking.id, people.passengers[0], 5)

    @pytest.mark.asyncio
    async def test_confirm_before_completion(self, booking_engine, make_ride, people):
        ride = await make_ride()
        booking = await booking_engine.bookings.request(ride.id, people.passengers[0], True)
        await booking_engine.bookings.decide(booking.id, people.driver, BookingDecision.ACCEPT)
        with pytest.raises(InvalidTransition):
            await booking_engine.bookings.confirm(booking.id, people.passengers[0], 5)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("rating", [0, 6, True])
    async def test_bad_rating_changes_nothing(
        self, booking_engine, accepted_on_completed, people, gateway, rating
    ):
        _, booking = await accepted_on_completed()
        with pytest.raises(InvalidInput):
            await booking_engine.bookings.confirm(booking.id, people.passengers[0], rating)
        current, _ = await booking_engine.bookings.get(booking.id)
        assert current.status is BookingStatus.ACCEPTED
        assert gateway.entry(booking.payment_token).released == 0.0

    @pytest.mark.asyncio
    async def test_pending_confirmations(
        self, booking_engine, accepted_on_completed, people, clock
    ):
        _, booking = await accepted_on_completed()
        passenger = people.passengers[0]
        rows = await booking_engine.bookings.pending_confirmations(passenger)
        assert [b.id for b, _ in rows] == [booking.id]

        clock.advance(hours=24)
        assert await booking_engine.bookings.pending_confirmations(passenger) == []


class TestSettlement:
    @pytest.mark.asyncio
    async def test_sweep_releases_overdue_bookings(
        self, booking_engine, accepted_on_completed, clock, gateway, sink
    ):
        _, booking = await accepted_on_completed()
        assert await booking_engine.bookings.settle_all_expired() == 0

        clock.advance(hours=24)
        assert await booking_engine.bookings.settle_all_expired() == 1
        assert await booking_engine.bookings.settle_all_expired() == 0

        settled, _ = await booking_engine.bookings.get(booking.id)
        assert settled.status is BookingStatus.COMPLETED
        assert settled.payment_status is PaymentStatus.RELEASED
        assert settled.confirmed_at is None
        assert gateway.entry(booking.payment_token).released == 100.0
        assert sink.types().count(NotificationType.PAYMENT_RELEASED) == 1

    @pytest.mark.asyncio
    async def test_reading_an_overdue_booking_settles_it(
        self, booking_engine, accepted_on_completed, clock, gateway
    ):
        _, booking = await accepted_on_completed()
        clock.advance(hours=25)
        current, _ = await booking_engine.bookings.get(booking.id)
        assert current.status is BookingStatus.COMPLETED
        assert current.payment_status is PaymentStatus.RELEASED
        assert gateway.entry(booking.payment_token).released == 100.0
        assert await booking_engine.bookings.settle_all_expired() == 0

    @pytest.mark.asyncio
    async def test_settle_single_not_due(self, booking_engine, accepted_on_completed):
        _, booking = await accepted_on_completed()
        with pytest.raises(InvalidTransition):
            await booking_engine.bookings.settle_expired(booking.id)


class TestEndToEnd:
    @pytest.mark.asyncio
    async def test_full_ride_story(
        self, booking_engine, make_ride, complete_ride, people, gateway
    ):
        ride = await make_ride(seats=3, price=40.0)
        p1, p2, p3 = people.passengers[:3]

        b1 = await booking_engine.bookings.request(ride.id, p1, True)
        b2 = await booking_engine.bookings.request(ride.id, p2, True)
        b3 = await booking_engine.bookings.request(ride.id, p3, True)
        await booking_engine.bookings.decide(b1.id, people.driver, BookingDecision.ACCEPT)
        await booking_engine.bookings.decide(b2.id, people.driver, BookingDecision.ACCEPT)
        await booking_engine.bookings.decide(b3.id, people.driver, BookingDecision.DECLINE)

        await complete_ride(ride)
        await booking_engine.bookings.confirm(b1.id, p1, 5)
        booking_engine.bookings.clock.advance(hours=24)
        assert await booking_engine.bookings.settle_all_expired() == 1

        _, bookings = await booking_engine.rides.get(ride.id)
        by_id = {b.id: b for b in bookings}
        assert by_id[b1.id].status is BookingStatus.COMPLETED
        assert by_id[b1.id].confirmed_at is not None
        assert by_id[b2.id].status is BookingStatus.COMPLETED
        assert by_id[b2.id].confirmed_at is None
        assert by_id[b3.id].status is BookingStatus.DECLINED

        paid_out = sum(gateway.entry(b.payment_token).released for b in bookings)
        refunded = sum(gateway.entry(b.payment_token).refunded for b in bookings)
        assert paid_out == 80.0
        assert refunded == 40.0

        report = await booking_engine.rides.inventory(ride.id)
        assert report.consistent
        assert report.seat_holding_bookings == 2
