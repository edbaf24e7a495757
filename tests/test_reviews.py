"""Integration tests for two-way reviews gated by the confirmation window."""

from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from campusride.domain.enums import BookingDecision, BookingStatus, NotificationType
from campusride.domain.errors import (
    InvalidInput,
    InvalidParticipants,
    NotEligible,
    NotFound,
    StoreError,
)
from campusride.infrastructure.repositories import ReviewRepository
from campusride.services.reviews import review_direction, validate_rating


@pytest.fixture
def completed_booking(booking_engine, make_ride, complete_ride, people):
    async def _build():
        ride = await make_ride()
        booking = await booking_engine.bookings.request(ride.id, people.passengers[0], True)
        await booking_engine.bookings.decide(booking.id, people.driver, BookingDecision.ACCEPT)
        await complete_ride(ride)
        return booking

    return _build


class TestRatingValidation:
    @pytest.mark.parametrize("rating", [1, 3, 5])
    def test_valid(self, rating):
        assert validate_rating(rating) == rating

    @pytest.mark.parametrize("rating", [0, 6, -1, 4.5, "5", None, False])
    def test_invalid(self, rating):
        with pytest.raises(InvalidInput):
            validate_rating(rating)


class TestReviewGate:
    @pytest.mark.asyncio
    async def test_driver_rates_passenger(
        self, booking_engine, completed_booking, people, sink
    ):
        booking = await completed_booking()
        passenger = people.passengers[0]
        review = await booking_engine.reviews.submit(
            booking.id, people.driver, passenger, 4, "  On time  "
        )
        assert review.rating == 4
        assert review.comment == "On time"
        assert sink.for_user(passenger)[-1].type is NotificationType.REVIEW_RECEIVED

    @pytest.mark.asyncio
    async def test_one_review_per_direction(self, booking_engine, completed_booking, people):
        booking = await completed_booking()
        passenger = people.passengers[0]
        await booking_engine.reviews.submit(booking.id, people.driver, passenger, 4)
        with pytest.raises(NotEligible):
            await booking_engine.reviews.submit(booking.id, people.driver, passenger, 5)

        # The other direction is independent
        await booking_engine.reviews.submit(booking.id, passenger, people.driver, 5)
        reviews = await booking_engine.reviews.reviews_for(booking.id)
        assert len(reviews) == 2

    @pytest.mark.asyncio
    async def test_driver_review_before_passenger_confirms(
        self, booking_engine, completed_booking, people
    ):
        booking = await completed_booking()
        passenger = people.passengers[0]
        await booking_engine.reviews.submit(booking.id, people.driver, passenger, 3)

        _, review = await booking_engine.bookings.confirm(booking.id, passenger, 5)
        assert review is not None
        assert review.reviewee_id == people.driver

    @pytest.mark.asyncio
    async def test_confirm_skips_review_already_left(
        self, booking_engine, completed_booking, people
    ):
        booking = await completed_booking()
        passenger = people.passengers[0]
        await booking_engine.reviews.submit(booking.id, passenger, people.driver, 2)

        confirmed, review = await booking_engine.bookings.confirm(booking.id, passenger, 5)
        assert review is None
        assert confirmed.confirmed_at is not None
        reviews = await booking_engine.reviews.reviews_for(booking.id)
        assert [r.rating for r in reviews] == [2]

    @pytest.mark.asyncio
    async def test_third_party_cannot_review(self, booking_engine, completed_booking, people):
        booking = await completed_booking()
        with pytest.raises(InvalidParticipants):
            await booking_engine.reviews.submit(
                booking.id, people.passengers[3], people.driver, 5
            )

    @pytest.mark.asyncio
    async def test_window_closed(self, booking_engine, completed_booking, people, clock):
        booking = await completed_booking()
        clock.advance(hours=24)
        with pytest.raises(NotEligible):
            await booking_engine.reviews.submit(
                booking.id, people.driver, people.passengers[0], 4
            )

    @pytest.mark.asyncio
    async def test_not_before_completion(self, booking_engine, make_ride, people):
        ride = await make_ride()
        booking = await booking_engine.bookings.request(ride.id, people.passengers[0], True)
        with pytest.raises(NotEligible):
            await booking_engine.reviews.submit(
                booking.id, people.driver, people.passengers[0], 4
            )

    @pytest.mark.asyncio
    async def test_unknown_booking(self, booking_engine, people):
        with pytest.raises(NotFound):
            await booking_engine.reviews.reviews_for(777)


class TestReviewDirection:
    def test_rejects_self_review(self):
        booking = SimpleNamespace(passenger_id=2)
        ride = SimpleNamespace(driver_id=1)
        with pytest.raises(InvalidParticipants):
            review_direction(booking, ride, 1, 1)


class TestConcurrentReview:
    @pytest.mark.asyncio
    async def test_confirm_skips_review_inserted_after_its_check(
        self, booking_engine, completed_booking, people, gateway, monkeypatch
    ):
        booking = await completed_booking()
        passenger = people.passengers[0]
        await booking_engine.reviews.submit(booking.id, passenger, people.driver, 2)
        # Confirm reads a stale "not yet reviewed" and hits the unique constraint
        monkeypatch.setattr(
            ReviewRepository, "directions_for", AsyncMock(return_value=set())
        )

        confirmed, review = await booking_engine.bookings.confirm(booking.id, passenger, 5)
        monkeypatch.undo()

        assert review is None
        assert confirmed.status is BookingStatus.COMPLETED
        assert gateway.entry(booking.payment_token).released == 100.0
        reviews = await booking_engine.reviews.reviews_for(booking.id)
        assert [r.rating for r in reviews] == [2]

    @pytest.mark.asyncio
    async def test_failed_confirm_moves_no_money(
        self, booking_engine, completed_booking, people, gateway, monkeypatch
    ):
        booking = await completed_booking()
        monkeypatch.setattr(
            booking_engine.reviews, "record", AsyncMock(side_effect=StoreError("locked"))
        )

        with pytest.raises(StoreError):
            await booking_engine.bookings.confirm(booking.id, people.passengers[0], 5)
        monkeypatch.undo()

        assert gateway.entry(booking.payment_token).remaining == 100.0
        current, _ = await booking_engine.bookings.get(booking.id)
        assert current.status is BookingStatus.ACCEPTED
        assert current.confirmed_at is None


class TestUserProfile:
    @pytest.mark.asyncio
    async def test_profile_aggregates_reviews_and_trips(
        self, booking_engine, completed_booking, people
    ):
        booking = await completed_booking()
        passenger = people.passengers[0]
        await booking_engine.bookings.confirm(booking.id, passenger, 4, "Smooth ride")
        await booking_engine.reviews.submit(booking.id, people.driver, passenger, 5)

        driver = await booking_engine.reviews.profile(people.driver)
        assert driver.user.university == "State University"
        assert driver.rides_as_driver == 1
        assert driver.rides_as_passenger == 0
        assert [r.rating for r in driver.reviews_received] == [4]
        assert [r.rating for r in driver.reviews_given] == [5]
        assert driver.average_rating == 4.0

        rider = await booking_engine.reviews.profile(passenger)
        assert rider.rides_as_passenger == 1
        assert rider.total_reviews == 1

    @pytest.mark.asyncio
    async def test_profile_without_reviews(self, booking_engine, people):
        profile = await booking_engine.reviews.profile(people.passengers[5])
        assert profile.average_rating is None
        assert profile.total_reviews == 0
        assert profile.rides_as_driver == 0

    @pytest.mark.asyncio
    async def test_unknown_user(self, booking_engine):
        with pytest.raises(NotFound):
            await booking_engine.reviews.profile(999)
