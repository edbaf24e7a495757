"""
ReviewGate
==========

One review per direction per booking (passenger -> driver and
driver -> passenger are independent), only while the confirmation window
of that booking is open.

``profile`` builds a user's public reputation from them: reviews received
and given, average rating, completed trips as driver and as passenger.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy.exc import IntegrityError

from .base import Clock, LifecycleService
from campusride.domain import events
from campusride.domain.confirmation import ConfirmationWindow
from campusride.domain.entities import utcnow
from campusride.domain.enums import ReviewDirection
from campusride.domain.errors import (
    InvalidInput,
    InvalidParticipants,
    NotEligible,
    NotFound,
)
from campusride.infrastructure.models import (
    BookingModel,
    ReviewModel,
    RideModel,
    UserModel,
)
from campusride.infrastructure.unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)


def validate_rating(rating) -> int:
    if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
        raise InvalidInput("Rating must be between 1 and 5")
    return rating


def review_direction(
    booking: BookingModel, ride: RideModel, reviewer_id: int, reviewee_id: int
) -> ReviewDirection:
    if reviewer_id == booking.passenger_id and reviewee_id == ride.driver_id:
        return ReviewDirection.PASSENGER_TO_DRIVER
    if reviewer_id == ride.driver_id and reviewee_id == booking.passenger_id:
        return ReviewDirection.DRIVER_TO_PASSENGER
    raise InvalidParticipants("Reviews are only between the driver and the passenger")


@dataclass
class UserProfile:
    user: UserModel
    rides_as_driver: int = 0
    rides_as_passenger: int = 0
    reviews_received: list[ReviewModel] = field(default_factory=list)
    reviews_given: list[ReviewModel] = field(default_factory=list)

    @property
    def total_reviews(self) -> int:
        return len(self.reviews_received)

    @property
    def average_rating(self) -> Optional[float]:
        if not self.reviews_received:
            return None
        ratings = [r.rating for r in self.reviews_received]
        return round(sum(ratings) / len(ratings), 2)


class ReviewGate(LifecycleService):
    def __init__(
        self,
        session_factory,
        notifier,
        window: ConfirmationWindow,
        clock: Clock = utcnow,
    ):
        super().__init__(session_factory, notifier, clock)
        self.window = window

    async def submit(
        self,
        booking_id: int,
        reviewer_id: int,
        reviewee_id: int,
        rating: int,
        comment: Optional[str] = None,
    ) -> ReviewModel:
        async with self.unit_of_work() as uow:
            # Same locks as confirm, so the two never both insert a review
            booking, ride = await self.locked_booking(uow, booking_id)
            review = await self.record(
                uow, booking, ride, reviewer_id, reviewee_id, rating, comment
            )
        return review

    async def record(
        self,
        uow: UnitOfWork,
        booking: BookingModel,
        ride: RideModel,
        reviewer_id: int,
        reviewee_id: int,
        rating: int,
        comment: Optional[str] = None,
    ) -> ReviewModel:
        """Persist a review inside the caller's unit of work."""
        direction = review_direction(booking, ride, reviewer_id, reviewee_id)
        validate_rating(rating)

        now = self.clock()
        reviewed = await uow.reviews.directions_for(booking, ride)
        if direction in reviewed:
            raise NotEligible("You have already reviewed this ride")
        if not self.window.review_eligible(booking, ride, direction, now, reviewed):
            raise NotEligible("The review window for this ride is closed")

        try:
            review = await uow.reviews.create(
                ReviewModel(
                    booking_id=booking.id,
                    reviewer_id=reviewer_id,
                    reviewee_id=reviewee_id,
                    rating=rating,
                    comment=(comment or "").strip() or None,
                    created_at=now,
                )
            )
        except IntegrityError as err:
            raise NotEligible("You have already reviewed this ride") from err

        uow.emit(events.review_received(ride, booking, reviewee_id, rating))
        logger.info(
            "Review %s on booking %s (%s, %d stars)",
            review.id, booking.id, direction.value, rating,
        )
        return review

    async def reviews_for(self, booking_id: int) -> list[ReviewModel]:
        async with self.unit_of_work() as uow:
            if await uow.bookings.get_by_id(booking_id) is None:
                raise NotFound("Booking not found")
            return await uow.reviews.list_for_booking(booking_id)

    async def profile(self, user_id: int) -> UserProfile:
        async with self.unit_of_work() as uow:
            user = await uow.users.get_by_id(user_id)
            if user is None:
                raise NotFound("User not found")
            return UserProfile(
                user=user,
                rides_as_driver=await uow.rides.count_completed_for_driver(user_id),
                rides_as_passenger=await uow.bookings.count_completed_for_passenger(user_id),
                reviews_received=await uow.reviews.list_received(user_id),
                reviews_given=await uow.reviews.list_given(user_id),
            )
