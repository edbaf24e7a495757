"""
Repository Pattern -- abstracts DB access so domain logic stays DB-agnostic.

Each repository receives an ``AsyncSession`` (unit-of-work) and exposes
domain-relevant queries only.

Every status change and every seat-count change is a *conditional* UPDATE
guarded by the value it expects to replace; the caller learns from the
returned bool whether it won.  Nothing here reads a value and writes it
back unconditionally.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import BookingModel, ReviewModel, RideModel, UserModel, VehicleModel
from campusride.domain.enums import (
    SEAT_HOLDING_STATUSES,
    BookingStatus,
    PaymentStatus,
    ReviewDirection,
    RideStatus,
)


class UserRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, user_id: int) -> Optional[UserModel]:
        return await self.session.get(UserModel, user_id)

    async def display_name(self, user_id: int, fallback: str = "Someone") -> str:
        user = await self.get_by_id(user_id)
        return user.name if user and user.name else fallback


class VehicleRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, vehicle_id: int) -> Optional[VehicleModel]:
        return await self.session.get(VehicleModel, vehicle_id)


class RideRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, ride: RideModel) -> RideModel:
        self.session.add(ride)
        await self.session.flush()
        return ride

    async def get_by_id(self, ride_id: int) -> Optional[RideModel]:
        return await self.session.get(RideModel, ride_id)

    async def get_for_update(self, ride_id: int) -> Optional[RideModel]:
        """SELECT ... FOR UPDATE on the ride row."""
        result = await self.session.execute(
            select(RideModel)
            .where(RideModel.id == ride_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def search(
        self,
        *,
        now: datetime,
        origin: str | None = None,
        destination: str | None = None,
        day_start: datetime | None = None,
        day_end: datetime | None = None,
        university: str | None = None,
    ) -> list[RideModel]:
        query = select(RideModel).where(
            RideModel.status == RideStatus.UPCOMING,
            RideModel.seats_available > 0,
        )
        if day_start is not None and day_end is not None:
            query = query.where(
                RideModel.date_time >= max(day_start, now),
                RideModel.date_time < day_end,
            )
        else:
            query = query.where(RideModel.date_time >= now)
        if origin:
            query = query.where(RideModel.origin.ilike(f"%{origin}%"))
        if destination:
            query = query.where(RideModel.destination.ilike(f"%{destination}%"))
        if university:
            query = query.join(UserModel, UserModel.id == RideModel.driver_id).where(
                UserModel.university.ilike(f"%{university}%")
            )
        result = await self.session.execute(query.order_by(RideModel.date_time))
        return list(result.scalars().all())

    async def take_seat(self, ride: RideModel, now: datetime) -> bool:
        """Decrement ``seats_available`` only if the ride is open and has a seat."""
        result = await self.session.execute(
            update(RideModel)
            .where(
                RideModel.id == ride.id,
                RideModel.status == RideStatus.UPCOMING,
                RideModel.seats_available > 0,
            )
            .values(seats_available=RideModel.seats_available - 1, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        await self.session.refresh(ride)
        return result.rowcount == 1

    async def return_seat(self, ride: RideModel, now: datetime) -> bool:
        """Increment ``seats_available`` without ever exceeding ``seats_total``."""
        result = await self.session.execute(
            update(RideModel)
            .where(
                RideModel.id == ride.id,
                RideModel.seats_available < RideModel.seats_total,
            )
            .values(seats_available=RideModel.seats_available + 1, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        await self.session.refresh(ride)
        return result.rowcount == 1

    async def change_status(
        self,
        ride: RideModel,
        expected: RideStatus,
        new_status: RideStatus,
        now: datetime,
    ) -> bool:
        result = await self.session.execute(
            update(RideModel)
            .where(RideModel.id == ride.id, RideModel.status == expected)
            .values(status=new_status, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        await self.session.refresh(ride)
        return result.rowcount == 1

    async def count_completed_for_driver(self, driver_id: int) -> int:
        result = await self.session.execute(
            select(func.count())
            .select_from(RideModel)
            .where(
                RideModel.driver_id == driver_id,
                RideModel.status == RideStatus.COMPLETED,
            )
        )
        return result.scalar() or 0

    async def count_seat_holding(self, ride_id: int) -> int:
        result = await self.session.execute(
            select(func.count())
            .select_from(BookingModel)
            .where(
                BookingModel.ride_id == ride_id,
                BookingModel.status.in_(list(SEAT_HOLDING_STATUSES)),
            )
        )
        return result.scalar() or 0


class BookingRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, booking: BookingModel) -> BookingModel:
        self.session.add(booking)
        await self.session.flush()
        return booking

    async def get_by_id(self, booking_id: int) -> Optional[BookingModel]:
        return await self.session.get(BookingModel, booking_id)

    async def get_for_update(self, booking_id: int) -> Optional[BookingModel]:
        result = await self.session.execute(
            select(BookingModel)
            .where(BookingModel.id == booking_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def find_live(self, ride_id: int, passenger_id: int) -> Optional[BookingModel]:
        result = await self.session.execute(
            select(BookingModel).where(
                BookingModel.ride_id == ride_id,
                BookingModel.passenger_id == passenger_id,
                BookingModel.status.in_(
                    [BookingStatus.PENDING, BookingStatus.ACCEPTED]
                ),
            )
        )
        return result.scalars().first()

    async def list_for_ride(
        self,
        ride_id: int,
        statuses: Iterable[BookingStatus] | None = None,
        *,
        for_update: bool = False,
    ) -> list[BookingModel]:
        query = select(BookingModel).where(BookingModel.ride_id == ride_id)
        if statuses is not None:
            query = query.where(BookingModel.status.in_(list(statuses)))
        if for_update:
            query = query.with_for_update().execution_options(populate_existing=True)
        result = await self.session.execute(query.order_by(BookingModel.created_at))
        return list(result.scalars().all())

    async def transition(
        self,
        booking: BookingModel,
        expected: Iterable[BookingStatus],
        *,
        unconfirmed_only: bool = False,
        **values,
    ) -> bool:
        """Apply *values* only if the stored status is still one of *expected*."""
        conditions = [
            BookingModel.id == booking.id,
            BookingModel.status.in_(list(expected)),
        ]
        if unconfirmed_only:
            conditions.append(BookingModel.confirmed_at.is_(None))
        result = await self.session.execute(
            update(BookingModel)
            .where(*conditions)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        await self.session.refresh(booking)
        return result.rowcount == 1

    async def settlement_due_ids(self, now: datetime) -> list[int]:
        """Accepted, unconfirmed bookings on completed rides past their deadline."""
        result = await self.session.execute(
            select(BookingModel.id)
            .join(RideModel, RideModel.id == BookingModel.ride_id)
            .where(
                BookingModel.status == BookingStatus.ACCEPTED,
                BookingModel.confirmed_at.is_(None),
                BookingModel.confirm_deadline.is_not(None),
                BookingModel.confirm_deadline <= now,
                RideModel.status == RideStatus.COMPLETED,
            )
            .order_by(BookingModel.confirm_deadline)
        )
        return list(result.scalars().all())

    async def escrow_pending_ids(self) -> list[int]:
        """Closed bookings whose settlement has not reached the gateway yet."""
        result = await self.session.execute(
            select(BookingModel.id)
            .where(BookingModel.escrow_pending.is_(True))
            .order_by(BookingModel.updated_at)
        )
        return list(result.scalars().all())

    async def mark_escrow_synced(
        self, booking_id: int, payment_status: PaymentStatus
    ) -> bool:
        result = await self.session.execute(
            update(BookingModel)
            .where(
                BookingModel.id == booking_id,
                BookingModel.escrow_pending.is_(True),
                BookingModel.payment_status == payment_status,
            )
            .values(escrow_pending=False)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def count_completed_for_passenger(self, passenger_id: int) -> int:
        result = await self.session.execute(
            select(func.count())
            .select_from(BookingModel)
            .where(
                BookingModel.passenger_id == passenger_id,
                BookingModel.status == BookingStatus.COMPLETED,
            )
        )
        return result.scalar() or 0

    async def awaiting_confirmation(
        self, passenger_id: int, now: datetime
    ) -> list[tuple[BookingModel, RideModel]]:
        result = await self.session.execute(
            select(BookingModel, RideModel)
            .join(RideModel, RideModel.id == BookingModel.ride_id)
            .where(
                BookingModel.passenger_id == passenger_id,
                BookingModel.status == BookingStatus.ACCEPTED,
                BookingModel.confirmed_at.is_(None),
                BookingModel.confirm_deadline > now,
                RideModel.status == RideStatus.COMPLETED,
            )
            .order_by(RideModel.date_time.desc())
        )
        return [(booking, ride) for booking, ride in result.all()]


class ReviewRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, review: ReviewModel) -> ReviewModel:
        self.session.add(review)
        await self.session.flush()
        return review

    async def list_for_booking(self, booking_id: int) -> list[ReviewModel]:
        result = await self.session.execute(
            select(ReviewModel)
            .where(ReviewModel.booking_id == booking_id)
            .order_by(ReviewModel.created_at)
        )
        return list(result.scalars().all())

    async def list_received(self, user_id: int) -> list[ReviewModel]:
        result = await self.session.execute(
            select(ReviewModel)
            .where(ReviewModel.reviewee_id == user_id)
            .order_by(ReviewModel.created_at.desc(), ReviewModel.id.desc())
        )
        return list(result.scalars().all())

    async def list_given(self, user_id: int) -> list[ReviewModel]:
        result = await self.session.execute(
            select(ReviewModel)
            .where(ReviewModel.reviewer_id == user_id)
            .order_by(ReviewModel.created_at.desc(), ReviewModel.id.desc())
        )
        return list(result.scalars().all())

    async def directions_for(
        self, booking: BookingModel, ride: RideModel
    ) -> set[ReviewDirection]:
        reviewed: set[ReviewDirection] = set()
        for review in await self.list_for_booking(booking.id):
            if review.reviewer_id == booking.passenger_id and review.reviewee_id == ride.driver_id:
                reviewed.add(ReviewDirection.PASSENGER_TO_DRIVER)
            elif review.reviewer_id == ride.driver_id and review.reviewee_id == booking.passenger_id:
                reviewed.add(ReviewDirection.DRIVER_TO_PASSENGER)
        return reviewed
