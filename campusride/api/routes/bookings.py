"""
Booking endpoints
=================

GET   /api/v1/bookings/pending-confirmation -- completed rides awaiting confirmation
GET   /api/v1/bookings/{booking_id}         -- booking status and escrow state
PATCH /api/v1/bookings/{booking_id}         -- accept / decline (driver), cancel (passenger)
POST  /api/v1/bookings/{booking_id}/confirm        -- passenger confirms and rates the driver
POST  /api/v1/bookings/{booking_id}/rate-passenger -- driver rates the passenger
GET   /api/v1/bookings/{booking_id}/reviews        -- reviews left on the booking
"""

from fastapi import APIRouter, Depends, Request

from campusride.api.dependencies import get_engine, retrying
from campusride.api.middleware import limiter
from campusride.api.schemas import (
    BookingResponse,
    BookingStatusUpdate,
    ConfirmationResponse,
    PendingConfirmationResponse,
    ReviewRequest,
    ReviewResponse,
    RideResponse,
)
from campusride.config import settings
from campusride.domain.enums import BookingDecision
from campusride.services.engine import BookingEngine

router = APIRouter(prefix="/bookings", tags=["bookings"])


@router.get(
    "/pending-confirmation",
    response_model=list[PendingConfirmationResponse],
    summary="Completed rides the passenger can still confirm",
)
@limiter.limit(settings.rate_limit)
async def pending_confirmation(
    request: Request,
    passenger_id: int,
    engine: BookingEngine = Depends(get_engine),
):
    rows = await retrying(lambda: engine.bookings.pending_confirmations(passenger_id))
    now = engine.bookings.clock()
    window = engine.bookings.window
    return [
        PendingConfirmationResponse(
            booking=BookingResponse.model_validate(booking),
            ride=RideResponse.from_model(ride, now),
            seconds_left=int(window.time_left(booking, now).total_seconds()),
        )
        for booking, ride in rows
    ]


@router.get(
    "/{booking_id}",
    response_model=BookingResponse,
    summary="Get booking status",
)
@limiter.limit(settings.rate_limit)
async def get_booking(
    request: Request,
    booking_id: int,
    engine: BookingEngine = Depends(get_engine),
):
    booking, _ = await retrying(lambda: engine.bookings.get(booking_id))
    return booking


@router.patch(
    "/{booking_id}",
    response_model=BookingResponse,
    summary="Accept, decline or cancel a booking",
)
@limiter.limit(settings.rate_limit)
async def update_booking_status(
    request: Request,
    booking_id: int,
    body: BookingStatusUpdate,
    engine: BookingEngine = Depends(get_engine),
):
    if body.status == "cancelled":
        return await retrying(
            lambda: engine.bookings.cancel(booking_id, body.actor_id)
        )
    decision = (
        BookingDecision.ACCEPT if body.status == "accepted" else BookingDecision.DECLINE
    )
    return await retrying(
        lambda: engine.bookings.decide(booking_id, body.actor_id, decision)
    )


@router.post(
    "/{booking_id}/confirm",
    response_model=ConfirmationResponse,
    summary="Confirm the ride happened and rate the driver",
)
@limiter.limit(settings.rate_limit)
async def confirm_booking(
    request: Request,
    booking_id: int,
    body: ReviewRequest,
    engine: BookingEngine = Depends(get_engine),
):
    booking, review = await retrying(
        lambda: engine.bookings.confirm(
            booking_id, body.actor_id, body.rating, body.comment
        )
    )
    return ConfirmationResponse(
        booking=BookingResponse.model_validate(booking),
        review=ReviewResponse.model_validate(review) if review else None,
    )


@router.post(
    "/{booking_id}/rate-passenger",
    status_code=201,
    response_model=ReviewResponse,
    summary="Driver rates the passenger",
)
@limiter.limit(settings.rate_limit)
async def rate_passenger(
    request: Request,
    booking_id: int,
    body: ReviewRequest,
    engine: BookingEngine = Depends(get_engine),
):
    booking, _ = await retrying(lambda: engine.bookings.get(booking_id))
    return await retrying(
        lambda: engine.reviews.submit(
            booking_id,
            body.actor_id,
            booking.passenger_id,
            body.rating,
            body.comment,
        )
    )


@router.get(
    "/{booking_id}/reviews",
    response_model=list[ReviewResponse],
    summary="Reviews left on a booking",
)
@limiter.limit(settings.rate_limit)
async def list_reviews(
    request: Request,
    booking_id: int,
    engine: BookingEngine = Depends(get_engine),
):
    return await retrying(lambda: engine.reviews.reviews_for(booking_id))
