"""
Ride endpoints
==============

POST  /api/v1/rides                -- publish a ride
GET   /api/v1/rides                -- search upcoming rides with free seats
GET   /api/v1/rides/{ride_id}      -- ride details with its bookings
PATCH /api/v1/rides/{ride_id}      -- driver cancels or completes the ride
POST  /api/v1/rides/{ride_id}/book -- passenger requests a seat
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from campusride.api.dependencies import get_engine, retrying
from campusride.api.middleware import limiter
from campusride.api.schemas import (
    BookingCreateRequest,
    BookingResponse,
    RideCreateRequest,
    RideDetailResponse,
    RideResponse,
    RideStatusUpdate,
)
from campusride.config import settings
from campusride.services.engine import BookingEngine

router = APIRouter(prefix="/rides", tags=["rides"])


@router.post(
    "",
    status_code=201,
    response_model=RideResponse,
    summary="Publish a ride",
)
@limiter.limit(settings.rate_limit)
async def create_ride(
    request: Request,
    body: RideCreateRequest,
    engine: BookingEngine = Depends(get_engine),
):
    ride = await retrying(lambda: engine.rides.create(**body.model_dump()))
    return RideResponse.from_model(ride, engine.rides.clock())


@router.get(
    "",
    response_model=list[RideResponse],
    summary="Search bookable rides",
)
@limiter.limit(settings.rate_limit)
async def search_rides(
    request: Request,
    origin: Optional[str] = None,
    destination: Optional[str] = None,
    day: Optional[date] = Query(None, alias="date"),
    university: Optional[str] = None,
    engine: BookingEngine = Depends(get_engine),
):
    rides = await retrying(
        lambda: engine.rides.search(origin, destination, day, university)
    )
    now = engine.rides.clock()
    return [RideResponse.from_model(r, now) for r in rides]


@router.get(
    "/{ride_id}",
    response_model=RideDetailResponse,
    summary="Get a ride with its bookings",
)
@limiter.limit(settings.rate_limit)
async def get_ride(
    request: Request,
    ride_id: int,
    engine: BookingEngine = Depends(get_engine),
):
    ride, bookings = await retrying(lambda: engine.rides.get(ride_id))
    summary = RideResponse.from_model(ride, engine.rides.clock())
    return RideDetailResponse(
        **summary.model_dump(),
        bookings=[BookingResponse.model_validate(b) for b in bookings],
    )


@router.patch(
    "/{ride_id}",
    response_model=RideResponse,
    summary="Cancel or complete a ride (driver only)",
)
@limiter.limit(settings.rate_limit)
async def update_ride_status(
    request: Request,
    ride_id: int,
    body: RideStatusUpdate,
    engine: BookingEngine = Depends(get_engine),
):
    if body.status == "cancelled":
        ride = await retrying(lambda: engine.rides.cancel(ride_id, body.actor_id))
    else:
        ride = await retrying(
            lambda: engine.rides.mark_completed(ride_id, body.actor_id)
        )
    return RideResponse.from_model(ride, engine.rides.clock())


@router.post(
    "/{ride_id}/book",
    status_code=201,
    response_model=BookingResponse,
    summary="Request a seat on a ride",
    responses={201: {"description": "Seat held; waiting for the driver."}},
)
@limiter.limit(settings.rate_limit)
async def book_ride(
    request: Request,
    ride_id: int,
    body: BookingCreateRequest,
    engine: BookingEngine = Depends(get_engine),
):
    return await retrying(
        lambda: engine.bookings.request(
            ride_id, body.passenger_id, body.payment_confirmed
        )
    )
