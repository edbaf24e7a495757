"""Pydantic request / response schemas for the REST API."""

from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

from campusride.domain.enums import (
    BookingStatus,
    EffectiveRideStatus,
    PaymentStatus,
    RideStatus,
)


# ── Requests ──────────────────────────────────────────────────────────


class RideCreateRequest(BaseModel):
    driver_id: int
    vehicle_id: int
    origin: str = Field(..., min_length=1, max_length=255)
    destination: str = Field(..., min_length=1, max_length=255)
    origin_lat: Optional[float] = Field(None, ge=-90, le=90)
    origin_lng: Optional[float] = Field(None, ge=-180, le=180)
    destination_lat: Optional[float] = Field(None, ge=-90, le=90)
    destination_lng: Optional[float] = Field(None, ge=-180, le=180)
    date_time: datetime
    price_per_seat: float = Field(..., ge=0)
    seats_total: int = Field(..., ge=1, le=10)
    notes: Optional[str] = Field(None, max_length=1000)
    luggage: bool = True
    pets: bool = False
    smoking: bool = False
    music: bool = True


class RideStatusUpdate(BaseModel):
    actor_id: int
    status: Literal["cancelled", "completed"]


class BookingCreateRequest(BaseModel):
    passenger_id: int
    payment_confirmed: bool = Field(
        ...,
        description="Set by the payment step once the seat price has been charged.",
    )


class BookingStatusUpdate(BaseModel):
    actor_id: int
    status: Literal["accepted", "declined", "cancelled"]


class ReviewRequest(BaseModel):
    actor_id: int
    rating: int = Field(..., description="1 to 5 stars")
    comment: Optional[str] = Field(None, max_length=1000)


# ── Responses ─────────────────────────────────────────────────────────


class BookingResponse(BaseModel):
    id: int
    ride_id: int
    passenger_id: int
    status: BookingStatus
    payment_status: PaymentStatus
    payment_amount: float
    paid_at: Optional[datetime] = None
    refund_amount: Optional[float] = None
    payout_amount: Optional[float] = None
    escrow_pending: bool = False
    confirmed_at: Optional[datetime] = None
    confirm_deadline: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class RideResponse(BaseModel):
    id: int
    driver_id: int
    vehicle_id: int
    origin: str
    destination: str
    origin_lat: Optional[float] = None
    origin_lng: Optional[float] = None
    destination_lat: Optional[float] = None
    destination_lng: Optional[float] = None
    notes: Optional[str] = None
    date_time: datetime
    price_per_seat: float
    seats_total: int
    seats_available: int
    status: RideStatus
    effective_status: EffectiveRideStatus
    luggage: bool
    pets: bool
    smoking: bool
    music: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, ride, now: datetime) -> "RideResponse":
        return cls(
            id=ride.id,
            driver_id=ride.driver_id,
            vehicle_id=ride.vehicle_id,
            origin=ride.origin,
            destination=ride.destination,
            origin_lat=ride.origin_lat,
            origin_lng=ride.origin_lng,
            destination_lat=ride.destination_lat,
            destination_lng=ride.destination_lng,
            notes=ride.notes,
            date_time=ride.date_time,
            price_per_seat=ride.price_per_seat,
            seats_total=ride.seats_total,
            seats_available=ride.seats_available,
            status=ride.status,
            effective_status=ride.effective_status(now),
            luggage=ride.luggage,
            pets=ride.pets,
            smoking=ride.smoking,
            music=ride.music,
            created_at=ride.created_at,
            updated_at=ride.updated_at,
        )


class RideDetailResponse(RideResponse):
    bookings: list[BookingResponse] = []


class ReviewResponse(BaseModel):
    id: int
    booking_id: int
    reviewer_id: int
    reviewee_id: int
    rating: int
    comment: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class UserStats(BaseModel):
    rides_as_driver: int
    rides_as_passenger: int
    total_reviews: int
    average_rating: Optional[float] = None


class UserProfileResponse(BaseModel):
    id: int
    name: str
    university: Optional[str] = None
    member_since: Optional[datetime] = None
    stats: UserStats
    reviews: list[ReviewResponse] = []
    reviews_given: list[ReviewResponse] = []

    @classmethod
    def from_profile(cls, profile) -> "UserProfileResponse":
        user = profile.user
        return cls(
            id=user.id,
            name=user.name,
            university=user.university,
            member_since=user.created_at,
            stats=UserStats(
                rides_as_driver=profile.rides_as_driver,
                rides_as_passenger=profile.rides_as_passenger,
                total_reviews=profile.total_reviews,
                average_rating=profile.average_rating,
            ),
            reviews=[ReviewResponse.model_validate(r) for r in profile.reviews_received],
            reviews_given=[ReviewResponse.model_validate(r) for r in profile.reviews_given],
        )


class ConfirmationResponse(BaseModel):
    message: str = "Ride confirmed successfully"
    booking: BookingResponse
    review: Optional[ReviewResponse] = None


class PendingConfirmationResponse(BaseModel):
    booking: BookingResponse
    ride: RideResponse
    seconds_left: int


class InventoryResponse(BaseModel):
    ride_id: int
    seats_total: int
    seats_available: int
    seat_holding_bookings: int
    consistent: bool


class SettlementResponse(BaseModel):
    settled: int


class HealthResponse(BaseModel):
    status: str = "ok"


class ErrorResponse(BaseModel):
    error: str
    detail: str
    retryable: bool = False
