"""
SQLAlchemy ORM models  (maps to PostgreSQL; SQLite in tests).

Tables
------
* ``users``     -- university members (drivers and passengers)
* ``vehicles``  -- cars owned by drivers
* ``rides``     -- offered trips with their seat inventory
* ``bookings``  -- one passenger's seat on one ride, with escrow state
* ``reviews``   -- directional feedback attached to a booking

Constraints
-----------
* CHECK on ``rides`` keeps ``0 <= seats_available <= seats_total``.
* Partial UNIQUE index on ``bookings (ride_id, passenger_id)`` for live
  statuses: at most one pending/accepted booking per passenger per ride.
* UNIQUE on ``reviews (booking_id, reviewer_id, reviewee_id)``.
"""

from datetime import timezone

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    TypeDecorator,
    UniqueConstraint,
    func,
    text,
)

from .database import Base
from campusride.domain.entities import BookingRules, RideRules
from campusride.domain.enums import BookingStatus, PaymentStatus, RideStatus


class UTCDateTime(TypeDecorator):
    """Timezone-aware UTC datetimes, also on backends that drop the offset."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None and value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value

    def process_result_value(self, value, dialect):
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value


def _wire_enum(enum_cls, name: str) -> Enum:
    # Persist the lowercase values, not the member names
    return Enum(
        enum_cls,
        name=name,
        values_callable=lambda members: [m.value for m in members],
    )


class UserModel(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(120), nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    university = Column(String(120), nullable=True)
    created_at = Column(UTCDateTime, server_default=func.now())


class VehicleModel(Base):
    __tablename__ = "vehicles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    make = Column(String(60), nullable=False)
    model = Column(String(60), nullable=False)
    color = Column(String(30), nullable=True)
    license_plate = Column(String(20), nullable=True)
    created_at = Column(UTCDateTime, server_default=func.now())

    __table_args__ = (Index("idx_vehicles_owner", "owner_id"),)


class RideModel(RideRules, Base):
    __tablename__ = "rides"

    id = Column(Integer, primary_key=True, autoincrement=True)
    driver_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    vehicle_id = Column(Integer, ForeignKey("vehicles.id"), nullable=False)

    origin = Column(String(255), nullable=False)
    destination = Column(String(255), nullable=False)
    # Opaque to the engine; kept for map rendering
    origin_lat = Column(Float, nullable=True)
    origin_lng = Column(Float, nullable=True)
    destination_lat = Column(Float, nullable=True)
    destination_lng = Column(Float, nullable=True)
    notes = Column(Text, nullable=True)

    date_time = Column(UTCDateTime, nullable=False)
    price_per_seat = Column(Float, nullable=False)
    seats_total = Column(Integer, nullable=False)
    seats_available = Column(Integer, nullable=False)
    status = Column(
        _wire_enum(RideStatus, "ride_status"),
        default=RideStatus.UPCOMING,
        nullable=False,
    )

    luggage = Column(Boolean, default=True, nullable=False)
    pets = Column(Boolean, default=False, nullable=False)
    smoking = Column(Boolean, default=False, nullable=False)
    music = Column(Boolean, default=True, nullable=False)

    created_at = Column(UTCDateTime, server_default=func.now())
    updated_at = Column(UTCDateTime, server_default=func.now())

    __table_args__ = (
        CheckConstraint("price_per_seat >= 0", name="ck_rides_price"),
        CheckConstraint("seats_total >= 1", name="ck_rides_seats_total"),
        CheckConstraint(
            "seats_available >= 0 AND seats_available <= seats_total",
            name="ck_rides_seats_available",
        ),
        Index("idx_rides_status", "status"),
        Index("idx_rides_driver", "driver_id"),
        Index("idx_rides_date_time", "date_time"),
    )


_LIVE_BOOKING = text("status IN ('pending', 'accepted')")


class BookingModel(BookingRules, Base):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    ride_id = Column(Integer, ForeignKey("rides.id"), nullable=False)
    passenger_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    status = Column(
        _wire_enum(BookingStatus, "booking_status"),
        default=BookingStatus.PENDING,
        nullable=False,
    )

    payment_status = Column(
        _wire_enum(PaymentStatus, "payment_status"),
        default=PaymentStatus.NONE,
        nullable=False,
    )
    payment_amount = Column(Float, nullable=False, default=0.0)
    payment_token = Column(String(64), nullable=True)
    paid_at = Column(UTCDateTime, nullable=True)
    refund_amount = Column(Float, nullable=True)
    payout_amount = Column(Float, nullable=True)
    # Set with the status change that settles escrow, cleared once the
    # gateway has been told
    escrow_pending = Column(Boolean, default=False, nullable=False)

    confirmed_at = Column(UTCDateTime, nullable=True)
    confirm_deadline = Column(UTCDateTime, nullable=True)

    created_at = Column(UTCDateTime, server_default=func.now())
    updated_at = Column(UTCDateTime, server_default=func.now())

    __table_args__ = (
        Index(
            "uq_bookings_live_passenger",
            "ride_id",
            "passenger_id",
            unique=True,
            postgresql_where=_LIVE_BOOKING,
            sqlite_where=_LIVE_BOOKING,
        ),
        Index("idx_bookings_ride", "ride_id"),
        Index("idx_bookings_passenger", "passenger_id"),
        Index("idx_bookings_deadline", "status", "confirm_deadline"),
        Index("idx_bookings_escrow_pending", "escrow_pending"),
    )


class ReviewModel(Base):
    __tablename__ = "reviews"

    id = Column(Integer, primary_key=True, autoincrement=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False)
    reviewer_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    reviewee_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    rating = Column(Integer, nullable=False)
    comment = Column(Text, nullable=True)
    created_at = Column(UTCDateTime, server_default=func.now())

    __table_args__ = (
        UniqueConstraint(
            "booking_id", "reviewer_id", "reviewee_id", name="uq_reviews_direction"
        ),
        CheckConstraint("rating >= 1 AND rating <= 5", name="ck_reviews_rating"),
        Index("idx_reviews_reviewee", "reviewee_id"),
    )
