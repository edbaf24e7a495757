"""
Seed script -- populates the database with sample data for reviewers.

Run after migrations:
    python seed.py

Creates:
  - 8 sample users (drivers and passengers)
  - 4 sample vehicles
  - 5 sample rides (upcoming, plus one completed ride awaiting confirmation)
  - a handful of bookings in pending / accepted state

Seeded bookings carry no escrow token: their money was never held by the
running process, so settling them moves no funds through the gateway.
"""

import asyncio
from datetime import datetime, timedelta, timezone

from sqlalchemy import text

from campusride.config import settings
from campusride.domain.enums import BookingStatus, PaymentStatus, RideStatus
from campusride.infrastructure.database import async_session_factory, engine
from campusride.infrastructure.models import (
    BookingModel,
    RideModel,
    UserModel,
    VehicleModel,
)


USERS = [
    {"name": "Aarav Sharma", "email": "aarav@campus.example.edu"},
    {"name": "Priya Patel", "email": "priya@campus.example.edu"},
    {"name": "Rohan Mehta", "email": "rohan@campus.example.edu"},
    {"name": "Sneha Gupta", "email": "sneha@campus.example.edu"},
    {"name": "Vikram Singh", "email": "vikram@campus.example.edu"},
    {"name": "Ananya Reddy", "email": "ananya@campus.example.edu"},
    {"name": "Karan Joshi", "email": "karan@campus.example.edu"},
    {"name": "Meera Nair", "email": "meera@campus.example.edu"},
]

# (owner index, make, model, color, plate)
VEHICLES = [
    (0, "Toyota", "Corolla", "White", "KA01AB1234"),
    (1, "Honda", "City", "Silver", "MH02CD5678"),
    (2, "Hyundai", "Creta", "Blue", "DL03EF9012"),
    (3, "Maruti", "Swift", "Red", "TN04GH3456"),
]


async def seed():
    async with async_session_factory() as session:
        # Check if already seeded
        result = await session.execute(text("SELECT count(*) FROM users"))
        if result.scalar() > 0:
            print("Database already seeded. Skipping.")
            return

        now = datetime.now(timezone.utc)

        # ── Users ─────────────────────────────────────────────────────
        users = [
            UserModel(name=u["name"], email=u["email"], university="State University")
            for u in USERS
        ]
        session.add_all(users)
        await session.flush()
        print(f"  Created {len(users)} users")

        # ── Vehicles ──────────────────────────────────────────────────
        vehicles = [
            VehicleModel(
                owner_id=users[owner].id,
                make=make,
                model=model,
                color=color,
                license_plate=plate,
            )
            for owner, make, model, color, plate in VEHICLES
        ]
        session.add_all(vehicles)
        await session.flush()
        print(f"  Created {len(vehicles)} vehicles")

        # ── Rides ─────────────────────────────────────────────────────
        rides_data = [
            # (vehicle index, origin, destination, departs in, price, seats, status)
            (0, "North Campus", "Central Station", timedelta(days=2), 120.0, 3, RideStatus.UPCOMING),
            (1, "South Gate", "Airport Terminal 2", timedelta(hours=30), 350.0, 4, RideStatus.UPCOMING),
            (2, "Library Square", "Tech Park", timedelta(hours=12), 80.0, 2, RideStatus.UPCOMING),
            (3, "Hostel Block C", "City Mall", timedelta(days=5), 60.0, 3, RideStatus.UPCOMING),
            (0, "North Campus", "Lake View", -timedelta(hours=3), 150.0, 3, RideStatus.COMPLETED),
        ]
        rides = []
        for vehicle_idx, origin, destination, offset, price, seats, status in rides_data:
            vehicle = vehicles[vehicle_idx]
            ride = RideModel(
                driver_id=vehicle.owner_id,
                vehicle_id=vehicle.id,
                origin=origin,
                destination=destination,
                date_time=now + offset,
                price_per_seat=price,
                seats_total=seats,
                seats_available=seats,
                status=status,
            )
            session.add(ride)
            rides.append(ride)
        await session.flush()
        print(f"  Created {len(rides)} rides")

        # ── Bookings ──────────────────────────────────────────────────
        bookings_data = [
            # (ride index, passenger index, status, confirm deadline)
            (0, 4, BookingStatus.PENDING, None),
            (0, 5, BookingStatus.ACCEPTED, None),
            (1, 6, BookingStatus.ACCEPTED, None),
            (4, 7, BookingStatus.ACCEPTED, now + timedelta(hours=settings.confirmation_window_hours)),
        ]
        for ride_idx, passenger_idx, status, deadline in bookings_data:
            ride = rides[ride_idx]
            session.add(
                BookingModel(
                    ride_id=ride.id,
                    passenger_id=users[passenger_idx].id,
                    status=status,
                    payment_status=PaymentStatus.HELD,
                    payment_amount=ride.price_per_seat,
                    paid_at=now,
                    confirm_deadline=deadline,
                )
            )
            ride.seats_available -= 1
        await session.flush()
        print(f"  Created {len(bookings_data)} bookings")

        await session.commit()
        print("\nSeed complete!")


async def main():
    print("Seeding database...")
    await seed()
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
