"""
Shared test fixtures.

Uses a file-backed SQLite database (via aiosqlite) per test so the suite
runs without Docker / PostgreSQL / Redis.  A file rather than ``:memory:``
so concurrent sessions share one database and queue on its write lock.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from campusride.config import Settings
from campusride.domain.enums import NotificationType
from campusride.domain.errors import PaymentError
from campusride.domain.events import NotificationEvent
from campusride.infrastructure.database import (
    Base,
    build_engine,
    build_session_factory,
)
from campusride.infrastructure.models import UserModel, VehicleModel
from campusride.infrastructure.notifications import NotificationSink
from campusride.infrastructure.payments import MockPaymentGateway
from campusride.services.engine import BookingEngine
from campusride.services.engine import build_engine as build_booking_engine

NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    """Deterministic clock the tests move forward by hand."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class RecordingSink(NotificationSink):
    def __init__(self):
        self.events: list[NotificationEvent] = []

    async def emit(self, event: NotificationEvent) -> None:
        self.events.append(event)

    def types(self) -> list[NotificationType]:
        return [e.type for e in self.events]

    def for_user(self, user_id: int) -> list[NotificationEvent]:
        return [e for e in self.events if e.user_id == user_id]


class FlakyGateway(MockPaymentGateway):
    """Mock gateway whose next calls fail with ``PaymentError``."""

    def __init__(self, fail_hold: int = 0, fail_refund: int = 0, fail_release: int = 0):
        super().__init__()
        self.failures = {"hold": fail_hold, "refund": fail_refund, "release": fail_release}
        self.tokens: list[str] = []

    def _maybe_fail(self, call: str) -> None:
        if self.failures[call] > 0:
            self.failures[call] -= 1
            raise PaymentError(f"{call} timed out")

    async def hold(self, amount: float) -> str:
        self._maybe_fail("hold")
        token = await super().hold(amount)
        self.tokens.append(token)
        return token

    async def release(self, token: str) -> None:
        self._maybe_fail("release")
        await super().release(token)

    async def refund(self, token: str, fraction: float) -> None:
        self._maybe_fail("refund")
        await super().refund(token, fraction)


@dataclass
class People:
    driver: int
    vehicle: int
    other_driver: int
    other_vehicle: int
    passengers: list[int] = field(default_factory=list)


# ── Fixtures ──────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def db_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """Create tables in a fresh database file, dispose of it afterwards."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'campusride.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    return build_session_factory(db_engine)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def gateway() -> MockPaymentGateway:
    return MockPaymentGateway()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def booking_engine(session_factory, gateway, sink, clock) -> BookingEngine:
    return build_booking_engine(session_factory, gateway, sink, clock=clock)


@pytest.fixture
def flaky_gateway() -> FlakyGateway:
    return FlakyGateway()


@pytest.fixture
def flaky_engine(session_factory, flaky_gateway, sink, clock) -> BookingEngine:
    """Engine on the same database and clock, paying through ``flaky_gateway``."""
    config = Settings(infra_retry_attempts=2, infra_retry_backoff_seconds=0)
    return build_booking_engine(
        session_factory, flaky_gateway, sink, clock=clock, config=config
    )


@pytest_asyncio.fixture
async def people(session_factory) -> People:
    """One driver with a car, a second driver (other campus), and six passengers."""
    async with session_factory() as session:
        users = [
            UserModel(
                name=f"Student {i}",
                email=f"student{i}@campus.example.edu",
                university="Tech Institute" if i == 1 else "State University",
            )
            for i in range(8)
        ]
        session.add_all(users)
        await session.flush()
        vehicle = VehicleModel(owner_id=users[0].id, make="Toyota", model="Corolla")
        other = VehicleModel(owner_id=users[1].id, make="Honda", model="City")
        session.add_all([vehicle, other])
        await session.commit()
        return People(
            driver=users[0].id,
            vehicle=vehicle.id,
            other_driver=users[1].id,
            other_vehicle=other.id,
            passengers=[u.id for u in users[2:]],
        )


@pytest.fixture
def make_ride(booking_engine, people, clock):
    async def _make(
        seats: int = 3,
        price: float = 100.0,
        departs_in: timedelta = timedelta(hours=48),
        origin: str = "North Campus",
        destination: str = "Central Station",
        other_driver: bool = False,
    ):
        return await booking_engine.rides.create(
            driver_id=people.other_driver if other_driver else people.driver,
            vehicle_id=people.other_vehicle if other_driver else people.vehicle,
            origin=origin,
            destination=destination,
            date_time=clock() + departs_in,
            price_per_seat=price,
            seats_total=seats,
        )

    return _make


@pytest.fixture
def complete_ride(booking_engine, people, clock):
    """Move the clock past departure and let the driver complete the ride."""

    async def _complete(ride):
        if clock() < ride.date_time:
            clock.now = ride.date_time + timedelta(hours=1)
        return await booking_engine.rides.mark_completed(ride.id, people.driver)

    return _complete
