"""
FastAPI application factory.

* Registers routes for rides, bookings and admin.
* Starts / stops the background settlement worker via lifespan events.
* Maps engine errors to JSON error bodies and applies rate limiting.
* Swagger / OpenAPI UI available at ``/docs``.
"""

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from campusride.api.dependencies import get_engine, get_redis
from campusride.api.errors import engine_error_handler
from campusride.api.middleware import limiter
from campusride.api.routes import admin, bookings, rides, users
from campusride.config import settings
from campusride.domain.errors import BookingEngineError
from campusride.workers import settlement as _settlement

logging.basicConfig(level=logging.INFO)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the settlement worker on startup; stop on shutdown."""
    if settings.settlement_worker_enabled:
        await _settlement.start_settlement_loop(get_engine().bookings, get_redis())
    yield
    if settings.settlement_worker_enabled:
        await _settlement.stop_settlement_loop()


def create_app() -> FastAPI:
    app = FastAPI(
        title="CampusRide Booking API",
        description=(
            "Seat booking for student carpools: drivers publish rides, "
            "passengers request seats with the fare held in escrow, and "
            "payment is released once the passenger confirms the ride."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )

    # Rate limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # Engine errors -> {"error", "detail", "retryable"}
    app.add_exception_handler(BookingEngineError, engine_error_handler)

    # Routers
    app.include_router(rides.router, prefix="/api/v1")
    app.include_router(bookings.router, prefix="/api/v1")
    app.include_router(users.router, prefix="/api/v1")
    app.include_router(admin.router, prefix="/api/v1")

    return app
