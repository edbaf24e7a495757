"""
Admin / observability endpoints
===============================

GET  /api/v1/admin/health                    -- simple health check
POST /api/v1/admin/settle-expired            -- run one settlement sweep now
GET  /api/v1/admin/rides/{ride_id}/inventory -- seat counter vs. seat-holding bookings
"""

from fastapi import APIRouter, Depends, Request

from campusride.api.dependencies import get_engine, retrying
from campusride.api.middleware import limiter
from campusride.api.schemas import HealthResponse, InventoryResponse, SettlementResponse
from campusride.config import settings
from campusride.services.engine import BookingEngine

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/health", response_model=HealthResponse, summary="Health check")
@limiter.limit(settings.rate_limit)
async def health(request: Request):
    return HealthResponse()


@router.post(
    "/settle-expired",
    response_model=SettlementResponse,
    summary="Release escrow for bookings past their confirmation deadline",
)
@limiter.limit(settings.rate_limit)
async def settle_expired(
    request: Request,
    engine: BookingEngine = Depends(get_engine),
):
    settled = await retrying(engine.bookings.settle_all_expired)
    return SettlementResponse(settled=settled)


@router.get(
    "/rides/{ride_id}/inventory",
    response_model=InventoryResponse,
    summary="Check a ride's seat inventory",
)
@limiter.limit(settings.rate_limit)
async def ride_inventory(
    request: Request,
    ride_id: int,
    engine: BookingEngine = Depends(get_engine),
):
    report = await retrying(lambda: engine.rides.inventory(ride_id))
    return InventoryResponse(
        ride_id=report.ride_id,
        seats_total=report.seats_total,
        seats_available=report.seats_available,
        seat_holding_bookings=report.seat_holding_bookings,
        consistent=report.consistent,
    )
