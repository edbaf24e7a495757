"""
User endpoints
==============

GET /api/v1/users/{user_id} -- public profile: ratings, reviews, completed trips
"""

from fastapi import APIRouter, Depends, Request

from campusride.api.dependencies import get_engine, retrying
from campusride.api.middleware import limiter
from campusride.api.schemas import UserProfileResponse
from campusride.config import settings
from campusride.services.engine import BookingEngine

router = APIRouter(prefix="/users", tags=["users"])


@router.get(
    "/{user_id}",
    response_model=UserProfileResponse,
    summary="Public user profile",
)
@limiter.limit(settings.rate_limit)
async def get_user_profile(
    request: Request,
    user_id: int,
    engine: BookingEngine = Depends(get_engine),
):
    profile = await retrying(lambda: engine.reviews.profile(user_id))
    return UserProfileResponse.from_profile(profile)
