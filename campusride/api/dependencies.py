"""FastAPI dependency injection helpers."""

from collections.abc import Awaitable, Callable
from functools import lru_cache
from typing import TypeVar

import redis.asyncio as aioredis

from campusride.config import settings
from campusride.infrastructure.database import async_session_factory
from campusride.infrastructure.notifications import (
    LoggingNotificationSink,
    NotificationSink,
    RedisNotificationSink,
)
from campusride.infrastructure.payments import MockPaymentGateway, PaymentGateway
from campusride.services.base import with_retries
from campusride.services.engine import BookingEngine, build_engine

T = TypeVar("T")


@lru_cache
def get_redis() -> aioredis.Redis:
    """Process-wide Redis client backed by its own connection pool."""
    return aioredis.from_url(settings.redis_url, decode_responses=True)


@lru_cache
def get_payment_gateway() -> PaymentGateway:
    return MockPaymentGateway()


@lru_cache
def get_notification_sink() -> NotificationSink:
    if settings.notification_backend == "redis":
        return RedisNotificationSink(get_redis(), settings.notification_channel)
    return LoggingNotificationSink()


@lru_cache
def get_engine() -> BookingEngine:
    return build_engine(
        async_session_factory, get_payment_gateway(), get_notification_sink()
    )


async def retrying(operation: Callable[[], Awaitable[T]]) -> T:
    """Run an engine call with the configured bounded retries."""
    return await with_retries(
        operation,
        attempts=settings.infra_retry_attempts,
        backoff_seconds=settings.infra_retry_backoff_seconds,
    )
