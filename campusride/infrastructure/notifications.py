"""
Notification sinks.

The engine hands finished events to a ``NotificationSink`` after its
transaction commits.  Delivery (push, e-mail, in-app inbox) belongs to
whoever consumes the sink; the Redis sink publishes JSON on a pub/sub
channel for those consumers.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod

import redis.asyncio as aioredis

from campusride.domain.events import NotificationEvent

logger = logging.getLogger(__name__)


class NotificationSink(ABC):
    @abstractmethod
    async def emit(self, event: NotificationEvent) -> None: ...


class LoggingNotificationSink(NotificationSink):
    async def emit(self, event: NotificationEvent) -> None:
        logger.info(
            "Notification %s -> user %s: %s", event.type.value, event.user_id, event.title
        )


class RedisNotificationSink(NotificationSink):
    def __init__(self, client: aioredis.Redis, channel: str):
        self.redis = client
        self.channel = channel

    async def emit(self, event: NotificationEvent) -> None:
        await self.redis.publish(self.channel, json.dumps(event.to_dict()))


async def dispatch(sink: NotificationSink, events: list[NotificationEvent]) -> None:
    """Fire-and-forget: a failing sink is logged, never raised to the caller."""
    for event in events:
        try:
            await sink.emit(event)
        except Exception:
            logger.warning(
                "Could not deliver %s notification for user %s",
                event.type.value,
                event.user_id,
                exc_info=True,
            )
