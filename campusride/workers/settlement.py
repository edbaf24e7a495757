"""
Background Settlement Worker
============================

Runs every ``SETTLEMENT_INTERVAL_SECONDS`` (default 60 s).

Accepted bookings on completed rides that reach their confirmation deadline
without a passenger confirmation are settled: the escrow is released to the
driver and the booking completes.  Reading a booking through the API settles
it too, so the sweep only bounds how long an unread booking can look stale.

The same pass retries gateway calls for bookings whose refund or release
is committed but did not reach the gateway yet (``escrow_pending``).

Concurrency safety
------------------
* **Redis distributed lock** keeps concurrent API processes from sweeping
  at the same time.
* Each booking is settled in its own transaction with a conditional update,
  so a booking confirmed mid-sweep is simply skipped.
"""

from __future__ import annotations

import asyncio
import logging

import redis.asyncio as aioredis

from campusride.config import settings
from campusride.infrastructure.locks import DistributedLock
from campusride.services.bookings import BookingLifecycle

logger = logging.getLogger(__name__)

_task: asyncio.Task | None = None
_stop_event: asyncio.Event | None = None


# ── Public API ────────────────────────────────────────────────────────


async def start_settlement_loop(
    bookings: BookingLifecycle, redis: aioredis.Redis
) -> None:
    global _task, _stop_event
    _stop_event = asyncio.Event()
    _task = asyncio.create_task(_loop(bookings, redis))
    logger.info(
        "Settlement worker started (interval=%ds)", settings.settlement_interval_seconds
    )


async def stop_settlement_loop() -> None:
    if _stop_event:
        _stop_event.set()
    if _task:
        _task.cancel()
        try:
            await _task
        except asyncio.CancelledError:
            pass
    logger.info("Settlement worker stopped")


async def run_settlement_cycle(
    bookings: BookingLifecycle, redis: aioredis.Redis
) -> int:
    """Execute one sweep under the distributed lock.  Returns bookings settled."""
    lock = DistributedLock(redis, "settlement_sweep", ttl_seconds=60)
    if not await lock.acquire():
        logger.debug("Lock held by another worker - skipping sweep")
        return 0
    try:
        settled = await bookings.settle_all_expired()
        await bookings.escrow.settle_pending()
        return settled
    finally:
        await lock.release()


# ── Internals ─────────────────────────────────────────────────────────


async def _loop(bookings: BookingLifecycle, redis: aioredis.Redis) -> None:
    """Periodic loop: run a sweep then sleep."""
    assert _stop_event is not None
    while not _stop_event.is_set():
        try:
            await run_settlement_cycle(bookings, redis)
        except Exception:
            logger.exception("Unhandled error in settlement sweep")
        try:
            await asyncio.wait_for(
                _stop_event.wait(), timeout=settings.settlement_interval_seconds
            )
            break
        except asyncio.TimeoutError:
            pass  # next sweep
