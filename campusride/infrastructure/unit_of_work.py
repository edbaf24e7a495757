"""
Unit of work: one database transaction per engine operation.

* Commits on clean exit, rolls back on any exception.
* Notification events queued with ``emit`` are dispatched only after the
  commit succeeded, so no one is told about a change that never happened.
* Compensations registered with ``on_rollback`` (e.g. refunding an escrow
  hold taken inside the transaction) run when the transaction does not
  commit.
* Actions registered with ``on_commit`` (e.g. settling escrow for a booking
  the transaction closed) run once the commit went through, before the
  notifications.  Their failures are logged; the committed row stays the
  record and the caller is not failed after the fact.
* Driver-level failures surface as ``StoreError``.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .notifications import NotificationSink, dispatch
from .repositories import (
    BookingRepository,
    ReviewRepository,
    RideRepository,
    UserRepository,
    VehicleRepository,
)
from campusride.domain.errors import StoreError
from campusride.domain.events import NotificationEvent

logger = logging.getLogger(__name__)

Compensation = Callable[[], Awaitable[None]]


class UnitOfWork:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        notifier: NotificationSink,
    ):
        self._session_factory = session_factory
        self._notifier = notifier

    async def __aenter__(self) -> "UnitOfWork":
        self.session = self._session_factory()
        self.users = UserRepository(self.session)
        self.vehicles = VehicleRepository(self.session)
        self.rides = RideRepository(self.session)
        self.bookings = BookingRepository(self.session)
        self.reviews = ReviewRepository(self.session)
        self._events: list[NotificationEvent] = []
        self._compensations: list[Compensation] = []
        self._after_commit: list[Compensation] = []
        return self

    def emit(self, event: NotificationEvent) -> None:
        self._events.append(event)

    def on_rollback(self, compensation: Compensation) -> None:
        self._compensations.append(compensation)

    def on_commit(self, action: Compensation) -> None:
        self._after_commit.append(action)

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        try:
            if exc_type is None:
                try:
                    await self.session.commit()
                except SQLAlchemyError as err:
                    await self._abort()
                    raise StoreError("Could not save changes") from err
            else:
                await self._abort()
                if isinstance(exc, SQLAlchemyError):
                    raise StoreError("Database operation failed") from exc
        finally:
            await self.session.close()

        if exc_type is None:
            for action in self._after_commit:
                try:
                    await action()
                except Exception:
                    logger.exception("Post-commit step failed")
            await dispatch(self._notifier, self._events)
        return False

    async def _abort(self) -> None:
        try:
            await self.session.rollback()
        except SQLAlchemyError:
            logger.exception("Rollback failed")
        for compensation in reversed(self._compensations):
            try:
                await compensation()
            except Exception:
                logger.exception("Compensation step failed")
