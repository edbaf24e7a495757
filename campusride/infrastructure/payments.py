"""
Payment gateway abstraction and the mock escrow ledger.

The engine only ever talks to ``PaymentGateway``:

* ``hold(amount) -> token``   -- place the passenger's money in escrow
* ``release(token)``          -- pay whatever is still held out to the driver
* ``refund(token, fraction)`` -- make sure ``fraction`` of the held amount
                                 has gone back to the passenger

Each call is idempotent per token: ``refund`` tops up to the requested
share (an earlier 50 % refund followed by a 100 % one returns the other
half) and ``release`` pays out only what is still held, so the engine can
re-issue either safely.  Failures are reported as ``PaymentError``.
"""

from __future__ import annotations

import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass

from campusride.domain.errors import PaymentError

logger = logging.getLogger(__name__)


class PaymentGateway(ABC):
    @abstractmethod
    async def hold(self, amount: float) -> str: ...

    @abstractmethod
    async def release(self, token: str) -> None: ...

    @abstractmethod
    async def refund(self, token: str, fraction: float) -> None: ...


@dataclass
class EscrowEntry:
    token: str
    amount: float
    refunded: float = 0.0
    released: float = 0.0

    @property
    def remaining(self) -> float:
        return round(self.amount - self.refunded - self.released, 2)


class MockPaymentGateway(PaymentGateway):
    """In-memory escrow ledger; no money moves anywhere."""

    def __init__(self):
        self._ledger: dict[str, EscrowEntry] = {}

    def entry(self, token: str) -> EscrowEntry:
        try:
            return self._ledger[token]
        except KeyError:
            raise PaymentError(f"Unknown payment token {token!r}") from None

    async def hold(self, amount: float) -> str:
        if amount < 0:
            raise PaymentError("Cannot hold a negative amount")
        token = f"hold_{uuid.uuid4().hex}"
        self._ledger[token] = EscrowEntry(token=token, amount=round(amount, 2))
        logger.info("Escrow hold %s for %.2f", token, amount)
        return token

    async def release(self, token: str) -> None:
        entry = self.entry(token)
        amount = entry.remaining
        if amount <= 0:
            return
        entry.released = round(entry.released + amount, 2)
        logger.info("Escrow release %s: %.2f to driver", token, amount)

    async def refund(self, token: str, fraction: float) -> None:
        if not 0.0 <= fraction <= 1.0:
            raise PaymentError(f"Refund fraction {fraction} out of range")
        entry = self.entry(token)
        # Top up to the requested share of the hold; never refund past it
        target = round(entry.amount * fraction, 2)
        amount = min(round(target - entry.refunded, 2), entry.remaining)
        if amount <= 0:
            return
        entry.refunded = round(entry.refunded + amount, 2)
        logger.info("Escrow refund %s: %.2f to passenger", token, amount)
