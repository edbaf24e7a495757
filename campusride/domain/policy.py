"""
Cancellation Refund Policy  (Strategy Pattern)
==============================================

Who cancels decides the strategy:

* **Driver** cancels the ride        -> passenger always gets 100 % back.
* **Passenger** cancels the booking  -> depends on notice given:

  ==========================  ==============  ===========
  time to departure           passenger gets  driver gets
  ==========================  ==============  ===========
  more than 24 h              100 %           0 %
  24 h or less (inclusive)    50 %            50 %
  ==========================  ==============  ===========

A cancellation at exactly departure - 24 h is a *late* cancellation.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta


@dataclass(frozen=True)
class RefundSplit:
    """Fractions of the held amount going back to the passenger / to the driver."""

    passenger_fraction: float
    driver_fraction: float

    def passenger_amount(self, held: float) -> float:
        return round(held * self.passenger_fraction, 2)

    def driver_amount(self, held: float) -> float:
        return round(held - self.passenger_amount(held), 2)

    @property
    def is_full_refund(self) -> bool:
        return self.driver_fraction == 0.0


FULL_REFUND = RefundSplit(passenger_fraction=1.0, driver_fraction=0.0)


# ── Strategy hierarchy ────────────────────────────────────────────────


class CancellationPolicy(ABC):
    @abstractmethod
    def split(self, departure: datetime, now: datetime) -> RefundSplit: ...


class DriverCancellationPolicy(CancellationPolicy):
    def split(self, departure: datetime, now: datetime) -> RefundSplit:
        return FULL_REFUND


class PassengerCancellationPolicy(CancellationPolicy):
    def __init__(self, late_window_hours: int = 24, driver_share: float = 0.5):
        self.late_window = timedelta(hours=late_window_hours)
        self.driver_share = driver_share

    def is_late(self, departure: datetime, now: datetime) -> bool:
        return departure - now <= self.late_window

    def split(self, departure: datetime, now: datetime) -> RefundSplit:
        if not self.is_late(departure, now):
            return FULL_REFUND
        return RefundSplit(
            passenger_fraction=round(1.0 - self.driver_share, 4),
            driver_fraction=self.driver_share,
        )
