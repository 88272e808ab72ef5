"""
Sample values stored in a ValueRing.

A value knows how to diff itself against an older value of the same kind
(giving a rate) and how to add another value onto itself. StoredValue is the
plain numeric case; collectors can define their own cumulative values
(see CpuTimes in the host collector) as long as they implement both methods.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import timedelta

log = logging.getLogger(__name__)


class LogbackValue(ABC):
    """Anything a ValueRing can store and compute rates from."""

    @abstractmethod
    def difference(self, previous: LogbackValue, interval: timedelta) -> float:
        """Rate of change from `previous` to self over `interval`."""
        ...

    @abstractmethod
    def accumulate(self, other: LogbackValue) -> LogbackValue:
        """Return self combined with `other`."""
        ...


@dataclass(frozen=True)
class StoredValue(LogbackValue):
    value: float = 0.0

    def difference(self, previous: LogbackValue, interval: timedelta) -> float:
        if not isinstance(previous, StoredValue):
            log.error("Cannot diff %r (%s) and %r (%s)",
                      self, type(self).__name__, previous, type(previous).__name__)
            return 0.0
        seconds = interval.total_seconds()
        if seconds == 0:
            return 0.0
        return (self.value - previous.value) / seconds

    def accumulate(self, other: LogbackValue) -> LogbackValue:
        if not isinstance(other, StoredValue):
            log.error("Cannot add %r (%s) and %r (%s)",
                      self, type(self).__name__, other, type(other).__name__)
            return StoredValue(0.0)
        return StoredValue(self.value + other.value)

    def __float__(self) -> float:
        return float(self.value)

    def __str__(self) -> str:
        return str(self.value)
