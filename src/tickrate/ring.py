"""
Fixed-size ring of timestamped values that answers "how fast did this
grow over the last N seconds".

Collectors push raw (usually monotonically increasing) readings with add()
or increment(); readers call get_diff() to get the rate over the configured
window. get_diff(), get_head() and flush_head() share one lock per ring.
add_to_head() is unlocked: all writes to a ring must come from a single
writer thread.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterator, List, Optional

from tickrate.values import LogbackValue, StoredValue

log = logging.getLogger(__name__)

# Keep ~3x the window in samples so jitter in the update cadence
# never leaves the window uncovered.
HEADROOM_FACTOR = 3
MIN_RING_LENGTH = 3

_EPOCH = datetime.fromtimestamp(0, tz=timezone.utc)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class TimedValue:
    timestamp: datetime = _EPOCH
    value: Optional[LogbackValue] = None

    @property
    def empty(self) -> bool:
        return self.value is None

    def __str__(self) -> str:
        return str(self.value)


@dataclass
class ValueRingFactory:
    """Shared sizing policy for all rings of all collectors."""

    length: int = MIN_RING_LENGTH
    window: timedelta = timedelta(seconds=1)
    clock: Callable[[], datetime] = field(default=_utc_now, repr=False)

    @classmethod
    def for_intervals(
        cls,
        window: timedelta,
        collect_interval: timedelta,
        clock: Callable[[], datetime] = _utc_now,
    ) -> ValueRingFactory:
        """Size rings so the window fits into them three times over."""
        samples_per_window = int(window / collect_interval) if collect_interval else 0
        length = max(MIN_RING_LENGTH, samples_per_window * HEADROOM_FACTOR)
        return cls(length=length, window=window, clock=clock)

    def new_ring(self) -> ValueRing:
        return ValueRing(length=self.length, window=self.window, clock=self.clock)


class ValueRing:

    def __init__(
        self,
        length: int,
        window: timedelta,
        clock: Callable[[], datetime] = _utc_now,
    ):
        if length < 1:
            raise ValueError("ValueRing length must be at least 1")
        self._values: List[TimedValue] = [TimedValue() for _ in range(length)]
        self._window = window
        self._clock = clock
        self._head = 0  # index of the next slot to write
        self._aggregator: Optional[LogbackValue] = None
        self._previous_diff = 0.0
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return len(self._values)

    @property
    def window(self) -> timedelta:
        return self._window

    def __len__(self) -> int:
        return sum(1 for slot in self._values if not slot.empty)

    # -- writing --

    def add_to_head(self, value: LogbackValue):
        """Fold `value` into the pending sample without committing it."""
        if self._aggregator is None:
            self._aggregator = value
        else:
            self._aggregator = self._aggregator.accumulate(value)

    def add_value_to_head(self, value: float):
        self.add_to_head(StoredValue(value))

    def flush_head(self):
        """Commit the pending sample (possibly empty) at the current time."""
        with self._lock:
            self._values[self._head] = TimedValue(self._clock(), self._aggregator)
            self._head = (self._head + 1) % len(self._values)
            self._aggregator = None

    def add(self, value: LogbackValue):
        self.add_to_head(value)
        self.flush_head()

    def add_value(self, value: float):
        self.add(StoredValue(value))

    def increment(self, value: LogbackValue):
        """Add `value` onto the newest sample and commit the sum as a new sample."""
        current = self._get_head().value
        if current is not None:
            value = current.accumulate(value)
        self.add(value)

    def increment_value(self, value: float):
        self.increment(StoredValue(value))

    # -- reading --

    def get_diff(self) -> float:
        """Rate of change over the window; 0.0 while history is too short."""
        with self._lock:
            diff = self._diff_over(self._window)
            if diff < 0:
                # A counter on the source side wrapped or was reset.
                # Report the previous rate and keep only the newest sample.
                log.debug("Negative diff %s, assuming counter overflow", diff)
                diff = self._previous_diff
                self._flush(self._head - 2)
            else:
                self._previous_diff = diff
            return diff

    def get_head(self) -> Optional[LogbackValue]:
        """Newest committed value, or None for a ring that was never written."""
        with self._lock:
            return self._get_head().value

    # -- internals, callers hold the lock --

    def _diff_over(self, window: timedelta) -> float:
        head = self._get_head()
        if head.empty:
            return 0.0
        previous = self._get(head.timestamp - window)
        if previous.empty:
            return 0.0
        interval = head.timestamp - previous.timestamp
        if interval == timedelta(0):
            return 0.0
        return float(head.value.difference(previous.value, interval))

    def _get_head(self) -> TimedValue:
        return self._values[self._head - 1]

    def _get(self, before: datetime) -> TimedValue:
        """Walk backwards from the head to the first sample older than `before`.

        Stops early at an empty slot and then returns the oldest sample seen,
        so a ring with less history than the window still yields a result.
        Does not check for an empty ring.
        """
        result = TimedValue()
        for i in self._backwards_from(self._head - 1):
            slot = self._values[i]
            if slot.empty:
                break
            result = slot
            if slot.timestamp < before:
                break
        return result

    def _flush(self, start: int):
        """Clear slots from `start` backwards until an empty slot is hit.

        The newest sample (just before the head) is never cleared.
        """
        newest = (self._head - 1) % len(self._values)
        for i in self._backwards_from(start):
            if i == newest or self._values[i].empty:
                return
            self._values[i].value = None

    def _backwards_from(self, start: int) -> Iterator[int]:
        """Indices from `start` down to 0, then from the end down to the head.

        Lazy, so a scan that stops early only touches the slots it visits.
        """
        n = len(self._values)
        start %= n
        for step in range(n):
            yield (start - step) % n
