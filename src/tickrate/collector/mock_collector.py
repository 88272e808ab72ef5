"""
Synthetic collector for local development and tests.
A background thread bumps a counter three times a second and wraps it
around, so the "mock" rate regularly exercises overflow recovery.
"""

from __future__ import annotations

from tickrate.collector.base import AbstractCollector
from tickrate.collector.registry import CollectorRegistry
from tickrate.ring import ValueRingFactory
from tickrate.values import StoredValue

MAX_MOCK_VALUE = 15
MOCK_RESET_VALUE = 2
MOCK_TICK_SECONDS = 1 / 3


class MockCollector(AbstractCollector):

    name = "mock"

    def __init__(self, factory: ValueRingFactory, tick_seconds: float = MOCK_TICK_SECONDS):
        super().__init__()
        self.value = 0
        self.ring = factory.new_ring()
        self._tick_seconds = tick_seconds

    def init(self):
        self.reset()
        self.readers = {
            "mock": self.ring.get_diff,
        }
        self._start_once(self.tick, self._tick_seconds)

    def tick(self):
        self.value += 1
        if self.value >= MAX_MOCK_VALUE:
            self.value = MOCK_RESET_VALUE

    def update(self):
        self.ring.add(StoredValue(self.value))
        self.update_metrics()


def register_mock_collector(registry: CollectorRegistry, factory: ValueRingFactory) -> MockCollector:
    collector = MockCollector(factory)
    registry.register(collector)
    return collector
