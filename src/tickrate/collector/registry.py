"""
Registry of collectors, filled once at startup and handed to the scheduler.
"""

from __future__ import annotations

from typing import Iterator, List

from tickrate.collector.base import AbstractCollector


class CollectorRegistry:

    def __init__(self):
        self._collectors: List[AbstractCollector] = []

    def register(self, collector: AbstractCollector):
        self._collectors.append(collector)

    def all_collectors(self) -> List[AbstractCollector]:
        """Registered collectors in registration order."""
        return list(self._collectors)

    def __len__(self) -> int:
        return len(self._collectors)

    def __iter__(self) -> Iterator[AbstractCollector]:
        return iter(self.all_collectors())
