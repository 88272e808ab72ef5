"""
Base collector lifecycle.

A collector is anything that turns an external source into named metric
readers. The scheduler calls init() once and update() on every cycle;
update() pushes fresh readings into the collector's rings and then calls
update_metrics() so the emission layer can pick up the new values. Readers
never do I/O themselves.
"""

from __future__ import annotations

import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Callable, Dict, Iterable, List, Optional

log = logging.getLogger(__name__)

MetricReader = Callable[[], float]


class CollectorError(Exception):
    """Raised by init() or update() when the underlying source fails."""


class Metric:
    """One active metric: a reader plus the value it returned last."""

    def __init__(self, name: str, reader: MetricReader):
        self.name = name
        self.reader = reader
        self.value = 0.0

    def update(self):
        self.value = float(self.reader())

    def __repr__(self) -> str:
        return f"Metric({self.name}={self.value})"


class AbstractCollector(ABC):
    """Interface and shared plumbing for all metric sources."""

    name: str = "collector"

    def __init__(self):
        self.readers: Dict[str, MetricReader] = {}
        self.metrics: List[Metric] = []
        self._metrics_lock = threading.Lock()
        self._start_lock = threading.Lock()
        self._started = False

    @abstractmethod
    def init(self):
        """Set up readers. Raise CollectorError to be excluded from scheduling."""
        ...

    @abstractmethod
    def update(self):
        """Pull the latest readings. Raise CollectorError on a transient failure."""
        ...

    def reset(self):
        self.readers = {}
        with self._metrics_lock:
            self.metrics = []

    def metric_names(self) -> List[str]:
        return sorted(self.readers)

    def activate(self, names: Iterable[str]) -> List[Metric]:
        """Select which readers get sampled on every update."""
        wanted = set(names)
        active = [Metric(name, self.readers[name]) for name in self.metric_names() if name in wanted]
        with self._metrics_lock:
            self.metrics = active
        log.debug("%s: %d of %d metrics active", self.name, len(active), len(self.readers))
        return active

    def update_metrics(self):
        """Refresh all active metrics from their readers."""
        with self._metrics_lock:
            for metric in self.metrics:
                metric.update()

    def read_metrics(self) -> Dict[str, float]:
        with self._metrics_lock:
            return {metric.name: metric.value for metric in self.metrics}

    def _start_once(self, target: Callable[[], None], interval: float) -> Optional[threading.Thread]:
        """Run `target` every `interval` seconds on a daemon thread, at most once per instance.

        The thread lives as long as the process; there is no way to stop it.
        """
        with self._start_lock:
            if self._started:
                return None
            self._started = True

        def loop():
            while True:
                time.sleep(interval)
                target()

        thread = threading.Thread(target=loop, name=f"{self.name}-background", daemon=True)
        thread.start()
        return thread

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name})"
