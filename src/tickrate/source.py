"""
Drives registered collectors: init once, update on a fixed cadence in a
background thread, and merge their active metrics into Samples on demand.

A collector that fails init() is dropped for good. A collector whose
update() fails stays scheduled and is simply retried next cycle.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Dict, List, Optional

from tickrate.collector.base import AbstractCollector
from tickrate.collector.registry import CollectorRegistry
from tickrate.filters import MetricFilter
from tickrate.sample import Sample

log = logging.getLogger(__name__)


class CollectorSource:

    def __init__(
        self,
        registry: CollectorRegistry,
        collect_interval: float = 0.5,
        sink_interval: float = 0.5,
        metric_filter: Optional[MetricFilter] = None,
        tags: Optional[Dict[str, str]] = None,
    ):
        self.registry = registry
        self.collect_interval = collect_interval
        self.sink_interval = sink_interval
        self.metric_filter = metric_filter or MetricFilter()
        self.tags = dict(tags or {})
        self.active: List[AbstractCollector] = []
        self._initialized: List[AbstractCollector] = []
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def init_collectors(self) -> List[AbstractCollector]:
        """Initialise every registered collector; return the ones left active."""
        self._initialized = []
        self.active = []
        for collector in self.registry.all_collectors():
            try:
                collector.init()
            except Exception as e:
                log.warning("Collector %s failed to initialise, excluding it: %s", collector.name, e)
                continue
            self._initialized.append(collector)

            names = self.metric_filter.select(collector.metric_names())
            if not names:
                log.info("Collector %s has no metrics left after filtering", collector.name)
                continue
            collector.activate(names)
            self.active.append(collector)
            log.info("Collector %s initialised with %d metrics", collector.name, len(names))
        return self.active

    def available_metrics(self) -> List[str]:
        names = []
        for collector in self._initialized:
            names.extend(self.metric_filter.select(collector.metric_names()))
        return sorted(names)

    def update_all(self):
        """One scheduler cycle over all active collectors."""
        for collector in self.active:
            try:
                collector.update()
            except Exception as e:
                log.warning("Collector %s update failed: %s", collector.name, e)

    def start(self) -> threading.Thread:
        if self._thread is not None:
            return self._thread
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="tickrate-scheduler", daemon=True)
        self._thread.start()
        log.info("Scheduler started: %d collectors every %.2fs", len(self.active), self.collect_interval)
        return self._thread

    def _run(self):
        while not self._stop.is_set():
            self.update_all()
            self._stop.wait(self.collect_interval)

    def stop(self):
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=max(1.0, self.collect_interval * 2))
            self._thread = None

    def sample(self) -> Sample:
        values: Dict[str, float] = {}
        for collector in self.active:
            values.update(collector.read_metrics())
        return Sample(timestamp=datetime.now(timezone.utc), values=values, tags=dict(self.tags))

    def close(self):
        self.stop()
        for collector in self.registry.all_collectors():
            if hasattr(collector, "close"):
                collector.close()
