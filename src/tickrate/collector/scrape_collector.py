"""
Collector for any HTTP endpoint that speaks the Prometheus text format.
Counters become per-second rates through one ValueRing per series; gauges
are passed through as their last scraped value.

The set of series is fixed by the first scrape in init(). Series that show
up later are ignored until the process restarts.
"""

from __future__ import annotations

import logging
from typing import Dict

import httpx

from tickrate.collector.base import AbstractCollector, CollectorError
from tickrate.collector.prometheus_parser import (
    MetricFamily,
    iter_counters,
    iter_gauges,
    parse_prometheus_text,
)
from tickrate.collector.registry import CollectorRegistry
from tickrate.ring import ValueRing, ValueRingFactory
from tickrate.values import StoredValue

log = logging.getLogger(__name__)

METRIC_PREFIX = "scrape/"


class ScrapeCollector(AbstractCollector):

    def __init__(
        self,
        base_url: str,
        factory: ValueRingFactory,
        timeout_seconds: float = 5.0,
    ):
        super().__init__()
        self._metrics_url = base_url.rstrip("/")
        if not self._metrics_url.endswith("/metrics"):
            self._metrics_url += "/metrics"
        self.name = f"scrape ({self._metrics_url})"

        self._factory = factory
        self._client = httpx.Client(timeout=timeout_seconds)
        self._rings: Dict[str, ValueRing] = {}
        self._gauges: Dict[str, float] = {}

    def _scrape(self) -> Dict[str, MetricFamily]:
        try:
            response = self._client.get(self._metrics_url)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise CollectorError(f"Scraping {self._metrics_url} failed: {e}") from e
        return parse_prometheus_text(response.text)

    def init(self):
        self.reset()
        families = self._scrape()

        self._rings = {}
        for series, value in iter_counters(families):
            ring = self._factory.new_ring()
            ring.add(StoredValue(value))
            self._rings[series] = ring
            self.readers[METRIC_PREFIX + series] = ring.get_diff

        self._gauges = dict(iter_gauges(families))
        for series in self._gauges:
            self.readers[METRIC_PREFIX + series] = self._gauge_reader(series)

        log.info("%s: %d counters, %d gauges", self.name, len(self._rings), len(self._gauges))

    def _gauge_reader(self, series: str):
        def read() -> float:
            return self._gauges.get(series, 0.0)
        return read

    def update(self):
        families = self._scrape()

        for series, value in iter_counters(families):
            ring = self._rings.get(series)
            if ring is None:
                log.debug("%s: ignoring new series %s", self.name, series)
                continue
            ring.add(StoredValue(value))

        for series, value in iter_gauges(families):
            if series in self._gauges:
                self._gauges[series] = value

        self.update_metrics()

    def close(self):
        self._client.close()


def register_scrape_collector(
    registry: CollectorRegistry,
    base_url: str,
    factory: ValueRingFactory,
) -> ScrapeCollector:
    collector = ScrapeCollector(base_url, factory)
    registry.register(collector)
    return collector
