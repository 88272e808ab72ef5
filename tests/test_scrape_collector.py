"""
Tests for the scrape collector using the fake exporter.

Starts the fake exporter in a thread on a free port, points the collector
at it, and checks the counters come back as rates.
"""

import threading
from datetime import datetime, timedelta, timezone

import pytest

from tickrate.collector.base import CollectorError
from tickrate.collector.scrape_collector import ScrapeCollector
from tickrate.mock.fake_exporter import make_server
from tickrate.ring import ValueRingFactory


class StepClock:
    def __init__(self):
        self.now = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=1)
        return self.now


def _start_test_server():
    server = make_server(port=0)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    host, port = server.server_address
    return server, f"http://{host}:{port}"


def _make_factory() -> ValueRingFactory:
    return ValueRingFactory(length=10, window=timedelta(seconds=1), clock=StepClock())


@pytest.fixture
def exporter():
    server, url = _start_test_server()
    yield url
    server.shutdown()
    server.server_close()


def test_init_discovers_counters_and_gauges(exporter):
    collector = ScrapeCollector(base_url=exporter, factory=_make_factory())
    try:
        collector.init()
        names = collector.metric_names()
        assert 'scrape/http_requests_total{method="GET"}' in names
        assert 'scrape/http_requests_total{method="POST"}' in names
        assert "scrape/http_response_bytes_total" in names
        assert "scrape/http_requests_in_flight" in names
    finally:
        collector.close()


def test_counter_rates_are_positive(exporter):
    collector = ScrapeCollector(base_url=exporter, factory=_make_factory())
    try:
        collector.init()
        collector.activate(collector.metric_names())
        collector.update()
        collector.update()
        values = collector.read_metrics()

        assert values['scrape/http_requests_total{method="GET"}'] > 0
        assert values["scrape/http_response_bytes_total"] > 0
        assert values["scrape/process_start_time_seconds"] == 1700000000
    finally:
        collector.close()


def test_name_includes_url():
    collector = ScrapeCollector(base_url="http://localhost:9100/", factory=_make_factory())
    assert collector.name == "scrape (http://localhost:9100/metrics)"
    collector.close()


def test_init_fails_when_endpoint_is_down():
    server, url = _start_test_server()
    server.shutdown()
    server.server_close()

    collector = ScrapeCollector(base_url=url, factory=_make_factory(), timeout_seconds=0.5)
    with pytest.raises(CollectorError):
        collector.init()
    collector.close()


def test_init_fails_on_http_error_status(exporter):
    collector = ScrapeCollector(base_url=exporter + "/missing", factory=_make_factory())
    with pytest.raises(CollectorError):
        collector.init()
    collector.close()


def test_update_failure_is_reported():
    server, url = _start_test_server()
    collector = ScrapeCollector(base_url=url, factory=_make_factory(), timeout_seconds=0.5)
    try:
        collector.init()
        server.shutdown()
        server.server_close()
        with pytest.raises(CollectorError):
            collector.update()
    finally:
        collector.close()
