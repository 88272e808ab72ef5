"""Tests for the Prometheus text format parser."""

from tickrate.collector.prometheus_parser import (
    MetricSample,
    iter_counters,
    iter_gauges,
    parse_labels,
    parse_prometheus_text,
    series_key,
)

SAMPLE_EXPORTER_OUTPUT = """\
# HELP http_requests_total Requests handled
# TYPE http_requests_total counter
http_requests_total{method="GET",code="200"} 1027
http_requests_total{method="POST",code="200"} 3
http_requests_created{method="GET",code="200"} 1700000000

# HELP http_requests_in_flight Requests currently being served
# TYPE http_requests_in_flight gauge
http_requests_in_flight 12

# HELP node_network_receive_bytes_total Bytes received
# TYPE node_network_receive_bytes counter
node_network_receive_bytes_total{device="eth0"} 148329

# HELP request_duration_seconds Request latency
# TYPE request_duration_seconds histogram
request_duration_seconds_bucket{le="0.1"} 5
request_duration_seconds_bucket{le="+Inf"} 9
request_duration_seconds_count 9
request_duration_seconds_sum 1.2

legacy_events_total 77
"""


def test_parse_labels():
    result = parse_labels('model_name="llama",le="0.5"')
    assert result == {"model_name": "llama", "le": "0.5"}


def test_parse_labels_empty():
    assert parse_labels("") == {}


def test_families_are_keyed_by_base_name():
    families = parse_prometheus_text(SAMPLE_EXPORTER_OUTPUT)
    assert families["http_requests"].metric_type == "counter"
    assert families["http_requests"].help_text == "Requests handled"
    assert families["http_requests_in_flight"].metric_type == "gauge"
    assert families["node_network_receive_bytes"].metric_type == "counter"
    assert families["request_duration_seconds"].metric_type == "histogram"
    assert families["legacy_events"].metric_type == "untyped"


def test_series_key_sorts_labels():
    sample = MetricSample(name="x_total", labels={"b": "2", "a": "1"}, value=1)
    assert series_key(sample) == 'x_total{a="1",b="2"}'
    assert series_key(MetricSample(name="y", labels={}, value=0)) == "y"


def test_iter_counters():
    counters = dict(iter_counters(parse_prometheus_text(SAMPLE_EXPORTER_OUTPUT)))
    assert counters == {
        'http_requests_total{code="200",method="GET"}': 1027,
        'http_requests_total{code="200",method="POST"}': 3,
        'node_network_receive_bytes_total{device="eth0"}': 148329,
        "legacy_events_total": 77,
        "request_duration_seconds_count": 9,
        "request_duration_seconds_sum": 1.2,
    }


def test_iter_gauges():
    gauges = dict(iter_gauges(parse_prometheus_text(SAMPLE_EXPORTER_OUTPUT)))
    assert gauges == {"http_requests_in_flight": 12}


def test_empty_input():
    families = parse_prometheus_text("")
    assert len(families) == 0


def test_skips_unparseable_values():
    families = parse_prometheus_text("broken_total NaNish\nok_total 1\n")
    assert list(families) == ["ok"]


def test_handles_comments_and_blank_lines():
    text = """
    # This is a comment
    # HELP my_gauge A test gauge
    # TYPE my_gauge gauge
    my_gauge 42.5

    """
    families = parse_prometheus_text(text)
    assert dict(iter_gauges(families)) == {"my_gauge": 42.5}


def test_created_timestamps_are_not_counters():
    text = """\
# TYPE jobs counter
jobs_total 5
jobs_created 1700000000
# TYPE lag summary
lag{quantile="0.5"} 0.2
lag_count 4
lag_sum 0.9
lag_created 1700000000
"""
    counters = dict(iter_counters(parse_prometheus_text(text)))
    assert counters == {"jobs_total": 5, "lag_count": 4, "lag_sum": 0.9}
