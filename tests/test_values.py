"""Tests for the scalar sample value."""

import logging
from datetime import timedelta

from tickrate.collector.host_collector import CpuTimes
from tickrate.values import StoredValue


def test_difference_is_rate_per_second():
    assert StoredValue(200).difference(StoredValue(100), timedelta(seconds=2)) == 50.0


def test_difference_over_fractional_interval():
    assert StoredValue(3).difference(StoredValue(1), timedelta(milliseconds=500)) == 4.0


def test_difference_with_zero_interval_is_zero():
    assert StoredValue(200).difference(StoredValue(100), timedelta(0)) == 0.0


def test_accumulate_sums():
    assert StoredValue(1.5).accumulate(StoredValue(2)) == StoredValue(3.5)


def test_mismatched_difference_logs_and_returns_zero(caplog):
    with caplog.at_level(logging.ERROR, logger="tickrate.values"):
        result = StoredValue(10).difference(CpuTimes(busy=1, total=2), timedelta(seconds=1))
    assert result == 0.0
    assert "Cannot diff" in caplog.text


def test_mismatched_accumulate_logs_and_returns_zero(caplog):
    with caplog.at_level(logging.ERROR, logger="tickrate.values"):
        result = StoredValue(10).accumulate(CpuTimes(busy=1, total=2))
    assert result == StoredValue(0)
    assert "Cannot add" in caplog.text


def test_float_conversion():
    assert float(StoredValue(7)) == 7.0
    assert str(StoredValue(7.5)) == "7.5"
