"""Tests for the per-process collector, run against real child processes."""

import re
import subprocess
import sys
import uuid
from datetime import datetime, timedelta, timezone

import psutil
import pytest

from tickrate.collector.process_collector import ProcessCollector, register_process_collectors
from tickrate.collector.registry import CollectorRegistry
from tickrate.ring import ValueRingFactory


def _make_factory(now):
    return ValueRingFactory(length=10, window=timedelta(seconds=1), clock=lambda: now[0])


def _spawn_sleeper(marker: str) -> subprocess.Popen:
    # The marker ends up as sys.argv[1] and so in the command line
    return subprocess.Popen([sys.executable, "-c", "import time; time.sleep(30)", marker])


@pytest.fixture
def sleepers():
    procs = []

    def spawn(marker):
        proc = _spawn_sleeper(marker)
        procs.append(proc)
        return proc

    yield spawn
    for proc in procs:
        proc.kill()
        proc.wait()


def test_groups_processes_by_command_line(sleepers):
    marker = f"tickrate-test-{uuid.uuid4().hex}"
    first = sleepers(marker)
    second = sleepers(marker)

    now = [datetime(2024, 1, 1, tzinfo=timezone.utc)]
    collector = ProcessCollector("sleepers", [re.compile(re.escape(marker))],
                                 _make_factory(now), pid_update_interval=60)
    collector.init()
    assert collector.pids == sorted([first.pid, second.pid])
    assert collector.metric_names() == [
        "proc/sleepers/cpu",
        "proc/sleepers/disk/io",
        "proc/sleepers/disk/ioBytes",
        "proc/sleepers/mem/rss",
        "proc/sleepers/num",
    ]

    collector.activate(collector.metric_names())
    collector.update()
    now[0] += timedelta(seconds=1)
    collector.update()
    values = collector.read_metrics()

    assert values["proc/sleepers/num"] == 2
    assert values["proc/sleepers/mem/rss"] > 0
    assert values["proc/sleepers/cpu"] >= 0


def test_no_matching_process_reports_zero():
    now = [datetime(2024, 1, 1, tzinfo=timezone.utc)]
    marker = re.compile(re.escape(f"no-such-process-{uuid.uuid4().hex}"))
    collector = ProcessCollector("none", [marker], _make_factory(now), pid_update_interval=60)
    collector.init()
    collector.activate(collector.metric_names())
    collector.update()
    now[0] += timedelta(seconds=1)
    collector.update()

    assert collector.pids == []
    assert set(collector.read_metrics().values()) == {0.0}


def test_own_process_is_never_matched():
    # "." matches every command line, ours included
    now = [datetime(2024, 1, 1, tzinfo=timezone.utc)]
    collector = ProcessCollector("self", [re.compile(".")], _make_factory(now), pid_update_interval=60)
    collector.update_pids()
    assert psutil.Process().pid not in collector.pids


def test_exited_process_is_dropped(sleepers):
    marker = f"tickrate-test-{uuid.uuid4().hex}"
    proc = sleepers(marker)

    now = [datetime(2024, 1, 1, tzinfo=timezone.utc)]
    collector = ProcessCollector("gone", [re.compile(re.escape(marker))],
                                 _make_factory(now), pid_update_interval=60)
    collector.init()
    collector.activate(["proc/gone/num"])
    assert collector.pids == [proc.pid]

    proc.kill()
    proc.wait()
    collector.update()
    assert collector.pids == []
    assert collector.read_metrics() == {"proc/gone/num": 0.0}


def test_access_errors_skip_the_process(monkeypatch, sleepers, caplog):
    marker = f"tickrate-test-{uuid.uuid4().hex}"
    proc = sleepers(marker)

    now = [datetime(2024, 1, 1, tzinfo=timezone.utc)]
    collector = ProcessCollector("denied", [re.compile(re.escape(marker))],
                                 _make_factory(now), pid_update_interval=60, print_errors=True)
    collector.init()
    collector.activate(["proc/denied/mem/rss", "proc/denied/num"])

    def denied(self):
        raise psutil.AccessDenied(self.pid)

    monkeypatch.setattr(psutil.Process, "memory_info", denied)
    collector.update()

    # Still a member, just not counted this round
    assert collector.read_metrics() == {"proc/denied/mem/rss": 0.0, "proc/denied/num": 1.0}
    assert f"cannot read process {proc.pid}" in caplog.text


def test_register_one_collector_per_group():
    registry = CollectorRegistry()
    now = [datetime(2024, 1, 1, tzinfo=timezone.utc)]
    groups = {"web": [re.compile("nginx")], "db": [re.compile("postgres"), re.compile("mysqld")]}
    collectors = register_process_collectors(registry, _make_factory(now), groups, print_errors=True)

    assert [c.name for c in registry.all_collectors()] == ["proc/web", "proc/db"]
    assert len(collectors[1].cmdline_filter) == 2
    assert all(c.print_errors for c in collectors)
