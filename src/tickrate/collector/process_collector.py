"""
Per-process stats via psutil, summed over a group of processes.

A group is every process whose full command line matches one of the
group's regexes. The matching PIDs are re-scanned on a background thread;
update() folds the counters of all current members into one sample per
ring with add_to_head()/flush_head(). A member exiting makes the summed
counters drop, which the rings treat like a counter overflow.
"""

from __future__ import annotations

import logging
import os
import threading
from typing import Dict, Iterable, List, Mapping, Pattern

import psutil

from tickrate.collector.base import AbstractCollector
from tickrate.collector.registry import CollectorRegistry
from tickrate.ring import ValueRingFactory

log = logging.getLogger(__name__)

DEFAULT_PID_UPDATE_INTERVAL = 1.5

# Rings fed from psutil.Process.io_counters(), keyed by metric suffix
IO_COUNTERS = {
    "disk/io": ("read_count", "write_count"),
    "disk/ioBytes": ("read_bytes", "write_bytes"),
}


class ProcessCollector(AbstractCollector):

    def __init__(
        self,
        group_name: str,
        cmdline_filter: Iterable[Pattern],
        factory: ValueRingFactory,
        pid_update_interval: float = DEFAULT_PID_UPDATE_INTERVAL,
        print_errors: bool = False,
    ):
        super().__init__()
        self.group_name = group_name
        self.name = f"proc/{group_name}"
        self.cmdline_filter: List[Pattern] = list(cmdline_filter)
        self.pid_update_interval = pid_update_interval
        self.print_errors = print_errors
        self._pids_lock = threading.Lock()
        self._processes: Dict[int, psutil.Process] = {}
        self._cpu = factory.new_ring()
        self._io = {suffix: factory.new_ring() for suffix in IO_COUNTERS}
        self._rss = 0.0

    def init(self):
        self.reset()
        self.update_pids()
        prefix = self.name
        self.readers = {
            f"{prefix}/cpu": self._read_cpu,
            f"{prefix}/mem/rss": self._read_rss,
            f"{prefix}/num": self._read_num,
        }
        for suffix, ring in self._io.items():
            self.readers[f"{prefix}/{suffix}"] = ring.get_diff
        self._start_once(self.update_pids, self.pid_update_interval)

    @property
    def pids(self) -> List[int]:
        with self._pids_lock:
            return sorted(self._processes)

    def matches(self, cmdline: str) -> bool:
        return any(regex.search(cmdline) for regex in self.cmdline_filter)

    def update_pids(self):
        """Re-scan all processes and keep the ones whose command line matches."""
        own_pid = os.getpid()
        with self._pids_lock:
            known = set(self._processes)
        found: Dict[int, psutil.Process] = {}
        for proc in psutil.process_iter(["cmdline"]):
            if proc.pid == own_pid:
                # Our own command line names the pattern we look for
                continue
            cmdline = proc.info.get("cmdline")
            if not cmdline or not self.matches(" ".join(cmdline)):
                continue
            found[proc.pid] = proc
        with self._pids_lock:
            self._processes = found
        if set(found) != known:
            log.debug("%s: now watching pids %s", self.name, sorted(found))

    def update(self):
        with self._pids_lock:
            processes = list(self._processes.values())

        rss = 0.0
        gone = []
        for proc in processes:
            try:
                with proc.oneshot():
                    times = proc.cpu_times()
                    memory = proc.memory_info()
                    io = proc.io_counters() if hasattr(proc, "io_counters") else None
            except psutil.NoSuchProcess:
                gone.append(proc.pid)
                continue
            except psutil.Error as e:
                self._report_error(proc, e)
                continue
            self._cpu.add_value_to_head(times.user + times.system)
            rss += memory.rss
            if io is not None:
                for suffix, fields in IO_COUNTERS.items():
                    self._io[suffix].add_value_to_head(sum(getattr(io, f) for f in fields))

        self._cpu.flush_head()
        for ring in self._io.values():
            ring.flush_head()
        self._rss = rss
        if gone:
            self._forget(gone)
        self.update_metrics()

    def _forget(self, pids: List[int]):
        with self._pids_lock:
            for pid in pids:
                self._processes.pop(pid, None)
        log.debug("%s: processes %s exited", self.name, pids)

    def _report_error(self, proc: psutil.Process, error: Exception):
        level = logging.WARNING if self.print_errors else logging.DEBUG
        log.log(level, "%s: cannot read process %d: %s", self.name, proc.pid, error)

    def _read_cpu(self) -> float:
        # Seconds of CPU per second, as a percentage of one core
        return self._cpu.get_diff() * 100

    def _read_rss(self) -> float:
        return self._rss

    def _read_num(self) -> float:
        with self._pids_lock:
            return float(len(self._processes))


def register_process_collectors(
    registry: CollectorRegistry,
    factory: ValueRingFactory,
    groups: Mapping[str, List[Pattern]],
    pid_update_interval: float = DEFAULT_PID_UPDATE_INTERVAL,
    print_errors: bool = False,
) -> List[ProcessCollector]:
    """Register one collector per group name."""
    collectors = []
    for group_name, regexes in groups.items():
        collector = ProcessCollector(
            group_name,
            regexes,
            factory,
            pid_update_interval=pid_update_interval,
            print_errors=print_errors,
        )
        registry.register(collector)
        collectors.append(collector)
    return collectors
