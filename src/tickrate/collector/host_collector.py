"""
Local host stats via psutil: CPU utilisation, memory, network and disk IO.

Everything psutil reports here is a cumulative counter except memory, so
most metrics are rates read from a ValueRing. CPU ticks are summed across
cores into one sample per update with add_to_head()/flush_head().
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Dict, List

import psutil

from tickrate.collector.base import AbstractCollector, CollectorError
from tickrate.collector.registry import CollectorRegistry
from tickrate.ring import ValueRing, ValueRingFactory
from tickrate.values import LogbackValue

log = logging.getLogger(__name__)

# Time spent in these states counts as not busy
_IDLE_FIELDS = ("idle", "iowait")
# Linux already includes guest time in user/nice
_GUEST_FIELDS = ("guest", "guest_nice")

NET_COUNTERS = {
    "bytes": ("bytes_sent", "bytes_recv"),
    "packets": ("packets_sent", "packets_recv"),
    "errors": ("errin", "errout"),
    "dropped": ("dropin", "dropout"),
}

# Per disk and summed over all disks as disk-io/all/...
DISK_TOTAL = "all"
DISK_COUNTERS = {
    "io": ("read_count", "write_count"),
    "ioBytes": ("read_bytes", "write_bytes"),
    "ioTime": ("read_time", "write_time"),  # milliseconds
}


@dataclass(frozen=True)
class CpuTimes(LogbackValue):
    """Cumulative CPU time in seconds, split into busy and total."""

    busy: float = 0.0
    total: float = 0.0

    @classmethod
    def from_psutil(cls, times) -> CpuTimes:
        values = times._asdict()
        total = sum(v for name, v in values.items() if name not in _GUEST_FIELDS)
        idle = sum(values.get(name, 0.0) for name in _IDLE_FIELDS)
        return cls(busy=total - idle, total=total)

    def difference(self, previous: LogbackValue, interval: timedelta) -> float:
        """Utilisation in percent between the two readings (interval unused)."""
        if not isinstance(previous, CpuTimes):
            log.error("Cannot diff %r (%s) and %r (%s)",
                      self, type(self).__name__, previous, type(previous).__name__)
            return 0.0
        total = self.total - previous.total
        if total == 0:
            return 0.0
        return (self.busy - previous.busy) / total * 100

    def accumulate(self, other: LogbackValue) -> LogbackValue:
        if not isinstance(other, CpuTimes):
            log.error("Cannot add %r (%s) and %r (%s)",
                      self, type(self).__name__, other, type(other).__name__)
            return CpuTimes()
        return CpuTimes(busy=self.busy + other.busy, total=self.total + other.total)


class HostCollector(AbstractCollector):
    """Reads the local machine through psutil. Safe on hosts without disks."""

    name = "host"

    def __init__(self, factory: ValueRingFactory):
        super().__init__()
        self._factory = factory
        self._cpu = factory.new_ring()
        self._counters: Dict[str, ValueRing] = {}
        self._disks: List[str] = []
        self._mountpoints: List[str] = []
        self._mem_percent = 0.0
        self._disk_usage: Dict[str, float] = {}

    def init(self):
        self.reset()
        try:
            per_disk = psutil.disk_io_counters(perdisk=True) or {}
            partitions = psutil.disk_partitions(all=False)
        except (psutil.Error, OSError) as e:
            raise CollectorError(f"psutil disk information unavailable: {e}") from e
        self._disks = sorted(per_disk)
        self._mountpoints = sorted({p.mountpoint for p in partitions})

        names = [f"net-io/{suffix}" for suffix in NET_COUNTERS]
        for disk in ([DISK_TOTAL] + self._disks if self._disks else []):
            names += [f"disk-io/{disk}/{suffix}" for suffix in DISK_COUNTERS]
        for name in names:
            if name not in self._counters:
                self._counters[name] = self._factory.new_ring()

        self.readers = {
            "cpu": self._cpu.get_diff,
            "mem/percent": self._read_mem_percent,
        }
        for name in names:
            self.readers[name] = self._counters[name].get_diff
        for mountpoint in self._mountpoints:
            for field_name in ("used", "free"):
                name = f"disk-usage/{mountpoint}/{field_name}"
                self.readers[name] = self._usage_reader(name)

    def _read_mem_percent(self) -> float:
        return self._mem_percent

    def _usage_reader(self, name: str):
        def read() -> float:
            return self._disk_usage.get(name, 0.0)
        return read

    def update(self):
        try:
            per_core = psutil.cpu_times(percpu=True)
            memory = psutil.virtual_memory()
            net = psutil.net_io_counters()
            per_disk = (psutil.disk_io_counters(perdisk=True) or {}) if self._disks else {}
        except psutil.Error as e:
            raise CollectorError(f"psutil read failed: {e}") from e

        for core in per_core:
            self._cpu.add_to_head(CpuTimes.from_psutil(core))
        self._cpu.flush_head()

        self._mem_percent = memory.percent
        if net is not None:
            self._add_counters("net-io", NET_COUNTERS, [net])
        if self._disks:
            self._add_counters(f"disk-io/{DISK_TOTAL}", DISK_COUNTERS, list(per_disk.values()))
            for disk in self._disks:
                counters = per_disk.get(disk)
                if counters is not None:
                    self._add_counters(f"disk-io/{disk}", DISK_COUNTERS, [counters])
        self._update_disk_usage()
        self.update_metrics()

    def _add_counters(self, prefix: str, counter_fields: Dict[str, tuple], readings: list):
        """Sum `counter_fields` over all readings into the rings under `prefix`."""
        for suffix, fields in counter_fields.items():
            ring = self._counters.get(f"{prefix}/{suffix}")
            if ring is None:
                continue
            for reading in readings:
                ring.add_value_to_head(sum(getattr(reading, f) for f in fields))
            ring.flush_head()

    def _update_disk_usage(self):
        for mountpoint in self._mountpoints:
            try:
                usage = psutil.disk_usage(mountpoint)
            except (psutil.Error, OSError) as e:
                # Unmounted since init; keep reporting the last value
                log.debug("disk usage for %s unavailable: %s", mountpoint, e)
                continue
            self._disk_usage[f"disk-usage/{mountpoint}/used"] = usage.percent
            self._disk_usage[f"disk-usage/{mountpoint}/free"] = 100.0 - usage.percent


def register_host_collector(registry: CollectorRegistry, factory: ValueRingFactory) -> HostCollector:
    collector = HostCollector(factory)
    registry.register(collector)
    return collector
