"""
Prometheus text format parser for the scrape collector.
Only needs to tell counters from gauges and pull out their values.
No external deps.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Tuple


@dataclass
class MetricSample:
    name: str
    labels: Dict[str, str]
    value: float


@dataclass
class MetricFamily:
    name: str
    metric_type: str  # "gauge", "counter", "histogram", "summary", "untyped"
    help_text: str
    samples: List[MetricSample] = field(default_factory=list)


# Matches key="value" pairs inside braces, e.g. {method="GET",code="200"}
_LABEL_RE = re.compile(r'(\w+)="([^"]*)"')

_FAMILY_SUFFIXES = ("_total", "_bucket", "_sum", "_count", "_created")


def parse_labels(label_str: str) -> Dict[str, str]:
    if not label_str:
        return {}
    return dict(_LABEL_RE.findall(label_str))


def _base_name(name: str) -> str:
    for suffix in _FAMILY_SUFFIXES:
        if name.endswith(suffix):
            return name[: -len(suffix)]
    return name


def parse_prometheus_text(text: str) -> Dict[str, MetricFamily]:
    """Returns a dict keyed by base metric name (strips _total, _bucket, etc)."""
    families: Dict[str, MetricFamily] = {}
    declared_type: Dict[str, str] = {}
    declared_help: Dict[str, str] = {}

    for line in text.strip().split("\n"):
        line = line.strip()

        if not line:
            continue

        if line.startswith("# HELP ") or line.startswith("# TYPE "):
            parts = line[7:].split(" ", 1)
            if len(parts) == 2:
                # Exporters disagree on whether TYPE names the family or the
                # full sample name (foo vs foo_total); key it by the family.
                target = declared_help if line[2] == "H" else declared_type
                target[_base_name(parts[0])] = parts[1].strip()
            continue

        if line.startswith("#"):
            continue

        # metric_name{labels} value [timestamp]  or  metric_name value [timestamp]
        brace_start = line.find("{")
        if brace_start != -1:
            name = line[:brace_start]
            brace_end = line.find("}", brace_start)
            label_str = line[brace_start + 1:brace_end]
            rest = line[brace_end + 1:].split()
            if not rest:
                continue
            value_str = rest[0]
        else:
            parts = line.split()
            if len(parts) < 2:
                continue
            name = parts[0]
            label_str = ""
            value_str = parts[1]

        try:
            value = float(value_str)
        except ValueError:
            continue

        base_name = _base_name(name)
        if base_name not in families:
            families[base_name] = MetricFamily(
                name=base_name,
                metric_type=declared_type.get(base_name, "untyped"),
                help_text=declared_help.get(base_name, ""),
            )

        families[base_name].samples.append(
            MetricSample(name=name, labels=parse_labels(label_str), value=value)
        )

    return families


def series_key(sample: MetricSample) -> str:
    """Stable name for one series: metric name plus sorted labels."""
    if not sample.labels:
        return sample.name
    labels = ",".join(f'{k}="{v}"' for k, v in sorted(sample.labels.items()))
    return f"{sample.name}{{{labels}}}"


def _is_counter(family: MetricFamily, sample: MetricSample) -> bool:
    # _created holds a creation timestamp, not a count
    if sample.name.endswith("_created"):
        return False
    if family.metric_type == "counter":
        return True
    if family.metric_type in ("histogram", "summary"):
        # Only the running totals; buckets and quantiles are left out
        return sample.name.endswith("_count") or sample.name.endswith("_sum")
    # Untyped exporters still follow the _total naming convention
    return family.metric_type == "untyped" and sample.name.endswith("_total")


def iter_counters(families: Dict[str, MetricFamily]) -> Iterator[Tuple[str, float]]:
    """Yield (series_key, value) for every monotonically increasing series."""
    for family in families.values():
        for sample in family.samples:
            if _is_counter(family, sample):
                yield series_key(sample), sample.value


def iter_gauges(families: Dict[str, MetricFamily]) -> Iterator[Tuple[str, float]]:
    """Yield (series_key, value) for every gauge series."""
    for family in families.values():
        if family.metric_type != "gauge":
            continue
        for sample in family.samples:
            yield series_key(sample), sample.value
