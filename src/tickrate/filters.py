"""
Which metrics get emitted. Exclude patterns win over include patterns;
an empty include list means "everything not excluded".
"""

from __future__ import annotations

import re
from typing import Iterable, List, Pattern, Sequence

DEFAULT_EXCLUDES = [
    r"^mock$",
    r"^disk-io/...[0-9]",              # single partitions
    r"^disk-usage//.+/(used|free)$",   # everything but the root partition
]

BASIC_INCLUDES = [
    r"^(cpu|mem/percent)$",
    r"^disk-io/.../(io|ioTime|ioBytes)$",
    r"^net-io/(bytes|packets|dropped|errors)$",
    r"^proc/.+/(cpu|mem/rss|disk/(io|ioBytes))$",
]


class MetricFilter:

    def __init__(self, include: Sequence[Pattern] = (), exclude: Sequence[Pattern] = ()):
        self.include: List[Pattern] = list(include)
        self.exclude: List[Pattern] = list(exclude)

    def accepts(self, name: str) -> bool:
        if any(regex.search(name) for regex in self.exclude):
            return False
        if not self.include:
            return True
        return any(regex.search(name) for regex in self.include)

    def select(self, names: Iterable[str]) -> List[str]:
        return [name for name in names if self.accepts(name)]


def build_filter(
    all_metrics: bool = False,
    basic: bool = False,
    include: Iterable[str] = (),
    exclude: Iterable[str] = (),
) -> MetricFilter:
    """Combine the built-in patterns with user-given substrings."""
    excludes = [] if all_metrics else [re.compile(p) for p in DEFAULT_EXCLUDES]
    includes = [re.compile(p) for p in BASIC_INCLUDES] if basic else []
    excludes += [re.compile(re.escape(s)) for s in exclude]
    includes += [re.compile(re.escape(s)) for s in include]
    return MetricFilter(include=includes, exclude=excludes)
