"""
What the emission layer receives: one timestamped set of named metric
values per sampling cycle.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict


@dataclass
class Sample:
    """All active metrics at one point in time."""

    timestamp: datetime
    values: Dict[str, float] = field(default_factory=dict)
    tags: Dict[str, str] = field(default_factory=dict)

    def summary(self, precision: int = 3) -> dict:
        """Return a plain dict for display or JSON output."""
        record = {
            "timestamp": self.timestamp.isoformat(),
            "values": {name: round(value, precision) for name, value in sorted(self.values.items())},
        }
        if self.tags:
            record["tags"] = dict(self.tags)
        return record
