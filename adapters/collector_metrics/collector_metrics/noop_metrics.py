# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Telemetry Collector contributors

"""In-memory metrics collector for tests and local runs."""

from typing import List, NamedTuple, Optional

from .base import MetricsCollector, Tags


class MetricRecord(NamedTuple):
    kind: str
    name: str
    value: float
    tags: Tags


class NoOpMetricsCollector(MetricsCollector):
    """Records every call in ``records``; nothing is exported."""

    def __init__(self, **kwargs):
        self.records: List[MetricRecord] = []

    def increment(self, name: str, value: float = 1.0, tags: Tags = None) -> None:
        self.records.append(MetricRecord("counter", name, value, tags))

    def observe(self, name: str, value: float, tags: Tags = None) -> None:
        self.records.append(MetricRecord("histogram", name, value, tags))

    def gauge(self, name: str, value: float, tags: Tags = None) -> None:
        self.records.append(MetricRecord("gauge", name, value, tags))

    def _values(self, kind: str, name: str, tags: Tags = None) -> List[float]:
        return [
            r.value for r in self.records
            if r.kind == kind and r.name == name and (tags is None or r.tags == tags)
        ]

    def clear_metrics(self) -> None:
        self.records.clear()

    def get_counter_total(self, name: str, tags: Tags = None) -> float:
        """Sum of increments for a counter; ``tags=None`` sums over all tag sets."""
        return sum(self._values("counter", name, tags))

    def get_observations(self, name: str) -> List[float]:
        return self._values("histogram", name)

    def get_gauge_value(self, name: str, tags: Tags = None) -> Optional[float]:
        """Most recent value of a gauge, or None if never set."""
        values = self._values("gauge", name, tags)
        return values[-1] if values else None
