# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Telemetry Collector contributors

"""Prometheus metrics collector implementation."""

import logging
from typing import Callable, Dict, Optional, Tuple

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram

from .base import METRIC_DESCRIPTIONS, MetricsCollector, Tags

logger = logging.getLogger(__name__)

# Sync cycles range from a quick 204 ping to minutes of vector validate runs
CYCLE_DURATION_BUCKETS = (0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0)


class PrometheusMetricsCollector(MetricsCollector):
    """Prometheus metrics collector.

    Metric objects are created lazily on first use and cached by name and
    label keys. All calls for the same metric name must use the same label
    keys, otherwise prometheus_client raises ValueError. Such failures are
    counted and logged instead of breaking the sync cycle unless
    ``raise_on_error`` is set.

    Args:
        registry: Registry to register metrics in (prometheus default if None)
        namespace: Prefix for all metric names
        raise_on_error: Re-raise metric errors, for tests
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None, namespace: str = "",
                 raise_on_error: bool = False):
        self.registry = registry
        self.namespace = namespace
        self.raise_on_error = raise_on_error
        self._metrics: Dict[Tuple[type, str, Tuple[str, ...]], object] = {}
        self._errors_count = 0

    def _metric(self, metric_cls: type, name: str, tags: Tags):
        labelnames = tuple(sorted(tags)) if tags else ()
        key = (metric_cls, name, labelnames)
        if key not in self._metrics:
            kwargs = {
                "name": name,
                "documentation": METRIC_DESCRIPTIONS.get(name, f"Collector metric {name}"),
                "labelnames": labelnames,
                "namespace": self.namespace,
            }
            if metric_cls is Histogram and name.endswith("_seconds"):
                kwargs["buckets"] = CYCLE_DURATION_BUCKETS
            if self.registry is not None:
                kwargs["registry"] = self.registry
            self._metrics[key] = metric_cls(**kwargs)

        metric = self._metrics[key]
        return metric.labels(**tags) if tags else metric

    def _record(self, name: str, apply: Callable[[], None]) -> None:
        try:
            apply()
        except Exception as e:
            self._errors_count += 1
            logger.error("Failed to record metric %s: %s", name, e)
            if self.raise_on_error:
                raise

    def increment(self, name: str, value: float = 1.0, tags: Tags = None) -> None:
        self._record(name, lambda: self._metric(Counter, name, tags).inc(value))

    def observe(self, name: str, value: float, tags: Tags = None) -> None:
        self._record(name, lambda: self._metric(Histogram, name, tags).observe(value))

    def gauge(self, name: str, value: float, tags: Tags = None) -> None:
        self._record(name, lambda: self._metric(Gauge, name, tags).set(value))

    def get_errors_count(self) -> int:
        return self._errors_count
