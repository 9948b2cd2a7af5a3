# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Telemetry Collector contributors

"""Factory for metrics collectors."""

import os
from typing import Optional

from .base import MetricsCollector

BACKENDS = ("prometheus", "noop")


def create_metrics_collector(backend: Optional[str] = None, **kwargs) -> MetricsCollector:
    """Create a metrics collector.

    Args:
        backend: "prometheus" or "noop". Defaults to METRICS_BACKEND env or "noop".
        **kwargs: Passed to the collector constructor.

    Raises:
        ValueError: If backend is unknown
        ImportError: If the prometheus backend is requested without prometheus-client
    """
    backend = (backend or os.getenv("METRICS_BACKEND") or "noop").lower()

    if backend == "prometheus":
        from .prometheus_metrics import PrometheusMetricsCollector
        return PrometheusMetricsCollector(**kwargs)
    if backend == "noop":
        from .noop_metrics import NoOpMetricsCollector
        return NoOpMetricsCollector(**kwargs)
    raise ValueError(f"Unknown metrics backend: {backend}. Must be one of: {', '.join(BACKENDS)}")
