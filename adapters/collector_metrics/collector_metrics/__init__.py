# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Telemetry Collector contributors

"""Collector Metrics Adapter.

Pluggable metrics collection for the collector agent. Supports an in-memory
no-op backend for tests and a Prometheus backend exposed over HTTP.
"""

__version__ = "0.1.0"

from .base import MetricsCollector
from .factory import create_metrics_collector
from .noop_metrics import NoOpMetricsCollector

__all__ = [
    "__version__",
    "MetricsCollector",
    "NoOpMetricsCollector",
    "create_metrics_collector",
]
