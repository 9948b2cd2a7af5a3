# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Telemetry Collector contributors

"""Base abstraction for metrics collection."""

from abc import ABC, abstractmethod
from typing import Dict, Optional

Tags = Optional[Dict[str, str]]

# Help text for the metrics the agent emits; other names get a generic one
METRIC_DESCRIPTIONS = {
    "collector_pings_total": "Pings sent to the control plane, by response status",
    "collector_config_promotions_total": "Composite Vector configurations promoted to current",
    "collector_config_validation_failures_total": "Configurations rejected by validation, by stage",
    "collector_discovery_runs_total": "Kubernetes discovery runs, by outcome",
    "collector_discovered_targets": "Scrape targets found by the last Kubernetes discovery run",
    "collector_enrichment_promotions_total": "Enrichment tables promoted, by table",
    "collector_cycle_duration_seconds": "Duration of one sync cycle",
}


class MetricsCollector(ABC):
    """Counters, histograms and gauges keyed by name and optional string tags."""

    @abstractmethod
    def increment(self, name: str, value: float = 1.0, tags: Tags = None) -> None:
        """Add ``value`` to a counter."""
        pass

    @abstractmethod
    def observe(self, name: str, value: float, tags: Tags = None) -> None:
        """Record one sample of a distribution, such as a cycle duration."""
        pass

    @abstractmethod
    def gauge(self, name: str, value: float, tags: Tags = None) -> None:
        """Set a gauge to ``value``."""
        pass
