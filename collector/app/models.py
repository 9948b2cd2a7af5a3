# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Telemetry Collector contributors

"""Data models for the collector agent."""

from dataclasses import dataclass, field
from typing import List, Optional


@dataclass
class ConfigFile:
    """A file announced by the control plane for a configuration version."""
    name: Optional[str]
    url: str


@dataclass
class PingResult:
    """Outcome of a ping to the control plane.

    ``new_version`` is set only when the control plane announced a version to
    fetch. ``error`` carries the message to persist when the ping failed.
    """
    status_code: Optional[int]
    new_version: Optional[str] = None
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status_code is not None and 200 <= self.status_code < 300


@dataclass
class WorkloadInfo:
    """Owning workload names resolved from a pod's ownerReferences."""
    deployment: Optional[str] = None
    statefulset: Optional[str] = None
    daemonset: Optional[str] = None
    replicaset: Optional[str] = None


@dataclass
class DiscoveredEndpoint:
    """A scrape target found in the cluster.

    ``name`` is the ``<namespace>_<pod or service>`` key used to
    deduplicate targets reachable through more than one route.
    """
    name: str
    endpoint: str
    namespace: str
    pod: Optional[str] = None
    service: Optional[str] = None
    pod_uid: Optional[str] = None
    node_name: Optional[str] = None
    start_time: Optional[str] = None
    container_names: List[str] = field(default_factory=list)
    workload: WorkloadInfo = field(default_factory=WorkloadInfo)
