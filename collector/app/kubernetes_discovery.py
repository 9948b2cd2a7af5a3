# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Telemetry Collector contributors

"""Kubernetes scrape-target discovery.

Each run writes a generation directory under
``<working_dir>/kubernetes-discovery/<timestamp>`` holding one Vector
fragment per discovered target plus ``discovered_pods.yaml``. A generation
is kept only if it validates and differs from the previous one.
"""

import hashlib
import os
import shutil
import tempfile
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

import requests
import yaml

from collector_logging import Logger
from collector_metrics import MetricsCollector

from .config import AgentConfig
from .exceptions import KubernetesAPIError
from .models import DiscoveredEndpoint, WorkloadInfo
from .validator import ConfigValidator
from .vector_config import DEFAULT_GENERATION, config_uses_discovery, latest_discovery_generation

SCRAPE_ANNOTATION = "prometheus.io/scrape"
PORT_ANNOTATION = "prometheus.io/port"
PATH_ANNOTATION = "prometheus.io/path"
DEFAULT_PORT = "9090"
DEFAULT_PATH = "/metrics"
DISCOVERED_PODS_FILE = "discovered_pods.yaml"

DUMMY_VECTOR_CONFIG = {
    "transforms": {
        "kubernetes_discovery_test": {
            "type": "remap",
            "inputs": ["kubernetes_discovery_*"],
            "source": '.test = "ok"',
        },
    },
    "sinks": {
        "kubernetes_discovery_test_sink": {
            "type": "blackhole",
            "inputs": ["kubernetes_discovery_test"],
        },
    },
}


def dump_yaml(data: Dict[str, Any]) -> str:
    return yaml.safe_dump(data, sort_keys=False, default_flow_style=False)


def discovered_pods_config(count: int) -> Dict[str, Any]:
    """Build the static metrics fragment reporting the discovered target count."""
    return {
        "sources": {
            "kubernetes_discovery_static_metrics": {
                "type": "static_metrics",
                # Empty namespace keeps the metric name unprefixed
                "namespace": "",
                "metrics": [
                    {
                        "name": "collector_kubernetes_discovered_pods",
                        "kind": "absolute",
                        "value": {"gauge": {"value": count}},
                        "tags": {},
                    },
                ],
            },
        },
    }


def write_default_generation(discovery_dir: str) -> str:
    """Ensure the permanent empty generation exists and return its path."""
    default_dir = os.path.join(discovery_dir, DEFAULT_GENERATION)
    os.makedirs(default_dir, exist_ok=True)
    path = os.path.join(default_dir, DISCOVERED_PODS_FILE)
    if not os.path.exists(path):
        with open(path, "w") as f:
            f.write(dump_yaml(discovered_pods_config(0)))
    return default_dir


def generate_fragment(endpoint: DiscoveredEndpoint) -> Tuple[str, str]:
    """Render the Vector fragment for one endpoint.

    Returns:
        Tuple of (filename, yaml content). The filename embeds an MD5 of the
        content so unchanged targets keep the same name across runs.
    """
    source_name = f"prometheus_scrape_{endpoint.name}"
    transform_name = f"kubernetes_discovery_{endpoint.name}"

    tags = [
        ("k8s.namespace.name", endpoint.namespace),
        ("k8s.pod.name", endpoint.pod),
        ("k8s.node.name", endpoint.node_name),
        ("k8s.pod.uid", endpoint.pod_uid),
        ("k8s.pod.start_time", endpoint.start_time),
        ("k8s.deployment.name", endpoint.workload.deployment),
        ("k8s.statefulset.name", endpoint.workload.statefulset),
        ("k8s.daemonset.name", endpoint.workload.daemonset),
        ("k8s.replicaset.name", endpoint.workload.replicaset),
    ]
    if endpoint.container_names:
        tags.append(("k8s.container.name", ",".join(endpoint.container_names)))

    remap_lines = []
    for key, value in tags:
        # Namespace and pod name are always set, the rest only when known
        if value is None and key not in ("k8s.namespace.name", "k8s.pod.name"):
            continue
        remap_lines.append(f'.tags."{key}" = "{value or ""}"')

    config = {
        "sources": {
            source_name: {
                "type": "prometheus_scrape",
                "endpoints": [endpoint.endpoint],
                "scrape_interval_secs": 30,
                "instance_tag": "instance",
            },
        },
        "transforms": {
            transform_name: {
                "type": "remap",
                "inputs": [source_name],
                "source": "\n".join(remap_lines),
            },
        },
    }
    content = dump_yaml(config)
    digest = hashlib.md5(content.encode("utf-8")).hexdigest()
    return f"{endpoint.name}-{digest}.yaml", content


def generations_identical(dir1: str, dir2: str) -> bool:
    """Compare the *.yaml file names and bytes of two generation directories."""
    def yaml_files(directory: str) -> List[str]:
        return sorted(n for n in os.listdir(directory) if n.endswith(".yaml"))

    files1 = yaml_files(dir1)
    if files1 != yaml_files(dir2):
        return False
    for name in files1:
        with open(os.path.join(dir1, name), "rb") as f1, open(os.path.join(dir2, name), "rb") as f2:
            if f1.read() != f2.read():
                return False
    return True


class KubernetesClient:
    """Minimal read-only Kubernetes API client using the pod's service account."""

    def __init__(self, base_url: str, token: str, ca_path: str, timeout: int = 30,
                 session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            "Authorization": f"Bearer {token}",
            "Accept": "application/json",
        })
        self.session.verify = ca_path

    def get(self, path: str) -> Dict[str, Any]:
        """GET an API path and decode the JSON body.

        Raises:
            KubernetesAPIError: If the request fails or does not return 200
        """
        try:
            response = self.session.get(f"{self.base_url}{path}", timeout=self.timeout)
        except requests.RequestException as e:
            raise KubernetesAPIError(f"Kubernetes API request to {path} failed: {e}")
        if response.status_code != 200:
            raise KubernetesAPIError(
                f"Kubernetes API request failed: {response.status_code} {response.text}",
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as e:
            raise KubernetesAPIError(f"Kubernetes API returned invalid JSON for {path}: {e}")


class KubernetesDiscovery:
    """Discovers annotated services and pods and maintains discovery generations.

    Args:
        config: Agent configuration
        validator: Validator for generated fragment sets
        logger: Logger instance
        metrics: Metrics collector
        client_factory: Optional factory returning a KubernetesClient, used
            instead of reading in-cluster credentials
        clock: Monotonic clock used for rate limiting
    """

    def __init__(
        self,
        config: AgentConfig,
        validator: ConfigValidator,
        logger: Logger,
        metrics: MetricsCollector,
        client_factory: Optional[Callable[[], Optional[KubernetesClient]]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config
        self.validator = validator
        self.logger = logger
        self.metrics = metrics
        self.base_dir = config.discovery_dir
        self.node_name = config.node_name
        self.client_factory = client_factory or self._in_cluster_client
        self.clock = clock
        self.last_run_time: Optional[float] = None
        self.client: Optional[KubernetesClient] = None
        self.own_namespace = "default"

    def should_discover(self, upstream_dir: str) -> bool:
        """Return True if the promoted upstream configuration consumes discovery sources."""
        return config_uses_discovery(upstream_dir)

    def _in_cluster_client(self) -> Optional[KubernetesClient]:
        host = os.getenv("KUBERNETES_SERVICE_HOST")
        if not host:
            return None
        sa_path = self.config.service_account_path
        token_path = os.path.join(sa_path, "token")
        ca_path = os.path.join(sa_path, "ca.crt")
        namespace_path = os.path.join(sa_path, "namespace")
        if not all(os.path.isfile(p) for p in (token_path, ca_path, namespace_path)):
            return None

        with open(token_path, "r") as f:
            token = f.read().strip()
        with open(namespace_path, "r") as f:
            self.own_namespace = f.read().strip() or "default"

        port = os.getenv("KUBERNETES_SERVICE_PORT", "443")
        return KubernetesClient(
            f"https://{host}:{port}",
            token=token,
            ca_path=ca_path,
            timeout=self.config.request_timeout_seconds,
        )

    def run(self) -> bool:
        """Run one discovery pass.

        Returns:
            True if a new, changed generation was retained
        """
        now = self.clock()
        if self.last_run_time is not None and now - self.last_run_time < self.config.discovery_min_interval_seconds:
            self.logger.debug("Kubernetes discovery rate limited")
            return False
        self.last_run_time = now

        client = self.client_factory()
        if client is None:
            self.logger.debug("Not running in Kubernetes, skipping discovery")
            self.metrics.increment("collector_discovery_runs_total", tags={"outcome": "not_in_cluster"})
            return False
        self.client = client

        try:
            return self._discover_and_update()
        except Exception as e:
            self.logger.error("Kubernetes discovery failed", error_type=type(e).__name__, error=str(e))
            self.metrics.increment("collector_discovery_runs_total", tags={"outcome": "error"})
            return False

    def _discover_and_update(self) -> bool:
        previous = latest_discovery_generation(self.base_dir)
        new_dir = self._new_generation_dir()

        try:
            endpoints = self.discover()
            for endpoint in endpoints.values():
                filename, content = generate_fragment(endpoint)
                with open(os.path.join(new_dir, filename), "w") as f:
                    f.write(content)
            with open(os.path.join(new_dir, DISCOVERED_PODS_FILE), "w") as f:
                f.write(dump_yaml(discovered_pods_config(len(endpoints))))
        except Exception:
            shutil.rmtree(new_dir, ignore_errors=True)
            raise

        self.metrics.gauge("collector_discovered_targets", float(len(endpoints)))

        output = self.validate_generation(new_dir)
        if output is not None:
            self.logger.error("Kubernetes discovery validation failed", output=output)
            shutil.rmtree(new_dir, ignore_errors=True)
            self.metrics.increment("collector_discovery_runs_total", tags={"outcome": "invalid"})
            return False

        if previous is not None and generations_identical(previous, new_dir):
            shutil.rmtree(new_dir, ignore_errors=True)
            self.metrics.increment("collector_discovery_runs_total", tags={"outcome": "unchanged"})
            return False

        self.logger.info("Kubernetes discovery generated configs", targets=len(endpoints), generation=new_dir)
        self.cleanup_old_generations()
        self.metrics.increment("collector_discovery_runs_total", tags={"outcome": "changed"})
        return True

    def _new_generation_dir(self) -> str:
        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S")
        new_dir = os.path.join(self.base_dir, timestamp)
        suffix = 0
        while os.path.exists(new_dir):
            suffix += 1
            new_dir = os.path.join(self.base_dir, f"{timestamp}.{suffix}")
        os.makedirs(new_dir)
        return new_dir

    def validate_generation(self, generation_dir: str) -> Optional[str]:
        tmp_dir = tempfile.mkdtemp(prefix="validate-kubernetes-discovery-")
        try:
            fragments_dir = os.path.join(tmp_dir, "kubernetes-discovery")
            shutil.copytree(generation_dir, fragments_dir)
            vector_yaml = os.path.join(tmp_dir, "vector.yaml")
            with open(vector_yaml, "w") as f:
                f.write(dump_yaml(DUMMY_VECTOR_CONFIG))
            return self.validator.validate([vector_yaml, os.path.join(fragments_dir, "*.yaml")])
        finally:
            shutil.rmtree(tmp_dir, ignore_errors=True)

    def cleanup_old_generations(self, keep_count: Optional[int] = None) -> None:
        keep_count = self.config.discovery_retention if keep_count is None else keep_count
        generations = sorted(
            name for name in os.listdir(self.base_dir)
            if name != DEFAULT_GENERATION and os.path.isdir(os.path.join(self.base_dir, name))
        )
        for name in generations[:max(len(generations) - keep_count, 0)]:
            self.logger.debug("Removing old kubernetes-discovery generation", generation=name)
            shutil.rmtree(os.path.join(self.base_dir, name), ignore_errors=True)

    def discover(self) -> Dict[str, DiscoveredEndpoint]:
        """Collect scrape targets keyed by ``<namespace>_<pod or service>``.

        Service endpoints are collected first; an annotated pod already
        reached through a service is not emitted again.
        """
        discovered: Dict[str, DiscoveredEndpoint] = {}
        for namespace in self.get_namespaces():
            for service in self.get_annotated_services(namespace):
                for endpoint in self.get_service_endpoints(service, namespace):
                    discovered.setdefault(endpoint.name, endpoint)

            for pod in self.get_annotated_pods(namespace):
                endpoint = self.get_pod_endpoint(pod, namespace)
                if endpoint is not None:
                    discovered.setdefault(endpoint.name, endpoint)
        return discovered

    def get_namespaces(self) -> List[str]:
        try:
            result = self.client.get("/api/v1/namespaces")
            return [ns["metadata"]["name"] for ns in result.get("items", [])]
        except KubernetesAPIError as e:
            self.logger.warning(
                "Failed to list namespaces, using current namespace",
                namespace=self.own_namespace,
                error=str(e),
            )
            return [self.own_namespace]

    def get_annotated_services(self, namespace: str) -> List[Dict[str, Any]]:
        services = self.client.get(f"/api/v1/namespaces/{namespace}/services")
        return [
            service for service in services.get("items", [])
            if (service.get("metadata", {}).get("annotations") or {}).get(SCRAPE_ANNOTATION) == "true"
        ]

    def get_annotated_pods(self, namespace: str) -> List[Dict[str, Any]]:
        pods = self.client.get(f"/api/v1/namespaces/{namespace}/pods")
        selected = []
        for pod in pods.get("items", []):
            annotations = pod.get("metadata", {}).get("annotations") or {}
            if annotations.get(SCRAPE_ANNOTATION) != "true":
                continue
            if (pod.get("status") or {}).get("phase") != "Running":
                continue
            if self.node_name and (pod.get("spec") or {}).get("nodeName") != self.node_name:
                continue
            selected.append(pod)
        return selected

    def get_service_endpoints(self, service: Dict[str, Any], namespace: str) -> List[DiscoveredEndpoint]:
        metadata = service["metadata"]
        service_name = metadata["name"]
        annotations = metadata.get("annotations") or {}
        port = annotations.get(PORT_ANNOTATION, DEFAULT_PORT)
        path = annotations.get(PATH_ANNOTATION, DEFAULT_PATH)

        endpoints = self.client.get(f"/api/v1/namespaces/{namespace}/endpoints/{service_name}")

        results = []
        for subset in endpoints.get("subsets") or []:
            for address in subset.get("addresses") or []:
                pod_name = (address.get("targetRef") or {}).get("name")
                pod = None
                if pod_name:
                    try:
                        pod = self.client.get(f"/api/v1/namespaces/{namespace}/pods/{pod_name}")
                    except KubernetesAPIError as e:
                        self.logger.warning("Failed to get pod info", pod=pod_name, error=str(e))

                if self.node_name:
                    # Node filtering needs a confirmed placement
                    if pod is None or (pod.get("spec") or {}).get("nodeName") != self.node_name:
                        continue

                endpoint = DiscoveredEndpoint(
                    name=f"{namespace}_{pod_name or service_name}",
                    endpoint=f"http://{address['ip']}:{port}{path}",
                    namespace=namespace,
                    pod=pod_name,
                    service=service_name,
                )
                if pod is not None:
                    self._apply_pod_metadata(endpoint, pod, namespace)
                results.append(endpoint)
        return results

    def get_pod_endpoint(self, pod: Dict[str, Any], namespace: str) -> Optional[DiscoveredEndpoint]:
        metadata = pod["metadata"]
        pod_ip = (pod.get("status") or {}).get("podIP")
        if not pod_ip:
            return None

        annotations = metadata.get("annotations") or {}
        port = annotations.get(PORT_ANNOTATION, DEFAULT_PORT)
        path = annotations.get(PATH_ANNOTATION, DEFAULT_PATH)

        endpoint = DiscoveredEndpoint(
            name=f"{namespace}_{metadata['name']}",
            endpoint=f"http://{pod_ip}:{port}{path}",
            namespace=namespace,
            pod=metadata["name"],
        )
        self._apply_pod_metadata(endpoint, pod, namespace)
        return endpoint

    def _apply_pod_metadata(self, endpoint: DiscoveredEndpoint, pod: Dict[str, Any], namespace: str) -> None:
        endpoint.pod_uid = pod.get("metadata", {}).get("uid")
        endpoint.node_name = (pod.get("spec") or {}).get("nodeName")
        endpoint.start_time = (pod.get("status") or {}).get("startTime")
        endpoint.container_names = [c["name"] for c in (pod.get("spec") or {}).get("containers") or []]
        endpoint.workload = self.get_workload_info(pod, namespace)

    def get_workload_info(self, pod: Dict[str, Any], namespace: str) -> WorkloadInfo:
        """Resolve the owning workload from the pod's first owner reference.

        ReplicaSets are resolved one level further to their Deployment.
        """
        info = WorkloadInfo()
        owner_refs = pod.get("metadata", {}).get("ownerReferences") or []
        if not owner_refs:
            return info

        kind = owner_refs[0].get("kind")
        name = owner_refs[0].get("name")
        if kind == "ReplicaSet":
            info.replicaset = name
            try:
                replicaset = self.client.get(f"/apis/apps/v1/namespaces/{namespace}/replicasets/{name}")
                rs_owners = replicaset.get("metadata", {}).get("ownerReferences") or []
                if rs_owners and rs_owners[0].get("kind") == "Deployment":
                    info.deployment = rs_owners[0].get("name")
            except KubernetesAPIError as e:
                self.logger.warning("Failed to get ReplicaSet info", replicaset=name, error=str(e))
        elif kind == "Deployment":
            info.deployment = name
        elif kind == "StatefulSet":
            info.statefulset = name
        elif kind == "DaemonSet":
            info.daemonset = name
        return info
