# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Telemetry Collector contributors

"""Tests for Kubernetes discovery."""

import os

import pytest
import yaml

from app.kubernetes_discovery import (
    DISCOVERED_PODS_FILE,
    KubernetesDiscovery,
    generate_fragment,
    write_default_generation,
)
from app.models import DiscoveredEndpoint, WorkloadInfo
from app.vector_config import DEFAULT_GENERATION, latest_discovery_generation


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def discovery(agent_config, fake_validator, logger, metrics, kubernetes_client_factory, clock):
    agent_config.node_name = "node-a"
    write_default_generation(agent_config.discovery_dir)
    return KubernetesDiscovery(
        agent_config,
        fake_validator,
        logger,
        metrics,
        client_factory=kubernetes_client_factory,
        clock=clock,
    )


def _cluster(pods=(), services=(), endpoints=None, extra=None):
    """API responses for a single 'default' namespace."""
    responses = {
        "/api/v1/namespaces": {"items": [{"metadata": {"name": "default"}}]},
        "/api/v1/namespaces/default/services": {"items": list(services)},
        "/api/v1/namespaces/default/pods": {"items": list(pods)},
    }
    for pod in pods:
        responses[f"/api/v1/namespaces/default/pods/{pod['metadata']['name']}"] = pod
    for name, body in (endpoints or {}).items():
        responses[f"/api/v1/namespaces/default/endpoints/{name}"] = body
    responses.update(extra or {})
    return responses


def _generations(discovery):
    return sorted(
        name for name in os.listdir(discovery.base_dir)
        if name != DEFAULT_GENERATION
    )


def _fragments(generation_dir):
    return sorted(n for n in os.listdir(generation_dir) if n != DISCOVERED_PODS_FILE)


class TestGenerateFragment:
    """Tests for fragment rendering."""

    def test_stable_name_and_tags(self):
        endpoint = DiscoveredEndpoint(
            name="default_web-1",
            endpoint="http://10.0.0.1:9090/metrics",
            namespace="default",
            pod="web-1",
            node_name="node-a",
            container_names=["app", "sidecar"],
            workload=WorkloadInfo(deployment="web", replicaset="web-abc"),
        )

        filename, content = generate_fragment(endpoint)

        assert filename.startswith("default_web-1-")
        assert filename == generate_fragment(endpoint)[0]
        config = yaml.safe_load(content)
        source = config["sources"]["prometheus_scrape_default_web-1"]
        assert source["endpoints"] == ["http://10.0.0.1:9090/metrics"]
        remap = config["transforms"]["kubernetes_discovery_default_web-1"]
        assert remap["inputs"] == ["prometheus_scrape_default_web-1"]
        assert '.tags."k8s.deployment.name" = "web"' in remap["source"]
        assert '.tags."k8s.container.name" = "app,sidecar"' in remap["source"]
        assert "k8s.statefulset.name" not in remap["source"]

    def test_service_without_pod_keeps_pod_tag(self):
        endpoint = DiscoveredEndpoint(
            name="default_api",
            endpoint="http://10.0.0.9:8080/metrics",
            namespace="default",
            service="api",
        )

        _, content = generate_fragment(endpoint)

        assert '.tags."k8s.pod.name" = ""' in content


class TestDiscover:
    """Tests for target collection."""

    def test_annotated_running_pod_on_this_node(self, discovery, make_kubernetes_client, pod_factory):
        make_kubernetes_client(_cluster(pods=[
            pod_factory("web-1", port=8080),
            pod_factory("other-node", node="node-b"),
            pod_factory("pending", phase="Pending"),
            pod_factory("plain", annotated=False),
        ]))
        discovery.client = discovery.client_factory()

        targets = discovery.discover()

        assert list(targets) == ["default_web-1"]
        assert targets["default_web-1"].endpoint == "http://10.0.0.1:8080/metrics"

    def test_service_and_pod_deduplicated(self, discovery, make_kubernetes_client, pod_factory):
        pod = pod_factory("web-1")
        service = {"metadata": {"name": "web", "annotations": {"prometheus.io/scrape": "true"}}}
        endpoints = {"web": {"subsets": [{"addresses": [{"ip": "10.0.0.1", "targetRef": {"name": "web-1"}}]}]}}
        make_kubernetes_client(_cluster(pods=[pod], services=[service], endpoints=endpoints))
        discovery.client = discovery.client_factory()

        targets = discovery.discover()

        assert list(targets) == ["default_web-1"]
        assert targets["default_web-1"].service == "web"

    def test_service_endpoint_on_other_node_skipped(self, discovery, make_kubernetes_client, pod_factory):
        pod = pod_factory("web-1", node="node-b", annotated=False)
        service = {"metadata": {"name": "web", "annotations": {"prometheus.io/scrape": "true"}}}
        endpoints = {"web": {"subsets": [{"addresses": [
            {"ip": "10.0.0.1", "targetRef": {"name": "web-1"}},
            {"ip": "10.0.0.2"},
        ]}]}}
        make_kubernetes_client(_cluster(pods=[pod], services=[service], endpoints=endpoints))
        discovery.client = discovery.client_factory()

        assert discovery.discover() == {}

    def test_replicaset_resolves_deployment(self, discovery, make_kubernetes_client, pod_factory):
        pod = pod_factory("web-1", owner=("ReplicaSet", "web-abc"))
        replicaset = {"metadata": {"ownerReferences": [{"kind": "Deployment", "name": "web"}]}}
        make_kubernetes_client(_cluster(
            pods=[pod],
            extra={"/apis/apps/v1/namespaces/default/replicasets/web-abc": replicaset},
        ))
        discovery.client = discovery.client_factory()

        workload = discovery.discover()["default_web-1"].workload

        assert workload.replicaset == "web-abc"
        assert workload.deployment == "web"

    def test_namespace_listing_forbidden_uses_own_namespace(self, discovery, make_kubernetes_client, pod_factory):
        responses = _cluster(pods=[pod_factory("web-1")])
        del responses["/api/v1/namespaces"]
        make_kubernetes_client(responses)
        discovery.client = discovery.client_factory()

        assert list(discovery.discover()) == ["default_web-1"]


class TestRun:
    """Tests for generation management."""

    def test_not_in_cluster(self, discovery, metrics):
        assert discovery.run() is False

        assert _generations(discovery) == []
        assert metrics.get_counter_total("collector_discovery_runs_total", {"outcome": "not_in_cluster"}) == 1

    def test_new_targets_create_generation(self, discovery, make_kubernetes_client, pod_factory, metrics):
        make_kubernetes_client(_cluster(pods=[pod_factory("web-1")]))

        assert discovery.run() is True

        generations = _generations(discovery)
        assert len(generations) == 1
        latest = latest_discovery_generation(discovery.base_dir)
        assert len(_fragments(latest)) == 1
        with open(os.path.join(latest, DISCOVERED_PODS_FILE)) as f:
            assert "value: 1" in f.read()
        assert metrics.get_gauge_value("collector_discovered_targets") == 1.0

    def test_unchanged_cluster_is_idempotent(self, discovery, make_kubernetes_client, pod_factory, clock):
        make_kubernetes_client(_cluster(pods=[pod_factory("web-1")]))
        assert discovery.run() is True
        first = _generations(discovery)

        clock.now += 60
        assert discovery.run() is False

        assert _generations(discovery) == first

    def test_empty_cluster_matches_default_generation(self, discovery, make_kubernetes_client):
        make_kubernetes_client(_cluster())

        assert discovery.run() is False
        assert _generations(discovery) == []

    def test_rate_limited(self, discovery, agent_config, make_kubernetes_client, pod_factory, clock):
        agent_config.discovery_min_interval_seconds = 30
        client = make_kubernetes_client(_cluster(pods=[pod_factory("web-1")]))
        discovery.run()
        request_count = len(client.requests)

        clock.now += 10
        assert discovery.run() is False

        assert len(client.requests) == request_count

    def test_invalid_generation_discarded(self, discovery, make_kubernetes_client, pod_factory,
                                          fake_validator, metrics):
        make_kubernetes_client(_cluster(pods=[pod_factory("web-1")]))
        fake_validator.fail_when = lambda paths: "bad fragment"

        assert discovery.run() is False

        assert _generations(discovery) == []
        assert metrics.get_counter_total("collector_discovery_runs_total", {"outcome": "invalid"}) == 1

    def test_api_failure_reported_as_error(self, discovery, make_kubernetes_client, metrics):
        responses = _cluster()
        del responses["/api/v1/namespaces/default/services"]
        make_kubernetes_client(responses)

        assert discovery.run() is False

        assert _generations(discovery) == []
        assert metrics.get_counter_total("collector_discovery_runs_total", {"outcome": "error"}) == 1

    def test_old_generations_pruned(self, discovery):
        for i in range(7):
            os.makedirs(os.path.join(discovery.base_dir, f"2025-01-01T00:00:0{i}"))

        discovery.cleanup_old_generations(keep_count=5)

        assert _generations(discovery) == [f"2025-01-01T00:00:0{i}" for i in range(2, 7)]
        assert os.path.isdir(os.path.join(discovery.base_dir, DEFAULT_GENERATION))
