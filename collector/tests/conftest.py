# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Telemetry Collector contributors

"""Pytest configuration and fixtures."""

import os
import sys
from pathlib import Path

import pytest

# Add parent directory to path so tests can import app module
sys.path.insert(0, str(Path(__file__).parent.parent))

from collector_logging import create_logger  # noqa: E402
from collector_metrics import NoOpMetricsCollector  # noqa: E402
from collector_reporting import SilentErrorReporter  # noqa: E402

from app.config import AgentConfig  # noqa: E402
from app.exceptions import KubernetesAPIError  # noqa: E402
from app.models import ConfigFile, PingResult  # noqa: E402
from app.service import ConfigSyncService  # noqa: E402
from app.validator import ConfigValidator, Supervisor, expand_patterns  # noqa: E402


def _read(path):
    with open(path, "rb") as f:
        return f.read()


class FakeValidator(ConfigValidator):
    """Records validated file sets; fails when ``fail_when`` returns a message."""

    def __init__(self):
        self.calls = []
        self.fail_when = None

    def validate(self, patterns):
        paths = expand_patterns(patterns)
        self.calls.append({os.path.basename(p): _read(p) for p in paths})
        if self.fail_when is not None:
            return self.fail_when(paths)
        return None


class FakeSupervisor(Supervisor):
    def __init__(self):
        self.reloads = 0
        self.certbot_restarts = 0

    def reload_vector(self):
        self.reloads += 1
        return True

    def restart_certbot(self):
        self.certbot_restarts += 1
        return True


class FakeControlPlane:
    """In-memory stand-in for ControlPlaneClient."""

    def __init__(self, base_url="https://cp.example.com"):
        self.base_url = base_url
        self.cluster = False
        self.ping_results = []
        self.pings = []
        self.configurations = {}
        self.files = {}
        self.downloads = []

    def announce(self, version, files):
        """Queue a ping announcing ``version`` made of ``{name: bytes}`` files."""
        self.ping_results.append(PingResult(status_code=200, new_version=version))
        entries = []
        for name, content in files.items():
            url = f"{self.base_url}/files/{version}/{name}"
            entries.append(ConfigFile(name=name, url=url))
            self.files[url] = content
        self.configurations[version] = entries

    def is_cluster_collector(self):
        if isinstance(self.cluster, Exception):
            raise self.cluster
        return self.cluster

    def ping(self, payload):
        self.pings.append(payload)
        if not self.ping_results:
            return PingResult(status_code=204)
        result = self.ping_results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result

    def fetch_configuration(self, version):
        entries = self.configurations[version]
        if isinstance(entries, Exception):
            raise entries
        return entries

    def download_file(self, url, path):
        self.downloads.append(url)
        if url not in self.files:
            return False
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "wb") as f:
            f.write(self.files[url])
        return True


class FakeKubernetesClient:
    """Answers Kubernetes API paths from a dict; missing paths raise 404."""

    def __init__(self, responses):
        self.responses = responses
        self.requests = []

    def get(self, path):
        self.requests.append(path)
        response = self.responses.get(path)
        if response is None:
            raise KubernetesAPIError(f"Kubernetes API request failed: 404 {path}", status_code=404)
        if isinstance(response, Exception):
            raise response
        return response


class FakeSystemInfo:
    def __init__(self, data=None):
        self.data = data
        self.reported = False

    def pending_payload(self):
        return None if self.reported or self.data is None else self.data

    def mark_as_reported(self):
        self.reported = True


@pytest.fixture
def agent_config(tmp_path):
    """Agent configuration rooted in a temporary directory."""
    return AgentConfig(
        collector_secret="test-secret",
        base_url="https://cp.example.com/",
        working_dir=str(tmp_path / "work"),
        hostname="node-a",
        enrichment_dir=str(tmp_path / "enrichment"),
        ssl_dir=str(tmp_path / "ssl"),
        ssl_domain_file=str(tmp_path / "ssl_certificate_host.txt"),
        discovery_min_interval_seconds=0,
    )


@pytest.fixture
def logger():
    return create_logger(logger_type="silent", level="DEBUG", name="collector-test")


@pytest.fixture
def metrics():
    return NoOpMetricsCollector()


@pytest.fixture
def error_reporter():
    return SilentErrorReporter()


@pytest.fixture
def fake_validator():
    return FakeValidator()


@pytest.fixture
def fake_supervisor():
    return FakeSupervisor()


@pytest.fixture
def control_plane():
    return FakeControlPlane()


@pytest.fixture
def kubernetes_client_factory():
    """Mutable holder for the Kubernetes client returned to discovery (None: not in cluster)."""
    holder = {"client": None}

    def factory():
        return holder["client"]

    factory.holder = holder
    return factory


@pytest.fixture
def service(agent_config, control_plane, fake_validator, fake_supervisor, logger, metrics,
            error_reporter, kubernetes_client_factory):
    """ConfigSyncService wired to in-memory collaborators, after startup recovery."""
    svc = ConfigSyncService(
        agent_config,
        control_plane=control_plane,
        validator=fake_validator,
        supervisor=fake_supervisor,
        logger=logger,
        metrics=metrics,
        error_reporter=error_reporter,
        system_info=FakeSystemInfo(),
        discovery_client_factory=kubernetes_client_factory,
    )
    svc.recover()
    return svc


def make_pod(name, namespace="default", node="node-a", ip="10.0.0.1", annotated=True,
             owner=None, phase="Running", port=None, containers=("app",)):
    """Build a minimal pod object as returned by the Kubernetes API."""
    annotations = {"prometheus.io/scrape": "true"} if annotated else {}
    if port:
        annotations["prometheus.io/port"] = str(port)
    metadata = {
        "name": name,
        "namespace": namespace,
        "uid": f"uid-{name}",
        "annotations": annotations,
    }
    if owner:
        metadata["ownerReferences"] = [{"kind": owner[0], "name": owner[1]}]
    return {
        "metadata": metadata,
        "spec": {"nodeName": node, "containers": [{"name": c} for c in containers]},
        "status": {"phase": phase, "podIP": ip, "startTime": "2025-01-01T00:00:00Z"},
    }


@pytest.fixture
def pod_factory():
    return make_pod


@pytest.fixture
def make_kubernetes_client(kubernetes_client_factory):
    """Install an in-memory Kubernetes API answering from ``{path: body}``."""
    def build(responses):
        client = FakeKubernetesClient(responses)
        kubernetes_client_factory.holder["client"] = client
        return client

    return build
