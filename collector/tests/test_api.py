# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Telemetry Collector contributors

"""Tests for the local HTTP API."""

from unittest.mock import MagicMock, patch

import pytest
import requests
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.api import create_api_router

METRICS_URL = "http://localhost:39090/"


class StubService:
    def __init__(self):
        self.cluster_collector = False
        self.database_json = "{}"

    def latest_database_json(self):
        return self.database_json


@pytest.fixture
def stub_service():
    return StubService()


@pytest.fixture
def client(stub_service, logger):
    app = FastAPI()
    app.include_router(create_api_router(stub_service, logger, METRICS_URL))
    return TestClient(app)


def _upstream(status_code=200, content=b"", headers=None):
    response = MagicMock()
    response.status_code = status_code
    response.content = content
    response.headers = headers or {}
    return response


class TestConfigEndpoint:
    """Tests for GET /v1/config."""

    def test_returns_latest_database_json(self, client, stub_service):
        stub_service.database_json = '{"db-1": {"service": "orders"}}'

        response = client.get("/v1/config")

        assert response.status_code == 200
        assert response.headers["content-type"] == "application/json"
        assert response.json() == {"db-1": {"service": "orders"}}

    def test_empty_object_without_version(self, client):
        assert client.get("/v1/config").json() == {}


class TestClusterAgentEnabled:
    """Tests for GET /v1/cluster-agent-enabled."""

    def test_no(self, client):
        response = client.get("/v1/cluster-agent-enabled")

        assert response.status_code == 200
        assert response.text == "no"

    def test_yes(self, client, stub_service):
        stub_service.cluster_collector = True

        assert client.get("/v1/cluster-agent-enabled").text == "yes"


class TestMetricsProxy:
    """Tests for /v1/metrics."""

    def test_get_forwarded(self, client):
        upstream = _upstream(200, b"vector_up 1\n", {"Content-Type": "text/plain", "Transfer-Encoding": "chunked"})
        with patch("app.api.requests.request", return_value=upstream) as request:
            response = client.get("/v1/metrics")

        assert response.status_code == 200
        assert response.content == b"vector_up 1\n"
        assert response.headers["content-type"] == "text/plain"
        args, kwargs = request.call_args
        assert args == ("GET", METRICS_URL)
        assert "host" not in {k.lower() for k in kwargs["headers"]}
        assert kwargs["data"] is None

    def test_post_body_forwarded(self, client):
        with patch("app.api.requests.request", return_value=_upstream(204)) as request:
            response = client.post("/v1/metrics", content=b"payload")

        assert response.status_code == 204
        assert request.call_args[1]["data"] == b"payload"

    def test_upstream_status_preserved(self, client):
        with patch("app.api.requests.request", return_value=_upstream(503, b"starting")):
            response = client.get("/v1/metrics")

        assert response.status_code == 503
        assert response.content == b"starting"

    def test_bad_gateway(self, client, logger):
        with patch("app.api.requests.request", side_effect=requests.ConnectionError("refused")):
            response = client.get("/v1/metrics")

        assert response.status_code == 502
        assert response.text == "Bad Gateway: refused"
        assert logger.has_log("Bad Gateway error", "WARNING")
