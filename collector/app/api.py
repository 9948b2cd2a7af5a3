# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Telemetry Collector contributors

"""Local HTTP API used by the cluster agent and the companion monitoring agent."""

from typing import Any, Dict

import requests
from fastapi import APIRouter, Request, Response
from fastapi.responses import PlainTextResponse
from starlette.concurrency import run_in_threadpool

from collector_logging import Logger

# Headers that must not be copied from the proxied response
EXCLUDED_RESPONSE_HEADERS = {
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailers",
    "transfer-encoding",
    "upgrade",
    "content-length",
    "content-encoding",
}


def create_api_router(service: Any, logger: Logger, metrics_url: str, timeout: int = 10) -> APIRouter:
    """Create the local API router.

    Args:
        service: ConfigSyncService instance
        logger: Logger instance
        metrics_url: Vector metrics endpoint proxied by /v1/metrics
        timeout: Proxy request timeout in seconds

    Returns:
        Configured APIRouter
    """
    router = APIRouter()

    @router.get("/v1/config")
    def get_config() -> Response:
        """Serve the latest databases.json for the cluster agent."""
        return Response(content=service.latest_database_json(), media_type="application/json")

    @router.get("/v1/cluster-agent-enabled", response_class=PlainTextResponse)
    def cluster_agent_enabled() -> str:
        """Answer whether this node should run the cluster agent."""
        return "yes" if service.cluster_collector else "no"

    @router.api_route("/v1/metrics", methods=["GET", "POST"])
    async def proxy_metrics(request: Request) -> Response:
        """Forward the request to Vector's metrics endpoint."""
        headers: Dict[str, str] = {
            k: v for k, v in request.headers.items() if k.lower() != "host"
        }
        body = await request.body() if request.method == "POST" else None

        try:
            upstream = await run_in_threadpool(
                requests.request,
                request.method,
                metrics_url,
                headers=headers,
                data=body,
                timeout=timeout,
            )
        except requests.RequestException as e:
            logger.warning("Bad Gateway error", url=metrics_url, error=str(e))
            return PlainTextResponse(f"Bad Gateway: {e}", status_code=502)

        response_headers = {
            k: v for k, v in upstream.headers.items()
            if k.lower() not in EXCLUDED_RESPONSE_HEADERS
        }
        return Response(
            content=upstream.content,
            status_code=upstream.status_code,
            headers=response_headers,
        )

    return router
