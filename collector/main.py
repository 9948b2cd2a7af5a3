# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Telemetry Collector contributors

"""Collector agent: continuous configuration sync with the telemetry control plane."""

import os
import signal
import sys

# Add app directory to path
sys.path.insert(0, os.path.dirname(__file__))

from fastapi import FastAPI
import uvicorn

from collector_logging import create_logger, create_uvicorn_log_config
from collector_metrics import create_metrics_collector
from collector_reporting import create_error_reporter

from app import __version__
from app.api import create_api_router
from app.config import AgentConfig
from app.scheduler import SyncScheduler
from app.service import ConfigSyncService

# Bootstrap logger before configuration is loaded
bootstrap_logger = create_logger(logger_type="stdout", level="INFO", name="collector-bootstrap")

# Create FastAPI app
app = FastAPI(title="Collector Agent", version=__version__)

# Global service instance and scheduler
sync_service = None
scheduler = None


@app.get("/health")
def health():
    """Health check endpoint."""
    status = sync_service.get_status() if sync_service is not None else {}

    return {
        "status": "healthy",
        "service": "collector",
        "version": __version__,
        "scheduler_running": scheduler.is_running() if scheduler else False,
        "cluster_collector": status.get("cluster_collector", False),
        "configuration_version": status.get("configuration_version"),
        "last_cycle_at": status.get("last_cycle_at"),
        "last_ping_status": status.get("last_ping_status"),
    }


def signal_handler(signum, frame):
    """Handle shutdown signals."""
    bootstrap_logger.info("Received shutdown signal", signal=signum)

    if scheduler:
        scheduler.stop()

    sys.exit(0)


def fatal_handler(error: Exception) -> None:
    """Terminate the process when the control plane rejects the collector secret."""
    bootstrap_logger.error("Fatal error, exiting", error=str(error))
    # Called from the scheduler thread, so sys.exit would only end that thread
    os._exit(1)


def main():
    """Main entry point for the collector agent."""
    global sync_service, scheduler

    log = bootstrap_logger
    log.info("Starting Collector Agent", version=__version__)

    try:
        config_path = os.getenv("COLLECTOR_CONFIG_FILE")
        config = AgentConfig.from_yaml_file(config_path) if config_path else AgentConfig.from_env()

        # Recreate logger with configured settings
        log = create_logger(
            logger_type=config.log_type,
            level=config.log_level,
            name=config.logger_name,
        )

        # Build metrics collector, fall back to NoOp if backend unavailable
        try:
            metrics = create_metrics_collector(backend=config.metrics_backend)
        except Exception as e:
            from collector_metrics import NoOpMetricsCollector

            log.warning(
                "Metrics backend unavailable; falling back to NoOp",
                backend=config.metrics_backend,
                error=str(e),
            )
            metrics = NoOpMetricsCollector()

        log.info(
            "Logger configured",
            log_level=config.log_level,
            log_type=config.log_type,
            metrics_backend=config.metrics_backend,
        )

        # Start Prometheus metrics endpoint when enabled so Prometheus can scrape /metrics
        if config.metrics_backend.lower() == "prometheus":
            try:
                from prometheus_client import start_http_server

                start_http_server(config.metrics_port)
                log.info("Prometheus metrics server started", port=config.metrics_port)
            except Exception as e:
                log.warning(
                    "Failed to start Prometheus metrics server",
                    port=config.metrics_port,
                    error=str(e),
                )

        error_reporter = create_error_reporter(reporter_type=config.error_reporter_type, logger=log)

        sync_service = ConfigSyncService(
            config,
            logger=log,
            metrics=metrics,
            error_reporter=error_reporter,
        )
        sync_service.recover()

        # Mount API routes
        app.include_router(create_api_router(sync_service, log, config.vector_metrics_url))
        log.info("API routes configured")

        scheduler = SyncScheduler(
            service=sync_service,
            tick_interval_seconds=config.tick_interval_seconds,
            ping_every_ticks=config.ping_every_ticks,
            logger=log,
            on_fatal=fatal_handler,
        )
        scheduler.start()

        # Register signal handlers for graceful shutdown
        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

        log.info(f"Starting HTTP server on {config.http_host}:{config.http_port}...")

        # Configure Uvicorn with structured JSON logging
        log_config = create_uvicorn_log_config(service_name="collector", log_level=config.log_level)
        uvicorn.run(app, host=config.http_host, port=config.http_port, log_config=log_config)

    except Exception as e:
        log.error("Fatal error in collector agent", error=str(e), exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
