# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Telemetry Collector contributors

import os
import socket
from dataclasses import dataclass, field, fields
from typing import Any, Dict, Optional

import yaml

from .exceptions import ConfigurationError

HOST_HOSTNAME_PATH = "/host/proc/sys/kernel/hostname"


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {value!r}")


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("true", "1", "yes")


def resolve_hostname(host_hostname_path: str = HOST_HOSTNAME_PATH) -> str:
    """Resolve the node hostname.

    Prefers the HOSTNAME env var, then the host's kernel hostname when the
    host /proc is mounted into the container, then the local socket hostname.
    """
    hostname = os.getenv("HOSTNAME")
    if hostname:
        return hostname
    try:
        with open(host_hostname_path, "r") as f:
            hostname = f.read().strip()
        if hostname:
            return hostname
    except OSError:
        pass
    return socket.gethostname()


@dataclass
class AgentConfig:
    """Collector agent configuration."""
    collector_secret: str
    working_dir: str = "/var/lib/collector"
    base_url: str = "https://telemetry.betterstack.com"
    cluster_collector_override: bool = False
    hostname: Optional[str] = None
    collector_version: Optional[str] = None
    vector_version: Optional[str] = None
    beyla_version: Optional[str] = None
    cluster_agent_version: Optional[str] = None
    enrichment_dir: str = "/enrichment"
    ssl_dir: str = "/etc/ssl"
    ssl_domain_file: str = "/etc/ssl_certificate_host.txt"
    vector_binary: str = "vector"
    reload_command: str = "supervisorctl signal HUP vector"
    certbot_restart_command: str = "supervisorctl -c /etc/supervisor/conf.d/supervisord.conf restart certbot"
    validation_timeout_seconds: int = 120
    request_timeout_seconds: int = 30
    node_name: Optional[str] = None
    service_account_path: str = "/var/run/secrets/kubernetes.io/serviceaccount"
    discovery_min_interval_seconds: int = 30
    discovery_retention: int = 5
    versions_retention: int = 10
    tick_interval_seconds: int = 15
    ping_every_ticks: int = 2
    http_host: str = "127.0.0.1"
    http_port: int = 33000
    vector_metrics_url: str = "http://localhost:39090/"
    metrics_port: int = 9108
    log_level: str = "INFO"
    log_type: str = "stdout"
    logger_name: str = "collector"
    metrics_backend: str = "noop"
    error_reporter_type: str = "console"  # "console", "silent"
    extra: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not self.collector_secret:
            raise ConfigurationError("COLLECTOR_SECRET is required")
        self.base_url = self.base_url.rstrip("/")
        if self.ping_every_ticks < 1:
            raise ConfigurationError("ping_every_ticks must be at least 1")

    @property
    def versions_dir(self) -> str:
        return os.path.join(self.working_dir, "versions")

    @property
    def vector_config_dir(self) -> str:
        return os.path.join(self.working_dir, "vector-config")

    @property
    def downloads_dir(self) -> str:
        return os.path.join(self.working_dir, "downloads")

    @property
    def discovery_dir(self) -> str:
        return os.path.join(self.working_dir, "kubernetes-discovery")

    @property
    def errors_file(self) -> str:
        return os.path.join(self.working_dir, "errors.txt")

    def get_hostname(self) -> str:
        """Return the configured hostname, resolving and caching it on first use."""
        if not self.hostname:
            self.hostname = resolve_hostname()
        return self.hostname

    @staticmethod
    def _env_values() -> Dict[str, Any]:
        return {
            "collector_secret": os.getenv("COLLECTOR_SECRET", ""),
            "working_dir": os.getenv("WORKING_DIR", "/var/lib/collector"),
            "base_url": os.getenv("BASE_URL", "https://telemetry.betterstack.com"),
            "cluster_collector_override": _env_bool("CLUSTER_COLLECTOR"),
            "hostname": os.getenv("HOSTNAME") or None,
            "collector_version": os.getenv("COLLECTOR_VERSION"),
            "vector_version": os.getenv("VECTOR_VERSION"),
            "beyla_version": os.getenv("BEYLA_VERSION"),
            "cluster_agent_version": os.getenv("CLUSTER_AGENT_VERSION"),
            "enrichment_dir": os.getenv("ENRICHMENT_DIR", "/enrichment"),
            "ssl_dir": os.getenv("SSL_DIR", "/etc/ssl"),
            "ssl_domain_file": os.getenv("SSL_DOMAIN_FILE", "/etc/ssl_certificate_host.txt"),
            "vector_binary": os.getenv("VECTOR_BINARY", "vector"),
            "reload_command": os.getenv("VECTOR_RELOAD_COMMAND", "supervisorctl signal HUP vector"),
            "certbot_restart_command": os.getenv(
                "CERTBOT_RESTART_COMMAND",
                "supervisorctl -c /etc/supervisor/conf.d/supervisord.conf restart certbot",
            ),
            "validation_timeout_seconds": _env_int("VALIDATION_TIMEOUT_SECONDS", 120),
            "request_timeout_seconds": _env_int("REQUEST_TIMEOUT_SECONDS", 30),
            "node_name": os.getenv("NODE_NAME") or os.getenv("HOSTNAME") or None,
            "service_account_path": os.getenv(
                "KUBERNETES_SERVICE_ACCOUNT_PATH",
                "/var/run/secrets/kubernetes.io/serviceaccount",
            ),
            "versions_retention": _env_int("VERSIONS_RETENTION", 10),
            "tick_interval_seconds": _env_int("TICK_INTERVAL_SECONDS", 15),
            "ping_every_ticks": _env_int("PING_EVERY_TICKS", 2),
            "http_host": os.getenv("HTTP_HOST", "127.0.0.1"),
            "http_port": _env_int("HTTP_PORT", 33000),
            "vector_metrics_url": os.getenv("VECTOR_METRICS_URL", "http://localhost:39090/"),
            "metrics_port": _env_int("METRICS_PORT", 9108),
            "log_level": os.getenv("LOG_LEVEL", "INFO"),
            "log_type": os.getenv("LOG_TYPE", "stdout"),
            "logger_name": os.getenv("LOG_NAME", "collector"),
            "metrics_backend": os.getenv("METRICS_BACKEND", "noop"),
            "error_reporter_type": os.getenv("ERROR_REPORTER_TYPE", "console"),
        }

    @classmethod
    def from_env(cls) -> "AgentConfig":
        """Load configuration from environment variables.

        Raises:
            ConfigurationError: If COLLECTOR_SECRET is missing or a numeric
                variable cannot be parsed
        """
        return cls(**cls._env_values())

    @classmethod
    def from_yaml_file(cls, filepath: str) -> "AgentConfig":
        """Load configuration from the environment, overlaid by a YAML file.

        Keys in the file matching field names replace the environment values;
        unknown keys are kept in ``extra``. A missing file leaves the
        environment configuration unchanged.

        Args:
            filepath: Path to YAML configuration file
        """
        values = cls._env_values()
        if not os.path.exists(filepath):
            return cls(**values)

        with open(filepath, "r") as f:
            yaml_config = yaml.safe_load(f) or {}
        if not isinstance(yaml_config, dict):
            raise ConfigurationError(f"{filepath} must contain a mapping")

        known = {f.name for f in fields(cls)} - {"extra"}
        values.update({k: v for k, v in yaml_config.items() if k in known})
        values["extra"] = {k: v for k, v in yaml_config.items() if k not in known}
        return cls(**values)
