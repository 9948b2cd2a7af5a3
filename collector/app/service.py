# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Telemetry Collector contributors

import os
import re
import shutil
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from collector_logging import Logger, create_logger
from collector_metrics import MetricsCollector, create_metrics_collector
from collector_reporting import ErrorReporter, create_error_reporter

from .certificates import CertificateGate
from .config import AgentConfig
from .control_plane import ControlPlaneClient
from .enrichment import CONTAINERS_POLICY, DATABASES_POLICY, EnrichmentTableSync
from .error_state import ErrorState
from .exceptions import (
    AuthenticationError,
    ControlPlaneError,
    InvalidFilenameError,
    InvalidVersionError,
)
from .kubernetes_discovery import KubernetesClient, KubernetesDiscovery, write_default_generation
from .models import ConfigFile
from .system_info import EbpfCompatibilityChecker
from .validator import ConfigValidator, ProcessSupervisor, Supervisor, VectorValidator
from .vector_config import DEFAULT_GENERATION, ConfigPromoter

VERSION_PATTERN = re.compile(r"^[A-Za-z0-9:._-]+$")
DOMAIN_FILE_NAME = "ssl_certificate_host.txt"
DATABASES_CSV_NAME = "databases.csv"
DATABASES_JSON_NAME = "databases.json"
CONTAINERS_ERROR_PREFIX = "Validation failed for containers enrichment table"


def validate_version_id(version: Optional[str]) -> str:
    """Ensure a configuration version can be used as a directory name.

    Raises:
        InvalidVersionError: If the version is empty or not a plain name
    """
    if not version or version in (".", "..") or not VERSION_PATTERN.match(version):
        raise InvalidVersionError(version)
    return version


def validate_filename(filename: Optional[str], version: str) -> str:
    """Reject file names that would escape the version directory.

    Raises:
        InvalidFilenameError: If the name is empty, absolute or contains '..'
    """
    if not filename or ".." in filename or filename.startswith("/"):
        raise InvalidFilenameError(filename, version)
    return filename


class ConfigSyncService:
    """Keeps the local Vector configuration in sync with the control plane.

    One call to ``run_cycle`` pings the control plane, applies a newly
    announced configuration version, refreshes Kubernetes discovery and
    promotes a new composite configuration when either changed. Failures are
    persisted as a single error message reported on the next ping.
    """

    def __init__(
        self,
        config: AgentConfig,
        control_plane: Optional[ControlPlaneClient] = None,
        validator: Optional[ConfigValidator] = None,
        supervisor: Optional[Supervisor] = None,
        logger: Optional[Logger] = None,
        metrics: Optional[MetricsCollector] = None,
        error_reporter: Optional[ErrorReporter] = None,
        system_info: Optional[EbpfCompatibilityChecker] = None,
        discovery_client_factory: Optional[Callable[[], Optional[KubernetesClient]]] = None,
    ):
        """Initialize the sync service.

        Args:
            config: Agent configuration
            control_plane: Control plane client (optional)
            validator: Vector configuration validator (optional)
            supervisor: Process supervisor used to reload Vector and restart certbot (optional)
            logger: Structured logger for observability (optional)
            metrics: Metrics collector for observability (optional)
            error_reporter: Error reporter for unexpected failures (optional)
            system_info: One-shot system information provider (optional)
            discovery_client_factory: Kubernetes client factory for discovery (optional)
        """
        self.config = config
        self.logger = logger or create_logger(
            logger_type=config.log_type,
            level=config.log_level,
            name=config.logger_name,
        )
        self.metrics = metrics or create_metrics_collector(backend=config.metrics_backend)
        self.error_reporter = error_reporter or create_error_reporter(
            reporter_type=config.error_reporter_type,
            logger=self.logger,
        )
        self.control_plane = control_plane or ControlPlaneClient(config, self.logger)
        self.validator = validator or VectorValidator(
            self.logger,
            binary=config.vector_binary,
            timeout=config.validation_timeout_seconds,
        )
        self.supervisor = supervisor or ProcessSupervisor(
            self.logger,
            reload_command=config.reload_command,
            certbot_restart_command=config.certbot_restart_command,
        )
        self.system_info = system_info or EbpfCompatibilityChecker(config.working_dir, self.logger)

        self.error_state = ErrorState(config.errors_file)
        self.certificates = CertificateGate(
            config.ssl_domain_file, config.ssl_dir, self.supervisor, self.logger
        )
        self.promoter = ConfigPromoter(config, self.validator, self.supervisor, self.logger)
        self.discovery = KubernetesDiscovery(
            config,
            self.validator,
            self.logger,
            self.metrics,
            client_factory=discovery_client_factory,
        )
        self.containers_table = EnrichmentTableSync(
            os.path.join(config.enrichment_dir, "docker-mappings.csv"),
            os.path.join(config.enrichment_dir, "docker-mappings.incoming.csv"),
            CONTAINERS_POLICY,
        )
        self.databases_table = EnrichmentTableSync(
            os.path.join(config.enrichment_dir, "databases.csv"),
            os.path.join(config.enrichment_dir, "databases.incoming.csv"),
            DATABASES_POLICY,
        )

        self.cluster_collector = False
        self.last_cycle_at: Optional[str] = None
        self.last_ping_status: Optional[int] = None
        self._bootstrap_pending = False
        self._cycle_failed = False
        self._databases_promoted = False

    def recover(self) -> None:
        """Prepare the working directory and clean up after an interrupted run."""
        os.makedirs(self.config.versions_dir, exist_ok=True)
        shutil.rmtree(self.config.downloads_dir, ignore_errors=True)
        self.promoter.recover()
        write_default_generation(self.config.discovery_dir)

        self._bootstrap_pending = self.promoter.needs_bootstrap()
        if self._bootstrap_pending:
            self.logger.info("No active configuration, will promote latest-valid-upstream on next cycle")

    def _record_error(self, message: str) -> None:
        self.logger.error("Recording error", error=message)
        self.error_state.write(message)
        self._cycle_failed = True

    def _clear_error(self, resolved: bool = False) -> None:
        # An error recorded during this cycle must reach the next ping
        if self._cycle_failed:
            return
        if self.error_state.clear(resolved=resolved):
            self.logger.info("Cleared persisted error", resolved=resolved)

    def _version_names(self) -> List[str]:
        versions_dir = self.config.versions_dir
        if not os.path.isdir(versions_dir):
            return []
        return sorted(
            name for name in os.listdir(versions_dir)
            if name != DEFAULT_GENERATION and os.path.isdir(os.path.join(versions_dir, name))
        )

    def latest_version(self) -> Optional[str]:
        names = self._version_names()
        return names[-1] if names else None

    def latest_database_json(self) -> str:
        """Return databases.json from the latest version, or an empty object."""
        version = self.latest_version()
        if version is None:
            return "{}"
        path = os.path.join(self.config.versions_dir, version, DATABASES_JSON_NAME)
        if not os.path.isfile(path):
            return "{}"
        with open(path, "r") as f:
            return f.read()

    def _prune_versions(self) -> None:
        names = self._version_names()
        excess = len(names) - self.config.versions_retention
        for name in names[:max(excess, 0)]:
            self.logger.debug("Removing old configuration version", version=name)
            shutil.rmtree(os.path.join(self.config.versions_dir, name), ignore_errors=True)

    def build_ping_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "cluster_collector": self.cluster_collector,
            "host": self.config.get_hostname(),
            "collector_version": self.config.collector_version,
            "vector_version": self.config.vector_version,
            "beyla_version": self.config.beyla_version,
            "cluster_agent_version": self.config.cluster_agent_version,
        }
        version = self.latest_version()
        if version:
            payload["configuration_version"] = version
        error = self.error_state.read()
        if error:
            payload["error"] = error
        system_information = self.system_info.pending_payload()
        if system_information:
            payload["system_information"] = system_information
        return payload

    def run_cycle(self) -> None:
        """Run one synchronization cycle.

        Raises:
            AuthenticationError: If the control plane rejects the collector secret
        """
        started = time.monotonic()
        self._cycle_failed = False
        self._databases_promoted = False

        try:
            self.cluster_collector = self.control_plane.is_cluster_collector()

            result = self.control_plane.ping(self.build_ping_payload())
            self.last_ping_status = result.status_code
            self.metrics.increment(
                "collector_pings_total",
                tags={"status": str(result.status_code) if result.status_code else "error"},
            )
            if result.succeeded:
                self.system_info.mark_as_reported()

            upstream_changed = False
            if result.error:
                self._record_error(result.error)
            elif result.new_version is not None:
                self.logger.info("New version available", version=result.new_version)
                upstream_changed = self.process_version(result.new_version)
            elif result.status_code == 204:
                self.logger.debug("No updates available")
                self._clear_error()

            discovery_changed = False
            if self.discovery.should_discover(self.promoter.upstream_dir):
                discovery_changed = self.discovery.run()

            composite_promoted = False
            if upstream_changed or discovery_changed or self._bootstrap_pending:
                self.logger.info(
                    "Updating vector-config",
                    upstream_changed=upstream_changed,
                    discovery_changed=discovery_changed,
                    bootstrap=self._bootstrap_pending,
                )
                composite_promoted = self.promote_composite()

            if self._databases_promoted and not composite_promoted:
                self.supervisor.reload_vector()
        except AuthenticationError:
            raise
        except Exception as e:
            self.logger.error("Sync cycle failed", error=str(e), exc_info=True)
            self.error_reporter.report(e, context={"operation": "run_cycle"})
            self._record_error(f"Error: {e}")
        finally:
            self.certificates.reset_change_flag()
            self.last_cycle_at = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
            self.metrics.observe("collector_cycle_duration_seconds", time.monotonic() - started)

    def process_version(self, version: str) -> bool:
        """Download, validate and apply a configuration version.

        Nothing from the version is applied unless every file downloads and
        validates. On failure the version directory is removed so the
        control plane announces it again.

        Returns:
            True if a new upstream Vector configuration was promoted
        """
        try:
            validate_version_id(version)
            files = self.control_plane.fetch_configuration(version)
            for config_file in files:
                validate_filename(config_file.name, version)
        except (InvalidVersionError, InvalidFilenameError, ControlPlaneError) as e:
            self._record_error(str(e))
            return False

        version_dir = os.path.join(self.config.versions_dir, version)
        if not self._download_files(files, version, version_dir):
            return False

        domain_path = os.path.join(version_dir, DOMAIN_FILE_NAME)
        if os.path.isfile(domain_path):
            with open(domain_path, "r") as f:
                self.certificates.process_domain_update(f.read().strip())
        defer = self.certificates.should_defer_promotion()

        databases_staged = self._stage_databases(version_dir)
        if databases_staged:
            output = self.databases_table.validate()
            if output is not None:
                self._reject_version(
                    version_dir,
                    "databases",
                    f"Validation failed for databases enrichment table in {version}\n\n{output}",
                )
                return False

        if not defer:
            output = self.promoter.validate_upstream(version_dir)
            if output is not None:
                self._reject_version(
                    version_dir,
                    "upstream",
                    f"Validation failed for vector config in {version}\n\n{output}",
                )
                return False

        if databases_staged:
            self._promote_databases()

        if defer:
            self.logger.info(
                "Deferring configuration promotion until certificate exists",
                version=version,
                domain=self.certificates.read_current_domain(),
            )
            shutil.rmtree(version_dir, ignore_errors=True)
            return False

        self.promoter.promote_upstream(version_dir)
        self._prune_versions()
        return True

    def _download_files(self, files: List[ConfigFile], version: str, version_dir: str) -> bool:
        """Download every file of a version, then move the set into the versions directory.

        An existing directory for the same version is left untouched unless
        all downloads succeed.
        """
        self.logger.info("Downloading configuration files", version=version, count=len(files))
        download_dir = os.path.join(self.config.downloads_dir, version)
        shutil.rmtree(download_dir, ignore_errors=True)
        os.makedirs(download_dir)
        for config_file in files:
            path = os.path.join(download_dir, config_file.name)
            if not self.control_plane.download_file(config_file.url, path):
                self._record_error(f"Failed to download {config_file.name} for version {version}")
                shutil.rmtree(download_dir, ignore_errors=True)
                return False

        if os.path.exists(version_dir):
            shutil.rmtree(version_dir)
        os.replace(download_dir, version_dir)
        return True

    def _reject_version(self, version_dir: str, stage: str, message: str) -> None:
        self.metrics.increment("collector_config_validation_failures_total", tags={"stage": stage})
        self._record_error(message)
        shutil.rmtree(version_dir, ignore_errors=True)
        if os.path.exists(self.databases_table.incoming_path):
            os.remove(self.databases_table.incoming_path)

    def _stage_databases(self, version_dir: str) -> bool:
        source = os.path.join(version_dir, DATABASES_CSV_NAME)
        if not os.path.isfile(source):
            return False
        os.makedirs(os.path.dirname(self.databases_table.incoming_path), exist_ok=True)
        shutil.copyfile(source, self.databases_table.incoming_path)
        return True

    def _promote_databases(self) -> None:
        if not self.databases_table.has_pending_change():
            os.remove(self.databases_table.incoming_path)
            return
        self.databases_table.promote()
        self._databases_promoted = True
        self.metrics.increment("collector_enrichment_promotions_total", tags={"table": "databases"})
        self.logger.info("Promoted databases enrichment table", path=self.databases_table.target_path)

    def promote_composite(self) -> bool:
        """Stage, validate and promote the composite Vector configuration.

        Returns:
            True if a new configuration was promoted to current
        """
        config_dir = self.promoter.prepare_dir()
        if config_dir is None:
            return False

        output = self.promoter.validate_dir(config_dir)
        if output is not None:
            self.promoter.discard_dir(config_dir)
            self.metrics.increment("collector_config_validation_failures_total", tags={"stage": "composite"})
            self._record_error(f"Validation failed for vector config with kubernetes_discovery\n\n{output}")
            return False

        self.promoter.promote_dir(config_dir)
        self._bootstrap_pending = False
        self.metrics.increment("collector_config_promotions_total")
        self._clear_error(resolved=True)
        return True

    def sync_enrichment_tables(self) -> bool:
        """Promote a changed container enrichment table written by the container probe.

        Returns:
            True if the table was promoted and Vector reloaded
        """
        table = self.containers_table
        if not table.has_pending_change():
            return False

        output = table.validate()
        if output is not None:
            self.logger.error("Containers enrichment table is invalid", error=output)
            self.metrics.increment("collector_config_validation_failures_total", tags={"stage": "containers"})
            self.error_state.write(f"{CONTAINERS_ERROR_PREFIX}: {output}")
            return False

        table.promote()
        self.metrics.increment("collector_enrichment_promotions_total", tags={"table": "containers"})
        self.logger.info("Promoted containers enrichment table", path=table.target_path)
        if (self.error_state.read() or "").startswith(CONTAINERS_ERROR_PREFIX):
            self.error_state.clear(resolved=True)
        self.supervisor.reload_vector()
        return True

    def get_status(self) -> Dict[str, Any]:
        return {
            "cluster_collector": self.cluster_collector,
            "configuration_version": self.latest_version(),
            "last_cycle_at": self.last_cycle_at,
            "last_ping_status": self.last_ping_status,
            "error": self.error_state.read(),
        }
