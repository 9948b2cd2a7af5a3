# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Telemetry Collector contributors

"""TLS certificate readiness gate for pipeline configuration promotion."""

import os
from typing import Optional

from collector_logging import Logger

from .validator import Supervisor


class CertificateGate:
    """Tracks the desired TLS domain and defers promotion until its certificate exists.

    The domain is persisted to ``domain_file``. Certificates are expected as
    ``<ssl_dir>/<domain>.pem`` and ``<ssl_dir>/<domain>.key``, placed there by
    the certificate issuer.
    """

    def __init__(self, domain_file: str, ssl_dir: str, supervisor: Supervisor, logger: Logger):
        self.domain_file = domain_file
        self.ssl_dir = ssl_dir
        self.supervisor = supervisor
        self.logger = logger
        self.domain_just_changed = False

    def read_current_domain(self) -> str:
        try:
            with open(self.domain_file, "r") as f:
                return f.read().strip()
        except FileNotFoundError:
            return ""
        except OSError as e:
            self.logger.error("Failed to read certificate domain file", path=self.domain_file, error=str(e))
            return ""

    def _write_domain(self, domain: str) -> None:
        os.makedirs(os.path.dirname(self.domain_file) or ".", exist_ok=True)
        with open(self.domain_file, "w") as f:
            f.write(domain)

    def process_domain_update(self, domain: str) -> bool:
        """Record the domain announced by the control plane.

        Args:
            domain: Desired certificate domain; empty disables certificates

        Returns:
            True if the domain changed
        """
        domain = (domain or "").strip()
        if domain == self.read_current_domain():
            self.domain_just_changed = False
            return False

        self._write_domain(domain)
        self.domain_just_changed = True
        self.logger.info("Updated certificate domain", domain=domain or "(empty)")

        if domain:
            self.logger.info("Restarting certbot for new domain", domain=domain)
            if not self.supervisor.restart_certbot():
                self.logger.warning("Failed to restart certbot", domain=domain)
        return True

    def certificate_exists(self, domain: Optional[str] = None) -> bool:
        domain = domain if domain is not None else self.read_current_domain()
        if not domain:
            return False
        cert_path = os.path.join(self.ssl_dir, f"{domain}.pem")
        key_path = os.path.join(self.ssl_dir, f"{domain}.key")
        return os.path.exists(cert_path) and os.path.exists(key_path)

    def should_defer_promotion(self) -> bool:
        """Return True if the domain changed this cycle and has no certificate yet."""
        if not self.domain_just_changed:
            return False
        domain = self.read_current_domain()
        if not domain:
            return False
        return not self.certificate_exists(domain)

    def reset_change_flag(self) -> None:
        self.domain_just_changed = False
