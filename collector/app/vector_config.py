# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Telemetry Collector contributors

"""Versioned store for the Vector pipeline configuration.

Layout under ``<working_dir>/vector-config``:

- ``latest-valid-upstream``: last validated configuration received from the
  control plane
- ``new_<timestamp>``: a staged composite directory awaiting validation
- ``current``: the directory Vector reads; only ever replaced, never edited
"""

import os
import shutil
import tempfile
from datetime import datetime, timezone
from typing import List, Optional

from collector_logging import Logger

from .config import AgentConfig
from .validator import ConfigValidator, Supervisor

UPSTREAM_FILES = ("vector.yaml", "manual.vector.yaml")
DISCOVERY_LINK = "kubernetes-discovery"
DEFAULT_GENERATION = "0-default"
DISCOVERY_MARKER = "kubernetes_discovery_"
COMMAND_DIRECTIVE = "command:"

MINIMAL_KUBERNETES_DISCOVERY_CONFIG = """---
sources:
  kubernetes_discovery_prometheus_scrape_minimal_dummy_config:
    type: file
    include:
      - /dev/null
"""


def _timestamp(precise: bool = False) -> str:
    now = datetime.now(timezone.utc)
    if precise:
        return now.strftime("%Y-%m-%dT%H:%M:%S.%fZ")
    return now.strftime("%Y-%m-%dT%H:%M:%S")


def latest_discovery_generation(discovery_dir: str) -> Optional[str]:
    """Return the path of the newest discovery generation, including the default one."""
    if not os.path.isdir(discovery_dir):
        return None
    generations = sorted(
        name for name in os.listdir(discovery_dir)
        if os.path.isdir(os.path.join(discovery_dir, name))
    )
    if not generations:
        return None
    return os.path.join(discovery_dir, generations[-1])


def config_uses_discovery(directory: str) -> bool:
    """Return True if any *.yaml file in the directory references discovery sources."""
    if not os.path.isdir(directory):
        return False
    for name in sorted(os.listdir(directory)):
        path = os.path.join(directory, name)
        if not name.endswith(".yaml") or not os.path.isfile(path):
            continue
        with open(path, "r", errors="replace") as f:
            if DISCOVERY_MARKER in f.read():
                return True
    return False


class ConfigPromoter:
    """Stages, validates and promotes Vector configuration directories."""

    def __init__(self, config: AgentConfig, validator: ConfigValidator, supervisor: Supervisor,
                 logger: Logger):
        self.config = config
        self.validator = validator
        self.supervisor = supervisor
        self.logger = logger
        self.base_dir = config.vector_config_dir
        self.upstream_dir = os.path.join(self.base_dir, "latest-valid-upstream")
        self.current_dir = os.path.join(self.base_dir, "current")

    @staticmethod
    def present_upstream_files(directory: str) -> List[str]:
        return [name for name in UPSTREAM_FILES if os.path.isfile(os.path.join(directory, name))]

    def has_upstream_files(self, directory: str) -> bool:
        return bool(self.present_upstream_files(directory))

    def validate_upstream(self, version_dir: str) -> Optional[str]:
        """Validate the upstream configuration files of a downloaded version.

        The files are checked in an isolated temporary directory together with
        a minimal discovery stub, so configurations that consume
        ``kubernetes_discovery_*`` sources validate before any target exists.

        Args:
            version_dir: Directory holding the downloaded version

        Returns:
            None if valid, otherwise the reason or validator output
        """
        names = self.present_upstream_files(version_dir)
        if not names:
            return f"No {' or '.join(UPSTREAM_FILES)} found in {version_dir}"

        for name in names:
            with open(os.path.join(version_dir, name), "r", errors="replace") as f:
                if COMMAND_DIRECTIVE in f.read():
                    return f"{name} must not contain {COMMAND_DIRECTIVE} directives"

        tmp_dir = tempfile.mkdtemp(prefix="validate-vector-config-")
        try:
            for name in names:
                shutil.copy2(os.path.join(version_dir, name), os.path.join(tmp_dir, name))
            stub_dir = os.path.join(tmp_dir, DISCOVERY_LINK)
            os.makedirs(stub_dir)
            with open(os.path.join(stub_dir, "minimal.yaml"), "w") as f:
                f.write(MINIMAL_KUBERNETES_DISCOVERY_CONFIG)

            patterns = [os.path.join(tmp_dir, name) for name in names]
            patterns.append(os.path.join(stub_dir, "*.yaml"))
            return self.validator.validate(patterns)
        finally:
            shutil.rmtree(tmp_dir, ignore_errors=True)

    def promote_upstream(self, version_dir: str) -> None:
        """Copy the upstream files of a validated version into latest-valid-upstream.

        The new directory is fully built before the old one is removed. A
        crash in between leaves ``.staged`` behind, which recovery completes.
        """
        incoming = f"{self.upstream_dir}.incoming"
        staged = f"{self.upstream_dir}.staged"
        shutil.rmtree(incoming, ignore_errors=True)
        os.makedirs(incoming)

        for name in self.present_upstream_files(version_dir):
            shutil.copy2(os.path.join(version_dir, name), os.path.join(incoming, name))

        shutil.rmtree(staged, ignore_errors=True)
        os.rename(incoming, staged)
        shutil.rmtree(self.upstream_dir, ignore_errors=True)
        os.rename(staged, self.upstream_dir)
        self.logger.info("Promoted upstream configuration", version_dir=version_dir)

    def prepare_dir(self) -> Optional[str]:
        """Stage a composite directory from latest-valid-upstream.

        The newest discovery generation is linked in when the upstream
        configuration references discovery sources, the permanent default
        generation otherwise.

        Returns:
            Path of the staged directory, or None if there is no upstream
            configuration yet
        """
        if not self.has_upstream_files(self.upstream_dir):
            self.logger.warning("No latest-valid-upstream configuration to stage")
            return None

        new_dir = os.path.join(self.base_dir, f"new_{_timestamp(precise=True)}")
        try:
            shutil.copytree(self.upstream_dir, new_dir)

            if config_uses_discovery(new_dir):
                generation = latest_discovery_generation(self.config.discovery_dir)
            else:
                generation = os.path.join(self.config.discovery_dir, DEFAULT_GENERATION)

            if generation and os.path.isdir(generation):
                os.symlink(generation, os.path.join(new_dir, DISCOVERY_LINK))
        except OSError as e:
            self.logger.error("Error preparing vector-config directory", config_dir=new_dir, error=str(e))
            shutil.rmtree(new_dir, ignore_errors=True)
            return None

        self.logger.info("Prepared vector-config directory", config_dir=new_dir)
        return new_dir

    def validate_dir(self, config_dir: str) -> Optional[str]:
        """Validate a staged composite directory as Vector would load it."""
        patterns = [os.path.join(config_dir, name) for name in self.present_upstream_files(config_dir)]
        patterns.append(os.path.join(config_dir, DISCOVERY_LINK, "*.yaml"))
        self.logger.info("Validating vector config directory", config_dir=config_dir)
        return self.validator.validate(patterns)

    def promote_dir(self, config_dir: str) -> bool:
        """Swap a validated staged directory into ``current`` and reload Vector.

        Returns:
            True if Vector acknowledged the reload signal
        """
        displaced = None
        if os.path.lexists(self.current_dir):
            displaced = os.path.join(self.base_dir, f"old_{_timestamp(precise=True)}")
            os.rename(self.current_dir, displaced)
        os.rename(config_dir, self.current_dir)
        if displaced:
            shutil.rmtree(displaced, ignore_errors=True)

        self.logger.info("Promoted vector-config directory", config_dir=self.current_dir)
        return self.supervisor.reload_vector()

    def discard_dir(self, config_dir: str) -> None:
        shutil.rmtree(config_dir, ignore_errors=True)

    def recover(self) -> None:
        """Finish or roll back file operations interrupted by a crash."""
        os.makedirs(self.base_dir, exist_ok=True)

        staged = f"{self.upstream_dir}.staged"
        if os.path.isdir(staged):
            self.logger.warning("Completing interrupted upstream promotion", staged_dir=staged)
            shutil.rmtree(self.upstream_dir, ignore_errors=True)
            os.rename(staged, self.upstream_dir)
        shutil.rmtree(f"{self.upstream_dir}.incoming", ignore_errors=True)

        for name in os.listdir(self.base_dir):
            if name.startswith(("new_", "old_")):
                self.logger.info("Removing leftover vector-config directory", config_dir=name)
                shutil.rmtree(os.path.join(self.base_dir, name), ignore_errors=True)

    def needs_bootstrap(self) -> bool:
        """Return True if an upstream configuration exists but was never promoted."""
        return self.has_upstream_files(self.upstream_dir) and not os.path.isdir(self.current_dir)
