# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Telemetry Collector contributors

"""Process collaborators: the Vector validator and the process supervisor.

All file staging happens on the caller's side; these classes only run
commands against paths they are given.
"""

import glob
import os
import shlex
import subprocess
from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

from collector_logging import Logger


class ConfigValidator(ABC):
    """Validates a set of pipeline configuration files."""

    @abstractmethod
    def validate(self, patterns: Sequence[str]) -> Optional[str]:
        """Validate the files matched by the given paths or glob patterns.

        Returns:
            None if valid, otherwise the validator's diagnostic output
        """
        pass


class Supervisor(ABC):
    """Signals the externally supervised daemons."""

    @abstractmethod
    def reload_vector(self) -> bool:
        pass

    @abstractmethod
    def restart_certbot(self) -> bool:
        pass


def expand_patterns(patterns: Sequence[str]) -> List[str]:
    """Expand glob patterns into a flat, sorted list of existing paths."""
    paths: List[str] = []
    for pattern in patterns:
        if any(c in pattern for c in "*?["):
            paths.extend(sorted(glob.glob(pattern)))
        elif os.path.exists(pattern):
            paths.append(pattern)
    return paths


class VectorValidator(ConfigValidator):
    """Runs ``vector validate`` as a subprocess."""

    def __init__(self, logger: Logger, binary: str = "vector", timeout: int = 120):
        self.logger = logger
        self.binary = binary
        self.timeout = timeout

    def validate(self, patterns: Sequence[str]) -> Optional[str]:
        paths = expand_patterns(patterns)
        if not paths:
            return "No configuration files to validate"

        env = dict(os.environ, REGION="unknown", AZ="unknown")
        command = [self.binary, "validate", *paths]
        self.logger.debug("Running vector validate", paths=paths)

        try:
            result = subprocess.run(
                command,
                env=env,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired:
            return f"vector validate timed out after {self.timeout}s"
        except OSError as e:
            return f"Failed to run {self.binary}: {e}"

        if result.returncode != 0:
            return result.stdout or f"vector validate exited with code {result.returncode}"
        return None


class ProcessSupervisor(Supervisor):
    """Sends reload and restart commands through supervisorctl."""

    def __init__(self, logger: Logger, reload_command: str, certbot_restart_command: str,
                 timeout: int = 30):
        self.logger = logger
        self.reload_command = reload_command
        self.certbot_restart_command = certbot_restart_command
        self.timeout = timeout

    def _run(self, command: str, action: str) -> bool:
        try:
            result = subprocess.run(
                shlex.split(command),
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                timeout=self.timeout,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            self.logger.error("Supervisor command failed", action=action, command=command, error=str(e))
            return False

        if result.returncode != 0:
            self.logger.error(
                "Supervisor command failed",
                action=action,
                command=command,
                exit_code=result.returncode,
                output=result.stdout,
            )
            return False

        self.logger.info("Supervisor command succeeded", action=action, command=command)
        return True

    def reload_vector(self) -> bool:
        return self._run(self.reload_command, "reload vector")

    def restart_certbot(self) -> bool:
        return self._run(self.certbot_restart_command, "restart certbot")
