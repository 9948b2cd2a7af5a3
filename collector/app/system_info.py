# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Telemetry Collector contributors

"""One-shot system information reported on the first successful ping."""

import json
import os
import subprocess
from typing import Any, Dict, Optional

from collector_logging import Logger


class EbpfCompatibilityChecker:
    """Runs ``<working_dir>/ebpf.sh --json`` once and keeps the result.

    The result is sent with each ping until one ping succeeds.
    """

    def __init__(self, working_dir: str, logger: Logger, timeout: int = 60):
        self.script_path = os.path.join(working_dir, "ebpf.sh")
        self.logger = logger
        self.timeout = timeout
        self._data: Optional[Dict[str, Any]] = None
        self.reported = False

    def system_information(self) -> Optional[Dict[str, Any]]:
        """Return the compatibility data, running the check on first use."""
        if self._data is None:
            self._data = self._check()
        return self._data

    def pending_payload(self) -> Optional[str]:
        """Return the JSON-encoded data while it has not been reported yet."""
        if self.reported:
            return None
        data = self.system_information()
        return json.dumps(data) if data is not None else None

    def mark_as_reported(self) -> None:
        self.reported = True

    def _check(self) -> Dict[str, Any]:
        if not os.path.exists(self.script_path):
            self.logger.warning("eBPF compatibility check script not found", path=self.script_path)
            return {"error": "ebpf.sh script not found"}

        try:
            result = subprocess.run(
                [self.script_path, "--json"],
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                timeout=self.timeout,
            )
        except (OSError, subprocess.SubprocessError) as e:
            self.logger.error("Error running eBPF compatibility check", error=str(e))
            return {"error": f"Exception: {e}"}

        if result.returncode != 0:
            self.logger.warning(
                "eBPF compatibility check failed",
                exit_code=result.returncode,
                stderr=result.stderr,
            )
            return {
                "error": "eBPF check failed",
                "exit_code": result.returncode,
                "stderr": result.stderr,
            }

        try:
            data = json.loads(result.stdout)
        except ValueError as e:
            self.logger.warning("Failed to parse eBPF compatibility JSON", error=str(e))
            return {"error": f"JSON parse error: {e}"}
        if not isinstance(data, dict):
            return {"error": "JSON parse error: expected an object"}
        return data
