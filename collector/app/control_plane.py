# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Telemetry Collector contributors

"""HTTP client for the telemetry control plane."""

import os
from typing import Any, Dict, List
from urllib.parse import parse_qs, urlparse

import requests

from collector_logging import Logger

from .config import AgentConfig
from .exceptions import AuthenticationError, ControlPlaneError
from .models import ConfigFile, PingResult

UNAUTHORIZED_CODES = (401, 403)


def _form_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class ControlPlaneClient:
    """Authenticated form-encoded POSTs to the control plane and file downloads.

    Every POST goes to ``<base_url>/api<path>``.
    """

    def __init__(self, config: AgentConfig, logger: Logger):
        self.config = config
        self.logger = logger
        self.timeout = config.request_timeout_seconds

    def post(self, path: str, params: Dict[str, Any]) -> requests.Response:
        """POST form data to the control plane.

        ``None`` values are omitted from the body.

        Raises:
            requests.RequestException: On transport failure
        """
        url = f"{self.config.base_url}/api{path}"
        data = {k: _form_value(v) for k, v in params.items() if v is not None}
        return requests.post(url, data=data, timeout=self.timeout)

    def is_cluster_collector(self) -> bool:
        """Ask the control plane whether this node should run the cluster agent.

        Returns:
            True for 200/204 or when forced by configuration; False for 409,
            unexpected codes and transport failures

        Raises:
            AuthenticationError: If the control plane answers 401 or 403
        """
        if self.config.cluster_collector_override:
            self.logger.info("CLUSTER_COLLECTOR configured, forcing cluster collector mode")
            return True

        try:
            response = self.post("/collector/cluster-collector", {
                "collector_secret": self.config.collector_secret,
                "host": self.config.get_hostname(),
            })
        except requests.RequestException as e:
            self.logger.warning("Cluster collector check failed", error=str(e))
            return False

        if response.status_code in (200, 204):
            return True
        if response.status_code in UNAUTHORIZED_CODES:
            raise AuthenticationError(
                "Cluster collector check failed: unauthorized. Please check your COLLECTOR_SECRET.",
                status_code=response.status_code,
            )
        if response.status_code == 409:
            # Another node holds the role
            return False

        self.logger.warning(
            "Unexpected response from cluster-collector endpoint",
            status_code=response.status_code,
        )
        return False

    def ping(self, payload: Dict[str, Any]) -> PingResult:
        """Report status to the control plane and interpret the answer.

        Args:
            payload: Ping form fields, without the collector secret

        Returns:
            PingResult describing what, if anything, should happen next

        Raises:
            AuthenticationError: If the control plane answers 401 or 403
        """
        params = {"collector_secret": self.config.collector_secret, **payload}
        try:
            response = self.post("/collector/ping", params)
        except requests.RequestException as e:
            return PingResult(status_code=None, error=f"Network error: {e}")

        code = response.status_code
        if code == 204:
            return PingResult(status_code=code)

        if code == 200:
            try:
                data = response.json()
            except ValueError as e:
                return PingResult(status_code=code, error=f"Error parsing JSON response: {e}")
            if not isinstance(data, dict):
                return PingResult(status_code=code, error=f"Error parsing JSON response: unexpected body {data!r}")

            status = data.get("status")
            if status == "new_version_available":
                version = data.get("configuration_version")
                if not version or not isinstance(version, str):
                    return PingResult(
                        status_code=code,
                        error="Error parsing JSON response: missing configuration_version",
                    )
                return PingResult(status_code=code, new_version=version)
            self.logger.info("No new version", status=status)
            return PingResult(status_code=code)

        if code in UNAUTHORIZED_CODES:
            raise AuthenticationError(
                "Ping failed: unauthorized. Please check your COLLECTOR_SECRET.",
                status_code=code,
            )

        try:
            details = response.json()
            error = f"Ping failed: {code}. Details: {details}"
        except ValueError:
            error = f"Ping failed: {code}. Body: {response.text}"
        return PingResult(status_code=code, error=error)

    def fetch_configuration(self, version: str) -> List[ConfigFile]:
        """Fetch the list of files that make up a configuration version.

        Raises:
            ControlPlaneError: On transport failure, non-200 answer or bad body
        """
        try:
            response = self.post("/collector/configuration", {
                "collector_secret": self.config.collector_secret,
                "configuration_version": version,
            })
        except requests.RequestException as e:
            raise ControlPlaneError(f"Network error: {e}")

        if response.status_code != 200:
            raise ControlPlaneError(
                f"Failed to fetch configuration for version {version}. "
                f"Response code: {response.status_code}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise ControlPlaneError(f"Error parsing JSON response: {e}", status_code=200)

        files = data.get("files") if isinstance(data, dict) else None
        if not isinstance(files, list):
            raise ControlPlaneError(
                f"Error parsing JSON response: missing files for version {version}",
                status_code=200,
            )
        return [self._parse_file_entry(entry) for entry in files]

    def _absolute_url(self, path: str) -> str:
        if urlparse(path).scheme in ("http", "https"):
            return path
        return self.config.base_url + path

    def _parse_file_entry(self, entry: Any) -> ConfigFile:
        """Turn a ``{path, name}`` object or a URL string into a ConfigFile.

        For URL strings the file name comes from the ``file`` query parameter.
        """
        if isinstance(entry, dict):
            return ConfigFile(name=entry.get("name"), url=self._absolute_url(str(entry.get("path") or "")))

        url = self._absolute_url(str(entry))
        names = parse_qs(urlparse(url).query).get("file")
        return ConfigFile(name=names[0] if names else None, url=url)

    def download_file(self, url: str, path: str) -> bool:
        """Download a file, appending this node's hostname as ``host``.

        Returns:
            True if the response was 200 and the body was written to ``path``
        """
        try:
            response = requests.get(
                url,
                params={"host": self.config.get_hostname()},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            self.logger.error("Error downloading file", url=url, error=str(e))
            return False

        if response.status_code != 200:
            self.logger.error(
                "Failed to download file",
                url=url,
                status_code=response.status_code,
            )
            return False

        try:
            os.makedirs(os.path.dirname(path), exist_ok=True)
            with open(path, "wb") as f:
                f.write(response.content)
        except OSError as e:
            self.logger.error("Failed to write downloaded file", path=path, error=str(e))
            return False
        return True
