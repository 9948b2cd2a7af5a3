# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Telemetry Collector contributors

"""Exceptions for collector agent operations."""


class CollectorError(Exception):
    """Base exception for collector agent errors."""

    pass


class ConfigurationError(CollectorError):
    """Raised when the agent configuration is invalid or missing required fields."""

    pass


class AuthenticationError(CollectorError):
    """Raised when the control plane rejects the collector secret.

    This is fatal: the process is expected to exit.
    """

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ControlPlaneError(CollectorError):
    """Raised when the control plane answers with an unexpected status or body."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class InvalidFilenameError(CollectorError):
    """Raised when a configuration file name would escape the version directory."""

    def __init__(self, filename: str | None, version: str):
        super().__init__(f"Invalid filename '{filename}' received for version {version}")
        self.filename = filename
        self.version = version


class InvalidVersionError(CollectorError):
    """Raised when a configuration version identifier is not a safe directory name."""

    def __init__(self, version: str | None):
        super().__init__(f"Invalid configuration version '{version}'")
        self.version = version


class KubernetesAPIError(CollectorError):
    """Raised when a Kubernetes API request does not return 200."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code
