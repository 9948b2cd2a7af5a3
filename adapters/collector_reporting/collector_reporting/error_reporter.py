# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Telemetry Collector contributors

"""Abstract error reporter interface."""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional


class ErrorReporter(ABC):
    """Destination for failures that escaped normal error handling."""

    @abstractmethod
    def report(self, error: Exception, context: Optional[Dict[str, Any]] = None) -> None:
        """Report an exception.

        Args:
            error: The exception to report
            context: Where it happened, e.g. ``{"operation": "run_cycle"}``
        """
        pass

    @abstractmethod
    def capture_message(
        self,
        message: str,
        level: str = "error",
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Report a message that has no exception attached.

        Args:
            message: The message to capture
            level: Severity level (debug, info, warning, error, critical)
            context: Optional dictionary with additional context
        """
        pass
