# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Telemetry Collector contributors

"""In-memory error reporter for tests."""

from typing import Any, Dict, List, Optional

from .error_reporter import ErrorReporter


class SilentErrorReporter(ErrorReporter):
    """Keeps reports in ``reported_errors`` and ``captured_messages``."""

    def __init__(self):
        self.reported_errors: List[Dict[str, Any]] = []
        self.captured_messages: List[Dict[str, Any]] = []

    def report(self, error: Exception, context: Optional[Dict[str, Any]] = None) -> None:
        self.reported_errors.append({
            "error": error,
            "error_type": type(error).__name__,
            "error_message": str(error),
            "context": context or {},
        })

    def capture_message(
        self,
        message: str,
        level: str = "error",
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.captured_messages.append({"message": message, "level": level, "context": context or {}})

    def get_errors(self, error_type: Optional[str] = None) -> List[Dict[str, Any]]:
        """Return reported errors, optionally only those of one exception class name."""
        if error_type:
            return [e for e in self.reported_errors if e["error_type"] == error_type]
        return self.reported_errors

    def clear(self) -> None:
        self.reported_errors.clear()
        self.captured_messages.clear()

    def has_errors(self) -> bool:
        return bool(self.reported_errors)
