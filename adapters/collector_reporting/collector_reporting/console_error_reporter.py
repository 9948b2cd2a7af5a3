# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Telemetry Collector contributors

"""Error reporter writing structured entries through the agent's logger."""

import traceback
from typing import Any, Dict, Optional

from collector_logging import Logger

from .error_reporter import ErrorReporter

# Sentry-style severities mapped onto the logger's levels
_LEVELS = {
    "debug": "DEBUG",
    "info": "INFO",
    "warning": "WARNING",
    "error": "ERROR",
    "fatal": "ERROR",
    "critical": "ERROR",
}


class ConsoleErrorReporter(ErrorReporter):
    """Logs reported exceptions at ERROR with their context as fields.

    The formatted traceback goes out separately at DEBUG so it only shows
    with LOG_LEVEL=DEBUG.
    """

    def __init__(self, logger: Logger):
        self.logger = logger

    def report(self, error: Exception, context: Optional[Dict[str, Any]] = None) -> None:
        fields = dict(context or {})
        self.logger.error(
            f"Exception occurred: {type(error).__name__}: {error}",
            error_type=type(error).__name__,
            **fields,
        )
        stack_trace = "".join(traceback.format_exception(type(error), error, error.__traceback__))
        self.logger.debug("Stack trace", stack_trace=stack_trace, **fields)

    def capture_message(
        self,
        message: str,
        level: str = "error",
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.logger.log(_LEVELS.get(level.lower(), "ERROR"), message, **(context or {}))
