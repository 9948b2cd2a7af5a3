# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Telemetry Collector contributors

"""Collector Error Reporting Adapter.

Reporting of unexpected exceptions raised while the agent runs its
synchronization cycles.
"""

import os
from typing import Optional

from collector_logging import Logger, create_logger

from .console_error_reporter import ConsoleErrorReporter
from .error_reporter import ErrorReporter
from .silent_error_reporter import SilentErrorReporter

__version__ = "0.1.0"


def create_error_reporter(
    reporter_type: Optional[str] = None,
    logger: Optional[Logger] = None,
) -> ErrorReporter:
    """Create an error reporter.

    Args:
        reporter_type: "console" or "silent". Defaults to ERROR_REPORTER_TYPE
            env or "console".
        logger: Structured logger the console reporter writes through; a
            logger configured from the LOG_* environment is created if omitted.

    Raises:
        ValueError: If reporter_type is not recognized.
    """
    reporter_type = (reporter_type or os.getenv("ERROR_REPORTER_TYPE") or "console").lower()

    if reporter_type == "console":
        return ConsoleErrorReporter(logger or create_logger())
    elif reporter_type == "silent":
        return SilentErrorReporter()
    else:
        raise ValueError(
            f"Unknown error_reporter_type: {reporter_type}. "
            f"Must be one of: console, silent"
        )


__all__ = [
    "__version__",
    "ErrorReporter",
    "ConsoleErrorReporter",
    "SilentErrorReporter",
    "create_error_reporter",
]
