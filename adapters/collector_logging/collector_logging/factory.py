# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Telemetry Collector contributors

"""Logger factory driven by arguments or LOG_* environment variables."""

import os
from typing import Callable, Dict, Optional

from .logger import Logger
from .silent_logger import SilentLogger
from .stdout_logger import StdoutLogger

LOGGER_TYPES: Dict[str, Callable[..., Logger]] = {
    "stdout": StdoutLogger,
    "silent": SilentLogger,
}


def create_logger(
    logger_type: Optional[str] = None,
    level: Optional[str] = None,
    name: Optional[str] = None,
) -> Logger:
    """Create a logger.

    Each argument falls back to its environment variable, then a default:
    ``LOG_TYPE`` ("stdout"), ``LOG_LEVEL`` ("INFO"), ``LOG_NAME`` ("collector").

    Raises:
        ValueError: If the logger type or level is not recognized
    """
    logger_type = (logger_type or os.getenv("LOG_TYPE") or "stdout").lower()
    level = level or os.getenv("LOG_LEVEL") or "INFO"
    name = name or os.getenv("LOG_NAME") or "collector"

    if logger_type not in LOGGER_TYPES:
        raise ValueError(
            f"Unknown logger_type: {logger_type}. Must be one of: {', '.join(LOGGER_TYPES)}"
        )
    return LOGGER_TYPES[logger_type](level=level, name=name)
