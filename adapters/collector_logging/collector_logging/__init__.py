# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Telemetry Collector contributors

"""Collector Logging Adapter.

Structured, configurable logging shared by the collector agent and its
adapters. Every log call takes a message plus keyword fields which end up
in the ``extra`` object of the emitted JSON line.

Example:
    >>> from collector_logging import create_logger
    >>>
    >>> logger = create_logger(logger_type="stdout", level="INFO", name="collector")
    >>> logger.info("Promoted configuration", config_dir="/var/lib/collector/vector-config/current")
    >>>
    >>> # In-memory logger for tests
    >>> test_logger = create_logger(logger_type="silent")
    >>> test_logger.info("Test message")
    >>> test_logger.has_log("Test message")
    True
"""

__version__ = "0.1.0"

from .factory import create_logger
from .logger import Logger
from .silent_logger import SilentLogger
from .stdout_logger import StdoutLogger
from .uvicorn_config import JSONFormatter, create_uvicorn_log_config

__all__ = [
    "__version__",
    "Logger",
    "StdoutLogger",
    "SilentLogger",
    "JSONFormatter",
    "create_logger",
    "create_uvicorn_log_config",
]
