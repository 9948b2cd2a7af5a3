# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Telemetry Collector contributors

"""Abstract logger interface."""

import logging
from abc import ABC, abstractmethod
from typing import Any

LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
}


def normalize_level(level: str) -> str:
    """Return the upper-cased level name.

    Raises:
        ValueError: If the level is not one of DEBUG, INFO, WARNING, ERROR
    """
    name = (level or "").upper()
    if name not in LEVELS:
        raise ValueError(f"Invalid log level: {level}. Must be one of {list(LEVELS)}")
    return name


class Logger(ABC):
    """Structured logger: a message plus keyword fields.

    Implementations only provide ``log``; the level helpers delegate to it.
    A truthy ``exc_info`` field attaches the active exception where the
    implementation supports it.
    """

    @abstractmethod
    def log(self, level: str, message: str, **kwargs: Any) -> None:
        """Record a message at the given level name.

        Args:
            level: One of DEBUG, INFO, WARNING, ERROR
            message: The log message
            **kwargs: Additional structured data to log
        """
        pass

    def debug(self, message: str, **kwargs: Any) -> None:
        self.log("DEBUG", message, **kwargs)

    def info(self, message: str, **kwargs: Any) -> None:
        self.log("INFO", message, **kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        self.log("WARNING", message, **kwargs)

    def error(self, message: str, **kwargs: Any) -> None:
        self.log("ERROR", message, **kwargs)

    def exception(self, message: str, **kwargs: Any) -> None:
        """Log an error from inside an exception handler, with its traceback."""
        kwargs.setdefault("exc_info", True)
        self.error(message, **kwargs)
