# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Telemetry Collector contributors

"""JSON-lines logger writing to stdout."""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional, TextIO

from .logger import LEVELS, Logger, normalize_level


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def build_log_entry(level: str, logger_name: str, message: str,
                    extra: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Build the JSON object emitted for one log line."""
    entry: Dict[str, Any] = {
        "timestamp": utc_timestamp(),
        "level": level,
        "logger": logger_name,
        "message": message,
    }
    if extra:
        entry["extra"] = extra
    return entry


class StdoutLogger(Logger):
    """Writes one JSON object per line and mirrors each record into stdlib logging.

    The mirror lets ``caplog`` and any handlers installed by the host process
    see the same records; the structured fields travel as ``record.extra``.
    """

    def __init__(self, level: str = "INFO", name: Optional[str] = None, stream: Optional[TextIO] = None):
        self.level = normalize_level(level)
        self.name = name or "collector"
        self.stream = stream
        self._stdlib_logger = logging.getLogger(self.name)
        self._stdlib_logger.setLevel(logging.NOTSET)

    def log(self, level: str, message: str, **kwargs: Any) -> None:
        if LEVELS[level] < LEVELS[self.level]:
            return

        exc_info = kwargs.pop("exc_info", None)
        entry = build_log_entry(level, self.name, message, kwargs)
        # Resolve at call time so pytest's capsys replacement is honoured
        stream = self.stream or sys.stdout
        try:
            print(json.dumps(entry, default=str), file=stream, flush=True)
        except (TypeError, ValueError) as e:
            print(f"{level}: {message} (JSON serialization failed: {e})", file=sys.stderr, flush=True)

        self._stdlib_logger.log(
            LEVELS[level],
            message,
            exc_info=exc_info,
            extra={"extra": kwargs} if kwargs else None,
        )
