# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Telemetry Collector contributors

"""Uvicorn logging configuration for structured JSON logs.

Keeps the local HTTP server's access and error logs in the same JSON line
format as the rest of the agent.
"""

import json
import logging
from typing import Any, Dict

from .stdout_logger import build_log_entry

ACCESS_LOG_FIELDS = ("client", "method", "path", "http_version", "status_code")


class JSONFormatter(logging.Formatter):
    """Formats stdlib records as the agent's JSON log lines.

    Uvicorn access records carry their request details as positional
    arguments; those are emitted as named fields.
    """

    def __init__(self, logger_name: str = "uvicorn"):
        super().__init__()
        self.logger_name = logger_name

    def format(self, record: logging.LogRecord) -> str:
        extra = dict(getattr(record, "extra", None) or {})
        if record.name == "uvicorn.access" and isinstance(record.args, tuple) \
                and len(record.args) == len(ACCESS_LOG_FIELDS):
            extra.update(zip(ACCESS_LOG_FIELDS, record.args))
        if record.exc_info:
            extra["exception"] = self.formatException(record.exc_info)

        entry = build_log_entry(record.levelname, self.logger_name, record.getMessage(), extra)
        return json.dumps(entry, default=str)


def create_uvicorn_log_config(service_name: str, log_level: str = "INFO") -> Dict[str, Any]:
    """Create a ``log_config`` for ``uvicorn.run`` routing server logs through JSONFormatter.

    Example:
        >>> log_config = create_uvicorn_log_config("collector", "INFO")
        >>> uvicorn.run(app, host="127.0.0.1", port=33000, log_config=log_config)
    """
    server_logger = {"handlers": ["console"], "level": log_level, "propagate": False}
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {"()": JSONFormatter, "logger_name": service_name},
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "json",
                "stream": "ext://sys.stdout",
            },
        },
        "loggers": {
            name: dict(server_logger)
            for name in ("uvicorn", "uvicorn.error", "uvicorn.access")
        },
    }
