# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Telemetry Collector contributors

"""In-memory logger for tests."""

from typing import Any, Dict, List, Optional

from .logger import Logger, normalize_level


class SilentLogger(Logger):
    """Captures every entry in ``logs`` regardless of level.

    Entries are dicts with ``level``, ``message`` and, when fields were
    passed, ``extra``.
    """

    def __init__(self, level: str = "INFO", name: Optional[str] = None):
        self.level = normalize_level(level)
        self.name = name or "collector"
        self.logs: List[Dict[str, Any]] = []

    def log(self, level: str, message: str, **kwargs: Any) -> None:
        entry: Dict[str, Any] = {"level": level, "message": message}
        if kwargs:
            entry["extra"] = kwargs
        self.logs.append(entry)

    def clear_logs(self) -> None:
        self.logs.clear()

    def get_logs(self, level: Optional[str] = None) -> List[Dict[str, Any]]:
        if level is None:
            return self.logs
        return [entry for entry in self.logs if entry["level"] == level]

    def has_log(self, message: str, level: Optional[str] = None, **fields: Any) -> bool:
        """Return True if an entry contains ``message`` and carries every given field value.

        Example:
            >>> logger.has_log("Recording error", "ERROR", error="Error: boom")
        """
        for entry in self.get_logs(level):
            if message not in entry["message"]:
                continue
            extra = entry.get("extra", {})
            if all(extra.get(k) == v for k, v in fields.items()):
                return True
        return False
