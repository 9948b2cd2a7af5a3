# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Telemetry Collector contributors

"""Persistent single-message error state reported on the next ping."""

import os
from typing import Optional

STICKY_PREFIXES = (
    "Validation failed",
    "Invalid filename",
    "Invalid configuration version",
)


def is_sticky(message: Optional[str]) -> bool:
    """Return True if the message survives an otherwise clean cycle."""
    return bool(message) and message.startswith(STICKY_PREFIXES)


class ErrorState:
    """Reads and writes the agent's last error message.

    Only one message is kept; the last write wins.
    """

    def __init__(self, path: str):
        self.path = path

    def read(self) -> Optional[str]:
        try:
            with open(self.path, "r") as f:
                message = f.read().strip()
        except FileNotFoundError:
            return None
        return message or None

    def write(self, message: str) -> None:
        os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)
        tmp_path = f"{self.path}.tmp"
        with open(tmp_path, "w") as f:
            f.write(message)
        os.replace(tmp_path, self.path)

    def clear(self, resolved: bool = False) -> bool:
        """Remove the stored error.

        Args:
            resolved: True when the operation that produced a sticky error
                has since succeeded, which allows sticky errors to be cleared.

        Returns:
            True if an error was removed
        """
        message = self.read()
        if message is None:
            return False
        if is_sticky(message) and not resolved:
            return False
        try:
            os.remove(self.path)
        except FileNotFoundError:
            return False
        return True
