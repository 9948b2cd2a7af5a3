# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Telemetry Collector contributors

"""Validate-then-promote sync for side-channel enrichment tables.

An external writer drops a candidate file at the incoming path; the agent
promotes it to the target path only after it validates and differs from
the table currently in use.
"""

import csv
import hashlib
import os
from dataclasses import dataclass
from typing import Optional, Tuple


@dataclass(frozen=True)
class TablePolicy:
    """Validation rules for one kind of enrichment table.

    Attributes:
        table_name: Human readable name used in messages
        expected_header: Exact header columns expected in the first row
        parse_csv: Parse the header as CSV (quoted fields allowed, malformed
            content rejected) instead of comparing the raw first line
    """
    table_name: str
    expected_header: Tuple[str, ...]
    parse_csv: bool = False


CONTAINERS_POLICY = TablePolicy(
    table_name="Containers enrichment table",
    expected_header=("pid", "container_name", "container_id", "image_name"),
)

DATABASES_POLICY = TablePolicy(
    table_name="Databases enrichment table",
    expected_header=("identifier", "container", "service", "host"),
    parse_csv=True,
)


def calculate_file_hash(file_path: str, algorithm: str = "sha256") -> Optional[str]:
    """Calculate the hash of a file, or None if it does not exist.

    Args:
        file_path: Path to file
        algorithm: Hash algorithm (default: sha256)

    Returns:
        Hex digest of file hash, or None for a missing file
    """
    if not os.path.isfile(file_path):
        return None

    hash_obj = hashlib.new(algorithm)
    with open(file_path, "rb") as f:
        for chunk in iter(lambda: f.read(4096), b""):
            hash_obj.update(chunk)
    return hash_obj.hexdigest()


class EnrichmentTableSync:
    """Sync of a single enrichment table from its incoming path to its target path."""

    def __init__(self, target_path: str, incoming_path: str, policy: TablePolicy):
        self.target_path = target_path
        self.incoming_path = incoming_path
        self.policy = policy

    def has_pending_change(self) -> bool:
        """Return True if an incoming file exists and differs from the target."""
        if not os.path.isfile(self.incoming_path):
            return False
        return calculate_file_hash(self.target_path) != calculate_file_hash(self.incoming_path)

    def validate(self) -> Optional[str]:
        """Validate the incoming file.

        Returns:
            None if the file may be promoted, otherwise a description of the problem
        """
        name = self.policy.table_name
        if not os.path.isfile(self.incoming_path):
            return f"{name} not found at {self.incoming_path}"
        if os.path.getsize(self.incoming_path) == 0:
            return f"{name} is empty at {self.incoming_path}"

        if self.policy.parse_csv:
            return self._validate_csv_header()
        return self._validate_raw_header()

    def _validate_raw_header(self) -> Optional[str]:
        try:
            with open(self.incoming_path, "r", encoding="utf-8") as f:
                first_line = f.readline().strip()
        except UnicodeDecodeError:
            return f"{self.policy.table_name} is not valid at {self.incoming_path}"

        if first_line != ",".join(self.policy.expected_header):
            return f"{self.policy.table_name} is not valid at {self.incoming_path}"
        return None

    def _validate_csv_header(self) -> Optional[str]:
        name = self.policy.table_name
        expected = ",".join(self.policy.expected_header)
        try:
            with open(self.incoming_path, "r", encoding="utf-8", newline="") as f:
                rows = csv.reader(f, strict=True)
                header = next(rows, None)
                # Read the rest so malformed rows are reported, not just a bad header
                for _ in rows:
                    pass
        except (csv.Error, UnicodeDecodeError) as e:
            return f"{name} is malformed: {e}"

        if header is None or tuple(header) != self.policy.expected_header:
            actual = ",".join(header) if header else "none"
            return f"{name} has invalid headers. Expected: {expected}, Got: {actual}"
        return None

    def promote(self) -> None:
        """Atomically replace the target with the incoming file."""
        os.replace(self.incoming_path, self.target_path)
