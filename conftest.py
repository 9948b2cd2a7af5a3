# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Telemetry Collector contributors

"""Root conftest.py to make the adapters importable from every test suite."""

import sys
from pathlib import Path

# Add all adapters to path so they import without an editable install
_repo_root = Path(__file__).parent
for _adapter_dir in sorted((_repo_root / "adapters").glob("collector_*")):
    if str(_adapter_dir) not in sys.path:
        sys.path.insert(0, str(_adapter_dir))
