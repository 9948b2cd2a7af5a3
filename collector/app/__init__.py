# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Telemetry Collector contributors

"""Collector agent: keeps the local Vector pipeline in sync with the control plane."""

__version__ = "0.1.0"
