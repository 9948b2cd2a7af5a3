# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Telemetry Collector contributors

"""Tests for the persisted error state."""

import pytest

from app.error_state import ErrorState, is_sticky


@pytest.fixture
def state(tmp_path):
    return ErrorState(str(tmp_path / "errors.txt"))


class TestErrorState:
    """Tests for ErrorState."""

    def test_read_missing(self, state):
        assert state.read() is None

    def test_last_write_wins(self, state):
        state.write("Ping failed: 500. Body: oops")
        state.write("Network error: timeout")

        assert state.read() == "Network error: timeout"

    def test_clear_non_sticky(self, state):
        state.write("Network error: timeout")

        assert state.clear() is True
        assert state.read() is None

    def test_sticky_survives_plain_clear(self, state):
        state.write("Validation failed for vector config in v1\n\nbad sink")

        assert state.clear() is False
        assert state.read().startswith("Validation failed")

    def test_sticky_cleared_when_resolved(self, state):
        state.write("Invalid filename '../x' received for version v1")

        assert state.clear(resolved=True) is True
        assert state.read() is None

    def test_clear_without_error(self, state):
        assert state.clear() is False


@pytest.mark.parametrize("message,expected", [
    ("Validation failed for vector config with kubernetes_discovery", True),
    ("Invalid filename '/etc/passwd' received for version v1", True),
    ("Invalid configuration version '../x'", True),
    ("Failed to download vector.yaml for version v1", False),
    ("Error: boom", False),
    (None, False),
])
def test_is_sticky(message, expected):
    assert is_sticky(message) is expected
