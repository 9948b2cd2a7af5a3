# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Telemetry Collector contributors

"""Tests for the structured logging adapter."""

import io
import json
import logging
import os
from unittest.mock import patch

import pytest

from collector_logging import (
    JSONFormatter,
    Logger,
    SilentLogger,
    StdoutLogger,
    create_logger,
    create_uvicorn_log_config,
)


class TestLoggerFactory:
    """Tests for create_logger factory function."""

    def test_create_stdout_logger(self):
        logger = create_logger(logger_type="stdout", level="INFO")

        assert isinstance(logger, StdoutLogger)
        assert isinstance(logger, Logger)
        assert logger.level == "INFO"

    def test_create_silent_logger(self):
        logger = create_logger(logger_type="silent")

        assert isinstance(logger, SilentLogger)

    def test_create_unknown_logger_type(self):
        """Test that unknown logger type raises ValueError."""
        with pytest.raises(ValueError, match="Unknown logger_type"):
            create_logger(logger_type="invalid")

    def test_create_logger_from_env(self):
        """Test creating logger from environment variables."""
        with patch.dict(os.environ, {
            "LOG_TYPE": "stdout",
            "LOG_LEVEL": "warning",
            "LOG_NAME": "env-collector",
        }):
            logger = create_logger()

            assert isinstance(logger, StdoutLogger)
            assert logger.level == "WARNING"
            assert logger.name == "env-collector"

    def test_create_logger_defaults_to_stdout(self):
        with patch.dict(os.environ, {}, clear=True):
            logger = create_logger()

            assert isinstance(logger, StdoutLogger)
            assert logger.name == "collector"


class TestStdoutLogger:
    """Tests for StdoutLogger."""

    def test_invalid_level_rejected(self):
        with pytest.raises(ValueError, match="Invalid log level"):
            StdoutLogger(level="LOUD")

    def test_emits_json_line(self, capsys):
        logger = StdoutLogger(level="INFO", name="collector")

        logger.info("Promoted configuration", version="2024-01-01T00:00:00")

        line = capsys.readouterr().out.strip()
        entry = json.loads(line)
        assert entry["level"] == "INFO"
        assert entry["logger"] == "collector"
        assert entry["message"] == "Promoted configuration"
        assert entry["extra"] == {"version": "2024-01-01T00:00:00"}
        assert entry["timestamp"].endswith("Z")

    def test_level_filtering(self, capsys):
        logger = StdoutLogger(level="WARNING")

        logger.info("hidden")
        logger.debug("hidden too")
        logger.warning("shown")

        lines = capsys.readouterr().out.strip().splitlines()
        assert len(lines) == 1
        assert json.loads(lines[0])["message"] == "shown"

    def test_mirrors_to_stdlib_logging(self, caplog):
        logger = StdoutLogger(level="INFO", name="collector-mirror")

        with caplog.at_level(logging.INFO, logger="collector-mirror"):
            logger.error("Ping failed", status=500)

        assert any(r.getMessage() == "Ping failed" for r in caplog.records)

    def test_exception_includes_error_level(self, capsys):
        logger = StdoutLogger()

        try:
            raise RuntimeError("boom")
        except RuntimeError:
            logger.exception("Cycle failed")

        entry = json.loads(capsys.readouterr().out.strip())
        assert entry["level"] == "ERROR"
        assert "exc_info" not in entry.get("extra", {})


class TestSilentLogger:
    """Tests for SilentLogger."""

    def test_default_values(self):
        logger = SilentLogger()

        assert logger.level == "INFO"
        assert logger.name == "collector"
        assert logger.logs == []

    def test_logging_with_extra_fields(self):
        logger = SilentLogger()

        logger.info("Discovered targets", count=3, node="node-a")

        assert logger.logs[0]["message"] == "Discovered targets"
        assert logger.logs[0]["extra"] == {"count": 3, "node": "node-a"}

    def test_get_logs_filtered_by_level(self):
        logger = SilentLogger()

        logger.info("Info 1")
        logger.warning("Warning 1")
        logger.info("Info 2")

        assert len(logger.get_logs(level="INFO")) == 2
        assert logger.get_logs(level="WARNING")[0]["message"] == "Warning 1"

    def test_has_log_substring(self):
        logger = SilentLogger()

        logger.error("Validation failed for vector config in v1")

        assert logger.has_log("Validation failed")
        assert logger.has_log("Validation failed", level="ERROR")
        assert not logger.has_log("Validation failed", level="INFO")

    def test_exception_logs_at_error_level(self):
        logger = SilentLogger()

        logger.exception("Unexpected failure")

        assert logger.get_logs(level="ERROR")[0]["extra"]["exc_info"] is True

    def test_clear_logs(self):
        logger = SilentLogger()
        logger.info("Message")

        logger.clear_logs()

        assert logger.logs == []


class TestUvicornLogConfig:
    """Tests for uvicorn log configuration."""

    def test_config_structure(self):
        config = create_uvicorn_log_config("collector", "DEBUG")

        assert config["version"] == 1
        assert config["formatters"]["json"]["logger_name"] == "collector"
        assert config["loggers"]["uvicorn"]["level"] == "DEBUG"
        assert config["loggers"]["uvicorn.access"]["handlers"] == ["console"]

    def test_json_formatter_output(self):
        formatter = JSONFormatter(logger_name="collector")
        record = logging.LogRecord(
            name="uvicorn.access",
            level=logging.INFO,
            pathname=__file__,
            lineno=1,
            msg="GET /health 200",
            args=(),
            exc_info=None,
        )

        entry = json.loads(formatter.format(record))

        assert entry["logger"] == "collector"
        assert entry["level"] == "INFO"
        assert entry["message"] == "GET /health 200"

    def test_access_record_fields(self):
        formatter = JSONFormatter(logger_name="collector")
        record = logging.LogRecord(
            name="uvicorn.access",
            level=logging.INFO,
            pathname=__file__,
            lineno=1,
            msg='%s - "%s %s HTTP/%s" %d',
            args=("127.0.0.1:5000", "GET", "/v1/cluster-agent-enabled", "1.1", 200),
            exc_info=None,
        )

        entry = json.loads(formatter.format(record))

        assert entry["message"] == '127.0.0.1:5000 - "GET /v1/cluster-agent-enabled HTTP/1.1" 200'
        assert entry["extra"]["path"] == "/v1/cluster-agent-enabled"
        assert entry["extra"]["status_code"] == 200


class TestStdoutLoggerStream:
    """Tests for writing to an explicit stream."""

    def test_custom_stream(self):
        stream = io.StringIO()
        logger = StdoutLogger(name="collector", stream=stream)

        logger.warning("Cluster collector check failed", error="timeout")

        entry = json.loads(stream.getvalue())
        assert entry["extra"] == {"error": "timeout"}


def test_has_log_matches_fields():
    logger = SilentLogger()

    logger.info("Supervisor command succeeded", action="reload vector")

    assert logger.has_log("Supervisor command", action="reload vector")
    assert not logger.has_log("Supervisor command", action="restart certbot")
