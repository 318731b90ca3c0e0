"""Tests for structured logging configuration."""

import json
import logging
import sys
from unittest.mock import patch

from quotaguard.core.logging import (
    ContextFilter,
    JSONFormatter,
    get_log_context,
    get_logger,
    get_logging_config,
)


def _record(msg: str = "Test message", level: int = logging.INFO, exc_info=None) -> logging.LogRecord:
    return logging.LogRecord(
        name="test",
        level=level,
        pathname="test.py",
        lineno=1,
        msg=msg,
        args=(),
        exc_info=exc_info,
    )


class TestJSONFormatter:
    """Test JSON formatter for structured logging."""

    def test_basic_json_format(self):
        data = json.loads(JSONFormatter().format(_record()))

        assert data["level"] == "INFO"
        assert data["logger"] == "test"
        assert data["message"] == "Test message"
        assert "timestamp" in data
        assert data["source"]["file"] == "test.py"
        assert data["source"]["line"] == 1

    def test_json_format_with_context(self):
        record = _record("Bucket created")
        record.identifier = "ip:abc"
        record.operation = "create"
        record.key = "RateLimit:Quota:ip:abc"

        data = json.loads(JSONFormatter().format(record))

        assert data["identifier"] == "ip:abc"
        assert data["operation"] == "create"
        assert data["key"] == "RateLimit:Quota:ip:abc"
        assert "extra" not in data

    def test_json_format_with_extra_fields(self):
        record = _record("Startup")
        record.quota = 5000
        record.window_seconds = 3600

        data = json.loads(JSONFormatter().format(record))

        assert data["extra"] == {"quota": 5000, "window_seconds": 3600}

    def test_json_format_with_exception(self):
        try:
            raise ValueError("Test error")
        except ValueError:
            record = _record("Error occurred", logging.ERROR, sys.exc_info())

        data = json.loads(JSONFormatter().format(record))

        exception_text = "".join(data["exception"])
        assert "ValueError" in exception_text
        assert "Test error" in exception_text


class TestContextFilter:
    """Test context filter for adding default fields."""

    def test_adds_default_fields(self):
        record = _record()

        assert ContextFilter().filter(record) is True
        for field in ("identifier", "operation", "key", "path", "method"):
            assert getattr(record, field) is None

    def test_preserves_existing_values(self):
        record = _record()
        record.identifier = "apikey:123"

        ContextFilter().filter(record)

        assert record.identifier == "apikey:123"


class TestLoggingConfig:
    """Test dictConfig generation."""

    def test_text_format(self):
        with patch("quotaguard.core.logging.settings") as mock_settings:
            mock_settings.log_format = "text"
            mock_settings.log_level = "INFO"
            config = get_logging_config()

        assert config["handlers"]["console"]["formatter"] == "standard"
        assert config["loggers"]["quotaguard"]["propagate"] is False

    def test_json_format(self):
        with patch("quotaguard.core.logging.settings") as mock_settings:
            mock_settings.log_format = "json"
            mock_settings.log_level = "debug"
            config = get_logging_config()

        assert config["handlers"]["console"]["formatter"] == "json"
        assert config["formatters"]["json"]["()"] == "quotaguard.core.logging.JSONFormatter"
        assert config["loggers"]["quotaguard"]["level"] == "DEBUG"

    def test_structured_format(self):
        with patch("quotaguard.core.logging.settings") as mock_settings:
            mock_settings.log_format = "structured"
            mock_settings.log_level = "INFO"
            config = get_logging_config()

        assert "identifier=%(identifier)s" in config["formatters"]["structured"]["format"]


def test_get_logger_default_name():
    assert get_logger().name == "quotaguard"


def test_get_log_context_drops_none():
    context = get_log_context(identifier="ip:1", operation=None, attempts=3)
    assert context == {"identifier": "ip:1", "attempts": 3}


def test_context_fields_match_filter_defaults():
    assert set(ContextFilter.CONTEXT_DEFAULTS) == set(JSONFormatter.CONTEXT_FIELDS)
    assert set(get_log_context(identifier="ip:1", operation="mget", key="k")) <= set(
        JSONFormatter.CONTEXT_FIELDS
    )
