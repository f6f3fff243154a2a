"""Tests for centralized logging configuration."""

import json
import logging
import sys
from unittest.mock import MagicMock, patch

from focusflow.core.logging_config import JSONFormatter, RequestContextFilter, setup_logging
from focusflow.core.middleware import correlation_id_var, request_user_id_var


def _record(msg: str = "Test message", level: int = logging.INFO, exc_info=None) -> logging.LogRecord:
    return logging.LogRecord(
        name="test.logger",
        level=level,
        pathname="",
        lineno=0,
        msg=msg,
        args=(),
        exc_info=exc_info,
    )


class TestJSONFormatter:
    def test_formats_as_json(self):
        result = json.loads(JSONFormatter().format(_record()))

        assert result["message"] == "Test message"
        assert result["level"] == "INFO"
        assert result["logger"] == "test.logger"
        assert "timestamp" in result

    def test_tags_service_and_environment(self):
        formatter = JSONFormatter(environment="production")

        result = json.loads(formatter.format(_record()))

        assert result["service"] == "focusflow-api"
        assert result["environment"] == "production"

    def test_timestamp_is_record_creation_time(self):
        record = _record()
        record.created = 1710324000.0  # 2024-03-13 10:00 UTC

        result = json.loads(JSONFormatter().format(record))

        assert result["timestamp"] == "2024-03-13T10:00:00+00:00"

    def test_includes_exception_info(self):
        try:
            raise ValueError("test error")
        except ValueError:
            record = _record("Error occurred", logging.ERROR, sys.exc_info())

        result = json.loads(JSONFormatter().format(record))

        assert "ValueError" in result["exception"]

    def test_includes_domain_extra_fields(self):
        record = _record()
        record.user_id = "user-123"
        record.room_id = "room-1"
        record.session_id = "session-9"
        record.endpoint = "ai_chat"

        result = json.loads(JSONFormatter().format(record))

        assert result["user_id"] == "user-123"
        assert result["room_id"] == "room-1"
        assert result["session_id"] == "session-9"
        assert result["endpoint"] == "ai_chat"

    def test_omits_placeholders(self):
        record = _record()
        record.correlation_id = "-"
        record.user_id = "-"

        result = json.loads(JSONFormatter().format(record))

        assert "correlation_id" not in result
        assert "user_id" not in result


class TestRequestContextFilter:
    def test_injects_correlation_id_and_user(self):
        correlation_token = correlation_id_var.set("req-42")
        user_token = request_user_id_var.set("user-123")
        try:
            record = _record()
            assert RequestContextFilter().filter(record) is True
            assert record.correlation_id == "req-42"
            assert record.user_id == "user-123"
        finally:
            request_user_id_var.reset(user_token)
            correlation_id_var.reset(correlation_token)

    def test_explicit_user_id_wins(self):
        token = request_user_id_var.set("user-123")
        try:
            record = _record()
            record.user_id = "other-user"
            RequestContextFilter().filter(record)
        finally:
            request_user_id_var.reset(token)

        assert record.user_id == "other-user"

    def test_placeholders_outside_request(self):
        record = _record()
        RequestContextFilter().filter(record)

        assert record.correlation_id == "-"
        assert record.user_id == "-"


class TestSetupLogging:
    def teardown_method(self):
        """Reset root logger after each test."""
        root = logging.getLogger()
        root.handlers.clear()
        root.setLevel(logging.WARNING)

    @patch("focusflow.core.logging_config.get_settings")
    def test_debug_mode_uses_readable_format(self, mock_settings):
        mock_settings.return_value = MagicMock(debug=True)
        setup_logging()
        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert not isinstance(root.handlers[0].formatter, JSONFormatter)

    @patch("focusflow.core.logging_config.get_settings")
    def test_debug_format_renders_request_context(self, mock_settings):
        mock_settings.return_value = MagicMock(debug=True)
        setup_logging()
        handler = logging.getLogger().handlers[0]
        record = _record()
        handler.filter(record)

        assert "[- -]: Test message" in handler.format(record)

    @patch("focusflow.core.logging_config.get_settings")
    def test_production_mode_uses_json(self, mock_settings):
        mock_settings.return_value = MagicMock(debug=False, environment="production")
        setup_logging()
        formatter = logging.getLogger().handlers[0].formatter
        assert isinstance(formatter, JSONFormatter)
        assert formatter.environment == "production"

    @patch("focusflow.core.logging_config.get_settings")
    def test_level_override(self, mock_settings):
        mock_settings.return_value = MagicMock(debug=False)
        setup_logging(level="WARNING")
        assert logging.getLogger().level == logging.WARNING

    @patch("focusflow.core.logging_config.get_settings")
    def test_quiets_noisy_loggers(self, mock_settings):
        mock_settings.return_value = MagicMock(debug=False)
        setup_logging()
        assert logging.getLogger("uvicorn.access").level == logging.WARNING
        assert logging.getLogger("redis").level == logging.WARNING
