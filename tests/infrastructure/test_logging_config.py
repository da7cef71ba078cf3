"""
Test module for riskguard.infrastructure.logging.config
"""

import logging
from unittest.mock import Mock, patch

import pytest
import structlog

from riskguard.config.settings import LoggingSettings
from riskguard.infrastructure.logging import config as logging_config
from riskguard.infrastructure.logging.config import (
    RiskGuardLogger,
    bind_request_context,
    clear_request_context,
    configure_logging,
    get_logger,
)


class TestRiskGuardLogger:
    """Test cases for RiskGuardLogger class."""

    def setup_method(self):
        structlog.reset_defaults()
        logging_config._logger_config = None

    def teardown_method(self):
        structlog.reset_defaults()
        structlog.contextvars.clear_contextvars()
        logging_config._logger_config = None

    @patch('logging.basicConfig')
    @patch('structlog.configure')
    def test_configure_structlog_setup(self, mock_configure, mock_basic_config):
        """Test the processor chain for JSON output with trace ids."""
        RiskGuardLogger(LoggingSettings(level="debug"))

        mock_basic_config.assert_called_once_with(format="%(message)s", level=logging.DEBUG)
        kwargs = mock_configure.call_args.kwargs
        processors = kwargs['processors']

        assert processors[0] is structlog.contextvars.merge_contextvars
        assert any('drop_empty_context' in str(proc) for proc in processors)
        assert any('add_trace_context' in str(proc) for proc in processors)
        assert isinstance(processors[-1], structlog.processors.JSONRenderer)
        assert kwargs['cache_logger_on_first_use'] is True

    @patch('logging.basicConfig')
    @patch('structlog.configure')
    def test_console_output_without_trace_ids(self, mock_configure, mock_basic_config):
        RiskGuardLogger(LoggingSettings(structured_logging=False, include_trace_id=False))

        processors = mock_configure.call_args.kwargs['processors']

        assert not any('add_trace_context' in str(proc) for proc in processors)
        assert isinstance(processors[-1], structlog.dev.ConsoleRenderer)

    def test_drop_empty_context(self):
        event_dict = {"event": "login_assessed", "subject_id": None, "risk_score": 0}

        result = RiskGuardLogger.drop_empty_context(Mock(), "info", event_dict)

        assert result == {"event": "login_assessed", "risk_score": 0}

    def test_add_trace_context_no_span(self):
        """Test add_trace_context when the current span is not recording."""
        with patch('opentelemetry.trace.get_current_span') as mock_get_span:
            mock_span = Mock()
            mock_span.is_recording.return_value = False
            mock_get_span.return_value = mock_span

            event_dict = {"event": "test"}
            result = RiskGuardLogger.add_trace_context(Mock(), "info", event_dict)

            assert result == {"event": "test"}

    def test_add_trace_context_with_span(self):
        """Test add_trace_context adds formatted trace information."""
        mock_span_context = Mock()
        mock_span_context.trace_id = 123456789012345678901234567890123456
        mock_span_context.span_id = 1234567890123456789
        mock_span = Mock()
        mock_span.is_recording.return_value = True
        mock_span.get_span_context.return_value = mock_span_context

        with patch('opentelemetry.trace.get_current_span') as mock_get_span:
            mock_get_span.return_value = mock_span

            result = RiskGuardLogger.add_trace_context(Mock(), "info", {"event": "test"})

            assert len(result["trace_id"]) == 32
            assert len(result["span_id"]) == 16

    def test_add_trace_context_keeps_existing_ids(self):
        mock_span = Mock()
        mock_span.is_recording.return_value = True
        mock_span.get_span_context.return_value = Mock(trace_id=1, span_id=2)

        with patch('opentelemetry.trace.get_current_span') as mock_get_span:
            mock_get_span.return_value = mock_span

            result = RiskGuardLogger.add_trace_context(
                Mock(), "info", {"trace_id": "existing-trace-id", "span_id": "existing-span-id"}
            )

            assert result["trace_id"] == "existing-trace-id"
            assert result["span_id"] == "existing-span-id"

    def test_get_logger_configures_once(self):
        with patch('riskguard.infrastructure.logging.config.RiskGuardLogger') as mock_logger_class:
            get_logger("riskguard.a")
            get_logger("riskguard.b")

            mock_logger_class.assert_called_once()

    def test_configure_logging_replaces_config(self):
        with patch('structlog.configure'), patch('logging.basicConfig'):
            first = configure_logging(LoggingSettings())
            second = configure_logging(LoggingSettings(level="WARNING"))

        assert first is not second
        assert logging_config._logger_config is second

    def test_request_context_binding(self):
        bind_request_context(subject_id="user-1", ip_address="203.0.113.7")

        assert structlog.contextvars.get_contextvars() == {"subject_id": "user-1", "ip_address": "203.0.113.7"}

        clear_request_context()

        assert structlog.contextvars.get_contextvars() == {}


def test_invalid_level_rejected():
    with pytest.raises(ValueError):
        LoggingSettings(level="chatty")
