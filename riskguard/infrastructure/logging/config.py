"""
RiskGuard Logging Configuration

Configures structlog with JSON (or console) rendering, per-request context
injection and OpenTelemetry trace correlation.
"""

import logging
from typing import Any, Dict, Optional

import structlog
from opentelemetry import trace

from riskguard.config.settings import LoggingSettings


class RiskGuardLogger:
    """
    Structured logger configuration.

    Authentication checks run inline in a request path, so every entry
    carries the bound request context (subject, IP, event kind) plus the
    active trace and span ids when a span is recording.
    """

    def __init__(self, settings: Optional[LoggingSettings] = None):
        self.settings = settings or LoggingSettings()
        self.configure_structlog()

    def configure_structlog(self) -> None:
        """
        Configure structlog with the processor chain.

        Sets up:
        - Log level filtering
        - Logger name and level addition
        - Request context from contextvars
        - Timestamp formatting
        - Exception information
        - OpenTelemetry trace context
        - JSON or console output
        """
        level = getattr(logging, self.settings.level.value if hasattr(self.settings.level, "value")
                        else str(self.settings.level))
        logging.basicConfig(format="%(message)s", level=level)

        processors = [
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            self.drop_empty_context,
        ]
        if self.settings.include_trace_id:
            processors.append(self.add_trace_context)

        if self.settings.structured_logging:
            processors.append(structlog.processors.JSONRenderer())
        else:
            processors.append(structlog.dev.ConsoleRenderer(colors=False))

        structlog.configure(
            processors=processors,
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            wrapper_class=structlog.stdlib.BoundLogger,
            cache_logger_on_first_use=True,
        )

    @staticmethod
    def drop_empty_context(logger, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
        """Remove context keys bound as None so entries stay compact"""
        return {key: value for key, value in event_dict.items() if value is not None}

    @staticmethod
    def add_trace_context(logger, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
        """
        Add OpenTelemetry trace context to log entries.

        Args:
            logger: Logger instance
            method_name: Log method name
            event_dict: Event dictionary to process

        Returns:
            Event dictionary with trace context
        """
        span = trace.get_current_span()
        if span and span.is_recording():
            span_context = span.get_span_context()
            if 'trace_id' not in event_dict:
                event_dict['trace_id'] = format(span_context.trace_id, '032x')
            if 'span_id' not in event_dict:
                event_dict['span_id'] = format(span_context.span_id, '016x')

        return event_dict


# Singleton configuration instance
_logger_config: Optional[RiskGuardLogger] = None


def configure_logging(settings: Optional[LoggingSettings] = None) -> RiskGuardLogger:
    """(Re)configure structlog from a logging section."""
    global _logger_config
    _logger_config = RiskGuardLogger(settings)
    return _logger_config


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a configured logger instance.

    Configures structlog with defaults on first use when
    `configure_logging` has not been called.

    Example:
        >>> logger = get_logger(__name__)
        >>> logger.info("login assessed", subject_id="u-1", risk_score=35)
    """
    global _logger_config
    if _logger_config is None:
        _logger_config = RiskGuardLogger()

    return structlog.get_logger(name)


def bind_request_context(**context: Any) -> None:
    """Bind request-scoped fields (subject_id, ip_address, ...) for subsequent entries"""
    structlog.contextvars.bind_contextvars(**context)


def clear_request_context() -> None:
    structlog.contextvars.clear_contextvars()
