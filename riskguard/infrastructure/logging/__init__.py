"""Structured logging for RiskGuard."""

from .config import (
    RiskGuardLogger,
    bind_request_context,
    clear_request_context,
    configure_logging,
    get_logger,
)

__all__ = [
    "RiskGuardLogger",
    "bind_request_context",
    "clear_request_context",
    "configure_logging",
    "get_logger",
]
