"""
Service-specific exception classes for the RiskGuard engine.

This module defines a hierarchy of exceptions that carry an error code and
structured context so callers can map them to throttling responses, safe
defaults, or configuration failures.
"""

from datetime import datetime
from typing import Any, Dict, Optional


class RiskGuardError(Exception):
    """Base exception for the RiskGuard engine"""

    def __init__(self, message: str, error_code: str = None, context: Dict[str, Any] = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or "RISKGUARD_ERROR"
        self.context = context or {}

    def __str__(self):
        if self.error_code:
            return f"[{self.error_code}] {self.message}"
        return self.message


class ConfigurationError(RiskGuardError):
    """Configuration-related errors"""

    def __init__(self, message: str, error_code: str = None, context: Dict[str, Any] = None):
        super().__init__(message, error_code or "CONFIG_ERROR", context)


class ValidationError(RiskGuardError):
    """Malformed input rejected before any state mutation"""

    def __init__(self, message: str, error_code: str = None, context: Dict[str, Any] = None):
        super().__init__(message, error_code or "VALIDATION_ERROR", context)


class CollaboratorUnavailable(RiskGuardError):
    """Cache, record store, or another collaborator could not be reached"""

    def __init__(
        self,
        collaborator: str,
        message: str = "",
        error_code: str = None,
        context: Dict[str, Any] = None
    ):
        super().__init__(
            message or f"Collaborator unavailable: {collaborator}",
            error_code or "COLLABORATOR_UNAVAILABLE",
            context,
        )
        self.collaborator = collaborator


class RateLimitExceeded(RiskGuardError):
    """Rate limit exceeded for a key"""

    def __init__(
        self,
        key: str,
        limit: int,
        remaining: int = 0,
        retry_after: int = 0,
        reset_at: Optional[datetime] = None,
    ):
        message = f"Rate limit exceeded for '{key}': {limit} attempts allowed. Retry after {retry_after} seconds."
        super().__init__(
            message,
            "RATE_LIMIT_EXCEEDED",
            {"key": key, "limit": limit, "remaining": remaining, "retry_after": retry_after},
        )
        self.key = key
        self.limit = limit
        self.remaining = remaining
        self.retry_after = retry_after
        self.reset_at = reset_at

    @property
    def headers(self) -> Dict[str, str]:
        """Throttling headers for the caller's 429 response"""
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "Retry-After": str(self.retry_after),
        }
        if self.reset_at is not None:
            headers["X-RateLimit-Reset"] = str(int(self.reset_at.timestamp()))
        return headers


class AlertDispatchError(RiskGuardError):
    """Notification delivery failed"""

    def __init__(self, message: str, error_code: str = None, context: Dict[str, Any] = None):
        super().__init__(message, error_code or "ALERT_DISPATCH_FAILURE", context)
