"""
Request protection for RiskGuard.

Currently provides the fixed-window rate limiter used for login, API and
route throttling.
"""

from .rate_limiter import CacheRateLimiter

__all__ = ["CacheRateLimiter"]
