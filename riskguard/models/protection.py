"""
Rate limiting data models

Defines the result structures returned by the fixed-window attempt counters.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Optional


@dataclass
class RateLimitResult:
    """Result of a rate limit check"""
    key: str
    allowed: bool
    current_count: int
    limit: int
    remaining: int
    reset_time: Optional[datetime] = None
    retry_after: int = 0  # seconds until the window resets, 0 when allowed
    degraded: bool = False  # decided by the fail policy, cache unreachable

    def headers(self) -> Dict[str, str]:
        """X-RateLimit-* response headers"""
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
        }
        if self.reset_time is not None:
            headers["X-RateLimit-Reset"] = str(int(self.reset_time.timestamp()))
        if not self.allowed:
            headers["Retry-After"] = str(self.retry_after)
        return headers
