"""
Cache-backed rate limiting implementation

Fixed-window attempt counters keyed by user, IP or route. A window opens on
the first attempt for a key and closes when the counter's TTL expires; bursts
straddling a window boundary can therefore reach twice the limit.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional, Tuple

from riskguard.config.settings import RateLimitSettings
from riskguard.models.exceptions import CollaboratorUnavailable, RateLimitExceeded, ValidationError
from riskguard.models.interfaces import ICacheBackend
from riskguard.models.protection import RateLimitResult
from riskguard.utils.serialization import utc_now


class CacheRateLimiter:
    """
    Fixed-window rate limiter over an `ICacheBackend`

    Features:
    - Atomic increments via the backend's native counter
    - Window TTL set once, on the first attempt of a fresh key
    - Denied attempts never increment the counter
    - Fail-closed by default when the cache is unreachable
    """

    def __init__(
        self,
        cache: ICacheBackend,
        settings: Optional[RateLimitSettings] = None,
        now: Callable[[], datetime] = utc_now,
    ):
        self.cache = cache
        self.settings = settings or RateLimitSettings()
        self._now = now
        self.logger = logging.getLogger(__name__)

    # Key builders

    @staticmethod
    def for_user(subject_id: str, action: str = "default") -> str:
        return f"user:{subject_id}:{action}"

    @staticmethod
    def for_ip(ip_address: str, action: str = "default") -> str:
        return f"ip:{ip_address}:{action}"

    @staticmethod
    def for_route(method: str, uri: str, identifier: Optional[str] = None) -> str:
        key = f"route:{method.upper()}:{uri}"
        if identifier:
            key += f":{identifier}"
        return key

    def _key(self, key: str) -> str:
        return f"{self.settings.key_prefix}:{key}"

    def _limits(self, max_attempts: Optional[int], window_seconds: Optional[int]) -> Tuple[int, int]:
        """Resolve defaults and reject malformed limits before any counter is touched"""
        limit = self.settings.attempts if max_attempts is None else max_attempts
        window = self.settings.decay if window_seconds is None else window_seconds
        for name, value in (("max_attempts", limit), ("window_seconds", window)):
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                raise ValidationError(
                    f"{name} must be a positive integer, got {value!r}",
                    context={name: repr(value)},
                )
        return limit, window

    # Core operations

    async def attempt(
        self,
        key: str,
        max_attempts: Optional[int] = None,
        window_seconds: Optional[int] = None,
    ) -> RateLimitResult:
        """
        Record one attempt against `key` and return the full decision.

        Args:
            key: Counter identity (see the key builders)
            max_attempts: Attempts allowed per window, default `settings.attempts`
            window_seconds: Window length, default `settings.decay`

        Returns:
            RateLimitResult with decision and header metadata

        Raises:
            ValidationError: If `max_attempts` or `window_seconds` is not a positive integer
        """
        limit, window = self._limits(max_attempts, window_seconds)
        cache_key = self._key(key)

        try:
            current = int(await self.cache.get(cache_key) or 0)
            if current >= limit:
                return await self._denied(key, cache_key, current, limit, window)

            new_count = await self.cache.increment(cache_key, 1, ttl=window)
            if new_count > limit:
                # Lost a race with a concurrent attempt that filled the window
                await self.cache.increment(cache_key, -1)
                return await self._denied(key, cache_key, new_count, limit, window)
            reset_time = await self._reset_time(cache_key, window)
        except CollaboratorUnavailable as e:
            return self._degraded(key, limit, window, e)

        self.logger.debug(f"Rate limit check: key={key}, allowed=True, count={new_count}/{limit}")
        return RateLimitResult(
            key=key,
            allowed=True,
            current_count=new_count,
            limit=limit,
            remaining=max(0, limit - new_count),
            reset_time=reset_time,
        )

    async def check(
        self,
        key: str,
        max_attempts: Optional[int] = None,
        window_seconds: Optional[int] = None,
    ) -> bool:
        """True when the attempt is allowed (and has been counted)"""
        result = await self.attempt(key, max_attempts, window_seconds)
        return result.allowed

    async def check_or_fail(
        self,
        key: str,
        max_attempts: Optional[int] = None,
        window_seconds: Optional[int] = None,
    ) -> RateLimitResult:
        """
        Like `check`, but raises when the attempt is denied.

        Raises:
            RateLimitExceeded: carrying limit, remaining, retry-after and reset time
        """
        result = await self.attempt(key, max_attempts, window_seconds)
        if not result.allowed:
            raise RateLimitExceeded(
                key=key,
                limit=result.limit,
                remaining=result.remaining,
                retry_after=result.retry_after,
                reset_at=result.reset_time,
            )
        return result

    async def remaining(self, key: str, max_attempts: Optional[int] = None) -> int:
        limit, _ = self._limits(max_attempts, None)
        try:
            current = int(await self.cache.get(self._key(key)) or 0)
        except CollaboratorUnavailable as e:
            self.logger.warning(f"Rate limit remaining lookup failed for {key}: {e}")
            return limit if self.settings.fail_open else 0
        return max(0, limit - current)

    async def is_limited(self, key: str, max_attempts: Optional[int] = None) -> bool:
        """True when the next attempt would be denied; does not count an attempt"""
        return await self.remaining(key, max_attempts) <= 0

    async def clear(self, key: str) -> None:
        await self.cache.delete(self._key(key))

    async def headers(
        self,
        key: str,
        max_attempts: Optional[int] = None,
        window_seconds: Optional[int] = None,
    ) -> Dict[str, str]:
        """X-RateLimit-Limit/Remaining/Reset for the current window"""
        limit, window = self._limits(max_attempts, window_seconds)
        remaining = await self.remaining(key, limit)
        try:
            reset_time = await self._reset_time(self._key(key), window)
        except CollaboratorUnavailable:
            reset_time = self._now() + timedelta(seconds=window)
        return RateLimitResult(
            key=key,
            allowed=remaining > 0,
            current_count=limit - remaining,
            limit=limit,
            remaining=remaining,
            reset_time=reset_time,
            retry_after=0 if remaining > 0 else int((reset_time - self._now()).total_seconds()),
        ).headers()

    async def throttle(self, subject_id: Optional[str] = None, ip_address: Optional[str] = None,
                       action: str = "api") -> bool:
        """Coarse per-subject (or per-IP when anonymous) API throttle"""
        if subject_id:
            key = self.for_user(subject_id, action)
        elif ip_address:
            key = self.for_ip(ip_address, action)
        else:
            raise ValueError("throttle requires subject_id or ip_address")
        return await self.check(key, self.settings.throttle_attempts, self.settings.throttle_decay)

    # Internals

    async def _reset_time(self, cache_key: str, window: int) -> datetime:
        ttl = await self.cache.ttl(cache_key)
        return self._now() + timedelta(seconds=ttl if ttl is not None else window)

    async def _denied(self, key: str, cache_key: str, count: int, limit: int, window: int) -> RateLimitResult:
        reset_time = await self._reset_time(cache_key, window)
        retry_after = max(0, int((reset_time - self._now()).total_seconds()))
        self.logger.info(f"Rate limit exceeded: key={key}, count={count}/{limit}, retry_after={retry_after}s")
        return RateLimitResult(
            key=key,
            allowed=False,
            current_count=min(count, limit),
            limit=limit,
            remaining=0,
            reset_time=reset_time,
            retry_after=retry_after,
        )

    def _degraded(self, key: str, limit: int, window: int, error: Exception) -> RateLimitResult:
        allowed = self.settings.fail_open
        self.logger.error(
            f"Rate limit check failed for {key}, {'allowing' if allowed else 'denying'} by policy: {error}"
        )
        return RateLimitResult(
            key=key,
            allowed=allowed,
            current_count=0,
            limit=limit,
            remaining=limit if allowed else 0,
            reset_time=self._now() + timedelta(seconds=window),
            retry_after=0 if allowed else window,
            degraded=True,
        )
