"""
Shared cache backends

One `ICacheBackend` implementation per storage technology, selected once at
startup through a registry keyed by `CacheSettings.backend`.
"""

import asyncio
import json
import logging
import time
from typing import Any, Callable, Dict, Optional, Tuple

from redis.exceptions import RedisError

from riskguard.config.settings import CacheBackendType, CacheSettings
from riskguard.models.exceptions import CollaboratorUnavailable, ConfigurationError
from riskguard.models.interfaces import ICacheBackend
from riskguard.utils.serialization import serialize_for_redis


class InMemoryCacheBackend(ICacheBackend):
    """
    Process-local cache with per-key expiry.

    All mutations run under one asyncio lock so `increment` is atomic
    within the event loop. `clock` returns seconds and is injectable so
    window expiry can be driven deterministically.
    """

    def __init__(self, key_prefix: str = "riskguard", clock: Callable[[], float] = time.monotonic):
        self.key_prefix = key_prefix
        self._clock = clock
        self._data: Dict[str, Tuple[Any, Optional[float]]] = {}
        self._lock = asyncio.Lock()
        self.logger = logging.getLogger(__name__)

    def _key(self, key: str) -> str:
        return f"{self.key_prefix}:{key}" if self.key_prefix else key

    def _live_entry(self, full_key: str) -> Optional[Tuple[Any, Optional[float]]]:
        entry = self._data.get(full_key)
        if entry is None:
            return None
        _, expires_at = entry
        if expires_at is not None and self._clock() >= expires_at:
            del self._data[full_key]
            return None
        return entry

    async def get(self, key: str) -> Optional[Any]:
        async with self._lock:
            entry = self._live_entry(self._key(key))
            return None if entry is None else entry[0]

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        expires_at = self._clock() + ttl if ttl else None
        async with self._lock:
            self._data[self._key(key)] = (value, expires_at)

    async def increment(self, key: str, amount: int = 1, ttl: Optional[int] = None) -> int:
        full_key = self._key(key)
        async with self._lock:
            entry = self._live_entry(full_key)
            if entry is None:
                value, expires_at = 0, None
            else:
                value, expires_at = entry
            new_value = int(value) + amount
            if ttl and expires_at is None:
                expires_at = self._clock() + ttl
            self._data[full_key] = (new_value, expires_at)
            return new_value

    async def delete(self, key: str) -> bool:
        async with self._lock:
            return self._data.pop(self._key(key), None) is not None

    async def ttl(self, key: str) -> Optional[int]:
        async with self._lock:
            entry = self._live_entry(self._key(key))
            if entry is None or entry[1] is None:
                return None
            return max(0, int(round(entry[1] - self._clock())))

    async def clear(self) -> None:
        async with self._lock:
            self._data.clear()


class RedisCacheBackend(ICacheBackend):
    """
    Redis-backed cache.

    Values are stored as JSON. Counters use native INCRBY; the window TTL is
    attached in the same pipeline with EXPIRE NX so only the first increment
    of a fresh key sets it.
    """

    def __init__(self, redis_client, key_prefix: str = "riskguard"):
        self.redis = redis_client
        self.key_prefix = key_prefix
        self.logger = logging.getLogger(__name__)

    def _key(self, key: str) -> str:
        return f"{self.key_prefix}:{key}" if self.key_prefix else key

    def _unavailable(self, operation: str, key: str, error: Exception) -> CollaboratorUnavailable:
        self.logger.error(f"Redis {operation} failed for key {key}: {error}")
        return CollaboratorUnavailable(
            "cache",
            f"Cache {operation} failed: {error}",
            context={"operation": operation, "key": key},
        )

    async def get(self, key: str) -> Optional[Any]:
        try:
            raw = await self.redis.get(self._key(key))
        except (RedisError, ConnectionError, OSError) as e:
            raise self._unavailable("get", key, e)
        if raw is None:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        try:
            return json.loads(raw)
        except (TypeError, ValueError):
            return raw

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        try:
            await self.redis.set(self._key(key), serialize_for_redis(value), ex=ttl or None)
        except (RedisError, ConnectionError, OSError) as e:
            raise self._unavailable("set", key, e)

    async def increment(self, key: str, amount: int = 1, ttl: Optional[int] = None) -> int:
        full_key = self._key(key)
        try:
            pipe = self.redis.pipeline()
            pipe.incrby(full_key, amount)
            if ttl:
                pipe.expire(full_key, ttl, nx=True)
            results = await pipe.execute()
        except (RedisError, ConnectionError, OSError) as e:
            raise self._unavailable("increment", key, e)
        return int(results[0])

    async def delete(self, key: str) -> bool:
        try:
            return bool(await self.redis.delete(self._key(key)))
        except (RedisError, ConnectionError, OSError) as e:
            raise self._unavailable("delete", key, e)

    async def ttl(self, key: str) -> Optional[int]:
        try:
            remaining = await self.redis.ttl(self._key(key))
        except (RedisError, ConnectionError, OSError) as e:
            raise self._unavailable("ttl", key, e)
        # -2 missing, -1 no expiry
        if remaining is None or remaining < 0:
            return None
        return int(remaining)


def _build_memory_backend(settings: CacheSettings) -> ICacheBackend:
    return InMemoryCacheBackend(key_prefix=settings.key_prefix)


def _build_redis_backend(settings: CacheSettings) -> ICacheBackend:
    from riskguard.infrastructure.redis_client import create_redis_client
    return RedisCacheBackend(create_redis_client(settings), key_prefix=settings.key_prefix)


_BACKEND_REGISTRY: Dict[str, Callable[[CacheSettings], ICacheBackend]] = {
    CacheBackendType.MEMORY.value: _build_memory_backend,
    CacheBackendType.REDIS.value: _build_redis_backend,
}


def register_cache_backend(name: str, factory: Callable[[CacheSettings], ICacheBackend]) -> None:
    """Make an additional backend selectable through `CacheSettings.backend`"""
    _BACKEND_REGISTRY[name] = factory


def available_backends() -> Tuple[str, ...]:
    return tuple(sorted(_BACKEND_REGISTRY))


def create_cache_backend(settings: CacheSettings) -> ICacheBackend:
    """
    Build the configured cache backend.

    Raises:
        ConfigurationError: If no backend is registered under the configured name
    """
    name = getattr(settings.backend, "value", settings.backend)
    factory = _BACKEND_REGISTRY.get(name)
    if factory is None:
        raise ConfigurationError(
            f"Unknown cache backend '{name}'",
            context={"available": list(available_backends())},
        )
    logging.getLogger(__name__).info(f"Using {name} cache backend")
    return factory(settings)
