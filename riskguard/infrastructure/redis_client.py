"""
Redis client configuration for RiskGuard.

Clients are built from `CacheSettings`; nothing here reads the environment.
"""

import logging
from typing import Optional
from urllib.parse import urlparse

import redis.asyncio as redis

from riskguard.config.settings import CacheSettings

logger = logging.getLogger(__name__)


class RedisClientFactory:
    """Factory for creating configured Redis clients."""

    @staticmethod
    def create_client(settings: Optional[CacheSettings] = None, **kwargs) -> redis.Redis:
        """
        Create a Redis client from cache settings.

        Args:
            settings: Cache section; defaults are used when omitted
            **kwargs: Additional Redis client parameters

        Returns:
            Configured Redis client

        Raises:
            ConnectionError: If the client cannot be constructed
        """
        settings = settings or CacheSettings()
        password = settings.redis_password.get_secret_value() if settings.redis_password else None

        pool_kwargs = {
            'max_connections': kwargs.pop('max_connections', 20),
            'socket_connect_timeout': kwargs.pop('socket_connect_timeout', settings.redis_timeout),
            'socket_timeout': kwargs.pop('socket_timeout', settings.redis_timeout),
            'decode_responses': kwargs.pop('decode_responses', True),
        }

        try:
            if settings.redis_url:
                client = redis.from_url(settings.redis_url, **pool_kwargs, **kwargs)
                logger.info(f"Redis client created from URL: {RedisClientFactory._mask_url(settings.redis_url)}")
            else:
                client = redis.Redis(
                    host=settings.redis_host,
                    port=settings.redis_port,
                    db=settings.redis_db,
                    password=password,
                    **pool_kwargs,
                    **kwargs
                )
                logger.info(
                    f"Redis client created: {settings.redis_host}:{settings.redis_port}/{settings.redis_db} "
                    f"(auth: {'yes' if password else 'no'})"
                )
            return client

        except Exception as e:
            logger.error(f"Failed to create Redis client: {e}")
            raise ConnectionError(f"Cannot connect to Redis: {e}")

    @staticmethod
    def _mask_url(url: str) -> str:
        """Mask password in URL for logging."""
        try:
            parsed = urlparse(url)
            if parsed.password:
                masked_netloc = parsed.netloc.replace(parsed.password, '***')
                return url.replace(parsed.netloc, masked_netloc)
            return url
        except Exception:
            return url.replace('://', '://***@') if '://' in url else url

    @staticmethod
    async def test_connection(client: redis.Redis) -> bool:
        """Ping the server; False on any failure."""
        try:
            response = await client.ping()
            if response:
                logger.info("Redis connection test successful")
                return True
            logger.error("Redis ping returned False")
            return False
        except Exception as e:
            logger.error(f"Redis connection test failed: {e}")
            return False


def create_redis_client(settings: Optional[CacheSettings] = None, **kwargs) -> redis.Redis:
    """
    Convenience function to create a Redis client.

    Usage:
        client = create_redis_client(get_settings().cache)
        client = create_redis_client(CacheSettings(redis_url='redis://:password@host:6379/0'))
    """
    return RedisClientFactory.create_client(settings, **kwargs)


async def validate_redis_connection(client: redis.Redis) -> None:
    """
    Validate Redis connection and log results.

    Raises:
        ConnectionError: If Redis is not accessible
    """
    is_healthy = await RedisClientFactory.test_connection(client)
    if not is_healthy:
        raise ConnectionError("Redis connection validation failed")
