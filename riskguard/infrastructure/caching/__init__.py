from .backends import (
    InMemoryCacheBackend,
    RedisCacheBackend,
    available_backends,
    create_cache_backend,
    register_cache_backend,
)

__all__ = [
    "InMemoryCacheBackend",
    "RedisCacheBackend",
    "available_backends",
    "create_cache_backend",
    "register_cache_backend",
]
