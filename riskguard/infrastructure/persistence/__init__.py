from .memory_store import InMemoryRecordStore
from .redis_store import RedisRecordStore

__all__ = ["InMemoryRecordStore", "RedisRecordStore"]
