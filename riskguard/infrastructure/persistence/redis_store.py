"""Redis Record Store Implementation

Stores samples, analyses and security events per collection.

Redis Key Schema:
- {prefix}:records:{collection}                  -> Sorted set (record_id scored by epoch timestamp)
- {prefix}:records:{collection}:data             -> Hash (record_id -> JSON record)
- {prefix}:records:{collection}:{field}:{value}  -> Sorted set per indexed field value
                                                    (subject_id, ip_address, event_type)

Time-bounded reads use a sorted set: the index of the first indexed field
named in the equality filter, else the collection index. Remaining equality
constraints are applied to the decoded rows.
"""

import json
import logging
import uuid
from typing import Any, Dict, List, Optional, Tuple

import redis.asyncio as redis
from redis.exceptions import RedisError

from riskguard.infrastructure.persistence.memory_store import _normalise, record_matches
from riskguard.models.exceptions import CollaboratorUnavailable
from riskguard.models.interfaces import IRecordStore, RecordFilter
from riskguard.utils.serialization import ensure_utc, restore_timestamps, serialize_for_redis, to_json_compatible

INDEXED_FIELDS = ("subject_id", "ip_address", "event_type")


class RedisRecordStore(IRecordStore):
    """Redis implementation of record storage using sorted sets"""

    def __init__(self, redis_client: redis.Redis, key_prefix: str = "riskguard"):
        self.redis = redis_client
        self.key_prefix = key_prefix
        self.logger = logging.getLogger(__name__)

    def _index_key(self, collection: str) -> str:
        return f"{self.key_prefix}:records:{collection}"

    def _data_key(self, collection: str) -> str:
        return f"{self.key_prefix}:records:{collection}:data"

    def _field_key(self, collection: str, field: str, value: Any) -> str:
        return f"{self.key_prefix}:records:{collection}:{field}:{value}"

    def _field_keys(self, collection: str, row: Dict[str, Any]) -> List[str]:
        return [
            self._field_key(collection, field, row[field])
            for field in INDEXED_FIELDS
            if row.get(field) is not None
        ]

    def _select_index(self, selection: RecordFilter) -> Tuple[str, bool]:
        """Sorted set to scan, and whether it alone satisfies every equality constraint"""
        for field in INDEXED_FIELDS:
            value = selection.equals.get(field)
            if value is not None:
                key = self._field_key(selection.collection, field, to_json_compatible(value))
                return key, set(selection.equals) == {field}
        return self._index_key(selection.collection), not selection.equals

    @staticmethod
    def _bounds(selection: RecordFilter) -> Tuple[Any, Any]:
        low = ensure_utc(selection.since).timestamp() if selection.since else "-inf"
        # until is exclusive
        high = f"({ensure_utc(selection.until).timestamp()}" if selection.until else "+inf"
        return low, high

    def _unavailable(self, operation: str, collection: str, error: Exception) -> CollaboratorUnavailable:
        self.logger.error(f"Record store {operation} failed for {collection}: {error}")
        return CollaboratorUnavailable(
            "record_store",
            f"Record store {operation} failed: {error}",
            context={"operation": operation, "collection": collection},
        )

    async def insert(self, collection: str, record: Dict[str, Any]) -> str:
        stored = _normalise(record)
        record_id = str(stored.get("id") or stored.get("event_id") or uuid.uuid4())
        stored["id"] = record_id
        score = stored["timestamp"].timestamp()

        try:
            pipe = self.redis.pipeline()
            pipe.hset(self._data_key(collection), record_id, serialize_for_redis(stored))
            pipe.zadd(self._index_key(collection), {record_id: score})
            for key in self._field_keys(collection, stored):
                pipe.zadd(key, {record_id: score})
            await pipe.execute()
        except (RedisError, ConnectionError, OSError) as e:
            raise self._unavailable("insert", collection, e)
        return record_id

    async def _matching(self, selection: RecordFilter, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        low, high = self._bounds(selection)
        index_key, exact = self._select_index(selection)
        # The row limit can only be pushed into Redis when the index alone decides membership
        page = {"start": 0, "num": limit} if limit is not None and exact else {}

        try:
            if selection.newest_first:
                ids = await self.redis.zrevrangebyscore(index_key, high, low, **page)
            else:
                ids = await self.redis.zrangebyscore(index_key, low, high, **page)
            if not ids:
                return []
            raw_rows = await self.redis.hmget(self._data_key(selection.collection), ids)
        except (RedisError, ConnectionError, OSError) as e:
            raise self._unavailable("query", selection.collection, e)

        rows = []
        for raw in raw_rows:
            if raw is None:
                continue
            if isinstance(raw, bytes):
                raw = raw.decode("utf-8")
            row = restore_timestamps(json.loads(raw))
            if record_matches(row, selection):
                rows.append(row)
        return rows

    async def query(self, selection: RecordFilter) -> List[Dict[str, Any]]:
        rows = await self._matching(selection, selection.limit)
        if selection.limit is not None:
            rows = rows[:selection.limit]
        return rows

    async def count(self, selection: RecordFilter) -> int:
        index_key, exact = self._select_index(selection)
        if exact:
            low, high = self._bounds(selection)
            try:
                return int(await self.redis.zcount(index_key, low, high))
            except (RedisError, ConnectionError, OSError) as e:
                raise self._unavailable("count", selection.collection, e)
        return len(await self._matching(selection))

    async def delete(self, selection: RecordFilter) -> int:
        rows = await self._matching(selection)
        if not rows:
            return 0
        ids = [row["id"] for row in rows]
        try:
            pipe = self.redis.pipeline()
            pipe.zrem(self._index_key(selection.collection), *ids)
            pipe.hdel(self._data_key(selection.collection), *ids)
            for row in rows:
                for key in self._field_keys(selection.collection, row):
                    pipe.zrem(key, row["id"])
            await pipe.execute()
        except (RedisError, ConnectionError, OSError) as e:
            raise self._unavailable("delete", selection.collection, e)
        self.logger.info(f"Deleted {len(ids)} records from {selection.collection}")
        return len(ids)
