"""Test module for the record store implementations.

Tests cover:
- Time-bounded, filtered, ordered queries in memory
- Count and delete semantics
- Redis sorted-set indexing and error mapping against a mocked client
"""

import json
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, Mock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from riskguard.infrastructure.persistence.redis_store import RedisRecordStore
from riskguard.models.exceptions import CollaboratorUnavailable, ValidationError
from riskguard.models.interfaces import RecordFilter
from riskguard.models.threat import Severity

T0 = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)


async def _seed(store):
    for hours, subject in ((0, "user-1"), (1, "user-2"), (2, "user-1"), (3, "user-1")):
        await store.insert("events", {
            "subject_id": subject,
            "severity": Severity.HIGH,
            "timestamp": T0 - timedelta(hours=hours),
        })


class TestInMemoryRecordStore:
    """Test the in-memory store"""

    @pytest.mark.asyncio
    async def test_insert_assigns_id(self, store):
        record_id = await store.insert("events", {"timestamp": T0})

        rows = await store.query(RecordFilter(collection="events"))
        assert rows[0]["id"] == record_id

    @pytest.mark.asyncio
    async def test_insert_keeps_existing_event_id(self, store):
        assert await store.insert("events", {"event_id": "evt-1", "timestamp": T0}) == "evt-1"

    @pytest.mark.asyncio
    async def test_timestamp_must_be_datetime(self, store):
        with pytest.raises(ValidationError):
            await store.insert("events", {"timestamp": "yesterday"})

    @pytest.mark.asyncio
    async def test_naive_timestamp_is_utc(self, store):
        await store.insert("events", {"timestamp": datetime(2024, 1, 15, 12, 0)})

        rows = await store.query(RecordFilter(collection="events"))
        assert rows[0]["timestamp"] == T0

    @pytest.mark.asyncio
    async def test_query_orders_newest_first(self, store):
        await _seed(store)

        rows = await store.query(RecordFilter(collection="events"))

        assert [r["timestamp"] for r in rows] == [T0 - timedelta(hours=h) for h in range(4)]

    @pytest.mark.asyncio
    async def test_query_oldest_first_with_limit(self, store):
        await _seed(store)

        rows = await store.query(RecordFilter(collection="events", newest_first=False, limit=2))

        assert [r["timestamp"] for r in rows] == [T0 - timedelta(hours=3), T0 - timedelta(hours=2)]

    @pytest.mark.asyncio
    async def test_since_inclusive_until_exclusive(self, store):
        await _seed(store)

        rows = await store.query(RecordFilter(
            collection="events", since=T0 - timedelta(hours=2), until=T0,
        ))

        assert [r["timestamp"] for r in rows] == [T0 - timedelta(hours=1), T0 - timedelta(hours=2)]

    @pytest.mark.asyncio
    async def test_equality_filters_accept_enums(self, store):
        await _seed(store)

        rows = await store.query(RecordFilter(
            collection="events", equals={"subject_id": "user-1", "severity": Severity.HIGH},
        ))

        assert len(rows) == 3
        assert all(r["severity"] == "high" for r in rows)

    @pytest.mark.asyncio
    async def test_count_ignores_limit(self, store):
        await _seed(store)

        assert await store.count(RecordFilter(collection="events", limit=1)) == 4
        assert await store.count(RecordFilter(collection="missing")) == 0

    @pytest.mark.asyncio
    async def test_delete(self, store):
        await _seed(store)

        deleted = await store.delete(RecordFilter(collection="events", until=T0 - timedelta(hours=1)))

        assert deleted == 2
        assert await store.count(RecordFilter(collection="events")) == 2

    @pytest.mark.asyncio
    async def test_returned_rows_are_copies(self, store):
        await store.insert("events", {"timestamp": T0, "subject_id": "user-1"})

        rows = await store.query(RecordFilter(collection="events"))
        rows[0]["subject_id"] = "tampered"

        assert (await store.query(RecordFilter(collection="events")))[0]["subject_id"] == "user-1"


class MockRedisClient:
    """Mock Redis client for testing"""

    def __init__(self):
        self.zrevrangebyscore = AsyncMock(return_value=[])
        self.zrangebyscore = AsyncMock(return_value=[])
        self.zcount = AsyncMock(return_value=0)
        self.hmget = AsyncMock(return_value=[])

        self.pipeline_mock = Mock()
        self.pipeline_mock.hset = Mock(return_value=self.pipeline_mock)
        self.pipeline_mock.zadd = Mock(return_value=self.pipeline_mock)
        self.pipeline_mock.zrem = Mock(return_value=self.pipeline_mock)
        self.pipeline_mock.hdel = Mock(return_value=self.pipeline_mock)
        self.pipeline_mock.execute = AsyncMock(return_value=[1, 1])
        self.pipeline = Mock(return_value=self.pipeline_mock)


def _stored(record_id, subject_id, timestamp):
    return json.dumps({"id": record_id, "subject_id": subject_id, "timestamp": timestamp.isoformat()})


class TestRedisRecordStore:
    """Test the Redis store against a mocked client"""

    @pytest.fixture
    def redis_client(self):
        return MockRedisClient()

    @pytest.fixture
    def redis_store(self, redis_client):
        return RedisRecordStore(redis_client, key_prefix="rg")

    @pytest.mark.asyncio
    async def test_insert_indexes_by_timestamp(self, redis_store, redis_client):
        record_id = await redis_store.insert("events", {"event_id": "evt-1", "timestamp": T0})

        assert record_id == "evt-1"
        hset_args = redis_client.pipeline_mock.hset.call_args.args
        assert hset_args[0] == "rg:records:events:data"
        assert hset_args[1] == "evt-1"
        assert json.loads(hset_args[2])["timestamp"] == T0.isoformat()
        redis_client.pipeline_mock.zadd.assert_called_once_with("rg:records:events", {"evt-1": T0.timestamp()})
        redis_client.pipeline_mock.execute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_query_reads_index_then_data(self, redis_store, redis_client):
        redis_client.zrevrangebyscore.return_value = ["a", "b", "c"]
        redis_client.hmget.return_value = [
            _stored("a", "user-1", T0),
            None,
            _stored("c", "user-2", T0 - timedelta(minutes=5)),
        ]

        rows = await redis_store.query(RecordFilter(
            collection="events", equals={"subject_id": "user-1"}, since=T0 - timedelta(hours=1), until=T0 + timedelta(seconds=1),
        ))

        assert [r["id"] for r in rows] == ["a"]
        assert rows[0]["timestamp"] == T0
        index_args = redis_client.zrevrangebyscore.await_args.args
        assert index_args[0] == "rg:records:events:subject_id:user-1"
        assert index_args[1] == f"({(T0 + timedelta(seconds=1)).timestamp()}"
        assert index_args[2] == (T0 - timedelta(hours=1)).timestamp()

    @pytest.mark.asyncio
    async def test_query_empty_index_skips_data_read(self, redis_store, redis_client):
        assert await redis_store.query(RecordFilter(collection="events")) == []

        redis_client.hmget.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_count_without_filters_uses_zcount(self, redis_store, redis_client):
        redis_client.zcount.return_value = 7

        assert await redis_store.count(RecordFilter(collection="events")) == 7
        redis_client.zcount.assert_awaited_once_with("rg:records:events", "-inf", "+inf")

    @pytest.mark.asyncio
    async def test_delete_removes_index_and_data(self, redis_store, redis_client):
        redis_client.zrevrangebyscore.return_value = ["a"]
        redis_client.hmget.return_value = [_stored("a", "user-1", T0)]

        assert await redis_store.delete(RecordFilter(collection="events")) == 1

        assert [c.args for c in redis_client.pipeline_mock.zrem.call_args_list] == [
            ("rg:records:events", "a"),
            ("rg:records:events:subject_id:user-1", "a"),
        ]
        redis_client.pipeline_mock.hdel.assert_called_once_with("rg:records:events:data", "a")

    @pytest.mark.asyncio
    async def test_insert_writes_field_indexes(self, redis_store, redis_client):
        await redis_store.insert("events", {
            "event_id": "evt-1",
            "event_type": "failed_login",
            "subject_id": "user-1",
            "ip_address": "203.0.113.7",
            "timestamp": T0,
        })

        zadd_keys = [c.args[0] for c in redis_client.pipeline_mock.zadd.call_args_list]
        assert zadd_keys == [
            "rg:records:events",
            "rg:records:events:subject_id:user-1",
            "rg:records:events:ip_address:203.0.113.7",
            "rg:records:events:event_type:failed_login",
        ]

    @pytest.mark.asyncio
    async def test_single_indexed_filter_is_served_by_redis(self, redis_store, redis_client):
        redis_client.zcount.return_value = 4
        redis_client.zrevrangebyscore.return_value = ["a"]
        redis_client.hmget.return_value = [_stored("a", "user-1", T0)]

        assert await redis_store.count(RecordFilter(collection="events", equals={"subject_id": "user-1"})) == 4
        await redis_store.query(RecordFilter(collection="events", equals={"subject_id": "user-1"}, limit=5))

        redis_client.zcount.assert_awaited_once_with("rg:records:events:subject_id:user-1", "-inf", "+inf")
        redis_client.zrevrangebyscore.assert_awaited_once_with(
            "rg:records:events:subject_id:user-1", "+inf", "-inf", start=0, num=5,
        )

    @pytest.mark.asyncio
    async def test_extra_filters_are_applied_to_rows(self, redis_store, redis_client):
        redis_client.zrevrangebyscore.return_value = ["a", "b"]
        redis_client.hmget.return_value = [
            json.dumps({"id": "a", "subject_id": "user-1", "event_type": "failed_login", "timestamp": T0.isoformat()}),
            json.dumps({"id": "b", "subject_id": "user-1", "event_type": "successful_login", "timestamp": T0.isoformat()}),
        ]

        count = await redis_store.count(RecordFilter(
            collection="events", equals={"subject_id": "user-1", "event_type": "successful_login"}, limit=1,
        ))

        assert count == 1
        redis_client.zcount.assert_not_awaited()
        redis_client.zrevrangebyscore.assert_awaited_once_with("rg:records:events:subject_id:user-1", "+inf", "-inf")

    @pytest.mark.asyncio
    async def test_errors_become_collaborator_unavailable(self, redis_store, redis_client):
        redis_client.zrevrangebyscore.side_effect = RedisConnectionError("connection refused")

        with pytest.raises(CollaboratorUnavailable) as exc_info:
            await redis_store.query(RecordFilter(collection="events"))

        assert exc_info.value.collaborator == "record_store"
