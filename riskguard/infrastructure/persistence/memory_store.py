"""
In-memory implementation of IRecordStore.

RAM-based record store for development and testing. Records are normalised
through the same JSON conversion the Redis store applies, so equality
filters behave identically on both.
"""

import asyncio
import uuid
from datetime import datetime
from typing import Any, Dict, List

from riskguard.models.exceptions import ValidationError
from riskguard.models.interfaces import IRecordStore, RecordFilter
from riskguard.utils.serialization import ensure_utc, restore_timestamps, to_json_compatible, utc_now


def _normalise(record: Dict[str, Any]) -> Dict[str, Any]:
    timestamp = record.get("timestamp") or utc_now()
    if not isinstance(timestamp, datetime):
        raise ValidationError("record timestamp must be a datetime", context={"timestamp": str(timestamp)})
    data = to_json_compatible(dict(record, timestamp=ensure_utc(timestamp)))
    return restore_timestamps(data)


def record_matches(record: Dict[str, Any], selection: RecordFilter) -> bool:
    """True when a stored record satisfies the time bounds and equality constraints"""
    timestamp = record["timestamp"]
    if selection.since is not None and timestamp < ensure_utc(selection.since):
        return False
    if selection.until is not None and timestamp >= ensure_utc(selection.until):
        return False
    for key, expected in selection.equals.items():
        if record.get(key) != to_json_compatible(expected):
            return False
    return True


class InMemoryRecordStore(IRecordStore):
    """In-memory implementation of IRecordStore using Python lists"""

    def __init__(self):
        self._collections: Dict[str, List[Dict[str, Any]]] = {}
        self._lock = asyncio.Lock()

    async def insert(self, collection: str, record: Dict[str, Any]) -> str:
        stored = _normalise(record)
        record_id = str(stored.get("id") or stored.get("event_id") or uuid.uuid4())
        stored["id"] = record_id
        async with self._lock:
            self._collections.setdefault(collection, []).append(stored)
        return record_id

    def _select(self, selection: RecordFilter) -> List[Dict[str, Any]]:
        rows = [r for r in self._collections.get(selection.collection, []) if record_matches(r, selection)]
        rows.sort(key=lambda r: r["timestamp"], reverse=selection.newest_first)
        return rows

    async def query(self, selection: RecordFilter) -> List[Dict[str, Any]]:
        async with self._lock:
            rows = self._select(selection)
        if selection.limit is not None:
            rows = rows[:selection.limit]
        return [dict(r) for r in rows]

    async def count(self, selection: RecordFilter) -> int:
        async with self._lock:
            return len(self._select(selection))

    async def delete(self, selection: RecordFilter) -> int:
        async with self._lock:
            rows = self._collections.get(selection.collection, [])
            kept = [r for r in rows if not record_matches(r, selection)]
            removed = len(rows) - len(kept)
            self._collections[selection.collection] = kept
        return removed
