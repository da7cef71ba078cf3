"""Centralized serialization utilities for RiskGuard.

Audit rows, behavior samples and cached profiles cross the cache and record
store boundary as JSON. This module keeps the conversion in one place so
timestamps survive a round trip as timezone-aware UTC datetimes.

Usage:
    from riskguard.utils.serialization import safe_json_dumps, restore_timestamps

    payload = safe_json_dumps({"timestamp": utc_now(), "risk_score": 0.4})
    record = restore_timestamps(json.loads(payload))
"""

import json
from datetime import datetime, timezone
from typing import Any, Dict
from uuid import UUID


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime"""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and normalise aware ones to UTC"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_utc_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 string (with or without 'Z') into an aware UTC datetime"""
    if value.endswith('Z'):
        value = value[:-1] + '+00:00'
    return ensure_utc(datetime.fromisoformat(value))


def to_json_compatible(obj: Any) -> Any:
    """Convert any object to JSON-compatible format.

    Handles:
    - datetime: timezone-aware -> ISO with offset, naive -> ISO with 'Z'
    - UUID: string representation
    - Pydantic models: .model_dump(mode='json')
    - Enums with a string value: the value
    - dict/list/tuple/set: recursive processing
    - Other types: returned as-is
    """
    if obj is None:
        return None

    if isinstance(obj, datetime):
        if obj.tzinfo is not None:
            return obj.isoformat()
        return obj.isoformat() + 'Z'

    if isinstance(obj, UUID):
        return str(obj)

    if hasattr(obj, 'model_dump'):
        return to_json_compatible(obj.model_dump(mode='json'))

    if isinstance(obj, dict):
        return {key: to_json_compatible(value) for key, value in obj.items()}

    if isinstance(obj, (list, tuple, set, frozenset)):
        return [to_json_compatible(item) for item in obj]

    if hasattr(obj, 'value') and isinstance(getattr(obj, 'value'), str):
        return obj.value

    return obj


def safe_json_dumps(obj: Any, **kwargs) -> str:
    """Serialize any object to a JSON string via to_json_compatible"""
    return json.dumps(to_json_compatible(obj), **kwargs)


def restore_timestamps(data: Dict[str, Any], fields: tuple = ("timestamp",)) -> Dict[str, Any]:
    """Convert ISO strings under the given top-level keys back to datetimes.

    Only the named keys are touched; free-form metadata is left as stored.
    """
    if not isinstance(data, dict):
        return data

    result = dict(data)
    for key in fields:
        value = result.get(key)
        if isinstance(value, str):
            try:
                result[key] = parse_utc_timestamp(value)
            except ValueError:
                pass
    return result


def serialize_for_redis(obj: Any) -> str:
    """Serialize object for Redis storage"""
    return safe_json_dumps(obj, sort_keys=True)
