"""Utility modules for RiskGuard."""

from .serialization import (
    utc_now,
    ensure_utc,
    parse_utc_timestamp,
    to_json_compatible,
    safe_json_dumps,
    restore_timestamps,
    serialize_for_redis,
)

__all__ = [
    'utc_now',
    'ensure_utc',
    'parse_utc_timestamp',
    'to_json_compatible',
    'safe_json_dumps',
    'restore_timestamps',
    'serialize_for_redis',
]
