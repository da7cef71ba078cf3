# File: riskguard/models/interfaces.py
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from riskguard.models.threat import GeoPoint


# Cache interfaces

class ICacheBackend(ABC):
    """Shared key/value cache with per-key expiry.

    Backs the profile cache, the rate-limit counters and the brute-force
    counters. Implementations are chosen once at startup via
    `riskguard.infrastructure.caching.create_cache_backend`.

    Every method raises `CollaboratorUnavailable` when the backing store
    cannot be reached; callers decide whether that fails open or closed.
    """

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        """Return the stored value, or None when missing or expired"""
        pass

    @abstractmethod
    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        """Store a JSON-compatible value; `ttl` in seconds, None for no expiry"""
        pass

    @abstractmethod
    async def increment(self, key: str, amount: int = 1, ttl: Optional[int] = None) -> int:
        """Atomically add `amount` and return the new value.

        When `ttl` is given it is applied only if the key has no expiry yet,
        so the first increment of a fresh key opens the window and later
        increments never extend it.
        """
        pass

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Remove a key; True when something was deleted"""
        pass

    @abstractmethod
    async def ttl(self, key: str) -> Optional[int]:
        """Seconds until expiry, None when the key is missing or persistent"""
        pass


# Record store interfaces

class RecordFilter(BaseModel):
    """Selection criteria for record store queries.

    Attributes:
        collection: Logical table, e.g. "behavior_samples" or "security_events"
        equals: Exact-match constraints on top-level record fields
        since: Inclusive lower bound on the record timestamp
        until: Exclusive upper bound on the record timestamp
        limit: Maximum number of rows returned, None for all
        newest_first: Order by timestamp descending
    """
    collection: str = Field(min_length=1)
    equals: Dict[str, Any] = Field(default_factory=dict)
    since: Optional[datetime] = None
    until: Optional[datetime] = None
    limit: Optional[int] = Field(default=None, ge=1)
    newest_first: bool = True


class IRecordStore(ABC):
    """Append-oriented store for samples, analyses and security events.

    Records are plain dicts carrying a `timestamp` datetime. The store does
    not interpret any other field beyond equality filtering.
    """

    @abstractmethod
    async def insert(self, collection: str, record: Dict[str, Any]) -> str:
        """Persist a record and return its identifier"""
        pass

    @abstractmethod
    async def query(self, selection: RecordFilter) -> List[Dict[str, Any]]:
        pass

    @abstractmethod
    async def count(self, selection: RecordFilter) -> int:
        """Number of records matching the filter, ignoring `limit`"""
        pass

    @abstractmethod
    async def delete(self, selection: RecordFilter) -> int:
        """Remove matching records and return how many were removed"""
        pass


# Collaborator interfaces

class IDeviceTrust(ABC):
    """Device trust lookup consulted by the threat analyzer"""

    @abstractmethod
    async def is_device_trusted(self, subject_id: str, fingerprint: str) -> bool:
        pass

    async def cleanup_old_devices(self, days_old: int = 90) -> int:
        """Remove stale untrusted devices; registries without local state have nothing to remove"""
        return 0


class ILocationService(ABC):
    """Geographic distance and geofence checks"""

    @abstractmethod
    def distance_km(self, a: GeoPoint, b: GeoPoint) -> float:
        pass

    @abstractmethod
    def is_within_geofence(self, point: GeoPoint, center: GeoPoint, radius_km: Optional[float] = None) -> bool:
        pass


class INotifier(ABC):
    """Alert delivery.

    Implementations raise `AlertDispatchError` on delivery failure; the
    decision policy logs it and carries on.
    """

    @abstractmethod
    async def send_to_subject(self, subject_id: str, title: str, message: str,
                              level: str = "warning", data: Optional[Dict[str, Any]] = None) -> None:
        pass

    @abstractmethod
    async def send_to_admins(self, title: str, message: str,
                             level: str = "error", data: Optional[Dict[str, Any]] = None) -> None:
        pass
