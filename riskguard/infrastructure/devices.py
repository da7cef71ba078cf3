"""
In-memory device trust registry

Tracks the devices each subject has signed in from and whether they are
trusted. Trust is time-limited; expired trust is revoked the next time it is
consulted.
"""

import asyncio
import hashlib
import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

from riskguard.models.exceptions import ValidationError
from riskguard.models.interfaces import IDeviceTrust
from riskguard.utils.serialization import utc_now

DEFAULT_TRUST_DAYS = 30

_FINGERPRINT_COMPONENTS = (
    "user_agent",
    "accept_language",
    "screen_resolution",
    "timezone",
    "platform",
    "cookie_enabled",
    "do_not_track",
)


class DeviceRecord(BaseModel):
    """A device seen for a subject"""
    subject_id: str
    fingerprint: str
    name: str = "Unknown device"
    info: Dict[str, Any] = Field(default_factory=dict)
    is_trusted: bool = False
    trust_expires_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utc_now)
    last_seen_at: datetime = Field(default_factory=utc_now)


def generate_fingerprint(request_data: Dict[str, Any]) -> str:
    """SHA-256 over the stable client attributes, pipe-joined in fixed order"""
    components = [str(request_data.get(name, "")) for name in _FINGERPRINT_COMPONENTS]
    return hashlib.sha256("|".join(components).encode("utf-8")).hexdigest()


class InMemoryDeviceRegistry(IDeviceTrust):
    """Device trust store backed by a dict keyed on (subject_id, fingerprint)"""

    def __init__(self, clock: Callable[[], datetime] = utc_now):
        self._clock = clock
        self._devices: Dict[Tuple[str, str], DeviceRecord] = {}
        self._lock = asyncio.Lock()
        self.logger = logging.getLogger(__name__)

    async def register_device(self, subject_id: str, fingerprint: str,
                              info: Optional[Dict[str, Any]] = None) -> DeviceRecord:
        """Add a device as untrusted, or refresh last-seen for a known one"""
        if not subject_id or not fingerprint:
            raise ValidationError("subject_id and fingerprint are required")
        info = info or {}
        now = self._clock()
        async with self._lock:
            existing = self._devices.get((subject_id, fingerprint))
            if existing is not None:
                updated = existing.model_copy(update={"info": {**existing.info, **info}, "last_seen_at": now})
                self._devices[(subject_id, fingerprint)] = updated
                return updated

            device = DeviceRecord(
                subject_id=subject_id,
                fingerprint=fingerprint,
                name=info.get("name") or _device_name(info),
                info=info,
                created_at=now,
                last_seen_at=now,
            )
            self._devices[(subject_id, fingerprint)] = device
        self.logger.info(f"Registered new device for subject {subject_id}")
        return device

    async def trust_device(self, subject_id: str, fingerprint: str,
                           duration_days: int = DEFAULT_TRUST_DAYS) -> bool:
        if duration_days <= 0:
            raise ValidationError("duration_days must be positive", context={"duration_days": duration_days})
        now = self._clock()
        async with self._lock:
            device = self._devices.get((subject_id, fingerprint))
            if device is None:
                return False
            self._devices[(subject_id, fingerprint)] = device.model_copy(update={
                "is_trusted": True,
                "trust_expires_at": now + timedelta(days=duration_days),
                "last_seen_at": now,
            })
        self.logger.info(f"Device trusted for {duration_days} days for subject {subject_id}")
        return True

    async def revoke_trust(self, subject_id: str, fingerprint: str) -> bool:
        async with self._lock:
            return self._revoke_locked(subject_id, fingerprint)

    def _revoke_locked(self, subject_id: str, fingerprint: str) -> bool:
        device = self._devices.get((subject_id, fingerprint))
        if device is None:
            return False
        self._devices[(subject_id, fingerprint)] = device.model_copy(update={
            "is_trusted": False,
            "trust_expires_at": None,
        })
        return True

    async def is_device_trusted(self, subject_id: str, fingerprint: str) -> bool:
        async with self._lock:
            device = self._devices.get((subject_id, fingerprint))
            if device is None or not device.is_trusted:
                return False
            if device.trust_expires_at is not None and device.trust_expires_at < self._clock():
                self._revoke_locked(subject_id, fingerprint)
                self.logger.info(f"Device trust expired for subject {subject_id}")
                return False
            return True

    async def get_devices(self, subject_id: str) -> List[DeviceRecord]:
        async with self._lock:
            devices = [d for (owner, _), d in self._devices.items() if owner == subject_id]
        return sorted(devices, key=lambda d: d.last_seen_at, reverse=True)

    async def remove_device(self, subject_id: str, fingerprint: str) -> bool:
        async with self._lock:
            return self._devices.pop((subject_id, fingerprint), None) is not None

    async def cleanup_old_devices(self, days_old: int = 90) -> int:
        """Delete untrusted devices first seen more than `days_old` days ago"""
        cutoff = self._clock() - timedelta(days=days_old)
        async with self._lock:
            stale = [key for key, d in self._devices.items() if not d.is_trusted and d.created_at < cutoff]
            for key in stale:
                del self._devices[key]
        if stale:
            self.logger.info(f"Removed {len(stale)} stale untrusted devices")
        return len(stale)


def _device_name(info: Dict[str, Any]) -> str:
    browser = info.get("browser_name")
    os_name = info.get("os_name")
    if browser and os_name:
        return f"{browser} on {os_name}"
    return browser or os_name or "Unknown device"
