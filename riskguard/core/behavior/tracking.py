"""
Behavioral tracking preferences

Tracking is opt-in per subject. When a subject has no settings of their own,
their team's settings apply, then their company's, then the configured
default. Settings live in the record store as one row per scope.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from riskguard.models.behavioral import Sensitivity, TrackingSettings
from riskguard.models.interfaces import IRecordStore, RecordFilter
from riskguard.utils.serialization import utc_now

TRACKING_COLLECTION = "behavioral_settings"

SUBJECT_SCOPE = "subject"
TEAM_SCOPE = "team"
COMPANY_SCOPE = "company"
MEMBERSHIP_SCOPE = "membership"


class BehavioralTracking:
    """Reads and writes tracking settings with team/company fallback"""

    def __init__(self, store: IRecordStore, default_enabled: bool = False,
                 now: Callable[[], datetime] = utc_now):
        self.store = store
        self.default_enabled = default_enabled
        self._now = now
        self.logger = logging.getLogger(__name__)

    async def _upsert(self, scope: str, scope_id: str, values: Dict[str, Any]) -> None:
        await self.store.delete(RecordFilter(
            collection=TRACKING_COLLECTION,
            equals={"scope": scope, "scope_id": scope_id},
        ))
        await self.store.insert(TRACKING_COLLECTION, {
            "scope": scope,
            "scope_id": scope_id,
            **values,
            "timestamp": self._now(),
        })

    async def _read(self, scope: str, scope_id: Optional[str]) -> Optional[Dict[str, Any]]:
        if not scope_id:
            return None
        rows = await self.store.query(RecordFilter(
            collection=TRACKING_COLLECTION,
            equals={"scope": scope, "scope_id": scope_id},
            limit=1,
        ))
        return rows[0] if rows else None

    @staticmethod
    def _to_settings(row: Dict[str, Any]) -> TrackingSettings:
        return TrackingSettings(
            enabled=row.get("enabled", False),
            sensitivity=row.get("sensitivity", Sensitivity.MEDIUM),
            alert_threshold=row.get("alert_threshold"),
            learning_mode=row.get("learning_mode", True),
            updated_at=row["timestamp"],
        )

    async def enable(self, subject_id: str, sensitivity: Sensitivity = Sensitivity.MEDIUM,
                     alert_threshold: Optional[float] = None, learning_mode: bool = True) -> TrackingSettings:
        settings = TrackingSettings(
            enabled=True,
            sensitivity=sensitivity,
            alert_threshold=alert_threshold,
            learning_mode=learning_mode,
            updated_at=self._now(),
        )
        await self._upsert(SUBJECT_SCOPE, subject_id, settings.model_dump(exclude={"updated_at"}))
        self.logger.info(f"Behavioral tracking enabled for subject {subject_id}")
        return settings

    async def disable(self, subject_id: str) -> None:
        current = await self._read(SUBJECT_SCOPE, subject_id) or {}
        await self._upsert(SUBJECT_SCOPE, subject_id, {
            "enabled": False,
            "sensitivity": current.get("sensitivity", Sensitivity.MEDIUM.value),
            "alert_threshold": current.get("alert_threshold"),
            "learning_mode": current.get("learning_mode", True),
        })
        self.logger.info(f"Behavioral tracking disabled for subject {subject_id}")

    async def configure_team(self, team_id: str, settings: TrackingSettings) -> None:
        await self._upsert(TEAM_SCOPE, team_id, settings.model_dump(exclude={"updated_at"}))

    async def configure_company(self, company_id: str, settings: TrackingSettings) -> None:
        await self._upsert(COMPANY_SCOPE, company_id, settings.model_dump(exclude={"updated_at"}))

    async def assign(self, subject_id: str, team_id: Optional[str] = None,
                     company_id: Optional[str] = None) -> None:
        """Record which team and company a subject belongs to"""
        await self._upsert(MEMBERSHIP_SCOPE, subject_id, {"team_id": team_id, "company_id": company_id})

    async def settings_for(self, subject_id: str) -> TrackingSettings:
        """Effective settings: subject, then team, then company, then default"""
        row = await self._read(SUBJECT_SCOPE, subject_id)
        if row is not None:
            return self._to_settings(row)

        membership = await self._read(MEMBERSHIP_SCOPE, subject_id) or {}
        for scope, key in ((TEAM_SCOPE, "team_id"), (COMPANY_SCOPE, "company_id")):
            row = await self._read(scope, membership.get(key))
            if row is not None:
                return self._to_settings(row)

        return TrackingSettings(enabled=self.default_enabled, updated_at=self._now())

    async def is_enabled(self, subject_id: str) -> bool:
        return (await self.settings_for(subject_id)).enabled

    async def tracked_subject_count(self) -> int:
        return await self.store.count(RecordFilter(
            collection=TRACKING_COLLECTION,
            equals={"scope": SUBJECT_SCOPE, "enabled": True},
        ))
