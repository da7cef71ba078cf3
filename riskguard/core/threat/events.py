"""
Security event log

Append-only audit trail of authentication events, with the history queries
the threat checks need and the dashboard summary. High and critical events
alert administrators, at most once per event type and subject within the
alert cooldown.
"""

import logging
from collections import Counter
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Set

from riskguard.config.settings import ThreatSettings
from riskguard.models.exceptions import CollaboratorUnavailable
from riskguard.models.interfaces import ICacheBackend, INotifier, IRecordStore, RecordFilter
from riskguard.models.threat import GeoPoint, SecurityEvent, SecurityEventType, Severity
from riskguard.utils.serialization import ensure_utc, utc_now

EVENTS_COLLECTION = "security_events"
ALERT_SEVERITIES = (Severity.HIGH, Severity.CRITICAL)


class SecurityEventLog:
    """Persists SecurityEvents and answers history questions about them"""

    def __init__(
        self,
        store: IRecordStore,
        cache: ICacheBackend,
        notifier: Optional[INotifier] = None,
        settings: Optional[ThreatSettings] = None,
        now: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.cache = cache
        self.notifier = notifier
        self.settings = settings or ThreatSettings()
        self._now = now
        self.logger = logging.getLogger(__name__)

    async def record(self, event: SecurityEvent, alert: bool = True) -> Optional[str]:
        """
        Persist an event; alert administrators for high/critical severity.

        Write and alert failures are logged and swallowed so that recording
        an event never unwinds the decision that produced it.

        Returns:
            The stored record id, or None when the write failed
        """
        record_id = None
        try:
            record_id = await self.store.insert(EVENTS_COLLECTION, event.model_dump())
        except CollaboratorUnavailable as e:
            self.logger.error(f"Failed to persist security event {event.event_type}: {e}")

        if alert and event.severity in ALERT_SEVERITIES:
            await self._alert_admins(event)
        return record_id

    async def _alert_admins(self, event: SecurityEvent) -> None:
        if self.notifier is None:
            return

        cooldown_key = f"security_alert:{event.event_type}:{event.subject_id or event.ip_address or 'global'}"
        try:
            if await self.cache.get(cooldown_key):
                self.logger.debug(f"Security alert suppressed by cooldown: {cooldown_key}")
                return
        except CollaboratorUnavailable as e:
            self.logger.warning(f"Alert cooldown lookup failed, alerting anyway: {e}")

        try:
            await self.notifier.send_to_admins(
                f"Security Alert: {event.event_type.replace('_', ' ').title()}",
                event.description or f"{event.severity.value} severity {event.event_type} event",
                level="error",
                data={"event": event.model_dump(mode="json"), "requires_attention": True},
            )
        except Exception as e:
            self.logger.warning(f"Failed to send security alert: {e}")
            return

        if self.settings.alert_cooldown:
            try:
                await self.cache.set(cooldown_key, True, ttl=self.settings.alert_cooldown)
            except CollaboratorUnavailable as e:
                self.logger.warning(f"Failed to set alert cooldown {cooldown_key}: {e}")

    # History queries used by the threat checks

    async def count(self, event_type: str, since: datetime, until: Optional[datetime] = None,
                    **equals: Any) -> int:
        return await self.store.count(RecordFilter(
            collection=EVENTS_COLLECTION,
            equals={"event_type": event_type, **equals},
            since=since,
            until=until,
        ))

    async def failed_logins_from_ip(self, ip_address: str, at: datetime, hours: int = 1) -> int:
        return await self.count(SecurityEventType.FAILED_LOGIN.value, at - timedelta(hours=hours), at,
                                ip_address=ip_address)

    async def successful_logins(self, subject_id: str, since: datetime,
                                until: Optional[datetime] = None,
                                limit: Optional[int] = None) -> List[Dict[str, Any]]:
        return await self.store.query(RecordFilter(
            collection=EVENTS_COLLECTION,
            equals={"event_type": SecurityEventType.SUCCESSFUL_LOGIN.value, "subject_id": subject_id},
            since=since,
            until=until,
            limit=limit,
            newest_first=True,
        ))

    async def normal_login_hours(self, subject_id: str, at: datetime) -> Set[int]:
        since = at - timedelta(days=self.settings.history_days)
        rows = await self.successful_logins(subject_id, since, at)
        return {ensure_utc(row["timestamp"]).hour for row in rows}

    async def normal_locations(self, subject_id: str, at: datetime) -> List[GeoPoint]:
        since = at - timedelta(days=self.settings.history_days)
        rows = await self.successful_logins(subject_id, since, at)
        seen = set()
        locations = []
        for row in rows:
            location = row.get("location")
            if not location:
                continue
            point = GeoPoint.model_validate(location)
            marker = (point.latitude, point.longitude)
            if marker not in seen:
                seen.add(marker)
                locations.append(point)
        return locations

    async def last_successful_login(self, subject_id: str, at: datetime) -> Optional[datetime]:
        # Unbounded below: a dormant account's last login may be months old
        rows = await self.store.query(RecordFilter(
            collection=EVENTS_COLLECTION,
            equals={"event_type": SecurityEventType.SUCCESSFUL_LOGIN.value, "subject_id": subject_id},
            until=at,
            limit=1,
            newest_first=True,
        ))
        return ensure_utc(rows[0]["timestamp"]) if rows else None

    async def password_changes(self, subject_id: str, at: datetime, hours: int = 24) -> int:
        return await self.count(SecurityEventType.PASSWORD_CHANGE.value, at - timedelta(hours=hours), at,
                                subject_id=subject_id)

    # Reporting

    async def dashboard(self) -> Dict[str, Any]:
        """Counts over the last 24 hours / 7 days plus the ten most recent events"""
        now = self._now()
        last_24h = now - timedelta(hours=24)
        last_7d = now - timedelta(days=7)

        recent_week = await self.store.query(RecordFilter(collection=EVENTS_COLLECTION, since=last_7d))
        severities = Counter(row.get("severity") for row in recent_week)
        recent_events = await self.store.query(RecordFilter(collection=EVENTS_COLLECTION, limit=10))

        return {
            "threats_last_24h": await self.store.count(RecordFilter(collection=EVENTS_COLLECTION, since=last_24h)),
            "high_severity_threats": severities[Severity.HIGH.value] + severities[Severity.CRITICAL.value],
            "blocked_ips": sum(1 for row in recent_week if row.get("event_type") == SecurityEventType.IP_BLOCKED.value),
            "suspicious_logins": await self.count(SecurityEventType.SUSPICIOUS_LOGIN.value, last_24h),
            "recent_events": recent_events,
        }

    async def cleanup(self, retention_days: int) -> int:
        cutoff = self._now() - timedelta(days=retention_days)
        return await self.store.delete(RecordFilter(collection=EVENTS_COLLECTION, until=cutoff))
