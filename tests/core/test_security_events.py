"""Tests for the security event log: persistence, admin alerts, history and reporting."""

from datetime import timedelta
from unittest.mock import AsyncMock, Mock

import pytest

from riskguard.core.threat.events import EVENTS_COLLECTION, SecurityEventLog
from riskguard.models.exceptions import CollaboratorUnavailable
from riskguard.models.interfaces import RecordFilter
from riskguard.models.threat import GeoPoint, SecurityEvent, SecurityEventType, Severity


def _event(clock, event_type=SecurityEventType.THREAT_DETECTED, severity=Severity.HIGH, **kwargs):
    return SecurityEvent(
        event_type=event_type.value,
        severity=severity,
        description=kwargs.pop("description", "test event"),
        timestamp=kwargs.pop("timestamp", clock.now()),
        **kwargs,
    )


class TestRecording:
    """Test persistence and admin alerting"""

    @pytest.mark.asyncio
    async def test_event_is_persisted(self, event_log, store, clock):
        event = _event(clock, severity=Severity.LOW, subject_id="user-1")

        record_id = await event_log.record(event)

        rows = await store.query(RecordFilter(collection=EVENTS_COLLECTION))
        assert record_id == event.event_id
        assert len(rows) == 1
        assert rows[0]["severity"] == "low"
        assert rows[0]["subject_id"] == "user-1"

    @pytest.mark.asyncio
    async def test_high_severity_alerts_admins(self, event_log, notifier, clock):
        await event_log.record(_event(clock, subject_id="user-1", description="Account locked"))

        assert len(notifier.sent) == 1
        assert notifier.sent[0]["audience"] == "admins"
        assert notifier.sent[0]["title"] == "Security Alert: Threat Detected"
        assert notifier.sent[0]["message"] == "Account locked"
        assert notifier.sent[0]["data"]["requires_attention"] is True

    @pytest.mark.asyncio
    async def test_low_severity_does_not_alert(self, event_log, notifier, clock):
        await event_log.record(_event(clock, severity=Severity.MEDIUM))

        assert notifier.sent == []

    @pytest.mark.asyncio
    async def test_alert_can_be_suppressed(self, event_log, notifier, clock):
        await event_log.record(_event(clock, severity=Severity.CRITICAL), alert=False)

        assert notifier.sent == []

    @pytest.mark.asyncio
    async def test_alert_cooldown(self, event_log, notifier, clock):
        await event_log.record(_event(clock, subject_id="user-1"))
        await event_log.record(_event(clock, subject_id="user-1"))
        await event_log.record(_event(clock, subject_id="user-2"))
        assert len(notifier.sent) == 2

        clock.advance(seconds=3601)
        await event_log.record(_event(clock, subject_id="user-1"))
        assert len(notifier.sent) == 3

    @pytest.mark.asyncio
    async def test_store_outage_is_logged(self, cache, notifier, settings, clock):
        store = Mock()
        store.insert = AsyncMock(side_effect=CollaboratorUnavailable("record_store"))
        event_log = SecurityEventLog(store, cache, notifier, settings.threat, now=clock.now)

        record_id = await event_log.record(_event(clock))

        assert record_id is None
        assert len(notifier.sent) == 1

    @pytest.mark.asyncio
    async def test_notifier_error_does_not_lose_event(self, store, cache, settings, clock):
        failing = Mock()
        failing.send_to_admins = AsyncMock(side_effect=RuntimeError("smtp down"))
        event_log = SecurityEventLog(store, cache, failing, settings.threat, now=clock.now)

        record_id = await event_log.record(_event(clock, subject_id="user-1"))

        assert record_id is not None
        assert await store.count(RecordFilter(collection=EVENTS_COLLECTION)) == 1
        failing.send_to_admins.assert_awaited_once()


class TestHistory:
    """Test the history queries behind the threat checks"""

    @pytest.mark.asyncio
    async def test_failed_logins_from_ip_window(self, event_log, clock):
        now = clock.now()
        for minutes in (5, 30, 59, 61, 120):
            await event_log.record(_event(
                clock, SecurityEventType.FAILED_LOGIN, Severity.MEDIUM,
                ip_address="203.0.113.7", timestamp=now - timedelta(minutes=minutes),
            ))
        await event_log.record(_event(clock, SecurityEventType.FAILED_LOGIN, Severity.MEDIUM,
                                      ip_address="198.51.100.1", timestamp=now - timedelta(minutes=1)))

        assert await event_log.failed_logins_from_ip("203.0.113.7", now) == 3

    @pytest.mark.asyncio
    async def test_normal_locations_are_deduplicated(self, event_log, clock):
        berlin = GeoPoint(latitude=52.52, longitude=13.405)
        paris = GeoPoint(latitude=48.8566, longitude=2.3522)
        for days, point in ((1, berlin), (2, berlin), (3, paris), (40, paris)):
            await event_log.record(_event(
                clock, SecurityEventType.SUCCESSFUL_LOGIN, Severity.LOW,
                subject_id="user-1", location=point, timestamp=clock.now() - timedelta(days=days),
            ))
        await event_log.record(_event(clock, SecurityEventType.SUCCESSFUL_LOGIN, Severity.LOW,
                                      subject_id="user-1", timestamp=clock.now() - timedelta(days=4)))

        locations = await event_log.normal_locations("user-1", clock.now())

        assert locations == [berlin, paris]

    @pytest.mark.asyncio
    async def test_last_successful_login(self, event_log, clock):
        now = clock.now()
        assert await event_log.last_successful_login("user-1", now) is None

        for days in (200, 3):
            await event_log.record(_event(clock, SecurityEventType.SUCCESSFUL_LOGIN, Severity.LOW,
                                          subject_id="user-1", timestamp=now - timedelta(days=days)))

        assert await event_log.last_successful_login("user-1", now) == now - timedelta(days=3)

    @pytest.mark.asyncio
    async def test_normal_login_hours(self, event_log, clock):
        now = clock.now()
        for hours in (1, 26, 50):
            await event_log.record(_event(clock, SecurityEventType.SUCCESSFUL_LOGIN, Severity.LOW,
                                          subject_id="user-1", timestamp=now - timedelta(hours=hours)))

        assert await event_log.normal_login_hours("user-1", now) == {11, 10}


class TestReporting:
    """Test the dashboard summary and retention"""

    @pytest.mark.asyncio
    async def test_dashboard(self, event_log, clock):
        now = clock.now()
        await event_log.record(_event(clock, severity=Severity.HIGH), alert=False)
        await event_log.record(_event(clock, severity=Severity.CRITICAL, timestamp=now - timedelta(days=3)),
                               alert=False)
        await event_log.record(_event(clock, SecurityEventType.SUSPICIOUS_LOGIN, Severity.MEDIUM))
        await event_log.record(_event(clock, SecurityEventType.IP_BLOCKED, Severity.MEDIUM,
                                      timestamp=now - timedelta(days=2)))
        await event_log.record(_event(clock, severity=Severity.HIGH, timestamp=now - timedelta(days=10)),
                               alert=False)

        dashboard = await event_log.dashboard()

        assert dashboard["threats_last_24h"] == 2
        assert dashboard["high_severity_threats"] == 2
        assert dashboard["blocked_ips"] == 1
        assert dashboard["suspicious_logins"] == 1
        assert len(dashboard["recent_events"]) == 5

    @pytest.mark.asyncio
    async def test_cleanup_respects_retention(self, event_log, store, clock):
        now = clock.now()
        await event_log.record(_event(clock, severity=Severity.LOW, timestamp=now - timedelta(days=400)))
        await event_log.record(_event(clock, severity=Severity.LOW, timestamp=now - timedelta(days=10)))

        deleted = await event_log.cleanup(retention_days=365)

        assert deleted == 1
        assert await store.count(RecordFilter(collection=EVENTS_COLLECTION)) == 1
