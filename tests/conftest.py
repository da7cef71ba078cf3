"""Shared pytest fixtures and configuration for RiskGuard tests."""

from datetime import datetime, timedelta, timezone

import pytest

from riskguard.config.settings import (
    BehavioralSettings,
    LoggingSettings,
    RateLimitSettings,
    RiskGuardSettings,
    ThreatSettings,
    reset_settings,
)
from riskguard.core.threat.events import SecurityEventLog
from riskguard.infrastructure.caching.backends import InMemoryCacheBackend
from riskguard.infrastructure.devices import InMemoryDeviceRegistry
from riskguard.infrastructure.location import HaversineLocationService
from riskguard.infrastructure.notifications import LoggingNotifier
from riskguard.infrastructure.persistence.memory_store import InMemoryRecordStore
from riskguard.services.risk_engine import RiskEngine


class FakeClock:
    """Deterministic clock driving both wall-clock and monotonic time"""

    def __init__(self, start: datetime = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)):
        self.origin = start
        self.current = start

    def now(self) -> datetime:
        return self.current

    def monotonic(self) -> float:
        return (self.current - self.origin).total_seconds()

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)


@pytest.fixture(autouse=True)
def clean_settings():
    """Drop the settings singleton around every test."""
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings():
    """Engine settings with a small learning threshold."""
    return RiskGuardSettings(
        behavioral=BehavioralSettings(min_samples=10),
        threat=ThreatSettings(),
        rate_limit=RateLimitSettings(),
        logging=LoggingSettings(structured_logging=False),
    )


@pytest.fixture
def cache(clock):
    return InMemoryCacheBackend(clock=clock.monotonic)


@pytest.fixture
def store():
    return InMemoryRecordStore()


@pytest.fixture
def device_registry(clock):
    return InMemoryDeviceRegistry(clock=clock.now)


@pytest.fixture
def location_service():
    return HaversineLocationService()


@pytest.fixture
def notifier():
    return LoggingNotifier()


@pytest.fixture
def event_log(store, cache, notifier, settings, clock):
    return SecurityEventLog(store, cache, notifier, settings.threat, now=clock.now)


@pytest.fixture
def engine(settings, cache, store, device_registry, location_service, notifier, clock):
    """Risk engine over in-memory collaborators and a fake clock."""
    return RiskEngine(
        settings=settings,
        cache=cache,
        store=store,
        device_trust=device_registry,
        location=location_service,
        notifier=notifier,
        now=clock.now,
    )
