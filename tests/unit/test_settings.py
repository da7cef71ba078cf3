"""Tests for the unified settings system."""

import pytest
from pydantic import SecretStr, ValidationError as PydanticValidationError

from riskguard.config.settings import (
    BehavioralSettings,
    CacheBackendType,
    CacheSettings,
    RateLimitSettings,
    RiskGuardSettings,
    ThreatSettings,
    ThreatWeights,
    get_settings,
    reset_settings,
)
from riskguard.models.exceptions import ConfigurationError
from riskguard.models.threat import ThreatKind


class TestDefaults:
    """Test documented defaults"""

    def test_behavioral_defaults(self):
        settings = BehavioralSettings()

        assert settings.retention_days == 90
        assert settings.min_samples == 100
        assert settings.anomaly_threshold == 0.7
        assert settings.learning_period_days == 14
        assert settings.fail_open is True
        assert settings.tracking_default_enabled is False

    def test_threat_defaults(self):
        settings = ThreatSettings()

        assert settings.max_failed_attempts == 5
        assert settings.lockout_duration == 900
        assert settings.suspicious_threshold == 3
        assert settings.alert_cooldown == 3600

    def test_rate_limit_defaults(self):
        settings = RateLimitSettings()

        assert (settings.attempts, settings.decay) == (60, 60)
        assert settings.fail_open is False

    @pytest.mark.parametrize("kind,weight", [
        (ThreatKind.BRUTE_FORCE, 30),
        (ThreatKind.SUSPICIOUS_IP, 25),
        (ThreatKind.UNUSUAL_PATTERN, 20),
        (ThreatKind.ACCOUNT_TAKEOVER, 40),
        (ThreatKind.GEOGRAPHIC_ANOMALY, 15),
        (ThreatKind.DEVICE_ANOMALY, 10),
        (ThreatKind.TIME_ANOMALY, 5),
    ])
    def test_threat_weights(self, kind, weight):
        assert ThreatWeights().for_kind(kind) == weight


class TestEnvironment:
    """Test environment variable overrides"""

    def test_section_prefixes(self, monkeypatch):
        monkeypatch.setenv("BEHAVIORAL_MIN_SAMPLES", "50")
        monkeypatch.setenv("THREAT_MAX_FAILED_ATTEMPTS", "7")
        monkeypatch.setenv("RATE_LIMIT_FAIL_OPEN", "true")
        monkeypatch.setenv("THREAT_WEIGHT_ACCOUNT_TAKEOVER", "60")

        settings = RiskGuardSettings()

        assert settings.behavioral.min_samples == 50
        assert settings.threat.max_failed_attempts == 7
        assert settings.rate_limit.fail_open is True
        assert settings.threat.weights.account_takeover == 60

    def test_cache_backend_is_normalized(self, monkeypatch):
        monkeypatch.setenv("CACHE_BACKEND", " Redis ")
        monkeypatch.setenv("CACHE_REDIS_PASSWORD", "s3cret")

        settings = CacheSettings()

        assert settings.backend is CacheBackendType.REDIS
        assert isinstance(settings.redis_password, SecretStr)
        assert "s3cret" not in repr(settings)

    def test_get_settings_is_singleton(self):
        first = get_settings()

        assert get_settings() is first

        reset_settings()
        assert get_settings() is not first

    def test_get_settings_wraps_validation_errors(self, monkeypatch):
        monkeypatch.setenv("BEHAVIORAL_ANOMALY_THRESHOLD", "1.5")

        with pytest.raises(ConfigurationError) as exc_info:
            get_settings()

        assert exc_info.value.error_code == "SETTINGS_INIT_ERROR"


class TestValidation:
    """Test field constraints"""

    def test_anomaly_threshold_bounds(self):
        with pytest.raises(PydanticValidationError):
            BehavioralSettings(anomaly_threshold=1.2)

    def test_min_samples_positive(self):
        with pytest.raises(PydanticValidationError):
            BehavioralSettings(min_samples=0)

    def test_unknown_cache_backend(self):
        with pytest.raises(PydanticValidationError):
            CacheSettings(backend="memcached")
