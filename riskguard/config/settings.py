"""
Unified Configuration System for RiskGuard

Single source of truth for all configuration using pydantic-settings.

ARCHITECTURAL PRINCIPLES:
- Only this module accesses environment variables directly
- Components receive their section via constructor injection
- Type-safe validation with automatic conversion
"""

from enum import Enum
from typing import Optional

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings


# =============================================================================
# ENUMS
# =============================================================================

class LogLevel(str, Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class CacheBackendType(str, Enum):
    MEMORY = "memory"
    REDIS = "redis"


# =============================================================================
# NESTED CONFIGURATION SECTIONS
# =============================================================================

class BehavioralSettings(BaseSettings):
    """Behavioral biometrics profiling and anomaly scoring"""
    retention_days: int = Field(default=90, ge=1)
    min_samples: int = Field(default=100, ge=1)
    anomaly_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    learning_period_days: int = Field(default=14, ge=1)

    # Profile construction
    max_profile_samples: int = Field(default=1000, ge=1)
    profile_cache_ttl: int = Field(default=3600, ge=1)  # seconds

    # When the cache or record store is down during analysis:
    # True  -> neutral low-confidence result and a logged warning
    # False -> CollaboratorUnavailable propagates to the caller
    fail_open: bool = True

    # Applies when no subject, team or company tracking settings exist
    tracking_default_enabled: bool = False

    model_config = {"env_prefix": "BEHAVIORAL_", "extra": "ignore"}


class ThreatWeights(BaseSettings):
    """Additive score contribution of each threat kind"""
    brute_force: int = Field(default=30, ge=0)
    suspicious_ip: int = Field(default=25, ge=0)
    unusual_pattern: int = Field(default=20, ge=0)
    account_takeover: int = Field(default=40, ge=0)
    geographic_anomaly: int = Field(default=15, ge=0)
    device_anomaly: int = Field(default=10, ge=0)
    time_anomaly: int = Field(default=5, ge=0)

    model_config = {"env_prefix": "THREAT_WEIGHT_", "extra": "ignore"}

    def for_kind(self, kind) -> int:
        return getattr(self, getattr(kind, "value", kind))


class ThreatSettings(BaseSettings):
    """Login threat detection"""
    max_failed_attempts: int = Field(default=5, ge=1)
    lockout_duration: int = Field(default=900, ge=1)  # seconds
    suspicious_threshold: int = Field(default=3, ge=1)
    alert_cooldown: int = Field(default=3600, ge=0)  # seconds

    # Signal thresholds
    ip_failure_threshold: int = Field(default=10, ge=0)  # failures per IP per hour
    takeover_failure_threshold: int = Field(default=5, ge=0)
    frequent_login_threshold: int = Field(default=20, ge=0)  # successes per 24h
    normal_location_radius_km: float = Field(default=100.0, gt=0.0)
    rapid_login_seconds: int = Field(default=30, ge=0)
    dormant_days: int = Field(default=90, ge=1)
    history_days: int = Field(default=30, ge=1)

    # Retention
    event_retention_days: int = Field(default=2555, ge=1)  # ~7 years
    device_cleanup_days: int = Field(default=90, ge=1)

    weights: ThreatWeights = Field(default_factory=ThreatWeights)

    model_config = {"env_prefix": "THREAT_", "extra": "ignore"}


class DecisionSettings(BaseSettings):
    """Allow/challenge/block thresholds on the normalized [0, 1] risk.

    Blocking and alerting use the behavioral anomaly threshold (or the
    subject's own override); this section only sets where challenges start.
    """
    challenge_threshold: float = Field(default=0.3, ge=0.0, le=1.0)

    model_config = {"env_prefix": "DECISION_", "extra": "ignore"}


class RateLimitSettings(BaseSettings):
    """Fixed-window attempt counters"""
    attempts: int = Field(default=60, ge=1)
    decay: int = Field(default=60, ge=1)  # seconds
    throttle_attempts: int = Field(default=1000, ge=1)
    throttle_decay: int = Field(default=3600, ge=1)

    # Cache unreachable: deny (False) or allow (True)
    fail_open: bool = False
    key_prefix: str = "rate_limit"

    model_config = {"env_prefix": "RATE_LIMIT_", "extra": "ignore"}


class CacheSettings(BaseSettings):
    """Shared cache backend selection"""
    backend: CacheBackendType = CacheBackendType.MEMORY
    key_prefix: str = "riskguard"

    redis_url: Optional[str] = None
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_db: int = 0
    redis_password: Optional[SecretStr] = None
    redis_timeout: float = Field(default=5.0, gt=0.0)

    model_config = {"env_prefix": "CACHE_", "extra": "ignore"}

    @field_validator('backend', mode='before')
    @classmethod
    def normalize_backend(cls, v):
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @model_validator(mode='after')
    def require_redis_location(self):
        if self.backend == CacheBackendType.REDIS and not (self.redis_url or self.redis_host):
            raise ValueError("redis backend requires CACHE_REDIS_URL or CACHE_REDIS_HOST")
        return self


class AlertingSettings(BaseSettings):
    """Alert delivery"""
    enabled: bool = True
    webhook_url: Optional[str] = None
    timeout_seconds: float = Field(default=5.0, gt=0.0)

    model_config = {"env_prefix": "ALERT_", "extra": "ignore"}


class LoggingSettings(BaseSettings):
    """Logging configuration"""
    level: LogLevel = LogLevel.INFO
    structured_logging: bool = True
    include_trace_id: bool = True

    model_config = {"env_prefix": "LOG_", "extra": "ignore"}

    @field_validator('level', mode='before')
    @classmethod
    def normalize_level(cls, v):
        if isinstance(v, str):
            return v.strip().upper()
        return v


# =============================================================================
# MAIN SETTINGS CLASS
# =============================================================================

class RiskGuardSettings(BaseSettings):
    """
    Unified configuration for the RiskGuard engine.

    Built once at startup and handed to `create_risk_engine`; no component
    reads the environment itself.
    """

    behavioral: BehavioralSettings = Field(default_factory=BehavioralSettings)
    threat: ThreatSettings = Field(default_factory=ThreatSettings)
    decision: DecisionSettings = Field(default_factory=DecisionSettings)
    rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    alerting: AlertingSettings = Field(default_factory=AlertingSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "validate_assignment": True,
        "extra": "ignore"
    }


# =============================================================================
# SINGLETON ACCESS
# =============================================================================

_settings_instance: Optional[RiskGuardSettings] = None


def get_settings() -> RiskGuardSettings:
    """
    Get global settings instance (singleton pattern).

    Raises:
        ConfigurationError: If settings validation fails
    """
    global _settings_instance
    if _settings_instance is None:
        try:
            from dotenv import load_dotenv

            load_dotenv(override=True)
            _settings_instance = RiskGuardSettings()
        except Exception as e:
            from riskguard.models.exceptions import ConfigurationError
            raise ConfigurationError(
                f"Settings initialization failed: {e}",
                error_code="SETTINGS_INIT_ERROR",
                context={"original_error": str(e), "error_type": type(e).__name__}
            )
    return _settings_instance


def reset_settings() -> None:
    """
    Reset settings instance (primarily for testing).

    Forces recreation of settings on next get_settings() call.
    """
    global _settings_instance
    _settings_instance = None
