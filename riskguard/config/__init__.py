from .settings import (
    AlertingSettings,
    BehavioralSettings,
    CacheBackendType,
    CacheSettings,
    DecisionSettings,
    LoggingSettings,
    RateLimitSettings,
    RiskGuardSettings,
    ThreatSettings,
    ThreatWeights,
    get_settings,
    reset_settings,
)

__all__ = [
    "AlertingSettings",
    "BehavioralSettings",
    "CacheBackendType",
    "CacheSettings",
    "DecisionSettings",
    "LoggingSettings",
    "RateLimitSettings",
    "RiskGuardSettings",
    "ThreatSettings",
    "ThreatWeights",
    "get_settings",
    "reset_settings",
]
