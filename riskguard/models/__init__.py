"""Models package - central exports for RiskGuard models."""

from .behavioral import (
    INSUFFICIENT_DATA,
    AnomalyResult,
    BehaviorProfile,
    BehaviorSample,
    FieldAnalysis,
    FieldStats,
    Sensitivity,
    TrackingSettings,
    TypeAnalysis,
)
from .exceptions import (
    AlertDispatchError,
    CollaboratorUnavailable,
    ConfigurationError,
    RateLimitExceeded,
    RiskGuardError,
    ValidationError,
)
from .interfaces import (
    ICacheBackend,
    IDeviceTrust,
    ILocationService,
    INotifier,
    IRecordStore,
    RecordFilter,
)
from .protection import RateLimitResult
from .threat import (
    Decision,
    DecisionOutcome,
    Geofence,
    GeoPoint,
    LoginEvent,
    RiskLevel,
    SecurityEvent,
    SecurityEventType,
    Severity,
    ThreatAssessment,
    ThreatKind,
)

__all__ = [
    "INSUFFICIENT_DATA",
    "AnomalyResult",
    "BehaviorProfile",
    "BehaviorSample",
    "FieldAnalysis",
    "FieldStats",
    "Sensitivity",
    "TrackingSettings",
    "TypeAnalysis",
    "AlertDispatchError",
    "CollaboratorUnavailable",
    "ConfigurationError",
    "RateLimitExceeded",
    "RiskGuardError",
    "ValidationError",
    "ICacheBackend",
    "IDeviceTrust",
    "ILocationService",
    "INotifier",
    "IRecordStore",
    "RecordFilter",
    "RateLimitResult",
    "Decision",
    "DecisionOutcome",
    "Geofence",
    "GeoPoint",
    "LoginEvent",
    "RiskLevel",
    "SecurityEvent",
    "SecurityEventType",
    "Severity",
    "ThreatAssessment",
    "ThreatKind",
]
