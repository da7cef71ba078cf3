"""
Threat analysis data models

Login attempts, security audit events, geolocation points and the
composite assessment produced by the threat analyzer.
"""

import ipaddress
import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from riskguard.utils.serialization import ensure_utc, utc_now


class ThreatKind(str, Enum):
    """Independent login threat signals"""
    BRUTE_FORCE = "brute_force"
    SUSPICIOUS_IP = "suspicious_ip"
    UNUSUAL_PATTERN = "unusual_pattern"
    ACCOUNT_TAKEOVER = "account_takeover"
    GEOGRAPHIC_ANOMALY = "geographic_anomaly"
    DEVICE_ANOMALY = "device_anomaly"
    TIME_ANOMALY = "time_anomaly"


class RiskLevel(str, Enum):
    """Discrete bucket derived from a 0-100 threat score"""
    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @classmethod
    def from_score(cls, score: int) -> "RiskLevel":
        if score >= 70:
            return cls.CRITICAL
        if score >= 50:
            return cls.HIGH
        if score >= 30:
            return cls.MEDIUM
        if score >= 10:
            return cls.LOW
        return cls.NONE


class Severity(str, Enum):
    """Security event severity"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class SecurityEventType(str, Enum):
    """Event types written to the security audit trail"""
    FAILED_LOGIN = "failed_login"
    SUCCESSFUL_LOGIN = "successful_login"
    SUSPICIOUS_LOGIN = "suspicious_login"
    LOGIN_ASSESSMENT = "login_assessment"
    THREAT_DETECTED = "threat_detected"
    BEHAVIORAL_ANOMALY = "behavioral_anomaly"
    PASSWORD_CHANGE = "password_change"
    IP_BLOCKED = "ip_blocked"
    RATE_LIMITED = "rate_limited"


class Decision(str, Enum):
    """Gate outcome for an authentication-relevant event"""
    ALLOW = "allow"
    CHALLENGE = "challenge"
    BLOCK = "block"


class GeoPoint(BaseModel):
    """WGS84 coordinate"""
    latitude: float = Field(ge=-90.0, le=90.0)
    longitude: float = Field(ge=-180.0, le=180.0)


class Geofence(BaseModel):
    """Circular area used for proximity checks"""
    center: GeoPoint
    radius_km: float = Field(default=50.0, gt=0.0)


class LoginEvent(BaseModel):
    """A login attempt as seen by the engine.

    `identity` is what the caller typed (email or username); `subject_id` is
    set when the identity resolves to a known account.
    """
    identity: str = Field(min_length=1)
    ip_address: str = Field(min_length=1)
    subject_id: Optional[str] = None
    user_agent: str = ""
    device_fingerprint: str = ""
    location: Optional[GeoPoint] = None
    timestamp: datetime = Field(default_factory=utc_now)

    @field_validator('ip_address')
    @classmethod
    def validate_ip_address(cls, v):
        ipaddress.ip_address(v.strip())  # raises ValueError when malformed
        return v.strip()

    @field_validator('timestamp')
    @classmethod
    def normalize_timestamp(cls, v):
        return ensure_utc(v)


class ThreatAssessment(BaseModel):
    """Composite result of the login threat checks"""
    threats: List[ThreatKind] = Field(default_factory=list)
    risk_score: int = Field(ge=0, le=100)
    risk_level: RiskLevel
    recommendations: List[str] = Field(default_factory=list)

    @field_validator('threats', 'recommendations')
    @classmethod
    def deduplicate(cls, v):
        return list(dict.fromkeys(v))

    def has(self, kind: ThreatKind) -> bool:
        return kind in self.threats


class SecurityEvent(BaseModel):
    """Append-only security audit entry"""
    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    event_type: str
    severity: Severity = Severity.MEDIUM
    description: str = ""
    subject_id: Optional[str] = None
    identity: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    location: Optional[GeoPoint] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=utc_now)


class DecisionOutcome(BaseModel):
    """What the decision policy concluded for one analysis"""
    decision: Decision
    normalized_score: float = Field(ge=0.0, le=1.0)
    threshold: float = Field(ge=0.0, le=1.0)
    alerted: bool = False
    alert_error: Optional[str] = None
    source: str  # "behavior" or "login"
