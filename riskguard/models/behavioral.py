# File: riskguard/models/behavioral.py

from pydantic import BaseModel, Field, field_validator
from typing import Any, Dict, List, Optional, Tuple
from datetime import datetime
from enum import Enum

from riskguard.utils.serialization import utc_now

INSUFFICIENT_DATA = "insufficient_data"

# --- Enumerations ---

class Sensitivity(str, Enum):
    """Per-subject behavioral tracking sensitivity"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

# --- Core Data Models ---

class BehaviorSample(BaseModel):
    """One observed interaction with named numeric or categorical fields"""
    subject_id: str = Field(min_length=1)
    behavior_type: str = Field(min_length=1)
    fields: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=utc_now)
    session_id: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None

    model_config = {"frozen": True}

class FieldStats(BaseModel):
    """Distribution summary of one numeric field"""
    mean: float
    median: float
    std_dev: float = Field(ge=0.0)
    min: float
    max: float
    q1: float
    q3: float
    sample_size: int = Field(ge=1)

class BehaviorProfile(BaseModel):
    """Per-subject statistical baseline, rebuilt wholesale from history"""
    subject_id: str
    per_type: Dict[str, Dict[str, FieldStats]] = Field(default_factory=dict)
    sample_count: int = 0
    built_at: datetime = Field(default_factory=utc_now)

    model_config = {"frozen": True}

    def stats_for(self, behavior_type: str) -> Dict[str, FieldStats]:
        return self.per_type.get(behavior_type, {})

    def total_samples(self) -> int:
        """Sum of sample sizes over every field of every type"""
        return sum(
            stats.sample_size
            for fields in self.per_type.values()
            for stats in fields.values()
        )

    def types_with_stats(self) -> int:
        """Number of behavior types holding at least one FieldStats entry"""
        return sum(1 for fields in self.per_type.values() if fields)

class FieldAnalysis(BaseModel):
    """Comparison of one incoming value against its FieldStats"""
    value: float
    expected_range: Tuple[float, float]
    deviation: float = Field(ge=0.0)
    is_anomaly: bool
    risk_score: float = Field(ge=0.0, le=1.0)

class TypeAnalysis(BaseModel):
    """Scoring of every comparable field in one behavior type"""
    risk_score: float = Field(ge=0.0, le=1.0)
    anomalies: List[str] = Field(default_factory=list)
    fields: Dict[str, FieldAnalysis] = Field(default_factory=dict)

class AnomalyResult(BaseModel):
    """Result of comparing a sample with the subject's profile"""
    subject_id: str
    risk_score: float = Field(ge=0.0, le=1.0)  # 0.0 = normal, 1.0 = highly anomalous
    anomalies: List[str] = Field(default_factory=list)
    confidence: float = Field(ge=0.0, le=1.0)
    details: Dict[str, TypeAnalysis] = Field(default_factory=dict)

    @field_validator('anomalies')
    @classmethod
    def deduplicate_anomalies(cls, v):
        """Anomalies are a set; keep first-seen order for stable output"""
        return list(dict.fromkeys(v))

    @property
    def insufficient_data(self) -> bool:
        return INSUFFICIENT_DATA in self.anomalies

class TrackingSettings(BaseModel):
    """Behavioral tracking preferences at subject, team or company level"""
    enabled: bool = True
    sensitivity: Sensitivity = Sensitivity.MEDIUM
    alert_threshold: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    learning_mode: bool = True
    updated_at: datetime = Field(default_factory=utc_now)
