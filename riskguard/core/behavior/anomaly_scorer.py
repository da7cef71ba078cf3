"""
Behavioral anomaly scoring

Compares an incoming multi-type behavior sample with the subject's profile.

Per field: deviation = |value - mean| / std_dev (0 when std_dev is 0); the
field is anomalous when deviation > 2 or the value falls below half the
historical minimum or above 1.5x the historical maximum. An anomalous field
scores min(deviation / 4, 1), a normal one 0.

A type scores the mean of its compared fields, the sample the mean of the
types the profile knows about. Confidence grows with profile volume and the
number of behavior types it covers.
"""

import logging
from typing import Any, Dict, List, Optional

from riskguard.config.settings import BehavioralSettings
from riskguard.core.behavior.profile_builder import BehaviorProfileBuilder, numeric_value
from riskguard.models.behavioral import (
    INSUFFICIENT_DATA,
    AnomalyResult,
    BehaviorProfile,
    FieldAnalysis,
    FieldStats,
    TypeAnalysis,
)
from riskguard.models.exceptions import ValidationError

DEVIATION_LIMIT = 2.0
LOW_RANGE_FACTOR = 0.5
HIGH_RANGE_FACTOR = 1.5
DEVIATION_SCALE = 4.0
FULL_CONFIDENCE_TYPES = 5


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def analyze_field(value: float, stats: FieldStats) -> FieldAnalysis:
    deviation = abs(value - stats.mean) / stats.std_dev if stats.std_dev > 0 else 0.0

    is_anomaly = (
        deviation > DEVIATION_LIMIT
        or value < stats.min * LOW_RANGE_FACTOR
        or value > stats.max * HIGH_RANGE_FACTOR
    )
    return FieldAnalysis(
        value=value,
        expected_range=(stats.min, stats.max),
        deviation=deviation,
        is_anomaly=is_anomaly,
        risk_score=min(deviation / DEVIATION_SCALE, 1.0) if is_anomaly else 0.0,
    )


def analyze_type(current: Dict[str, Any], stats: Dict[str, FieldStats]) -> TypeAnalysis:
    fields: Dict[str, FieldAnalysis] = {}
    anomalies: List[str] = []

    for name, raw in current.items():
        if name not in stats:
            continue
        value = numeric_value(raw)
        if value is None:
            continue
        analysis = analyze_field(value, stats[name])
        fields[name] = analysis
        if analysis.is_anomaly:
            anomalies.append(name)

    risk = sum(f.risk_score for f in fields.values()) / len(fields) if fields else 0.0
    return TypeAnalysis(risk_score=_clamp(risk), anomalies=anomalies, fields=fields)


def profile_confidence(profile: BehaviorProfile, min_samples: int) -> float:
    sample_confidence = min(profile.total_samples() / (2 * min_samples), 1.0)
    type_confidence = min(profile.types_with_stats() / FULL_CONFIDENCE_TYPES, 1.0)
    return _clamp((sample_confidence + type_confidence) / 2)


def insufficient_data_result(subject_id: str, risk_score: float = 0.5) -> AnomalyResult:
    return AnomalyResult(
        subject_id=subject_id,
        risk_score=risk_score,
        anomalies=[INSUFFICIENT_DATA],
        confidence=0.0,
    )


def validate_current_behavior(current: Any) -> Dict[str, Dict[str, Any]]:
    """Reject anything that is not a non-empty map of type -> field map"""
    if not isinstance(current, dict) or not current:
        raise ValidationError("current behavior must be a non-empty mapping of behavior type to fields")
    for behavior_type, fields in current.items():
        if not isinstance(behavior_type, str) or not behavior_type:
            raise ValidationError("behavior type names must be non-empty strings",
                                  context={"behavior_type": repr(behavior_type)})
        if not isinstance(fields, dict):
            raise ValidationError(f"fields for '{behavior_type}' must be a mapping",
                                  context={"behavior_type": behavior_type})
    return current


class AnomalyScorer:
    """Scores current behavior against the subject's cached profile"""

    def __init__(self, builder: BehaviorProfileBuilder, settings: Optional[BehavioralSettings] = None):
        self.builder = builder
        self.settings = settings or builder.settings
        self.logger = logging.getLogger(__name__)

    def score(self, subject_id: str, current: Dict[str, Dict[str, Any]],
              profile: Optional[BehaviorProfile]) -> AnomalyResult:
        """Pure scoring step; no I/O"""
        if profile is None:
            return insufficient_data_result(subject_id)

        details: Dict[str, TypeAnalysis] = {}
        anomalies: List[str] = []
        for behavior_type, fields in current.items():
            if behavior_type not in profile.per_type:
                continue
            type_analysis = analyze_type(fields, profile.per_type[behavior_type])
            details[behavior_type] = type_analysis
            anomalies.extend(type_analysis.anomalies)

        risk = sum(t.risk_score for t in details.values()) / len(details) if details else 0.0
        return AnomalyResult(
            subject_id=subject_id,
            risk_score=_clamp(risk),
            anomalies=anomalies,
            confidence=profile_confidence(profile, self.settings.min_samples),
            details=details,
        )

    async def analyze(self, subject_id: str, current: Dict[str, Dict[str, Any]]) -> AnomalyResult:
        """
        Compare `current` with the stored profile.

        Raises:
            ValidationError: If `current` is malformed
            CollaboratorUnavailable: If the profile cannot be loaded
        """
        validate_current_behavior(current)
        profile = await self.builder.get_profile(subject_id)
        result = self.score(subject_id, current, profile)
        self.logger.debug(
            f"Behavior analysis for {subject_id}: risk={result.risk_score:.3f} "
            f"confidence={result.confidence:.3f} anomalies={result.anomalies}"
        )
        return result
