from .anomaly_scorer import AnomalyScorer, analyze_field, analyze_type, profile_confidence
from .profile_builder import (
    SAMPLES_COLLECTION,
    BehaviorProfileBuilder,
    compute_field_stats,
    compute_type_profile,
    numeric_value,
    profile_cache_key,
)
from .tracking import TRACKING_COLLECTION, BehavioralTracking

__all__ = [
    "AnomalyScorer",
    "analyze_field",
    "analyze_type",
    "profile_confidence",
    "SAMPLES_COLLECTION",
    "BehaviorProfileBuilder",
    "compute_field_stats",
    "compute_type_profile",
    "numeric_value",
    "profile_cache_key",
    "TRACKING_COLLECTION",
    "BehavioralTracking",
]
