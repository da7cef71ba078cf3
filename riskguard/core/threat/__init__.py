from .analyzer import ThreatAnalyzer, brute_force_key, is_private_ip, recommendations_for
from .events import EVENTS_COLLECTION, SecurityEventLog

__all__ = [
    "ThreatAnalyzer",
    "brute_force_key",
    "is_private_ip",
    "recommendations_for",
    "EVENTS_COLLECTION",
    "SecurityEventLog",
]
