"""RiskGuard - adaptive authentication risk engine."""

__version__ = "1.0.0"
