from .risk_engine import BehaviorVerdict, LoginVerdict, RiskEngine, create_risk_engine

__all__ = ["BehaviorVerdict", "LoginVerdict", "RiskEngine", "create_risk_engine"]
