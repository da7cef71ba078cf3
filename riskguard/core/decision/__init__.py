from .policy import DecisionPolicy, normalize

__all__ = ["DecisionPolicy", "normalize"]
