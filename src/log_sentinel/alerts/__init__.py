"""
Alert rules, rule evaluation engine and alert persistence service.
"""

__all__ = ["models", "engine", "service"]
