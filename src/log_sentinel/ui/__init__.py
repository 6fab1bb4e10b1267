"""
User interface and API module.

Provides REST APIs for alert rule management and for browsing stored
logs and alerts.
"""

__all__ = ["dependencies", "rules_api", "alerts_api", "logs_api", "http_server"]
