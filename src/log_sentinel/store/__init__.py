"""
Persistence for log records, alert rules and alerts.
"""

from .base import PersistenceGateway
from .sqlite_store import LogStore

__all__ = ["PersistenceGateway", "LogStore"]
