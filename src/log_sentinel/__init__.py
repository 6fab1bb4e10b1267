"""
Log Sentinel - OS log ingestion and rule-based alerting

This package polls operating-system log sources, normalizes every entry into
a single record schema, persists new records, and evaluates user-defined
alert rules against each batch.

Main modules:
- logs: normalized log record model and severity mapping
- ingestion: Windows Event Log, Linux syslog and macOS Unified Log sources,
  checkpoints, and the polling coordinator
- alerts: alert rules, rule evaluation engine, alert service
- store: persistence gateway contract and SQLite implementation
- ui: rule management HTTP API
- cli: sentinelctl operational CLI
"""

__version__ = "0.3.0"
__author__ = "Log Sentinel Team"

from typing import Dict, Any

# Configuration defaults shared by core.config and the store
DEFAULT_CONFIG: Dict[str, Any] = {
    "db_path": "/data/log_sentinel.db",
    "poll_interval": 10.0,
    "batch_limit": 1000,
    "log_level": "INFO",
}


__all__ = ["__version__", "__author__", "DEFAULT_CONFIG"]
