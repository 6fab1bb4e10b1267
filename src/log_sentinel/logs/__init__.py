"""
Normalized log records shared by every ingestion source.

Windows events, syslog lines and macOS Unified Log entries are all mapped
onto LogRecord with one of four EventLogLevel values.
"""

from .levels import infer_level, level_from_macos, level_from_windows
from .models import EventLogLevel, LogRecord

__all__ = [
    "EventLogLevel",
    "LogRecord",
    "infer_level",
    "level_from_macos",
    "level_from_windows",
]
