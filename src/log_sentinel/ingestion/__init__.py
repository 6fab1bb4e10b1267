"""
Log ingestion: platform log sources, checkpoints and the polling service.

Sources:
- windows: Windows Event Log channels via pywin32
- syslog: Linux syslog text files
- macos: macOS Unified Log via `log show`
"""

__all__ = ["base", "checkpoint", "windows", "syslog", "macos", "factory", "service"]
