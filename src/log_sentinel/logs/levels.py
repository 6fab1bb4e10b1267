"""
Severity mapping from native log levels onto EventLogLevel.

Every mapping here is total: anything unknown becomes Information.
"""

from typing import Optional, Sequence, Tuple

from .models import EventLogLevel

# Checked in order; the first tier with a matching keyword wins.
KEYWORD_TIERS: Sequence[Tuple[EventLogLevel, Tuple[str, ...]]] = (
    (
        EventLogLevel.CRITICAL,
        ("panic", "fatal", "critical", "segfault", "out of memory"),
    ),
    (EventLogLevel.ERROR, ("error", "fail", "exception", "denied")),
    (EventLogLevel.WARNING, ("warn", "deprecated", "timeout")),
)

WINDOWS_LEVELS = {
    0: EventLogLevel.INFORMATION,  # LogAlways
    1: EventLogLevel.CRITICAL,
    2: EventLogLevel.ERROR,
    3: EventLogLevel.WARNING,
    4: EventLogLevel.INFORMATION,
}

MACOS_MESSAGE_TYPES = {
    "fault": EventLogLevel.CRITICAL,
    "error": EventLogLevel.ERROR,
    "warning": EventLogLevel.WARNING,
    "info": EventLogLevel.INFORMATION,
    "debug": EventLogLevel.INFORMATION,
    "default": EventLogLevel.INFORMATION,
}


def infer_level(message: Optional[str]) -> EventLogLevel:
    """
    Infer a level from message text for sources without a severity field.

    Args:
        message: Raw message text

    Returns:
        Highest-priority level whose keyword appears in the message
    """
    if not message:
        return EventLogLevel.INFORMATION

    lowered = message.lower()
    for level, keywords in KEYWORD_TIERS:
        if any(keyword in lowered for keyword in keywords):
            return level

    return EventLogLevel.INFORMATION


def level_from_windows(level: Optional[int]) -> EventLogLevel:
    """Map a Windows event level byte to EventLogLevel."""
    if level is None:
        return EventLogLevel.INFORMATION
    return WINDOWS_LEVELS.get(level, EventLogLevel.INFORMATION)


def level_from_macos(message_type: Optional[str]) -> EventLogLevel:
    """Map a macOS Unified Log messageType to EventLogLevel."""
    if not message_type:
        return EventLogLevel.INFORMATION
    return MACOS_MESSAGE_TYPES.get(message_type.lower(), EventLogLevel.INFORMATION)
