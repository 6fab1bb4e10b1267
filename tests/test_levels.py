"""
Tests for severity mapping.
"""

import pytest

from log_sentinel.logs.levels import infer_level, level_from_macos, level_from_windows
from log_sentinel.logs.models import EventLogLevel


class TestInferLevel:
    """Keyword based level inference for syslog messages."""

    @pytest.mark.parametrize(
        "message,expected",
        [
            ("kernel: Out of memory: Killed process 1234", EventLogLevel.CRITICAL),
            ("Segfault at 0000 ip 00007f", EventLogLevel.CRITICAL),
            ("Failed password for root from 10.0.0.1", EventLogLevel.ERROR),
            ("Permission DENIED on /etc/shadow", EventLogLevel.ERROR),
            ("Unhandled exception in worker", EventLogLevel.ERROR),
            ("Connection timeout after 30s", EventLogLevel.WARNING),
            ("option foo is deprecated", EventLogLevel.WARNING),
            ("Started Daily apt upgrade", EventLogLevel.INFORMATION),
        ],
    )
    def test_keyword_tiers(self, message, expected):
        assert infer_level(message) == expected

    def test_critical_beats_warning(self):
        assert infer_level("warning: fatal condition detected") == EventLogLevel.CRITICAL

    def test_error_beats_warning(self):
        assert infer_level("timeout caused error") == EventLogLevel.ERROR

    def test_empty_message_is_information(self):
        assert infer_level("") == EventLogLevel.INFORMATION
        assert infer_level(None) == EventLogLevel.INFORMATION


class TestNativeLevels:
    """Windows level bytes and macOS message types."""

    @pytest.mark.parametrize(
        "level,expected",
        [
            (1, EventLogLevel.CRITICAL),
            (2, EventLogLevel.ERROR),
            (3, EventLogLevel.WARNING),
            (4, EventLogLevel.INFORMATION),
            (0, EventLogLevel.INFORMATION),
            (5, EventLogLevel.INFORMATION),
            (None, EventLogLevel.INFORMATION),
        ],
    )
    def test_windows_levels(self, level, expected):
        assert level_from_windows(level) == expected

    @pytest.mark.parametrize(
        "message_type,expected",
        [
            ("Fault", EventLogLevel.CRITICAL),
            ("Error", EventLogLevel.ERROR),
            ("warning", EventLogLevel.WARNING),
            ("Default", EventLogLevel.INFORMATION),
            ("Debug", EventLogLevel.INFORMATION),
            ("Signpost", EventLogLevel.INFORMATION),
            (None, EventLogLevel.INFORMATION),
        ],
    )
    def test_macos_message_types(self, message_type, expected):
        assert level_from_macos(message_type) == expected
