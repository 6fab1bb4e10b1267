"""
Tests for Windows Event Log ingestion.

The Evt* API is only reachable through pywin32 on Windows; these tests
exercise the XML rendering logic and the source with a fake reader.
"""

import sys
import threading
from datetime import datetime, timedelta, timezone

import pytest

from log_sentinel.ingestion.base import SourceUnavailableError
from log_sentinel.ingestion.checkpoint import SourceCheckpoint
from log_sentinel.ingestion.windows import (
    WindowsEvent,
    WindowsEventLogSource,
    WinEventLogReader,
    event_message,
    event_to_record,
    event_type,
    parse_event_xml,
    parse_system_time,
    xpath_time,
)
from log_sentinel.logs.models import EventLogLevel

NOW = datetime(2024, 1, 15, 12, 0, 0, tzinfo=timezone.utc)

SAMPLE_XML = """\
<Event xmlns="http://schemas.microsoft.com/win/2004/08/events/event">
  <System>
    <Provider Name="Service Control Manager" Guid="{555908d1-a6d7-4695-8e1e-26931d2012f4}"/>
    <EventID Qualifiers="16384">7036</EventID>
    <Level>2</Level>
    <Task>0</Task>
    <TimeCreated SystemTime="2024-01-15T10:30:45.1234567Z"/>
    <Channel>System</Channel>
  </System>
  <EventData>
    <Data Name="param1">Windows Update</Data>
    <Data Name="param2">stopped</Data>
    <Data Name="param3"></Data>
  </EventData>
</Event>
"""


class FakeReader:
    """Stands in for WinEventLogReader; serves canned events per channel."""

    def __init__(self, events=None, failing=()):
        self.events = events or {}
        self.failing = set(failing)
        self.calls = []
        self._lock = threading.Lock()

    def read(self, channel, bookmark, since, limit):
        with self._lock:
            self.calls.append((channel, bookmark, since, limit))
        if channel in self.failing:
            raise OSError(f"The specified channel could not be found: {channel}")
        events = [e for e in self.events.get(channel, []) if e.time_created > since][:limit]
        if not events:
            return [], bookmark
        return events, f"<BookmarkList><Bookmark Channel='{channel}' RecordId='{len(events)}'/></BookmarkList>"


def event(minutes_ago: int, event_id: int = 1000, level: int = 4, provider: str = "App"):
    return WindowsEvent(
        time_created=NOW - timedelta(minutes=minutes_ago),
        event_id=event_id,
        level=level,
        provider=provider,
        description=f"event {event_id}",
    )


class TestEventRendering:
    """Event XML and field fallbacks."""

    def test_parse_event_xml(self):
        parsed = parse_event_xml(SAMPLE_XML)

        assert parsed.event_id == 7036
        assert parsed.level == 2
        assert parsed.provider == "Service Control Manager"
        assert parsed.time_created == datetime(2024, 1, 15, 10, 30, 45, 123456, tzinfo=timezone.utc)
        assert parsed.properties == ["Windows Update", "stopped"]

    def test_parse_event_xml_without_system(self):
        with pytest.raises(ValueError):
            parse_event_xml('<Event xmlns="http://schemas.microsoft.com/win/2004/08/events/event"/>')

    def test_parse_system_time(self):
        assert parse_system_time("2024-01-15T10:30:45Z") == datetime(
            2024, 1, 15, 10, 30, 45, tzinfo=timezone.utc
        )
        assert parse_system_time("not a time") is None
        assert parse_system_time(None) is None

    def test_type_fallbacks(self):
        assert event_type(WindowsEvent(task_name="Logon", level_name="Information")) == "Logon"
        assert event_type(WindowsEvent(task_name=" ", level_name="Error")) == "Error"
        assert event_type(WindowsEvent()) == "Unknown"

    def test_message_fallbacks(self):
        assert event_message(WindowsEvent(description="Service stopped.")) == "Service stopped."
        assert event_message(WindowsEvent(properties=["a", "b"])) == "a | b"
        assert event_message(WindowsEvent(event_id=41, provider="Kernel-Power")) == (
            "Event ID: 41, Provider: Kernel-Power"
        )

    def test_event_to_record(self):
        record = event_to_record(parse_event_xml(SAMPLE_XML), "System", NOW)

        assert record.level == EventLogLevel.ERROR
        assert record.source == "Service Control Manager"
        assert record.type == "Unknown"
        assert record.message == "Windows Update | stopped"
        assert record.event_id == 7036

    def test_event_without_provider_or_time(self):
        record = event_to_record(WindowsEvent(event_id=1, level=1), "Security", NOW)

        assert record.source == "Security"
        assert record.timestamp == NOW
        assert record.level == EventLogLevel.CRITICAL

    def test_xpath_time(self):
        assert xpath_time(datetime(2024, 1, 15, 10, 30, 45, 123456, tzinfo=timezone.utc)) == (
            "2024-01-15T10:30:45.123Z"
        )


class TestWindowsEventLogSource:
    """Multi-channel reads with a fake reader."""

    def make_source(self, reader, channels=("Application", "System"), **kwargs):
        return WindowsEventLogSource(
            channels=channels, reader_factory=lambda: reader, clock=lambda: NOW, **kwargs
        )

    def checkpoint(self, channels=("Application", "System"), last_seen=NOW - timedelta(hours=1)):
        return SourceCheckpoint.starting_at("windows", channels, last_seen)

    @pytest.mark.asyncio
    async def test_first_read_is_time_bounded_then_bookmarked(self):
        reader = FakeReader({"System": [event(30), event(10)]})
        source = self.make_source(reader, channels=("System",))
        start = self.checkpoint(channels=("System",))

        first = await source.read_new_records(start)
        second = await source.read_new_records(first.checkpoint)

        assert reader.calls[0][1] is None
        assert reader.calls[0][2] == NOW - timedelta(hours=1)
        assert len(first.records) == 2
        bookmark = first.checkpoint.channel("System").cursor
        assert bookmark.startswith("<BookmarkList>")
        assert reader.calls[1][1] == bookmark
        assert second.records == []
        assert second.checkpoint.channel("System").cursor == bookmark

    @pytest.mark.asyncio
    async def test_channels_merged_by_timestamp(self):
        reader = FakeReader(
            {
                "Application": [event(40, 1), event(5, 3)],
                "System": [event(20, 2)],
            }
        )
        source = self.make_source(reader)

        result = await source.read_new_records(self.checkpoint())

        assert [r.event_id for r in result.records] == [1, 2, 3]
        assert result.checkpoint.channel("Application").last_seen == NOW - timedelta(minutes=5)
        assert result.checkpoint.channel("System").last_seen == NOW - timedelta(minutes=20)

    @pytest.mark.asyncio
    async def test_failing_channel_is_isolated(self):
        reader = FakeReader({"Application": [event(5, 1)]}, failing=["System"])
        source = self.make_source(reader)
        start = self.checkpoint()

        result = await source.read_new_records(start)

        assert [r.event_id for r in result.records] == [1]
        assert result.checkpoint.channel("System") == start.channel("System")
        assert result.checkpoint.channel("Application").cursor is not None

    @pytest.mark.asyncio
    async def test_batch_limit_per_channel(self):
        reader = FakeReader({"System": [event(m) for m in (50, 40, 30, 20)]})
        source = self.make_source(reader, channels=("System",), batch_limit=3)

        result = await source.read_new_records(self.checkpoint(channels=("System",)))

        assert len(result.records) == 3
        assert reader.calls[0][3] == 3

    @pytest.mark.asyncio
    async def test_missing_channel_checkpoint_uses_default(self):
        reader = FakeReader({"Security": [event(30, 4624)]})
        source = self.make_source(reader, channels=("Security",))

        result = await source.read_new_records(SourceCheckpoint(backend="windows"))

        assert [r.event_id for r in result.records] == [4624]
        assert "Security" in result.checkpoint.channels

    @pytest.mark.asyncio
    async def test_reader_unavailable(self):
        def unavailable():
            raise SourceUnavailableError("pywin32 is required for Windows Event Log ingestion")

        source = WindowsEventLogSource(reader_factory=unavailable, clock=lambda: NOW)
        start = self.checkpoint(channels=("Application", "System", "Security"))

        result = await source.read_new_records(start)

        assert result.records == []
        assert result.checkpoint == start

    @pytest.mark.asyncio
    async def test_initialize_checkpoint(self, gateway, make_record):
        gateway.latest = make_record(timestamp=NOW - timedelta(minutes=15))
        source = self.make_source(FakeReader())

        checkpoint = await source.initialize_checkpoint(gateway)

        assert set(checkpoint.channels) == {"Application", "System"}
        for channel in checkpoint.channels.values():
            assert channel.cursor is None
            assert channel.last_seen == NOW - timedelta(minutes=15)

    @pytest.mark.skipif(sys.platform == "win32", reason="requires a host without pywin32")
    def test_reader_requires_pywin32(self):
        with pytest.raises(SourceUnavailableError):
            WinEventLogReader()
