"""
Tests for macOS Unified Log ingestion.
"""

import json
import sys
from datetime import datetime, timedelta, timezone

import pytest

from log_sentinel.ingestion.base import SourceUnavailableError
from log_sentinel.ingestion.checkpoint import SourceCheckpoint
from log_sentinel.ingestion import macos
from log_sentinel.ingestion.macos import (
    CHANNEL,
    LogShowError,
    LogShowRunner,
    MacOSUnifiedLogSource,
    compute_time_window,
    entry_to_record,
    format_message,
    parse_log_show_output,
    parse_timestamp,
)
from log_sentinel.logs.models import EventLogLevel

NOW = datetime(2024, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


def entry(ts: datetime, message: str, message_type: str = "Default", **extra):
    data = {
        "timestamp": ts.strftime("%Y-%m-%d %H:%M:%S.%f%z"),
        "messageType": message_type,
        "eventMessage": message,
        "process": "mDNSResponder",
        "processID": 321,
        "subsystem": "com.apple.mdns",
        "category": "resolver",
        "eventType": "logEvent",
    }
    data.update(extra)
    return data


class FakeRunner:
    """Stands in for `log show`; returns canned output."""

    def __init__(self, output="", error=None):
        self.output = output
        self.error = error
        self.windows = []

    async def run(self, window):
        self.windows.append(window)
        if self.error is not None:
            raise self.error
        return self.output


class TestTimeWindow:
    """`--last` argument selection."""

    @pytest.mark.parametrize(
        "elapsed,expected",
        [
            (timedelta(0), "1m"),
            (timedelta(seconds=20), "1m"),
            (timedelta(minutes=20, seconds=30), "21m"),
            (timedelta(minutes=59), "59m"),
            (timedelta(hours=1), "1h"),
            (timedelta(hours=3), "3h"),
            (timedelta(hours=3, minutes=1), "4h"),
            (timedelta(hours=26), "2d"),
        ],
    )
    def test_window(self, elapsed, expected):
        assert compute_time_window(NOW - elapsed, NOW) == expected


class TestParsing:
    """`log show` output handling."""

    def test_parse_timestamp_with_offset(self):
        parsed = parse_timestamp("2024-01-15 10:30:45.123456-0800")

        assert parsed == datetime(2024, 1, 15, 18, 30, 45, 123456, tzinfo=timezone.utc)

    def test_parse_timestamp_invalid(self):
        assert parse_timestamp("yesterday") is None
        assert parse_timestamp(None) is None

    def test_parse_json_array(self):
        output = json.dumps([entry(NOW, "a"), entry(NOW, "b")])

        assert [e["eventMessage"] for e in parse_log_show_output(output)] == ["a", "b"]

    def test_parse_ndjson_skips_banner(self):
        output = "Filtering the log data using \"eventType == logEvent\"\n"
        output += json.dumps(entry(NOW, "a")) + "\n"
        output += "{not json\n"
        output += json.dumps(entry(NOW, "b")) + "\n"

        assert [e["eventMessage"] for e in parse_log_show_output(output)] == ["a", "b"]

    def test_parse_empty_output(self):
        assert parse_log_show_output("  \n") == []

    def test_format_message(self):
        assert format_message(entry(NOW, "query failed")) == (
            "[com.apple.mdns] [resolver] query failed"
        )
        assert format_message({"eventMessage": "plain"}) == "plain"
        assert format_message(
            {"subsystem": "com.apple.x", "category": "com.apple.x", "eventMessage": "m"}
        ) == "[com.apple.x] m"

    def test_entry_to_record(self):
        record = entry_to_record(entry(NOW, "resolver crashed", "Fault"), NOW)

        assert record.timestamp == NOW
        assert record.level == EventLogLevel.CRITICAL
        assert record.source == "mDNSResponder"
        assert record.event_id == 321
        assert record.type == "resolver"
        assert record.message == "[com.apple.mdns] [resolver] resolver crashed"

    def test_entry_defaults(self):
        record = entry_to_record({"eventMessage": "bare"}, NOW)

        assert record.timestamp == NOW
        assert record.source == "macOS"
        assert record.type == "logEvent"
        assert record.event_id is None
        assert record.level == EventLogLevel.INFORMATION

    def test_entry_with_non_string_fields(self):
        record = entry_to_record(entry(NOW, "m", process=123, category=7, subsystem=None), NOW)

        assert record.source == "123"
        assert record.type == "7"
        assert record.message == "[7] m"

    def test_entry_with_non_string_message_type_is_skipped(self):
        assert entry_to_record(entry(NOW, "m", message_type=5), NOW) is None


class TestMacOSUnifiedLogSource:
    """Reading the Unified Log through an injected runner."""

    def checkpoint(self, last_seen):
        return SourceCheckpoint.starting_at("macos", [CHANNEL], last_seen)

    @pytest.mark.asyncio
    async def test_filters_strictly_after_checkpoint_and_sorts(self):
        last_seen = NOW - timedelta(minutes=10)
        runner = FakeRunner(
            json.dumps(
                [
                    entry(NOW - timedelta(minutes=1), "newest", "Error"),
                    entry(last_seen, "boundary"),
                    entry(NOW - timedelta(minutes=20), "old"),
                    entry(NOW - timedelta(minutes=5), "middle"),
                ]
            )
        )
        source = MacOSUnifiedLogSource(runner=runner, clock=lambda: NOW)

        result = await source.read_new_records(self.checkpoint(last_seen))

        assert runner.windows == ["10m"]
        assert [r.message.split("] ")[-1] for r in result.records] == ["middle", "newest"]
        assert result.records[1].level == EventLogLevel.ERROR
        assert result.checkpoint.channel(CHANNEL).last_seen == NOW - timedelta(minutes=1)

    @pytest.mark.asyncio
    async def test_batch_limit(self):
        runner = FakeRunner(
            json.dumps([entry(NOW - timedelta(minutes=i), f"m{i}") for i in range(1, 6)])
        )
        source = MacOSUnifiedLogSource(runner=runner, batch_limit=2, clock=lambda: NOW)

        result = await source.read_new_records(self.checkpoint(NOW - timedelta(hours=1)))

        assert len(result.records) == 2
        assert result.checkpoint.channel(CHANNEL).last_seen == NOW - timedelta(minutes=4)

    @pytest.mark.asyncio
    async def test_equal_timestamps_fill_batch_are_kept_whole(self):
        ts = NOW - timedelta(minutes=30)
        runner = FakeRunner(json.dumps([entry(ts, f"burst {i}") for i in range(5)]))
        source = MacOSUnifiedLogSource(runner=runner, batch_limit=3, clock=lambda: NOW)

        first = await source.read_new_records(self.checkpoint(NOW - timedelta(hours=1)))
        second = await source.read_new_records(first.checkpoint)

        assert len(first.records) + len(second.records) == 5
        assert first.checkpoint.channel(CHANNEL).last_seen == ts

    @pytest.mark.asyncio
    async def test_batch_limit_does_not_split_equal_timestamps(self):
        early = NOW - timedelta(minutes=30)
        late = NOW - timedelta(minutes=20)
        runner = FakeRunner(
            json.dumps(
                [entry(early, "early 0"), entry(early, "early 1")]
                + [entry(late, f"late {i}") for i in range(3)]
            )
        )
        source = MacOSUnifiedLogSource(runner=runner, batch_limit=3, clock=lambda: NOW)

        first = await source.read_new_records(self.checkpoint(NOW - timedelta(hours=1)))
        second = await source.read_new_records(first.checkpoint)

        assert [r.message.split("] ")[-1] for r in first.records] == ["early 0", "early 1"]
        assert first.checkpoint.channel(CHANNEL).last_seen == early
        assert [r.message.split("] ")[-1] for r in second.records] == [
            "late 0",
            "late 1",
            "late 2",
        ]

    @pytest.mark.asyncio
    async def test_malformed_entry_does_not_fail_cycle(self):
        runner = FakeRunner(
            json.dumps(
                [
                    entry(NOW - timedelta(minutes=2), "bad", message_type={"x": 1}),
                    entry(NOW - timedelta(minutes=1), "good", process=42),
                ]
            )
        )
        source = MacOSUnifiedLogSource(runner=runner, clock=lambda: NOW)

        result = await source.read_new_records(self.checkpoint(NOW - timedelta(minutes=5)))

        assert [r.source for r in result.records] == ["42"]

    @pytest.mark.asyncio
    async def test_unavailable_platform(self):
        runner = FakeRunner(error=SourceUnavailableError("Not running on macOS"))
        source = MacOSUnifiedLogSource(runner=runner, clock=lambda: NOW)
        checkpoint = self.checkpoint(NOW - timedelta(minutes=5))

        result = await source.read_new_records(checkpoint)

        assert result.records == []
        assert result.checkpoint == checkpoint

    @pytest.mark.asyncio
    async def test_command_failure_keeps_checkpoint(self):
        runner = FakeRunner(error=LogShowError(1, "log: Cannot run while sandboxed"))
        source = MacOSUnifiedLogSource(runner=runner, clock=lambda: NOW)
        checkpoint = self.checkpoint(NOW - timedelta(minutes=5))

        result = await source.read_new_records(checkpoint)

        assert result.records == []
        assert result.checkpoint == checkpoint

    @pytest.mark.asyncio
    async def test_initialize_from_store(self, gateway, make_record):
        gateway.latest = make_record(timestamp=NOW - timedelta(minutes=42))
        source = MacOSUnifiedLogSource(runner=FakeRunner(), clock=lambda: NOW)

        checkpoint = await source.initialize_checkpoint(gateway)

        assert checkpoint.channel(CHANNEL).last_seen == NOW - timedelta(minutes=42)

    @pytest.mark.asyncio
    @pytest.mark.skipif(sys.platform == "darwin", reason="requires a non-macOS host")
    async def test_runner_refuses_other_platforms(self):
        with pytest.raises(SourceUnavailableError):
            await LogShowRunner().run("1m")


class FakeProcess:
    """Completed `log show` subprocess."""

    def __init__(self, returncode=0, stdout=b"", stderr=b""):
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr

    async def communicate(self):
        return self.stdout, self.stderr


class TestLogShowRunner:
    """Subprocess handling, with the platform check and exec patched."""

    def patch_exec(self, monkeypatch, process):
        calls = []

        async def fake_exec(*args, **kwargs):
            calls.append(args)
            return process

        monkeypatch.setattr(macos.sys, "platform", "darwin")
        monkeypatch.setattr(macos.asyncio, "create_subprocess_exec", fake_exec)
        return calls

    @pytest.mark.asyncio
    async def test_returns_stdout(self, monkeypatch):
        calls = self.patch_exec(monkeypatch, FakeProcess(stdout=b"[]"))

        output = await LogShowRunner().run("5m")

        assert output == "[]"
        assert calls[0][:2] == ("log", "show")
        assert calls[0][-2:] == ("--last", "5m")

    @pytest.mark.asyncio
    async def test_non_zero_exit_raises(self, monkeypatch):
        self.patch_exec(monkeypatch, FakeProcess(returncode=64, stderr=b"log: bad predicate"))

        with pytest.raises(LogShowError) as exc_info:
            await LogShowRunner().run("5m")

        assert exc_info.value.returncode == 64
        assert exc_info.value.stderr == "log: bad predicate"
        assert "exit code 64" in str(exc_info.value)
