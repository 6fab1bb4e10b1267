"""
Linux syslog ingestion from a byte-seekable text file.

Supports two line formats, tried in order:

    2024-01-15T10:30:45.123456+00:00 hostname process[123]: message
    Jan 15 10:30:45 hostname process[123]: message

The second (legacy) format has no year; it is inferred at read time.
"""

import asyncio
import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from ..core.config import StartPolicy
from ..logs.levels import infer_level
from ..logs.models import LogRecord
from ..store.base import PersistenceGateway
from .base import resolve_start_time, sort_by_timestamp
from .checkpoint import ChannelCheckpoint, ReadResult, SourceCheckpoint, start_time_for

logger = logging.getLogger(__name__)

SYSLOG_TYPE = "Syslog"

MONTHS = {
    "Jan": 1, "Feb": 2, "Mar": 3, "Apr": 4, "May": 5, "Jun": 6,
    "Jul": 7, "Aug": 8, "Sep": 9, "Oct": 10, "Nov": 11, "Dec": 12,
}

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def infer_legacy_timestamp(
    month: int, day: int, hour: int, minute: int, second: int, now: datetime
) -> datetime:
    """
    Build a UTC timestamp for a year-less syslog line.

    The line is taken as local time in the current year. If that lands in
    the future, the entry was written last year (year-boundary rollover).

    Args:
        month, day, hour, minute, second: Fields from the line
        now: Current time (aware)

    Returns:
        Aware UTC datetime
    """
    local_now = now.astimezone()
    candidate = datetime(local_now.year, month, day, hour, minute, second).astimezone()
    if candidate > local_now:
        candidate = datetime(
            local_now.year - 1, month, day, hour, minute, second
        ).astimezone()
    return candidate.astimezone(timezone.utc)


class SyslogLineParser:
    """Parse syslog text lines into LogRecords."""

    ISO_PATTERN = re.compile(
        r"^(?P<ts>\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2})"
        r"(?:\.(?P<frac>\d+))?"
        r"(?P<tz>Z|[+-]\d{2}:?\d{2})\s+"
        r"(?P<host>\S+)\s+"
        r"(?P<process>[^\[\s:]+)(?:\[(?P<pid>\d+)\])?:\s+"
        r"(?P<message>.+)$"
    )

    LEGACY_PATTERN = re.compile(
        r"^(?P<month>[A-Z][a-z]{2})\s+(?P<day>\d{1,2})\s+"
        r"(?P<time>\d{2}:\d{2}:\d{2})\s+"
        r"(?P<host>\S+)\s+"
        r"(?P<process>[^\[\s:]+)(?:\[(?P<pid>\d+)\])?:\s+"
        r"(?P<message>.+)$"
    )

    def parse(self, line: str, now: Optional[datetime] = None) -> Optional[LogRecord]:
        """
        Parse one line.

        Args:
            line: Raw line without trailing newline
            now: Reference time for year inference (defaults to now)

        Returns:
            LogRecord, or None if the line matches neither format
        """
        try:
            m = self.ISO_PATTERN.match(line)
            if m:
                return self._build(m, self._parse_iso(m))

            m = self.LEGACY_PATTERN.match(line)
            if m:
                return self._build(m, self._parse_legacy(m, now or utc_now()))
        except ValueError as e:
            logger.debug(f"Failed to parse syslog line: {line!r} ({e})")

        return None

    @staticmethod
    def _parse_iso(m: re.Match) -> datetime:
        text = m.group("ts")
        if m.group("frac"):
            # fromisoformat accepts at most microsecond precision
            text += "." + m.group("frac")[:6].ljust(6, "0")
        tz = m.group("tz")
        if tz == "Z":
            tz = "+00:00"
        elif ":" not in tz:
            tz = f"{tz[:3]}:{tz[3:]}"
        return datetime.fromisoformat(text + tz).astimezone(timezone.utc)

    @staticmethod
    def _parse_legacy(m: re.Match, now: datetime) -> datetime:
        month = MONTHS.get(m.group("month"))
        if month is None:
            raise ValueError(f"unknown month {m.group('month')}")
        hour, minute, second = (int(p) for p in m.group("time").split(":"))
        return infer_legacy_timestamp(
            month, int(m.group("day")), hour, minute, second, now
        )

    @staticmethod
    def _build(m: re.Match, timestamp: datetime) -> LogRecord:
        message = m.group("message")
        pid = m.group("pid")
        return LogRecord(
            timestamp=timestamp,
            event_id=int(pid) if pid else None,
            level=infer_level(message),
            source=m.group("process"),
            type=SYSLOG_TYPE,
            message=message,
        )


class SyslogFileSource:
    """
    Reads new lines from a syslog file between polling cycles.

    The single channel's cursor is the byte offset just past the last
    consumed line. A file smaller than that offset has been rotated or
    truncated, and reading restarts from offset 0.
    """

    backend = "syslog"

    def __init__(
        self,
        path: str = "/var/log/syslog",
        batch_limit: int = 1000,
        start_policy: StartPolicy = StartPolicy.LAST_HOUR,
        parser: Optional[SyslogLineParser] = None,
        clock: Clock = utc_now,
    ):
        """
        Initialize syslog source.

        Args:
            path: Path to the syslog file
            batch_limit: Maximum records returned per cycle
            start_policy: Start point when the store is empty
            parser: Line parser (default SyslogLineParser)
            clock: Returns the current aware time
        """
        self.path = Path(path)
        self.batch_limit = batch_limit
        self.start_policy = start_policy
        self.parser = parser or SyslogLineParser()
        self.clock = clock

    @property
    def channel_name(self) -> str:
        return str(self.path)

    def default_checkpoint(self) -> SourceCheckpoint:
        return SourceCheckpoint.starting_at(
            self.backend,
            [self.channel_name],
            start_time_for(StartPolicy.LAST_HOUR, self.clock()),
            cursor=0,
        )

    async def initialize_checkpoint(self, store: PersistenceGateway) -> SourceCheckpoint:
        """
        Start after the newest stored record, at the current end of file.

        Lines already on disk at startup are not replayed.
        """
        try:
            logger.info("Initializing syslog bookmarks")
            start = resolve_start_time(store, self.start_policy, self.clock())

            offset = 0
            if self.path.exists():
                offset = self.path.stat().st_size
                logger.info(f"Initialized syslog position to {offset} bytes")

            return SourceCheckpoint.starting_at(
                self.backend, [self.channel_name], start, cursor=offset
            )
        except Exception as e:
            logger.error(f"Error initializing syslog bookmarks: {e}", exc_info=True)
            return self.default_checkpoint()

    async def read_new_records(self, checkpoint: SourceCheckpoint) -> ReadResult:
        channel = checkpoint.channels.get(self.channel_name)
        if channel is None:
            channel = self.default_checkpoint().channel(self.channel_name)

        try:
            records, updated = await asyncio.to_thread(self._read_file, channel)
        except Exception as e:
            logger.error(f"Error reading syslog from {self.path}: {e}", exc_info=True)
            return ReadResult(records=[], checkpoint=checkpoint.replace(channel))

        return ReadResult(records=records, checkpoint=checkpoint.replace(updated))

    def _read_file(
        self, channel: ChannelCheckpoint
    ) -> Tuple[List[LogRecord], ChannelCheckpoint]:
        """Read complete lines past the channel's offset."""
        if not self.path.exists():
            logger.warning(f"Syslog file not found at {self.path}")
            return [], channel

        offset = int(channel.cursor or 0)
        size = self.path.stat().st_size
        if size < offset:
            logger.info(
                f"Log rotation detected for {self.path} "
                f"(size {size} < offset {offset}). Restarting from beginning."
            )
            offset = 0
        # Past a known offset every line is unread; from offset 0 only the
        # timestamp tells old lines from new ones
        resuming = offset > 0

        now = self.clock()
        records: List[LogRecord] = []
        line_count = 0

        with open(self.path, "rb") as f:
            f.seek(offset)
            while len(records) < self.batch_limit:
                raw = f.readline()
                if not raw or not raw.endswith(b"\n"):
                    # EOF, or a line still being written
                    break

                offset += len(raw)
                line_count += 1
                line = raw.decode("utf-8", errors="replace").rstrip("\r\n")

                record = self.parser.parse(line, now)
                if record is None or not self._is_new(record, channel, resuming):
                    continue
                records.append(record)

        records = sort_by_timestamp(records)
        if records:
            logger.info(f"Read {len(records)} new syslog entries from {line_count} lines")

        return records, channel.advance(records, cursor=offset)

    @staticmethod
    def _is_new(record: LogRecord, channel: ChannelCheckpoint, resuming: bool) -> bool:
        if resuming:
            return record.timestamp >= channel.last_seen
        return record.timestamp > channel.last_seen
