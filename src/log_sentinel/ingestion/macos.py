"""
macOS Unified Log ingestion through the `log show` export command.
"""

import asyncio
import json
import logging
import math
import sys
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from ..core.config import StartPolicy
from ..logs.levels import level_from_macos
from ..logs.models import LogRecord
from ..store.base import PersistenceGateway
from .base import SourceUnavailableError, cap_batch, resolve_start_time, sort_by_timestamp
from .checkpoint import ReadResult, SourceCheckpoint, start_time_for

logger = logging.getLogger(__name__)

CHANNEL = "unified"
LOG_PREDICATE = "eventType == logEvent"

TIMESTAMP_FORMATS = (
    "%Y-%m-%d %H:%M:%S.%f%z",
    "%Y-%m-%d %H:%M:%S%z",
)


class LogShowError(RuntimeError):
    """Raised when `log show` exits with a non-zero status."""

    def __init__(self, returncode: int, stderr: str):
        super().__init__(f"log command failed with exit code {returncode}: {stderr}")
        self.returncode = returncode
        self.stderr = stderr


def compute_time_window(start: datetime, now: datetime) -> str:
    """
    Build the `--last` argument covering everything since ``start``.

    Minutes under an hour, hours under a day, days otherwise, always
    rounded up.

    Examples:
        20.5 minutes -> "21m", 3 hours -> "3h", 26 hours -> "2d"
    """
    seconds = max((now - start).total_seconds(), 0.0)
    minutes = seconds / 60
    if minutes < 60:
        return f"{max(math.ceil(minutes), 1)}m"
    hours = minutes / 60
    if hours < 24:
        return f"{math.ceil(hours)}h"
    return f"{math.ceil(hours / 24)}d"


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse a `log show` timestamp ("2024-01-15 10:30:45.123456-0800")."""
    if not value:
        return None
    for fmt in TIMESTAMP_FORMATS:
        try:
            return datetime.strptime(value, fmt).astimezone(timezone.utc)
        except ValueError:
            continue
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        # No offset in the text: it is local time
        parsed = parsed.astimezone()
    return parsed.astimezone(timezone.utc)


def parse_log_show_output(output: str) -> List[Dict[str, Any]]:
    """
    Parse `log show --style json` or ndjson output into entry dicts.

    Lines that are not JSON objects (such as the "Filtering the log data"
    banner) are skipped.
    """
    text = output.strip()
    if not text:
        return []

    if text.startswith("["):
        data = json.loads(text)
        return [e for e in data if isinstance(e, dict)]

    entries = []
    for line in text.splitlines():
        line = line.strip()
        if not line.startswith("{"):
            continue
        try:
            entry = json.loads(line)
        except json.JSONDecodeError:
            logger.debug(f"Skipping unparseable log entry: {line[:120]}")
            continue
        if isinstance(entry, dict):
            entries.append(entry)
    return entries


def format_message(entry: Dict[str, Any]) -> str:
    """Prefix the event message with its subsystem and category."""
    subsystem = str(entry.get("subsystem") or "")
    category = str(entry.get("category") or "")
    parts = []
    if subsystem.strip():
        parts.append(f"[{subsystem}]")
    if category.strip() and category != subsystem:
        parts.append(f"[{category}]")
    parts.append(str(entry.get("eventMessage") or ""))
    return " ".join(parts)


def entry_to_record(entry: Dict[str, Any], now: datetime) -> Optional[LogRecord]:
    """
    Convert one Unified Log entry to a LogRecord.

    Args:
        entry: Entry dict from `log show`
        now: Used when the entry carries no timestamp

    Returns:
        LogRecord or None if the entry cannot be converted
    """
    try:
        timestamp = parse_timestamp(entry.get("timestamp")) or now
        process = str(entry.get("process") or "")
        category = str(entry.get("category") or "")
        pid = entry.get("processID") or 0
        return LogRecord(
            timestamp=timestamp,
            event_id=int(pid) if pid else None,
            level=level_from_macos(entry.get("messageType")),
            source=process if process.strip() else "macOS",
            type=category if category.strip() else str(entry.get("eventType") or "logEvent"),
            message=format_message(entry),
        )
    except (AttributeError, TypeError, ValueError) as e:
        logger.debug(f"Failed to parse macOS log entry: {e}")
        return None


class LogShowRunner:
    """Runs the macOS `log show` command and returns its stdout."""

    def __init__(self, command: str = "log"):
        self.command = command

    async def run(self, window: str) -> str:
        """
        Export log entries for a trailing time window.

        Raises:
            SourceUnavailableError: Not running on macOS
            LogShowError: The command exited with a non-zero status
        """
        if sys.platform != "darwin":
            raise SourceUnavailableError(
                "Not running on macOS. Unified Log ingestion is not available."
            )

        process = await asyncio.create_subprocess_exec(
            self.command,
            "show",
            "--style",
            "json",
            "--predicate",
            LOG_PREDICATE,
            "--last",
            window,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        stdout, stderr = await process.communicate()

        if process.returncode != 0:
            raise LogShowError(process.returncode, stderr.decode("utf-8", errors="replace"))

        return stdout.decode("utf-8", errors="replace")


class MacOSUnifiedLogSource:
    """
    Polls the Unified Log with `log show --last <window>`.

    The export window is coarser than the checkpoint, so every entry is
    filtered again by timestamp strictly after the checkpoint.
    """

    backend = "macos"

    def __init__(
        self,
        runner: Optional[LogShowRunner] = None,
        batch_limit: int = 1000,
        start_policy: StartPolicy = StartPolicy.LAST_HOUR,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        """
        Initialize macOS source.

        Args:
            runner: Runs `log show` (default LogShowRunner)
            batch_limit: Maximum records returned per cycle
            start_policy: Start point when the store is empty
            clock: Returns the current aware time
        """
        self.runner = runner or LogShowRunner()
        self.batch_limit = batch_limit
        self.start_policy = start_policy
        self.clock = clock

    def default_checkpoint(self) -> SourceCheckpoint:
        return SourceCheckpoint.starting_at(
            self.backend, [CHANNEL], start_time_for(StartPolicy.LAST_HOUR, self.clock())
        )

    async def initialize_checkpoint(self, store: PersistenceGateway) -> SourceCheckpoint:
        try:
            logger.info("Initializing macOS Unified Log bookmarks")
            start = resolve_start_time(store, self.start_policy, self.clock())
            return SourceCheckpoint.starting_at(self.backend, [CHANNEL], start)
        except Exception as e:
            logger.error(f"Error initializing macOS log bookmarks: {e}", exc_info=True)
            return self.default_checkpoint()

    async def read_new_records(self, checkpoint: SourceCheckpoint) -> ReadResult:
        channel = checkpoint.channels.get(CHANNEL) or self.default_checkpoint().channel(CHANNEL)
        now = self.clock()
        window = compute_time_window(channel.last_seen, now)

        try:
            output = await self.runner.run(window)
            entries = parse_log_show_output(output)
        except SourceUnavailableError as e:
            logger.warning(str(e))
            return ReadResult(records=[], checkpoint=checkpoint.replace(channel))
        except Exception as e:
            logger.error(f"Error reading macOS Unified Logs: {e}")
            return ReadResult(records=[], checkpoint=checkpoint.replace(channel))

        records = []
        for entry in entries:
            record = entry_to_record(entry, now)
            if record is not None and record.timestamp > channel.last_seen:
                records.append(record)

        records = cap_batch(sort_by_timestamp(records), self.batch_limit)
        if records:
            logger.info(f"Retrieved {len(records)} new macOS log entries (window {window})")

        return ReadResult(
            records=records, checkpoint=checkpoint.replace(channel.advance(records))
        )
