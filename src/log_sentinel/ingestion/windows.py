"""
Windows Event Log ingestion.

Each named log (Application, System, Security, ...) is an independent
channel with its own bookmark. The first read after startup is bounded by a
TimeCreated XPath filter; later reads resume from the rendered bookmark.
"""

import asyncio
import logging
import threading
import xml.etree.ElementTree as ET
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from pydantic import BaseModel, Field

from ..core.config import StartPolicy
from ..logs.levels import level_from_windows
from ..logs.models import LogRecord
from ..store.base import PersistenceGateway
from .base import SourceUnavailableError, resolve_start_time, sort_by_timestamp
from .checkpoint import ChannelCheckpoint, ReadResult, SourceCheckpoint, start_time_for

logger = logging.getLogger(__name__)

DEFAULT_CHANNELS = ("Application", "System", "Security")
EVENT_NS = "{http://schemas.microsoft.com/win/2004/08/events/event}"
NEXT_CHUNK = 64


class WindowsEvent(BaseModel):
    """Fields pulled from one rendered Windows event."""

    time_created: Optional[datetime] = None
    event_id: int = 0
    level: Optional[int] = None
    provider: Optional[str] = None
    task_name: Optional[str] = None
    level_name: Optional[str] = None
    description: Optional[str] = None
    properties: List[str] = Field(default_factory=list)


def parse_system_time(value: Optional[str]) -> Optional[datetime]:
    """Parse an event SystemTime ("2024-01-15T10:30:45.1234567Z")."""
    if not value:
        return None
    text = value.strip().replace("Z", "+00:00")
    if "." in text:
        # Windows writes 100ns precision; keep microseconds
        head, rest = text.split(".", 1)
        offset = rest.lstrip("0123456789")
        digits = rest[: len(rest) - len(offset)]
        text = f"{head}.{digits[:6].ljust(6, '0')}{offset}"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def parse_event_xml(xml: str) -> WindowsEvent:
    """
    Extract event fields from the XML rendering of an event.

    Args:
        xml: Output of EvtRender(..., EvtRenderEventXml)

    Returns:
        WindowsEvent with the System fields and EventData values
    """
    root = ET.fromstring(xml)
    system = root.find(f"{EVENT_NS}System")
    if system is None:
        raise ValueError("event XML has no System element")

    provider = system.find(f"{EVENT_NS}Provider")
    time_created = system.find(f"{EVENT_NS}TimeCreated")
    event_id = (system.findtext(f"{EVENT_NS}EventID") or "0").strip()
    level = (system.findtext(f"{EVENT_NS}Level") or "").strip()

    properties = [
        data.text.strip()
        for data in root.iter(f"{EVENT_NS}Data")
        if data.text and data.text.strip()
    ]

    return WindowsEvent(
        time_created=parse_system_time(
            time_created.get("SystemTime") if time_created is not None else None
        ),
        event_id=int(event_id) if event_id.isdigit() else 0,
        level=int(level) if level.isdigit() else None,
        provider=provider.get("Name") if provider is not None else None,
        properties=properties,
    )


def event_type(event: WindowsEvent) -> str:
    """Task display name, else level display name, else "Unknown"."""
    if event.task_name and event.task_name.strip():
        return event.task_name
    if event.level_name and event.level_name.strip():
        return event.level_name
    return "Unknown"


def event_message(event: WindowsEvent) -> str:
    """Formatted description, else joined properties, else an id summary."""
    if event.description and event.description.strip():
        return event.description
    if event.properties:
        return " | ".join(event.properties)
    return f"Event ID: {event.event_id}, Provider: {event.provider}"


def event_to_record(event: WindowsEvent, channel: str, now: datetime) -> LogRecord:
    """Convert a WindowsEvent read from ``channel`` into a LogRecord."""
    return LogRecord(
        timestamp=event.time_created or now,
        event_id=event.event_id,
        level=level_from_windows(event.level),
        source=event.provider or channel,
        type=event_type(event),
        message=event_message(event),
    )


def xpath_time(value: datetime) -> str:
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"


class WinEventLogReader:
    """
    Forward-only, bookmark-resumable reader over the Windows Event Log API.

    Wraps pywin32's ``win32evtlog`` Evt* functions.
    """

    def __init__(self):
        try:
            import pywintypes
            import win32evtlog
        except ImportError as e:
            raise SourceUnavailableError(
                "pywin32 is required for Windows Event Log ingestion"
            ) from e

        self._evt = win32evtlog
        self._win_error = pywintypes.error
        self._publishers: Dict[str, Any] = {}
        self._lock = threading.Lock()

    def read(
        self,
        channel: str,
        bookmark: Optional[str],
        since: datetime,
        limit: int,
    ) -> Tuple[List[WindowsEvent], Optional[str]]:
        """
        Read up to ``limit`` events forward from a bookmark or timestamp.

        Args:
            channel: Event log name
            bookmark: Rendered bookmark XML, or None for the first read
            since: Lower bound (exclusive) used when there is no bookmark
            limit: Maximum number of events

        Returns:
            (events, bookmark XML after the last event read)
        """
        evt = self._evt
        flags = evt.EvtQueryChannelPath | evt.EvtQueryForwardDirection

        if bookmark:
            handle = evt.EvtQuery(channel, flags, "*")
            position = evt.EvtCreateBookmark(bookmark)
            # Skip the bookmarked event itself
            evt.EvtSeek(handle, 1, evt.EvtSeekRelativeToBookmark, position)
        else:
            query = f"*[System[TimeCreated[@SystemTime>'{xpath_time(since)}']]]"
            handle = evt.EvtQuery(channel, flags, query)
            position = evt.EvtCreateBookmark()

        events: List[WindowsEvent] = []
        consumed = False
        while len(events) < limit:
            batch = evt.EvtNext(handle, min(NEXT_CHUNK, limit - len(events)))
            if not batch:
                break
            for event_handle in batch:
                events.append(self._convert(event_handle))
                evt.EvtUpdateBookmark(position, event_handle)
                consumed = True

        if not consumed:
            return events, bookmark
        return events, evt.EvtRender(position, evt.EvtRenderBookmark)

    def _convert(self, event_handle) -> WindowsEvent:
        evt = self._evt
        event = parse_event_xml(evt.EvtRender(event_handle, evt.EvtRenderEventXml))
        metadata = self._publisher(event.provider)
        if metadata is None:
            return event

        return event.model_copy(
            update={
                "description": self._format(metadata, event_handle, evt.EvtFormatMessageEvent),
                "task_name": self._format(metadata, event_handle, evt.EvtFormatMessageTask),
                "level_name": self._format(metadata, event_handle, evt.EvtFormatMessageLevel),
            }
        )

    def _publisher(self, provider: Optional[str]):
        if not provider:
            return None
        with self._lock:
            if provider not in self._publishers:
                try:
                    self._publishers[provider] = self._evt.EvtOpenPublisherMetadata(provider)
                except self._win_error as e:
                    logger.debug(f"No publisher metadata for {provider}: {e}")
                    self._publishers[provider] = None
            return self._publishers[provider]

    def _format(self, metadata, event_handle, flags) -> Optional[str]:
        try:
            return self._evt.EvtFormatMessage(metadata, event_handle, flags)
        except self._win_error:
            return None


class WindowsEventLogSource:
    """
    Reads new events from a set of Windows event logs.

    Channels are read concurrently, one worker thread each, and merged by
    timestamp. A failing channel keeps its checkpoint and does not affect
    the others.
    """

    backend = "windows"

    def __init__(
        self,
        channels: Sequence[str] = DEFAULT_CHANNELS,
        batch_limit: int = 1000,
        start_policy: StartPolicy = StartPolicy.MIDNIGHT,
        reader_factory: Callable[[], WinEventLogReader] = WinEventLogReader,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        """
        Initialize Windows source.

        Args:
            channels: Event log names to read
            batch_limit: Maximum records per channel per cycle
            start_policy: Start point when the store is empty
            reader_factory: Builds the event log reader on first use
            clock: Returns the current aware time
        """
        self.channels = list(channels)
        self.batch_limit = batch_limit
        self.start_policy = start_policy
        self.reader_factory = reader_factory
        self.clock = clock
        self._reader: Optional[WinEventLogReader] = None

    @property
    def reader(self) -> WinEventLogReader:
        if self._reader is None:
            self._reader = self.reader_factory()
        return self._reader

    def default_checkpoint(self) -> SourceCheckpoint:
        return SourceCheckpoint.starting_at(
            self.backend, self.channels, start_time_for(StartPolicy.LAST_HOUR, self.clock())
        )

    async def initialize_checkpoint(self, store: PersistenceGateway) -> SourceCheckpoint:
        """
        Start every channel after the newest stored record.

        No bookmark exists yet, so the first read of each channel is
        bounded by timestamp.
        """
        try:
            start = resolve_start_time(store, self.start_policy, self.clock())
            for channel in self.channels:
                logger.info(f"Set bookmark for {channel} to start after {start}")
            return SourceCheckpoint.starting_at(self.backend, self.channels, start)
        except Exception as e:
            logger.error(f"Error initializing Windows event log bookmarks: {e}", exc_info=True)
            return self.default_checkpoint()

    async def read_new_records(self, checkpoint: SourceCheckpoint) -> ReadResult:
        try:
            reader = self.reader
        except SourceUnavailableError as e:
            logger.warning(str(e))
            return ReadResult(records=[], checkpoint=checkpoint)

        fallback = self.default_checkpoint()
        current = [
            checkpoint.channels.get(name) or fallback.channel(name) for name in self.channels
        ]

        results = await asyncio.gather(
            *(asyncio.to_thread(self._read_channel, reader, cp) for cp in current)
        )

        records: List[LogRecord] = []
        updated: List[ChannelCheckpoint] = []
        for channel_records, channel_checkpoint in results:
            records.extend(channel_records)
            updated.append(channel_checkpoint)

        return ReadResult(
            records=sort_by_timestamp(records), checkpoint=checkpoint.replace(*updated)
        )

    def _read_channel(
        self, reader: WinEventLogReader, checkpoint: ChannelCheckpoint
    ) -> Tuple[List[LogRecord], ChannelCheckpoint]:
        try:
            bookmark = checkpoint.cursor if isinstance(checkpoint.cursor, str) else None
            events, next_bookmark = reader.read(
                checkpoint.channel, bookmark, checkpoint.last_seen, self.batch_limit
            )
        except Exception as e:
            logger.error(f"Error reading new events from {checkpoint.channel}: {e}")
            return [], checkpoint

        now = self.clock()
        records = []
        for event in events:
            try:
                records.append(event_to_record(event, checkpoint.channel, now))
            except ValueError as e:
                logger.warning(
                    f"Failed to convert event record {event.event_id} "
                    f"from {checkpoint.channel}: {e}"
                )

        if records:
            logger.info(f"Read {len(records)} new events from {checkpoint.channel}")

        return records, checkpoint.advance(records, cursor=next_bookmark)
