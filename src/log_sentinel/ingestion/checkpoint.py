"""
Checkpoint models tracking how far each log channel has been read.

Checkpoints are immutable values. A source receives the current checkpoint,
and returns the advanced one alongside the records it read.
"""

from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional, Union

from pydantic import BaseModel, Field, field_validator

from ..core.config import StartPolicy
from ..logs.models import LogRecord, ensure_utc

Cursor = Union[int, str]


def start_time_for(policy: StartPolicy, now: Optional[datetime] = None) -> datetime:
    """
    Resolve a start policy to a UTC timestamp.

    Args:
        policy: MIDNIGHT (local midnight today) or LAST_HOUR (now - 1h)
        now: Reference time (defaults to current time)

    Returns:
        Aware UTC datetime
    """
    now = ensure_utc(now) if now else datetime.now(timezone.utc)
    if policy == StartPolicy.MIDNIGHT:
        local_now = now.astimezone()
        midnight = local_now.replace(hour=0, minute=0, second=0, microsecond=0)
        return midnight.astimezone(timezone.utc)
    return now - timedelta(hours=1)


class ChannelCheckpoint(BaseModel):
    """
    Read position for one channel.

    ``cursor`` is opaque to everything but the owning source: a rendered
    Windows bookmark, a syslog byte offset, or None for macOS.
    ``last_seen`` is the newest timestamp already consumed; only records
    strictly after it are new.
    """

    channel: str
    cursor: Optional[Cursor] = None
    last_seen: datetime

    @field_validator("last_seen")
    @classmethod
    def normalize_last_seen(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    def advance(
        self, records: Iterable[LogRecord], cursor: Optional[Cursor] = None
    ) -> "ChannelCheckpoint":
        """
        Return a checkpoint moved past the given records.

        ``last_seen`` never moves backwards. The cursor is replaced only if
        a new one is given.
        """
        latest = self.last_seen
        for record in records:
            if record.timestamp > latest:
                latest = record.timestamp

        return self.model_copy(
            update={
                "last_seen": latest,
                "cursor": self.cursor if cursor is None else cursor,
            }
        )

    class Config:
        frozen = True


class SourceCheckpoint(BaseModel):
    """Checkpoints for every channel of one source."""

    backend: str
    channels: Dict[str, ChannelCheckpoint] = Field(default_factory=dict)

    @classmethod
    def starting_at(
        cls,
        backend: str,
        channels: Iterable[str],
        start: datetime,
        cursor: Optional[Cursor] = None,
    ) -> "SourceCheckpoint":
        """Build a checkpoint with every channel starting after ``start``."""
        return cls(
            backend=backend,
            channels={
                name: ChannelCheckpoint(channel=name, cursor=cursor, last_seen=start)
                for name in channels
            },
        )

    def channel(self, name: str) -> ChannelCheckpoint:
        """Get one channel's checkpoint."""
        return self.channels[name]

    def replace(self, *updated: ChannelCheckpoint) -> "SourceCheckpoint":
        """Return a copy with the given channel checkpoints swapped in."""
        channels = dict(self.channels)
        for checkpoint in updated:
            channels[checkpoint.channel] = checkpoint
        return self.model_copy(update={"channels": channels})

    class Config:
        frozen = True


class ReadResult(BaseModel):
    """Records read in one cycle plus the checkpoint to use next cycle."""

    records: List[LogRecord] = Field(default_factory=list)
    checkpoint: SourceCheckpoint

    class Config:
        frozen = True
