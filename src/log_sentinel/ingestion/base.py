"""
Log source contract shared by every ingestion backend.
"""

import logging
from datetime import datetime
from typing import List, Optional, Protocol

from ..core.config import StartPolicy
from ..logs.models import LogRecord
from ..store.base import PersistenceGateway
from .checkpoint import ReadResult, SourceCheckpoint, start_time_for

logger = logging.getLogger(__name__)


class SourceUnavailableError(RuntimeError):
    """Raised when a platform log API is not present on this host."""
    pass


class LogSource(Protocol):
    """
    One ingestion backend (Windows, syslog or macOS).

    A process runs exactly one source, chosen from configuration. The
    source never keeps its read position itself: the coordinator threads
    the checkpoint through every call.
    """

    backend: str

    async def initialize_checkpoint(self, store: PersistenceGateway) -> SourceCheckpoint:
        """Build the starting checkpoint. Never raises."""
        ...

    def default_checkpoint(self) -> SourceCheckpoint:
        """Safe fallback checkpoint used when initialization fails."""
        ...

    async def read_new_records(self, checkpoint: SourceCheckpoint) -> ReadResult:
        """Read records newer than the checkpoint and return the advanced one."""
        ...


def resolve_start_time(
    store: PersistenceGateway,
    policy: StartPolicy,
    now: Optional[datetime] = None,
) -> datetime:
    """
    Decide where reading starts after a process restart.

    Args:
        store: Store queried for its most recent record
        policy: Default start used when the store is empty
        now: Reference time for the default start

    Returns:
        The newest stored timestamp, or the policy's default start time
    """
    latest = store.get_most_recent_record()
    if latest is not None:
        logger.info(f"Found existing logs in database. Starting after {latest.timestamp}")
        return latest.timestamp

    start = start_time_for(policy, now)
    logger.info(f"No existing logs in database. Starting from {start} ({policy.value})")
    return start


def sort_by_timestamp(records: List[LogRecord]) -> List[LogRecord]:
    """Stable sort by timestamp; ties keep their read order."""
    return sorted(records, key=lambda r: r.timestamp)


def cap_batch(records: List[LogRecord], limit: int) -> List[LogRecord]:
    """
    Cut sorted records to at most ``limit`` without splitting a timestamp.

    A cut inside a run of equal timestamps moves back to the start of that
    run, so the whole run is read next cycle. A run that fills the whole
    batch is kept entire.
    """
    if len(records) <= limit:
        return records

    boundary = records[limit].timestamp
    cut = limit
    while cut > 0 and records[cut - 1].timestamp == boundary:
        cut -= 1

    if cut == 0:
        cut = limit
        while cut < len(records) and records[cut].timestamp == boundary:
            cut += 1

    return records[:cut]
