"""
Persistence gateway contract consumed by the ingestion core.
"""

from typing import List, Optional, Protocol, Sequence

from ..alerts.models import Alert, AlertRule
from ..logs.models import LogRecord


class PersistenceGateway(Protocol):
    """
    Durable store for log records, alert rules and alerts.

    Any exception raised by these calls is treated by the ingestion
    coordinator as a transient failure for the current cycle.
    """

    def get_most_recent_record(self) -> Optional[LogRecord]:
        """Return the record with the latest timestamp, or None if empty."""
        ...

    def append_records(self, records: Sequence[LogRecord]) -> List[LogRecord]:
        """Persist a batch in one transaction and return the stored copies."""
        ...

    def get_active_rules(self) -> List[AlertRule]:
        """Return the current set of active rules."""
        ...

    def append_alerts(self, alerts: Sequence[Alert]) -> List[Alert]:
        """Persist a batch of alerts in one transaction."""
        ...
