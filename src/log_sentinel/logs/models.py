"""
Normalized log record data models.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class EventLogLevel(str, Enum):
    """Severity levels shared by all log sources."""

    INFORMATION = "Information"
    WARNING = "Warning"
    ERROR = "Error"
    CRITICAL = "Critical"


def ensure_utc(value: datetime) -> datetime:
    """Return an aware UTC datetime, treating naive values as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class LogRecord(BaseModel):
    """
    Normalized log entry from any OS log source.

    Records are immutable once created. The store assigns ``id`` when the
    record is persisted and hands back a copy carrying it.
    """

    id: Optional[int] = Field(None, description="Identifier assigned by the store")
    timestamp: datetime = Field(..., description="UTC time the entry was written")
    event_id: Optional[int] = Field(
        None, description="Source specific id (Windows event id, process id)"
    )
    level: EventLogLevel = EventLogLevel.INFORMATION
    source: str = Field(..., description="Provider or process name")
    type: str = Field(..., description="Category or task name")
    message: str = ""

    @field_validator("timestamp")
    @classmethod
    def normalize_timestamp(cls, v: datetime) -> datetime:
        """Store every timestamp as aware UTC."""
        return ensure_utc(v)

    def with_id(self, record_id: int) -> "LogRecord":
        """Return a copy of this record carrying the store id."""
        return self.model_copy(update={"id": record_id})

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "id": 42,
                "timestamp": "2025-01-15T10:30:00Z",
                "event_id": 7036,
                "level": "Information",
                "source": "Service Control Manager",
                "type": "None",
                "message": "The Windows Update service entered the running state.",
            }
        }
