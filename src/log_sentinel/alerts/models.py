"""
Alert data models for rules and generated alerts.
"""

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from ..logs.models import EventLogLevel, LogRecord, ensure_utc

ALERT_MESSAGE_PREVIEW = 200


class AlertRule(BaseModel):
    """
    A user-defined rule evaluated against every ingested record.

    A rule matches a record when ANY of its set conditions matches (OR logic).
    Conditions that are unset, empty or whitespace-only are inapplicable:
    they never match, so a rule with no conditions never fires.
    """

    id: Optional[int] = None
    name: str

    message_contains: Optional[str] = None
    message_equals: Optional[str] = None
    source_contains: Optional[str] = None
    source_equals: Optional[str] = None
    type_contains: Optional[str] = None
    type_equals: Optional[str] = None

    level: Optional[EventLogLevel] = None
    is_active: bool = True

    def has_conditions(self) -> bool:
        """Return True if at least one condition is set."""
        text_conditions = (
            self.message_contains,
            self.message_equals,
            self.source_contains,
            self.source_equals,
            self.type_contains,
            self.type_equals,
        )
        return self.level is not None or any(
            c is not None and c.strip() for c in text_conditions
        )

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "id": 1,
                "name": "Database Error Alert",
                "message_contains": "connection failed",
                "source_equals": "postgres",
                "level": "Critical",
                "is_active": True,
            }
        }


class Alert(BaseModel):
    """
    Record of a rule matching a log record.

    Alerts carry immutable snapshots of the rule and record that produced
    them and are never mutated after creation.
    """

    id: Optional[int] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    alert_rule_id: Optional[int] = None
    rule: AlertRule
    log_id: Optional[int] = None
    log: LogRecord
    title: str
    message: str

    @field_validator("created_at")
    @classmethod
    def normalize_created_at(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @classmethod
    def from_match(
        cls, rule: AlertRule, record: LogRecord, created_at: Optional[datetime] = None
    ) -> "Alert":
        """
        Build the alert for a (rule, record) match.

        Args:
            rule: The matching rule
            record: The matched record
            created_at: Generation time (defaults to now, UTC)

        Returns:
            New Alert with derived title and message
        """
        return cls(
            created_at=created_at or datetime.now(timezone.utc),
            alert_rule_id=rule.id,
            rule=rule,
            log_id=record.id,
            log=record,
            title=f"Alert: {rule.name}",
            message=f"Log message: {record.message[:ALERT_MESSAGE_PREVIEW]}...",
        )

    def with_id(self, alert_id: int) -> "Alert":
        """Return a copy of this alert carrying the store id."""
        return self.model_copy(update={"id": alert_id})

    class Config:
        frozen = True
