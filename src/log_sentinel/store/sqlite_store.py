"""
SQLite storage for log records, alert rules and alerts.
"""

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence

from .. import DEFAULT_CONFIG
from ..alerts.models import Alert, AlertRule
from ..logs.models import EventLogLevel, LogRecord, ensure_utc

logger = logging.getLogger(__name__)

RULE_COLUMNS = (
    "name",
    "message_contains",
    "message_equals",
    "source_contains",
    "source_equals",
    "type_contains",
    "type_equals",
    "level",
    "is_active",
)


def _to_db_time(value: datetime) -> str:
    # Fixed-width UTC text so that lexical order matches time order
    return ensure_utc(value).strftime("%Y-%m-%dT%H:%M:%S.%f+00:00")


def _from_db_time(value: str) -> datetime:
    return datetime.fromisoformat(value).astimezone(timezone.utc)


class LogStore:
    """
    Persistent storage for the ingestion core using SQLite.

    Implements the PersistenceGateway contract plus the simple query and
    rule CRUD operations used by the management API and CLI.
    """

    def __init__(self, db_path: str = DEFAULT_CONFIG["db_path"]):
        """
        Initialize log store.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    def _init_db(self) -> None:
        """Initialize database schema."""
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS logs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    timestamp TEXT NOT NULL,
                    event_id INTEGER,
                    level TEXT NOT NULL,
                    source TEXT NOT NULL,
                    type TEXT NOT NULL,
                    message TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS alert_rules (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    message_contains TEXT,
                    message_equals TEXT,
                    source_contains TEXT,
                    source_equals TEXT,
                    type_contains TEXT,
                    type_equals TEXT,
                    level TEXT,
                    is_active INTEGER NOT NULL DEFAULT 1
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS alerts (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    created_at TEXT NOT NULL,
                    alert_rule_id INTEGER,
                    log_id INTEGER,
                    title TEXT NOT NULL,
                    message TEXT NOT NULL,
                    rule_snapshot TEXT NOT NULL,
                    log_snapshot TEXT NOT NULL
                )
            """)

            # Indexes for common queries
            conn.execute("CREATE INDEX IF NOT EXISTS idx_logs_timestamp ON logs(timestamp)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_logs_level ON logs(level)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_logs_source ON logs(source)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_alerts_created ON alerts(created_at)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_rules_active ON alert_rules(is_active)")

        logger.info(f"Initialized log database at {self.db_path}")

    # Log records

    def get_most_recent_record(self) -> Optional[LogRecord]:
        """
        Get the record with the latest timestamp.

        Returns:
            LogRecord or None if the store is empty
        """
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM logs ORDER BY timestamp DESC, id DESC LIMIT 1"
            ).fetchone()

        return self._row_to_record(dict(row)) if row else None

    def append_records(self, records: Sequence[LogRecord]) -> List[LogRecord]:
        """
        Insert a batch of records in one transaction.

        Args:
            records: Records to save

        Returns:
            Stored records with ids assigned, in input order
        """
        stored: List[LogRecord] = []
        if not records:
            return stored

        with self._connect() as conn:
            for record in records:
                cursor = conn.execute(
                    """
                    INSERT INTO logs (timestamp, event_id, level, source, type, message)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (
                        _to_db_time(record.timestamp),
                        record.event_id,
                        record.level.value,
                        record.source,
                        record.type,
                        record.message,
                    ),
                )
                stored.append(record.with_id(cursor.lastrowid))

        logger.debug(f"Saved {len(stored)} log records")
        return stored

    def get_record(self, record_id: int) -> Optional[LogRecord]:
        """Get a record by id."""
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM logs WHERE id = ?", (record_id,)).fetchone()

        return self._row_to_record(dict(row)) if row else None

    def list_records(self, skip: int = 0, take: int = 100) -> List[LogRecord]:
        """List records, newest first."""
        return self._query_records(
            "SELECT * FROM logs ORDER BY timestamp DESC, id DESC LIMIT ? OFFSET ?",
            (take, skip),
        )

    def count_records(self) -> int:
        """Count stored records."""
        with self._connect() as conn:
            return conn.execute("SELECT COUNT(*) FROM logs").fetchone()[0]

    def records_by_level(
        self, level: EventLogLevel, skip: int = 0, take: int = 100
    ) -> List[LogRecord]:
        """List records with the given level, newest first."""
        return self._query_records(
            "SELECT * FROM logs WHERE level = ? "
            "ORDER BY timestamp DESC, id DESC LIMIT ? OFFSET ?",
            (level.value, take, skip),
        )

    def records_by_source(
        self, source: str, skip: int = 0, take: int = 100
    ) -> List[LogRecord]:
        """List records from the given source, newest first."""
        return self._query_records(
            "SELECT * FROM logs WHERE source = ? "
            "ORDER BY timestamp DESC, id DESC LIMIT ? OFFSET ?",
            (source, take, skip),
        )

    def records_between(self, start: datetime, end: datetime) -> List[LogRecord]:
        """List records with start <= timestamp <= end, newest first."""
        return self._query_records(
            "SELECT * FROM logs WHERE timestamp >= ? AND timestamp <= ? "
            "ORDER BY timestamp DESC, id DESC",
            (_to_db_time(start), _to_db_time(end)),
        )

    def _query_records(self, query: str, params: tuple) -> List[LogRecord]:
        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()

        return [self._row_to_record(dict(row)) for row in rows]

    # Alert rules

    def get_active_rules(self) -> List[AlertRule]:
        """Get all active rules."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM alert_rules WHERE is_active = 1 ORDER BY id"
            ).fetchall()

        return [self._row_to_rule(dict(row)) for row in rows]

    def list_rules(self) -> List[AlertRule]:
        """Get all rules, active or not."""
        with self._connect() as conn:
            rows = conn.execute("SELECT * FROM alert_rules ORDER BY id").fetchall()

        return [self._row_to_rule(dict(row)) for row in rows]

    def get_rule(self, rule_id: int) -> Optional[AlertRule]:
        """Get a rule by id."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM alert_rules WHERE id = ?", (rule_id,)
            ).fetchone()

        return self._row_to_rule(dict(row)) if row else None

    def add_rule(self, rule: AlertRule) -> AlertRule:
        """
        Insert a new rule.

        Args:
            rule: Rule to save; any id it carries is ignored

        Returns:
            The stored rule with its id
        """
        with self._connect() as conn:
            cursor = conn.execute(
                f"INSERT INTO alert_rules ({', '.join(RULE_COLUMNS)}) "
                f"VALUES ({', '.join('?' for _ in RULE_COLUMNS)})",
                self._rule_values(rule),
            )
            rule_id = cursor.lastrowid

        logger.info(f"Added alert rule {rule_id}: {rule.name}")
        return rule.model_copy(update={"id": rule_id})

    def update_rule(self, rule: AlertRule) -> bool:
        """
        Update an existing rule.

        Args:
            rule: Rule with the id to update

        Returns:
            True if a rule was updated
        """
        if rule.id is None:
            return False

        assignments = ", ".join(f"{column} = ?" for column in RULE_COLUMNS)
        with self._connect() as conn:
            cursor = conn.execute(
                f"UPDATE alert_rules SET {assignments} WHERE id = ?",
                self._rule_values(rule) + (rule.id,),
            )
            updated = cursor.rowcount > 0

        if updated:
            logger.info(f"Updated alert rule {rule.id}")
        else:
            logger.warning(f"Alert rule {rule.id} not found for update")
        return updated

    def delete_rule(self, rule_id: int) -> bool:
        """Delete a rule by id. Returns True if a rule was deleted."""
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM alert_rules WHERE id = ?", (rule_id,))
            deleted = cursor.rowcount > 0

        if deleted:
            logger.info(f"Deleted alert rule {rule_id}")
        return deleted

    # Alerts

    def append_alerts(self, alerts: Sequence[Alert]) -> List[Alert]:
        """
        Insert a batch of alerts in one transaction.

        Args:
            alerts: Alerts to save

        Returns:
            Stored alerts with ids assigned, in input order
        """
        stored: List[Alert] = []
        if not alerts:
            return stored

        with self._connect() as conn:
            for alert in alerts:
                cursor = conn.execute(
                    """
                    INSERT INTO alerts (
                        created_at, alert_rule_id, log_id, title, message,
                        rule_snapshot, log_snapshot
                    ) VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        _to_db_time(alert.created_at),
                        alert.alert_rule_id,
                        alert.log_id,
                        alert.title,
                        alert.message,
                        alert.rule.model_dump_json(),
                        alert.log.model_dump_json(),
                    ),
                )
                stored.append(alert.with_id(cursor.lastrowid))

        logger.debug(f"Saved {len(stored)} alerts")
        return stored

    def get_alert(self, alert_id: int) -> Optional[Alert]:
        """Get an alert by id."""
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM alerts WHERE id = ?", (alert_id,)).fetchone()

        return self._row_to_alert(dict(row)) if row else None

    def list_alerts(self, skip: int = 0, take: int = 100) -> List[Alert]:
        """List alerts, newest first."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM alerts ORDER BY created_at DESC, id DESC LIMIT ? OFFSET ?",
                (take, skip),
            ).fetchall()

        return [self._row_to_alert(dict(row)) for row in rows]

    def alerts_between(self, start: datetime, end: datetime) -> List[Alert]:
        """List alerts created between start and end (inclusive), newest first."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM alerts WHERE created_at >= ? AND created_at <= ? "
                "ORDER BY created_at DESC, id DESC",
                (_to_db_time(start), _to_db_time(end)),
            ).fetchall()

        return [self._row_to_alert(dict(row)) for row in rows]

    def get_stats(self) -> Dict[str, int]:
        """Get store statistics."""
        with self._connect() as conn:
            logs = conn.execute("SELECT COUNT(*) FROM logs").fetchone()[0]
            rules = conn.execute("SELECT COUNT(*) FROM alert_rules").fetchone()[0]
            active = conn.execute(
                "SELECT COUNT(*) FROM alert_rules WHERE is_active = 1"
            ).fetchone()[0]
            alerts = conn.execute("SELECT COUNT(*) FROM alerts").fetchone()[0]

        return {
            "total_logs": logs,
            "total_rules": rules,
            "active_rules": active,
            "total_alerts": alerts,
        }

    # Row conversion

    def _rule_values(self, rule: AlertRule) -> tuple:
        return (
            rule.name,
            rule.message_contains,
            rule.message_equals,
            rule.source_contains,
            rule.source_equals,
            rule.type_contains,
            rule.type_equals,
            rule.level.value if rule.level else None,
            1 if rule.is_active else 0,
        )

    def _row_to_record(self, row: Dict) -> LogRecord:
        """Convert database row to LogRecord model."""
        return LogRecord(
            id=row["id"],
            timestamp=_from_db_time(row["timestamp"]),
            event_id=row["event_id"],
            level=EventLogLevel(row["level"]),
            source=row["source"],
            type=row["type"],
            message=row["message"],
        )

    def _row_to_rule(self, row: Dict) -> AlertRule:
        """Convert database row to AlertRule model."""
        return AlertRule(
            id=row["id"],
            name=row["name"],
            message_contains=row["message_contains"],
            message_equals=row["message_equals"],
            source_contains=row["source_contains"],
            source_equals=row["source_equals"],
            type_contains=row["type_contains"],
            type_equals=row["type_equals"],
            level=EventLogLevel(row["level"]) if row["level"] else None,
            is_active=bool(row["is_active"]),
        )

    def _row_to_alert(self, row: Dict) -> Alert:
        """Convert database row to Alert model."""
        return Alert(
            id=row["id"],
            created_at=_from_db_time(row["created_at"]),
            alert_rule_id=row["alert_rule_id"],
            rule=AlertRule.model_validate_json(row["rule_snapshot"]),
            log_id=row["log_id"],
            log=LogRecord.model_validate_json(row["log_snapshot"]),
            title=row["title"],
            message=row["message"],
        )
