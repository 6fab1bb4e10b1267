"""
Shared fixtures for Log Sentinel tests.

Run with: pytest tests/
"""

from datetime import datetime, timezone
from typing import List, Optional

import pytest

from log_sentinel.alerts.models import Alert, AlertRule
from log_sentinel.core import config as config_module
from log_sentinel.logs.models import EventLogLevel, LogRecord
from log_sentinel.store.sqlite_store import LogStore

NOW = datetime(2024, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


class FakeGateway:
    """In-memory PersistenceGateway that records every call."""

    def __init__(self):
        self.rules: List[AlertRule] = []
        self.latest: Optional[LogRecord] = None
        self.records: List[LogRecord] = []
        self.alerts: List[Alert] = []
        self.append_records_calls = 0
        self.append_alerts_calls = 0
        self.get_active_rules_calls = 0
        self.fail_append = False

    def get_most_recent_record(self) -> Optional[LogRecord]:
        return self.latest

    def append_records(self, records):
        if self.fail_append:
            raise RuntimeError("database is locked")
        self.append_records_calls += 1
        stored = [r.with_id(len(self.records) + i + 1) for i, r in enumerate(records)]
        self.records.extend(stored)
        return stored

    def get_active_rules(self) -> List[AlertRule]:
        self.get_active_rules_calls += 1
        return [r for r in self.rules if r.is_active]

    def append_alerts(self, alerts):
        self.append_alerts_calls += 1
        stored = [a.with_id(len(self.alerts) + i + 1) for i, a in enumerate(alerts)]
        self.alerts.extend(stored)
        return stored


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def store(tmp_path) -> LogStore:
    return LogStore(db_path=str(tmp_path / "log_sentinel.db"))


@pytest.fixture
def make_record():
    """Factory for LogRecords with sensible defaults."""

    def _make(
        message: str = "Service started",
        source: str = "Svc",
        type: str = "General",
        level: EventLogLevel = EventLogLevel.INFORMATION,
        timestamp: datetime = NOW,
        event_id: Optional[int] = 1000,
    ) -> LogRecord:
        return LogRecord(
            timestamp=timestamp,
            event_id=event_id,
            level=level,
            source=source,
            type=type,
            message=message,
        )

    return _make


@pytest.fixture
def app_env(monkeypatch, tmp_path):
    """Point configuration at a temporary database and syslog file."""
    syslog = tmp_path / "syslog"
    syslog.write_text("")
    monkeypatch.setenv("STORE_DB_PATH", str(tmp_path / "app.db"))
    monkeypatch.setenv("INGESTION_BACKEND", "syslog")
    monkeypatch.setenv("INGESTION_SYSLOG_PATH", str(syslog))
    config_module._config = None
    yield tmp_path
    config_module._config = None
