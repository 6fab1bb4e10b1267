"""
Rule engine for evaluating log records against alert rules.
"""

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, List, Optional

import yaml

from ..logs.models import EventLogLevel, LogRecord
from .models import Alert, AlertRule

logger = logging.getLogger(__name__)


def _is_set(condition: Optional[str]) -> bool:
    return condition is not None and condition.strip() != ""


def contains_condition(value: Optional[str], condition: Optional[str]) -> bool:
    """Case-insensitive substring test; an unset condition never matches."""
    if not _is_set(condition):
        return False
    return condition.lower() in (value or "").lower()


def equals_condition(value: Optional[str], condition: Optional[str]) -> bool:
    """Case-insensitive equality test; an unset condition never matches."""
    if not _is_set(condition):
        return False
    return (value or "").lower() == condition.lower()


def level_condition(
    value: EventLogLevel, condition: Optional[EventLogLevel]
) -> bool:
    """Level equality; an unset level never matches."""
    if condition is None:
        return False
    return value == condition


class RuleEngine:
    """
    Engine for matching log records against alert rules.

    The engine holds no state: every call is a pure function of the rules
    and records it is given. For each record every active rule is tried,
    and each (record, rule) match produces exactly one Alert.
    """

    def rule_matches(self, rule: AlertRule, record: LogRecord) -> bool:
        """
        Evaluate a single rule against a record.

        Conditions are OR-ed: the rule matches if any set condition matches.

        Args:
            rule: The rule to evaluate
            record: The record to test

        Returns:
            True if any applicable condition matches
        """
        return (
            contains_condition(record.message, rule.message_contains)
            or equals_condition(record.message, rule.message_equals)
            or contains_condition(record.source, rule.source_contains)
            or equals_condition(record.source, rule.source_equals)
            or contains_condition(record.type, rule.type_contains)
            or equals_condition(record.type, rule.type_equals)
            or level_condition(record.level, rule.level)
        )

    def evaluate(
        self,
        rules: Iterable[AlertRule],
        records: Iterable[LogRecord],
        now: Optional[datetime] = None,
    ) -> List[Alert]:
        """
        Evaluate a batch of records against a rule set.

        Args:
            rules: Rules to apply; inactive rules are skipped
            records: Records to evaluate
            now: Alert creation time (defaults to current UTC time)

        Returns:
            Alerts in record order, then rule order
        """
        active_rules = [r for r in rules if r.is_active]
        created_at = now or datetime.now(timezone.utc)
        alerts: List[Alert] = []

        for record in records:
            for rule in active_rules:
                if not self.rule_matches(rule, record):
                    continue

                logger.info(
                    f"Alert generated: rule '{rule.name}' matched log from "
                    f"{record.source} at {record.timestamp}"
                )
                alerts.append(Alert.from_match(rule, record, created_at=created_at))

        return alerts


def load_rules_from_file(filepath: Path) -> List[AlertRule]:
    """
    Load alert rules from a YAML file.

    Args:
        filepath: Path to rule configuration file

    Returns:
        Rules parsed from the file; invalid entries are logged and skipped

    Example YAML format:
        rules:
          - name: Database Error Alert
            message_contains: connection failed
            is_active: true
          - name: Critical Events
            level: Critical
    """
    with open(filepath, "r") as f:
        data = yaml.safe_load(f)

    if not data or "rules" not in data:
        logger.warning(f"No rules found in {filepath}")
        return []

    rules: List[AlertRule] = []
    for rule_data in data["rules"] or []:
        try:
            rules.append(AlertRule(**rule_data))
        except Exception as e:
            name = rule_data.get("name", "unknown") if isinstance(rule_data, dict) else "unknown"
            logger.error(f"Failed to load rule {name}: {e}")

    logger.info(f"Loaded {len(rules)} rules from {filepath}")
    return rules
