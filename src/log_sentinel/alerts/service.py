"""
Alert service: evaluates ingested batches and persists generated alerts.
"""

import logging
from pathlib import Path
from typing import List, Optional, Sequence

from ..logs.models import LogRecord
from ..store.base import PersistenceGateway
from .engine import RuleEngine, load_rules_from_file
from .models import Alert, AlertRule

logger = logging.getLogger(__name__)


class AlertService:
    """
    Runs the rule engine over a batch of stored records.

    Active rules are read fresh from the store on every call, so rule edits
    take effect on the next batch. All alerts generated for one batch are
    written with a single bulk call.
    """

    def __init__(self, store: PersistenceGateway, engine: Optional[RuleEngine] = None):
        """
        Initialize alert service.

        Args:
            store: Persistence gateway for rules and alerts
            engine: Rule engine (a default RuleEngine if None)
        """
        self.store = store
        self.engine = engine or RuleEngine()

    def evaluate_and_generate_alerts(self, records: Sequence[LogRecord]) -> List[Alert]:
        """
        Evaluate records against all active rules and persist the alerts.

        Args:
            records: Records already persisted by the store

        Returns:
            Stored alerts (empty if nothing matched)
        """
        if not records:
            return []

        active_rules = self.store.get_active_rules()
        if not active_rules:
            logger.info("No active alert rules found")
            return []

        alerts = self.engine.evaluate(active_rules, records)
        if not alerts:
            logger.debug(f"No rules matched {len(records)} records")
            return []

        stored = self.store.append_alerts(alerts)
        logger.info(f"Saved {len(stored)} alerts to database")
        return stored


def import_rules_file(store, filepath: Path) -> List[AlertRule]:
    """
    Add every rule in a YAML rules file to the store.

    Args:
        store: LogStore (or anything with ``add_rule``)
        filepath: Path to the rules file

    Returns:
        The stored rules, with ids
    """
    stored = [store.add_rule(rule) for rule in load_rules_from_file(filepath)]
    logger.info(f"Imported {len(stored)} alert rules from {filepath}")
    return stored
