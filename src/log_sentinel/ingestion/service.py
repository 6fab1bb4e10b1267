"""
Ingestion service: the long-running poll -> persist -> evaluate loop.

One instance runs per process with exactly one log source. Every failure
inside a cycle is logged and treated as transient; the loop only exits on
stop() or task cancellation.
"""

import asyncio
import logging
import os
import sys
from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel

from ..alerts.service import AlertService, import_rules_file
from ..core.config import AppConfig, get_config
from ..store.base import PersistenceGateway
from ..store.sqlite_store import LogStore
from .base import LogSource
from .checkpoint import SourceCheckpoint
from .factory import create_source

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


class ServiceState(str, Enum):
    """Lifecycle states of the ingestion loop."""

    STARTING = "starting"
    INITIALIZING = "initializing"
    POLLING = "polling"
    EVALUATING = "evaluating"
    STOPPING = "stopping"
    STOPPED = "stopped"


class CycleResult(BaseModel):
    """Outcome of one ingestion cycle."""

    records_read: int = 0
    records_saved: int = 0
    alerts_generated: int = 0
    error: Optional[str] = None


class IngestionService:
    """
    Coordinates one log source, the store and the alert service.

    The service:
    1. Initializes the source checkpoint once at startup
    2. Reads new records from the source every poll interval
    3. Persists non-empty batches
    4. Evaluates persisted batches against the active alert rules
    """

    def __init__(
        self,
        source: LogSource,
        store: PersistenceGateway,
        alert_service: Optional[AlertService] = None,
        poll_interval: float = 10.0,
    ):
        """
        Initialize ingestion service.

        Args:
            source: The configured log source
            store: Persistence gateway for records and alerts
            alert_service: Alert service (built on ``store`` if None)
            poll_interval: Seconds to sleep between cycles
        """
        self.source = source
        self.store = store
        self.alert_service = alert_service or AlertService(store)
        self.poll_interval = poll_interval
        self.state = ServiceState.STARTING
        self.checkpoint: Optional[SourceCheckpoint] = None
        self._stop_event = asyncio.Event()

    async def initialize(self) -> SourceCheckpoint:
        """
        Build the starting checkpoint.

        Failures are logged and fall back to the source's default window;
        startup is never blocked.
        """
        self.state = ServiceState.INITIALIZING
        logger.info("Initializing log bookmarks")
        try:
            self.checkpoint = await self.source.initialize_checkpoint(self.store)
            logger.info("Log bookmarks initialized successfully")
        except Exception as e:
            logger.error(f"Error initializing log bookmarks: {e}", exc_info=True)
            self.checkpoint = self.source.default_checkpoint()

        self.state = ServiceState.POLLING
        return self.checkpoint

    async def run_once(self) -> CycleResult:
        """
        Run one poll -> persist -> evaluate cycle.

        The checkpoint advances as soon as the read succeeds. If persisting
        or evaluating then fails, that batch is dropped rather than re-read.

        Returns:
            Counts for this cycle, with ``error`` set if the cycle failed
        """
        if self.checkpoint is None:
            await self.initialize()

        result = CycleResult()
        try:
            self.state = ServiceState.POLLING
            logger.debug(f"Checking new {self.source.backend} logs")
            read = await self.source.read_new_records(self.checkpoint)
            self.checkpoint = read.checkpoint
            result.records_read = len(read.records)

            if not read.records:
                return result

            logger.info(f"Found {len(read.records)} new log entries")
            stored = self.store.append_records(read.records)
            result.records_saved = len(stored)

            self.state = ServiceState.EVALUATING
            alerts = self.alert_service.evaluate_and_generate_alerts(stored)
            result.alerts_generated = len(alerts)

            logger.info(f"Saved {len(stored)} logs, generated {len(alerts)} alerts")
        except Exception as e:
            logger.error(f"Error in log ingestion cycle: {e}", exc_info=True)
            result.error = str(e)
        finally:
            if self.state == ServiceState.EVALUATING:
                self.state = ServiceState.POLLING

        return result

    async def run(self) -> None:
        """
        Run the ingestion service until stopped or cancelled.
        """
        logger.info(
            f"Starting log ingestion service "
            f"(source: {self.source.backend}, poll interval: {self.poll_interval}s)"
        )
        await self.initialize()

        iteration = 0
        try:
            while not self._stop_event.is_set():
                iteration += 1
                logger.debug(f"Ingestion iteration {iteration}")

                await self.run_once()

                # Sleep until next iteration, waking early on stop()
                if await self._wait_for_stop(self.poll_interval):
                    break
        except asyncio.CancelledError:
            logger.info("Log ingestion service cancelled")
            raise
        finally:
            self.state = ServiceState.STOPPED
            logger.info("Log ingestion service stopped")

    async def _wait_for_stop(self, timeout: float) -> bool:
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True

    def stop(self) -> None:
        """Stop the ingestion service at the next sleep boundary."""
        logger.info("Stopping log ingestion service")
        self.state = ServiceState.STOPPING
        self._stop_event.set()


def build_service(config: AppConfig) -> IngestionService:
    """
    Wire the store, source and alert service from configuration.

    Imports ``config.rules_file`` when the store has no rules yet.
    """
    store = LogStore(db_path=config.store.db_path)

    if config.rules_file:
        if store.list_rules():
            logger.info("Alert rules already present; skipping rules file import")
        elif Path(config.rules_file).exists():
            import_rules_file(store, Path(config.rules_file))
        else:
            logger.warning(f"Rules file not found: {config.rules_file}")

    return IngestionService(
        source=create_source(config.ingestion),
        store=store,
        poll_interval=config.ingestion.poll_interval,
    )


def main() -> None:
    """
    Main entry point for the ingestion service.
    """
    config = get_config()
    logging.getLogger().setLevel(config.log_level)

    logger.info("=" * 60)
    logger.info("Log Sentinel - Ingestion Service")
    logger.info("=" * 60)
    logger.info(f"Backend: {config.ingestion.backend.value}")
    logger.info(f"Database: {config.store.db_path}")
    logger.info(f"Poll Interval: {config.ingestion.poll_interval}s")
    logger.info(f"Batch Limit: {config.ingestion.batch_limit}")
    logger.info("=" * 60)

    try:
        service = build_service(config)
    except Exception as e:
        logger.error(f"Failed to start ingestion service: {e}", exc_info=True)
        sys.exit(1)

    try:
        asyncio.run(service.run())
    except KeyboardInterrupt:
        logger.info("Received interrupt signal")
        service.stop()


if __name__ == "__main__":
    main()
