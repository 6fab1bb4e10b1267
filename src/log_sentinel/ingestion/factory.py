"""
Backend selection: builds the one log source a process runs.
"""

import logging

from ..core.config import Backend, IngestionConfig
from .base import LogSource
from .macos import LogShowRunner, MacOSUnifiedLogSource
from .syslog import SyslogFileSource
from .windows import WindowsEventLogSource

logger = logging.getLogger(__name__)


def create_source(config: IngestionConfig) -> LogSource:
    """
    Build the configured log source.

    Args:
        config: Ingestion configuration

    Returns:
        The source for ``config.backend``
    """
    if config.backend == Backend.WINDOWS:
        source = WindowsEventLogSource(
            channels=config.channel_list,
            batch_limit=config.batch_limit,
            start_policy=config.windows_start,
        )
    elif config.backend == Backend.SYSLOG:
        source = SyslogFileSource(
            path=config.syslog_path,
            batch_limit=config.batch_limit,
            start_policy=config.syslog_start,
        )
    elif config.backend == Backend.MACOS:
        source = MacOSUnifiedLogSource(
            runner=LogShowRunner(command=config.log_command),
            batch_limit=config.batch_limit,
            start_policy=config.macos_start,
        )
    else:
        raise ValueError(f"Unknown ingestion backend: {config.backend}")

    logger.info(f"Using {source.backend} log source")
    return source
