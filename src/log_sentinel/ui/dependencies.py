"""
Shared FastAPI dependencies.
"""

from functools import lru_cache

from ..core.config import get_config
from ..store.sqlite_store import LogStore


@lru_cache()
def get_store() -> LogStore:
    """Store used by all API routers (overridden in tests)."""
    return LogStore(db_path=get_config().store.db_path)
