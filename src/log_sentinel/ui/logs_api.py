"""
Stored log record API endpoints.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from ..logs.models import EventLogLevel, LogRecord
from ..store.sqlite_store import LogStore
from .dependencies import get_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/logs", tags=["logs"])


@router.get("/", response_model=List[LogRecord])
def list_logs(
    level: Optional[EventLogLevel] = Query(None, description="Filter by level"),
    source: Optional[str] = Query(None, description="Filter by exact source"),
    skip: int = Query(0, ge=0),
    take: int = Query(100, ge=1, le=1000),
    store: LogStore = Depends(get_store),
) -> List[LogRecord]:
    """
    List stored log records, newest first.

    ``level`` takes precedence when both filters are given.
    """
    if level is not None:
        return store.records_by_level(level, skip=skip, take=take)
    if source:
        return store.records_by_source(source, skip=skip, take=take)
    return store.list_records(skip=skip, take=take)


@router.get("/{record_id}", response_model=LogRecord)
def get_log(record_id: int, store: LogStore = Depends(get_store)) -> LogRecord:
    """Get a single log record."""
    record = store.get_record(record_id)
    if record is None:
        raise HTTPException(status_code=404, detail=f"Log {record_id} not found")
    return record
