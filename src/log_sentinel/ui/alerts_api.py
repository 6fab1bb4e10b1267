"""
Alert browsing API endpoints.
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query

from ..alerts.models import Alert
from ..store.sqlite_store import LogStore
from .dependencies import get_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/alerts", tags=["alerts"])


@router.get("/", response_model=List[Alert])
def list_alerts(
    skip: int = Query(0, ge=0),
    take: int = Query(100, ge=1, le=1000),
    store: LogStore = Depends(get_store),
) -> List[Alert]:
    """
    List generated alerts, newest first.

    Args:
        skip: Number of alerts to skip
        take: Maximum alerts to return

    Returns:
        List of alerts with their rule and log snapshots
    """
    return store.list_alerts(skip=skip, take=take)


@router.get("/{alert_id}", response_model=Alert)
def get_alert(alert_id: int, store: LogStore = Depends(get_store)) -> Alert:
    """Get a single alert."""
    alert = store.get_alert(alert_id)
    if alert is None:
        raise HTTPException(status_code=404, detail=f"Alert {alert_id} not found")
    return alert
