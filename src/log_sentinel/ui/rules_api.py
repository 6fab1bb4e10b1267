"""
Alert rule management API endpoints.

Rules edited here take effect on the next ingested batch; the alert
service reads active rules fresh from the store on every batch.
"""

import logging
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from ..alerts.models import AlertRule
from ..logs.models import EventLogLevel
from ..store.sqlite_store import LogStore
from .dependencies import get_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/rules", tags=["rules"])


class RuleRequest(BaseModel):
    """Body for creating or replacing a rule."""

    name: str

    message_contains: Optional[str] = None
    message_equals: Optional[str] = None
    source_contains: Optional[str] = None
    source_equals: Optional[str] = None
    type_contains: Optional[str] = None
    type_equals: Optional[str] = None

    level: Optional[EventLogLevel] = None
    is_active: bool = True

    def to_rule(self, rule_id: Optional[int] = None) -> AlertRule:
        return AlertRule(id=rule_id, **self.model_dump())


@router.get("/", response_model=List[AlertRule])
def list_rules(store: LogStore = Depends(get_store)) -> List[AlertRule]:
    """List all alert rules, active and inactive."""
    return store.list_rules()


@router.get("/{rule_id}", response_model=AlertRule)
def get_rule(rule_id: int, store: LogStore = Depends(get_store)) -> AlertRule:
    """
    Get a single alert rule.

    Args:
        rule_id: Rule id

    Returns:
        The rule
    """
    rule = store.get_rule(rule_id)
    if rule is None:
        raise HTTPException(status_code=404, detail=f"Rule {rule_id} not found")
    return rule


@router.post("/", response_model=AlertRule, status_code=status.HTTP_201_CREATED)
def create_rule(request: RuleRequest, store: LogStore = Depends(get_store)) -> AlertRule:
    """
    Create an alert rule.

    A rule with no conditions is accepted but never matches anything.
    """
    rule = request.to_rule()
    if not rule.has_conditions():
        logger.warning(f"Rule '{rule.name}' has no conditions and will never match")
    return store.add_rule(rule)


@router.put("/{rule_id}", response_model=AlertRule)
def update_rule(
    rule_id: int, request: RuleRequest, store: LogStore = Depends(get_store)
) -> AlertRule:
    """Replace an existing alert rule."""
    rule = request.to_rule(rule_id)
    if not store.update_rule(rule):
        raise HTTPException(status_code=404, detail=f"Rule {rule_id} not found")
    return rule


@router.delete("/{rule_id}")
def delete_rule(rule_id: int, store: LogStore = Depends(get_store)) -> Dict[str, str]:
    """
    Delete an alert rule.

    Alerts already generated by the rule keep their rule snapshot.
    """
    if not store.delete_rule(rule_id):
        raise HTTPException(status_code=404, detail=f"Rule {rule_id} not found")
    return {"status": "success", "message": f"Deleted rule {rule_id}"}
