from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from backend.app.services import Services, get_services, require_account
from mailnick.rules.matcher import group_by_rules
from mailnick.rules.schema import MatchCriteriaSchema
from mailnick.storage.repository import Repository

router = APIRouter()


class CreateRuleRequest(BaseModel):
    accountId: str
    name: str
    matchCriteria: MatchCriteriaSchema
    color: Optional[str] = None


class UpdateRuleRequest(BaseModel):
    accountId: str
    name: Optional[str] = None
    matchCriteria: Optional[MatchCriteriaSchema] = None
    color: Optional[str] = None
    enabled: Optional[bool] = None


class ReorderRequest(BaseModel):
    accountId: str
    ruleIds: List[str]


@router.get("/cleanup-rules")
def list_rules(
    account_id: Optional[str] = Query(None, alias="accountId"),
    services: Services = Depends(get_services),
) -> dict:
    account_id = require_account(account_id)
    with services.database.session() as session:
        rules = Repository(session).list_rules(account_id)
    return {"rules": [r.to_dict() for r in rules]}


@router.post("/cleanup-rules", status_code=201)
def create_rule(body: CreateRuleRequest, services: Services = Depends(get_services)) -> dict:
    if not body.name.strip():
        raise HTTPException(status_code=400, detail="accountId, name, and matchCriteria are required")
    with services.database.session() as session:
        rule = Repository(session).add_rule(
            body.accountId, body.name, body.matchCriteria.to_model(), body.color
        )
    return {"rule": rule.to_dict()}


@router.post("/cleanup-rules/reorder")
def reorder_rules(body: ReorderRequest, services: Services = Depends(get_services)) -> dict:
    with services.database.session() as session:
        Repository(session).reorder_rules(body.accountId, body.ruleIds)
    return {"success": True}


@router.get("/cleanup-rules/stats")
def rule_stats(
    account_id: Optional[str] = Query(None, alias="accountId"),
    services: Services = Depends(get_services),
) -> dict:
    account_id = require_account(account_id)
    with services.database.session() as session:
        stats = Repository(session).rule_stats(account_id)
    return {"stats": stats}


@router.put("/cleanup-rules/{rule_id}")
def update_rule(rule_id: str, body: UpdateRuleRequest, services: Services = Depends(get_services)) -> dict:
    with services.database.session() as session:
        rule = Repository(session).update_rule(
            body.accountId,
            rule_id,
            name=body.name,
            criteria=body.matchCriteria.to_model() if body.matchCriteria else None,
            color=body.color,
            enabled=body.enabled,
        )
    if rule is None:
        raise HTTPException(status_code=404, detail="Rule not found")
    return {"rule": rule.to_dict()}


@router.delete("/cleanup-rules/{rule_id}")
def delete_rule(
    rule_id: str,
    account_id: Optional[str] = Query(None, alias="accountId"),
    services: Services = Depends(get_services),
) -> dict:
    account_id = require_account(account_id)
    with services.database.session() as session:
        Repository(session).delete_rule(account_id, rule_id)
    return {"success": True}


@router.get("/tasks")
def tasks(
    account_id: Optional[str] = Query(None, alias="accountId"),
    hidden: Optional[List[str]] = Query(None),
    services: Services = Depends(get_services),
) -> dict:
    """Unread emails grouped by the account's enabled cleanup rules."""
    account_id = require_account(account_id)
    with services.database.session() as session:
        repo = Repository(session)
        emails = repo.list_emails(account_id, unread_only=True, limit=None)
        rules = repo.list_rules(account_id)
    return {"tasks": [t.to_dict() for t in group_by_rules(emails, rules, hidden or [])]}
