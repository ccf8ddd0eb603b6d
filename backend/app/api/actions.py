from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from backend.app.services import Services, get_services, require_account
from mailnick.models import ActionKind

router = APIRouter()


class BulkActionRequest(BaseModel):
    accountId: str
    action: ActionKind
    emailIds: List[str] = Field(default_factory=list)
    ruleId: Optional[str] = None
    labelName: Optional[str] = None


class BulkUndoRequest(BaseModel):
    accountId: str
    actionIds: List[str] = Field(default_factory=list)


@router.post("/actions/{action_id}/undo")
def undo_action(
    action_id: str,
    account_id: Optional[str] = Query(None, alias="accountId"),
    services: Services = Depends(get_services),
) -> dict:
    account_id = require_account(account_id)
    services.ledger.undo(account_id, action_id)
    return {"success": True}


@router.post("/actions/bulk")
def bulk_action(body: BulkActionRequest, services: Services = Depends(get_services)) -> dict:
    if body.action == ActionKind.LABEL and not body.labelName:
        raise HTTPException(status_code=400, detail="Label name is required")
    outcome = services.executor.run(
        body.accountId,
        body.action,
        body.emailIds,
        rule_id=body.ruleId,
        label_name=body.labelName,
    )
    return {"success": not outcome.failed, **outcome.to_dict()}


@router.post("/actions/undo")
def bulk_undo(body: BulkUndoRequest, services: Services = Depends(get_services)) -> dict:
    outcome = services.executor.undo_many(body.accountId, body.actionIds)
    return {"success": not outcome.failed, **outcome.to_dict()}
