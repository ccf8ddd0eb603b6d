from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool

from backend.app.services import Services, get_services, require_account
from backend.app.status import sync_status_store
from mailnick.errors import ReauthRequiredError
from mailnick.gmail.errors import is_reauth_error
from mailnick.gmail.sync import sync_unread_emails
from mailnick.models import ActionKind
from mailnick.storage.repository import Repository

logger = logging.getLogger(__name__)
router = APIRouter()


class LabelRequest(BaseModel):
    labelName: Optional[str] = None


@router.get("/emails")
def list_emails(
    account_id: Optional[str] = Query(None, alias="accountId"),
    category: Optional[str] = None,
    unread_only: bool = Query(False, alias="unreadOnly"),
    services: Services = Depends(get_services),
) -> dict:
    account_id = require_account(account_id)
    with services.database.session() as session:
        emails = Repository(session).list_emails(account_id, unread_only=unread_only, category=category)
    return {"emails": [e.to_dict() for e in emails]}


@router.get("/emails/with-actions")
def emails_with_actions(
    account_id: Optional[str] = Query(None, alias="accountId"),
    services: Services = Depends(get_services),
) -> dict:
    account_id = require_account(account_id)
    if services.credentials.get(account_id) is None:
        raise ReauthRequiredError()
    with services.database.session() as session:
        rows = Repository(session).live_actions(account_id)
    return {
        "emailsWithActions": [
            {"email": email.to_dict(), "action": action.to_dict()} for email, action in rows
        ]
    }


@router.post("/emails/sync")
async def sync_endpoint(
    account_id: Optional[str] = Query(None, alias="accountId"),
    services: Services = Depends(get_services),
) -> dict:
    account_id = require_account(account_id)
    sync_status_store.update(account_id, state="running", step="starting", detail="Starting sync", metrics={})

    def progress_cb(step: str, event: dict[str, Any]) -> None:
        if event.get("error"):
            sync_status_store.add_error(account_id, event["error"])
        sync_status_store.update(
            account_id,
            state="running",
            step=step,
            detail=event.get("detail"),
            **({"metrics": event["metrics"]} if "metrics" in event else {}),
        )

    def run() -> dict:
        client = services.client_factory(account_id)
        summary = sync_unread_emails(
            account_id,
            client,
            services.database,
            max_results=services.max_email_results,
            progress_cb=progress_cb,
        )
        return {"syncedCount": summary.synced_count, "totalUnread": summary.total_unread, "errors": summary.errors}

    try:
        # Run blocking Gmail calls in a worker thread so FastAPI stays responsive.
        result = await run_in_threadpool(run)
    except Exception as exc:
        sync_status_store.update(account_id, state="error", step="error", detail=str(exc))
        if is_reauth_error(exc):
            await run_in_threadpool(services.credentials.delete, account_id)
            raise ReauthRequiredError() from exc
        logger.error("Sync error for %s: %s", account_id, exc)
        raise HTTPException(status_code=500, detail="Failed to sync emails") from exc

    sync_status_store.update(account_id, state="done", step="done", detail="Sync completed", summary=result)
    return result


@router.get("/emails/sync/status")
def sync_status(account_id: Optional[str] = Query(None, alias="accountId")) -> dict:
    account_id = require_account(account_id)
    return {"ok": True, "status": sync_status_store.snapshot(account_id)}


def _perform(
    services: Services,
    account_id: Optional[str],
    email_id: str,
    kind: ActionKind,
    rule_id: Optional[str],
    label_name: Optional[str] = None,
) -> dict:
    account_id = require_account(account_id)
    result = services.ledger.apply(account_id, email_id, kind, label_name=label_name, rule_id=rule_id)
    return {"success": True, "actionId": result.action_id, **result.response}


@router.post("/emails/{email_id}/mark-read")
def mark_read(
    email_id: str,
    account_id: Optional[str] = Query(None, alias="accountId"),
    rule_id: Optional[str] = Query(None, alias="ruleId"),
    services: Services = Depends(get_services),
) -> dict:
    return _perform(services, account_id, email_id, ActionKind.MARK_READ, rule_id)


@router.post("/emails/{email_id}/archive")
def archive(
    email_id: str,
    account_id: Optional[str] = Query(None, alias="accountId"),
    rule_id: Optional[str] = Query(None, alias="ruleId"),
    services: Services = Depends(get_services),
) -> dict:
    return _perform(services, account_id, email_id, ActionKind.ARCHIVE, rule_id)


@router.post("/emails/{email_id}/trash")
def trash(
    email_id: str,
    account_id: Optional[str] = Query(None, alias="accountId"),
    rule_id: Optional[str] = Query(None, alias="ruleId"),
    services: Services = Depends(get_services),
) -> dict:
    return _perform(services, account_id, email_id, ActionKind.TRASH, rule_id)


@router.post("/emails/{email_id}/label")
def label(
    email_id: str,
    body: LabelRequest,
    account_id: Optional[str] = Query(None, alias="accountId"),
    rule_id: Optional[str] = Query(None, alias="ruleId"),
    services: Services = Depends(get_services),
) -> dict:
    if not body.labelName:
        raise HTTPException(status_code=400, detail="Label name is required")
    return _perform(services, account_id, email_id, ActionKind.LABEL, rule_id, label_name=body.labelName)
