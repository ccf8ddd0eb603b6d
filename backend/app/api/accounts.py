from __future__ import annotations

import logging
from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import RedirectResponse

from backend.app.services import Services, get_services
from mailnick.storage.repository import Repository

logger = logging.getLogger(__name__)
router = APIRouter()
auth_router = APIRouter()


@router.get("/accounts")
def list_accounts(services: Services = Depends(get_services)) -> dict:
    with services.database.session() as session:
        accounts = Repository(session).list_accounts()
    return {"accounts": accounts}


@router.delete("/accounts/{account_id}")
def delete_account(account_id: str, services: Services = Depends(get_services)) -> dict:
    with services.database.session() as session:
        deleted = Repository(session).delete_account(account_id)
    if not deleted:
        raise HTTPException(status_code=404, detail="Account not found")
    logger.info("Deleted account %s", account_id)
    return {"success": True}


@auth_router.get("/auth")
def start_oauth(services: Services = Depends(get_services)) -> RedirectResponse:
    if services.oauth is None:
        raise HTTPException(status_code=500, detail="OAuth is not configured")
    return RedirectResponse(services.oauth.authorization_url(), status_code=302)


@auth_router.get("/auth/callback")
def oauth_callback(
    code: Optional[str] = None,
    state: Optional[str] = None,
    services: Services = Depends(get_services),
) -> RedirectResponse:
    if not code:
        return RedirectResponse("/?error=no_code", status_code=302)
    if services.oauth is None:
        raise HTTPException(status_code=500, detail="OAuth is not configured")

    try:
        account_id = services.oauth.connect_account(code, services.credentials, state=state)
    except Exception as exc:
        logger.error("Auth callback error: %s", exc)
        return RedirectResponse("/?error=auth_failed", status_code=302)

    return RedirectResponse(
        f"/?success=authenticated&accountId={quote(account_id, safe='')}",
        status_code=302,
    )
