from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from fastapi import HTTPException, Request

from mailnick.actions.executor import ActionExecutor
from mailnick.actions.ledger import ActionLedger, ClientFactory
from mailnick.config.settings import Settings
from mailnick.gmail.client import GmailClientConfig, GmailClientFactory
from mailnick.gmail.oauth import OAuthManager
from mailnick.storage.credentials import CredentialStore
from mailnick.storage.database import Database, init_database

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Everything the routes need, wired once at startup."""

    database: Database
    credentials: CredentialStore
    client_factory: ClientFactory
    ledger: ActionLedger
    executor: ActionExecutor
    oauth: Optional[OAuthManager] = None
    max_email_results: int = 200


def build_services(settings: Settings) -> Services:
    database = init_database(settings.database_url)
    credentials = CredentialStore(database)
    client_factory = GmailClientFactory(
        GmailClientConfig(
            client_id=settings.google_client_id,
            client_secret=settings.google_client_secret,
        ),
        credentials,
    )
    ledger = ActionLedger(
        database,
        client_factory,
        credentials,
        expiry=timedelta(hours=settings.action_expiry_hours),
        retention=timedelta(days=settings.action_retention_days),
    )
    return Services(
        database=database,
        credentials=credentials,
        client_factory=client_factory,
        ledger=ledger,
        executor=ActionExecutor(ledger),
        oauth=OAuthManager(
            settings.google_client_id,
            settings.google_client_secret,
            settings.google_redirect_uri,
        ),
        max_email_results=settings.max_email_results,
    )


def get_services(request: Request) -> Services:
    return request.app.state.services


def require_account(account_id: Optional[str]) -> str:
    if not account_id:
        raise HTTPException(status_code=400, detail="Account ID is required")
    return account_id
