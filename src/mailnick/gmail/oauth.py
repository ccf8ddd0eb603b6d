from __future__ import annotations

import logging
from threading import Lock
from time import time
from typing import Callable, Dict, Optional, Tuple

from google_auth_oauthlib.flow import Flow

from mailnick.gmail.client import SCOPES, TOKEN_URI, GmailClient, build_service
from mailnick.models import StoredToken, utcnow
from mailnick.storage.credentials import CredentialStore

logger = logging.getLogger(__name__)

AUTH_URI = "https://accounts.google.com/o/oauth2/auth"
# Consent screens left open longer than this have to start over.
PENDING_FLOW_TTL_SECONDS = 10 * 60


class OAuthManager:
    """Web-server OAuth flow: consent URL out, authorization code in."""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        *,
        clock: Callable[[], float] = time,
    ):
        self._client_config = {
            "web": {
                "client_id": client_id,
                "client_secret": client_secret,
                "auth_uri": AUTH_URI,
                "token_uri": TOKEN_URI,
                "redirect_uris": [redirect_uri],
            }
        }
        self._redirect_uri = redirect_uri
        self._clock = clock
        # state -> (flow, started_at); the callback resumes the flow that holds the PKCE verifier.
        self._lock = Lock()
        self._flows: Dict[str, Tuple[Flow, float]] = {}

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._flows)

    def _evict_stale(self, now: float) -> None:
        stale = [s for s, (_, started) in self._flows.items() if now - started > PENDING_FLOW_TTL_SECONDS]
        for state in stale:
            del self._flows[state]
        if stale:
            logger.debug("Dropped %d abandoned OAuth flows", len(stale))

    def _flow(self, state: Optional[str] = None) -> Flow:
        flow = Flow.from_client_config(self._client_config, scopes=SCOPES, state=state)
        flow.redirect_uri = self._redirect_uri
        return flow

    def authorization_url(self) -> str:
        flow = self._flow()
        auth_url, state = flow.authorization_url(
            access_type="offline",
            include_granted_scopes="true",
            prompt="consent",
        )
        now = self._clock()
        with self._lock:
            self._evict_stale(now)
            self._flows[state] = (flow, now)
        return auth_url

    def exchange_code(self, code: str, state: Optional[str] = None):
        flow = None
        if state:
            with self._lock:
                self._evict_stale(self._clock())
                pending = self._flows.pop(state, None)
            flow = pending[0] if pending else None
        if flow is None:
            flow = self._flow(state)
        flow.fetch_token(code=code)
        return flow.credentials

    def connect_account(self, code: str, store: CredentialStore, state: Optional[str] = None) -> str:
        """Exchange the code, identify the mailbox and upsert its tokens. Returns the account id."""
        creds = self.exchange_code(code, state)
        if not creds.token or not creds.expiry:
            raise ValueError("Google returned incomplete tokens")

        profile = GmailClient(build_service(creds)).get_profile()
        account_id = profile.get("emailAddress")
        if not account_id:
            raise ValueError("Gmail profile has no emailAddress")

        store.save(
            StoredToken(
                account_id=account_id,
                access_token=creds.token,
                refresh_token=creds.refresh_token or "",
                expires_at=creds.expiry or utcnow(),
            )
        )
        logger.info("Connected account %s", account_id)
        return account_id
