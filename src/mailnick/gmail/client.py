from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from google.auth.exceptions import RefreshError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build

from mailnick.errors import ReauthRequiredError
from mailnick.gmail.errors import is_reauth_error
from mailnick.models import StoredToken, utcnow
from mailnick.storage.credentials import CredentialStore

logger = logging.getLogger(__name__)

SCOPES = [
    "https://www.googleapis.com/auth/gmail.readonly",  # Read emails
    "https://www.googleapis.com/auth/gmail.modify",  # Mark as read, archive, trash
    "https://www.googleapis.com/auth/gmail.labels",  # Manage labels
]
TOKEN_URI = "https://oauth2.googleapis.com/token"

UNREAD = "UNREAD"
INBOX = "INBOX"


@dataclass(frozen=True)
class GmailClientConfig:
    # OAuth client from Google Cloud Console.
    client_id: str
    client_secret: str
    # Gmail userId, "me" refers to the authenticated user.
    user_id: str = "me"


class GmailClient:
    """Wraps one authenticated Gmail API service."""

    def __init__(self, service, user_id: str = "me"):
        self._service = service
        self._user_id = user_id

    @property
    def service(self):
        return self._service

    def _messages(self):
        return self.service.users().messages()

    def modify(
        self,
        message_id: str,
        *,
        add: Sequence[str] = (),
        remove: Sequence[str] = (),
    ) -> Dict[str, Any]:
        body: Dict[str, List[str]] = {}
        if add:
            body["addLabelIds"] = list(add)
        if remove:
            body["removeLabelIds"] = list(remove)
        return self._messages().modify(userId=self._user_id, id=message_id, body=body).execute()

    def mark_as_read(self, message_id: str) -> None:
        self.modify(message_id, remove=[UNREAD])

    def archive(self, message_id: str) -> None:
        self.modify(message_id, remove=[INBOX])

    def trash(self, message_id: str) -> None:
        self._messages().trash(userId=self._user_id, id=message_id).execute()

    def untrash(self, message_id: str) -> None:
        self._messages().untrash(userId=self._user_id, id=message_id).execute()

    def add_labels(self, message_id: str, label_ids: Sequence[str]) -> None:
        self.modify(message_id, add=label_ids)

    def remove_labels(self, message_id: str, label_ids: Sequence[str]) -> None:
        self.modify(message_id, remove=label_ids)

    def ensure_label_exists(self, label_name: str) -> str:
        """Return the id of the label named `label_name` (case-insensitive), creating it if needed."""
        labels = self.service.users().labels()
        resp = labels.list(userId=self._user_id).execute()
        for label in resp.get("labels", []):
            if (label.get("name") or "").lower() == label_name.lower() and label.get("id"):
                return label["id"]

        created = labels.create(
            userId=self._user_id,
            body={
                "name": label_name,
                "labelListVisibility": "labelShow",
                "messageListVisibility": "show",
            },
        ).execute()
        if not created.get("id"):
            raise RuntimeError(f"Failed to create label: {label_name}")
        logger.info("Created Gmail label %r (id=%s)", label_name, created["id"])
        return created["id"]

    def list_messages(self, query: str = "", max_results: int = 100) -> List[Dict[str, Any]]:
        """
        List message stubs ({"id", "threadId"}) matching a Gmail search query.
        Example query: 'is:unread'
        """
        resp = self._messages().list(userId=self._user_id, q=query, maxResults=max_results).execute()
        return resp.get("messages", [])

    def get_message(
        self,
        message_id: str,
        fmt: str = "metadata",
        metadata_headers: Optional[Sequence[str]] = None,
    ) -> Dict[str, Any]:
        """
        Fetch a message resource.
        fmt: 'full' | 'metadata' | 'minimal' | 'raw'
        """
        kwargs: Dict[str, Any] = {"userId": self._user_id, "id": message_id, "format": fmt}
        if metadata_headers:
            kwargs["metadataHeaders"] = list(metadata_headers)
        return self._messages().get(**kwargs).execute()

    def get_profile(self) -> Dict[str, Any]:
        """Get the Gmail profile of the authenticated user."""
        return self.service.users().getProfile(userId=self._user_id).execute()


def build_service(credentials: Credentials):
    return build("gmail", "v1", credentials=credentials, cache_discovery=False)


class GmailClientFactory:
    """
    Builds a GmailClient per account from stored tokens.

    Expired access tokens are refreshed and written back; a refresh that
    Google rejects becomes ReauthRequiredError.
    """

    def __init__(self, cfg: GmailClientConfig, store: CredentialStore, service_builder=build_service):
        self._cfg = cfg
        self._store = store
        self._build = service_builder

    def credentials_for(self, token: StoredToken) -> Credentials:
        return Credentials(
            token=token.access_token,
            refresh_token=token.refresh_token,
            token_uri=TOKEN_URI,
            client_id=self._cfg.client_id,
            client_secret=self._cfg.client_secret,
            scopes=SCOPES,
            expiry=token.expires_at,
        )

    def __call__(self, account_id: str) -> GmailClient:
        token = self._store.get(account_id)
        if token is None:
            raise ReauthRequiredError(f"No stored tokens for {account_id}. Please authenticate first.")

        creds = self.credentials_for(token)
        if token.expires_at <= utcnow():
            try:
                creds.refresh(Request())
            except RefreshError as exc:
                if is_reauth_error(exc):
                    raise ReauthRequiredError() from exc
                raise
            self._store.save(
                StoredToken(
                    account_id=account_id,
                    access_token=creds.token,
                    refresh_token=creds.refresh_token or token.refresh_token,
                    expires_at=creds.expiry or utcnow(),
                )
            )
            logger.debug("Refreshed access token for %s", account_id)

        return GmailClient(self._build(creds), user_id=self._cfg.user_id)
