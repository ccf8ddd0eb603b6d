from __future__ import annotations

import logging
from typing import Optional

from mailnick.models import StoredToken
from mailnick.storage.database import Database
from mailnick.storage.repository import Repository

logger = logging.getLogger(__name__)


class CredentialStore:
    """Per-account OAuth tokens, each call in its own short transaction."""

    def __init__(self, database: Database):
        self._db = database

    def get(self, account_id: str) -> Optional[StoredToken]:
        with self._db.session() as session:
            return Repository(session).get_token(account_id)

    def save(self, token: StoredToken) -> None:
        with self._db.session() as session:
            Repository(session).save_token(token)

    def delete(self, account_id: str) -> bool:
        with self._db.session() as session:
            deleted = Repository(session).delete_token(account_id)
        if deleted:
            logger.info("Deleted stored credentials for %s", account_id)
        return deleted
