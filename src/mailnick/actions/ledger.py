"""
Action ledger: run a reversible Gmail mutation, record what it changed,
and undo it within the undo window.
"""
from __future__ import annotations

import logging
import uuid
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime, timedelta
from threading import Lock
from typing import Callable, Dict, Iterator, Optional, Tuple

from mailnick.actions.handlers import ActionHandler, default_handlers
from mailnick.config.settings import ACTION_EXPIRY_HOURS, ACTION_RETENTION_DAYS
from mailnick.errors import (
    ActionFailedError,
    AlreadyUndoneError,
    ExpiredError,
    NotFoundError,
    ReauthRequiredError,
    UndoFailedError,
)
from mailnick.gmail.client import GmailClient
from mailnick.gmail.errors import is_reauth_error
from mailnick.models import ActionEntry, ActionKind, ActionResult, Email, OriginalState, PerformResult, utcnow
from mailnick.storage.database import Database
from mailnick.storage.repository import Repository

logger = logging.getLogger(__name__)

SideEffect = Callable[[Email], Optional[ActionResult]]
ClientFactory = Callable[[str], GmailClient]


class KeyedLocks:
    """One lock per key, so same-email work is serialized and the rest runs freely."""

    def __init__(self) -> None:
        self._guard = Lock()
        # key -> [lock, number of callers holding or waiting on it]
        self._locks: Dict[Tuple[str, str], list] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    @contextmanager
    def hold(self, key: Tuple[str, str]) -> Iterator[None]:
        with self._guard:
            slot = self._locks.setdefault(key, [Lock(), 0])
            slot[1] += 1
        try:
            with slot[0]:
                yield
        finally:
            with self._guard:
                slot[1] -= 1
                # Last holder drops the key so the registry only tracks in-flight work.
                if slot[1] == 0:
                    del self._locks[key]


class ActionLedger:
    def __init__(
        self,
        database: Database,
        client_factory: ClientFactory,
        credentials,
        *,
        handlers: Optional[Dict[ActionKind, ActionHandler]] = None,
        expiry: timedelta = timedelta(hours=ACTION_EXPIRY_HOURS),
        retention: timedelta = timedelta(days=ACTION_RETENTION_DAYS),
        clock: Callable[[], datetime] = utcnow,
    ):
        self._db = database
        self._client_for = client_factory
        # Anything with delete(account_id); normally a CredentialStore.
        self._credentials = credentials
        self._handlers = handlers or default_handlers()
        self._expiry = expiry
        self._retention = retention
        self._now = clock
        self._locks = KeyedLocks()

    def _handler(self, kind: ActionKind) -> ActionHandler:
        handler = self._handlers.get(kind)
        if handler is None:
            raise ValueError(f"No handler registered for action type: {kind}")
        return handler

    def _purge_credentials(self, account_id: str) -> None:
        self._credentials.delete(account_id)
        logger.warning("Credentials for %s rejected by Gmail; re-authentication required", account_id)

    # --- perform ---

    def perform(
        self,
        account_id: str,
        email_id: str,
        kind: ActionKind,
        side_effect: SideEffect,
        rule_id: Optional[str] = None,
    ) -> PerformResult:
        """
        Run `side_effect` against the email and record a reversible entry.

        The external call happens first; the email update and the ledger insert
        are written in one transaction only after it succeeded.

        Raises:
            NotFoundError: email does not exist under the account.
            ReauthRequiredError: Gmail rejected the credentials (they are purged).
            ActionFailedError: any other side-effect or storage failure.
        """
        with self._locks.hold((account_id, email_id)):
            with self._db.session() as session:
                email = Repository(session).get_email(account_id, email_id)
            if email is None:
                raise NotFoundError(f"Email not found: {email_id}")

            original = OriginalState(is_unread=email.is_unread, label_ids=list(email.label_ids))

            try:
                result = side_effect(email) or ActionResult()
            except Exception as exc:
                if is_reauth_error(exc):
                    self._purge_credentials(account_id)
                    raise ReauthRequiredError() from exc
                logger.error("Email action %r failed for %s: %s", kind.value, email_id, exc)
                raise ActionFailedError(kind.value, exc) from exc

            if result.added_label_id:
                original = replace(original, added_label_id=result.added_label_id)

            now = self._now()
            entry = ActionEntry(
                id=uuid.uuid4().hex,
                account_id=account_id,
                email_id=email_id,
                kind=kind,
                original_state=original,
                created_at=now,
                expires_at=now + self._expiry,
                rule_id=rule_id,
            )
            try:
                with self._db.session() as session:
                    repo = Repository(session)
                    if result.email_update and not result.email_update.is_empty():
                        repo.update_email(account_id, email_id, result.email_update)
                    repo.add_action(entry)
            except Exception as exc:
                logger.error("Recording action %r for %s failed: %s", kind.value, email_id, exc)
                raise ActionFailedError(kind.value, exc) from exc

        logger.info("Action %s %s on %s (account=%s)", entry.id, kind.value, email_id, account_id)
        return PerformResult(action_id=entry.id, response=dict(result.response))

    def apply(
        self,
        account_id: str,
        email_id: str,
        kind: ActionKind,
        *,
        label_name: Optional[str] = None,
        rule_id: Optional[str] = None,
    ) -> PerformResult:
        """perform() with the registered handler for `kind` as the side effect."""
        handler = self._handler(kind)

        def side_effect(email: Email) -> ActionResult:
            client = self._client_for(account_id)
            return handler.apply(client, email, label_name)

        return self.perform(account_id, email_id, kind, side_effect, rule_id=rule_id)

    # --- undo ---

    def undo(self, account_id: str, action_id: str) -> None:
        """
        Reverse a recorded action once, inside its undo window.

        Raises:
            NotFoundError, AlreadyUndoneError, ExpiredError: checked before any Gmail call.
            ReauthRequiredError: Gmail rejected the credentials (they are purged).
            UndoFailedError: the reversal failed; the entry stays not-undone.
        """
        with self._db.session() as session:
            entry = Repository(session).get_action(account_id, action_id)
        if entry is None:
            raise NotFoundError(f"Action not found: {action_id}")

        with self._locks.hold((account_id, entry.email_id)):
            # Re-read under the lock so two concurrent undos cannot both pass the check.
            with self._db.session() as session:
                repo = Repository(session)
                entry = repo.get_action(account_id, action_id)
                current = repo.get_email(account_id, entry.email_id) if entry else None
            if entry is None:
                raise NotFoundError(f"Action not found: {action_id}")
            if entry.undone:
                raise AlreadyUndoneError(action_id)
            if entry.is_expired(self._now()):
                raise ExpiredError(action_id)

            handler = self._handler(entry.kind)
            try:
                client = self._client_for(account_id)
                restore = handler.revert(client, entry.email_id, entry.original_state, current)
            except Exception as exc:
                if is_reauth_error(exc):
                    self._purge_credentials(account_id)
                    raise ReauthRequiredError() from exc
                logger.error("Undo of %s (%s) failed: %s", action_id, entry.kind.value, exc)
                raise UndoFailedError(action_id, exc) from exc

            try:
                with self._db.session() as session:
                    repo = Repository(session)
                    if restore and not restore.is_empty():
                        repo.update_email(account_id, entry.email_id, restore)
                    repo.mark_action_undone(account_id, action_id)
            except Exception as exc:
                logger.error("Recording undo of %s failed: %s", action_id, exc)
                raise UndoFailedError(action_id, exc) from exc

        logger.info("Undid action %s (%s on %s)", action_id, entry.kind.value, entry.email_id)

    # --- retention ---

    def purge_expired(self, now: Optional[datetime] = None) -> int:
        """Delete entries older than the retention period (not the undo window)."""
        cutoff = (now or self._now()) - self._retention
        with self._db.session() as session:
            deleted = Repository(session).delete_actions_before(cutoff)
        if deleted:
            logger.info("Purged %d action entries older than %s", deleted, cutoff.isoformat())
        return deleted
