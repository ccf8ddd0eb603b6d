from __future__ import annotations

import json
from datetime import datetime, timedelta
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

from googleapiclient.errors import HttpError

from mailnick.models import CleanupRule, Condition, Email, MatchCriteria
from mailnick.storage.database import Database
from mailnick.storage.repository import Repository

ACCOUNT = "me@example.test"
NOW = datetime(2026, 3, 2, 9, 30)


def make_email(
    email_id: str = "m1",
    *,
    account_id: str = ACCOUNT,
    sender: str = "Weekly News <news@digest.example.com>",
    sender_domain: Optional[str] = None,
    recipient: str = ACCOUNT,
    subject: str = "Weekly Digest",
    snippet: str = "Top stories this week",
    is_unread: bool = True,
    label_ids: Optional[List[str]] = None,
    category: Optional[str] = None,
    received_at: datetime = NOW,
) -> Email:
    return Email(
        id=email_id,
        account_id=account_id,
        thread_id=f"t-{email_id}",
        sender=sender,
        sender_domain=sender_domain if sender_domain is not None else sender.split("@")[-1].rstrip(">"),
        recipient=recipient,
        subject=subject,
        snippet=snippet,
        received_at=received_at,
        is_unread=is_unread,
        label_ids=list(label_ids) if label_ids is not None else ["INBOX", "UNREAD"],
        category=category,
        synced_at=NOW,
    )


def store_email(database: Database, email: Email) -> Email:
    with database.session() as session:
        Repository(session).add_email(email)
    return email


def load_email(database: Database, email_id: str, account_id: str = ACCOUNT) -> Optional[Email]:
    with database.session() as session:
        return Repository(session).get_email(account_id, email_id)


def make_rule(
    rule_id: str,
    *,
    display_order: int = 0,
    enabled: bool = True,
    criteria_type: str = "all",
    conditions: Optional[List[Condition]] = None,
) -> CleanupRule:
    return CleanupRule(
        id=rule_id,
        account_id=ACCOUNT,
        name=f"Rule {rule_id}",
        match_criteria=MatchCriteria(type=criteria_type, conditions=list(conditions or [])),
        display_order=display_order,
        enabled=enabled,
    )


class FakeClock:
    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakeCredentialStore:
    def __init__(self) -> None:
        self.deleted: List[str] = []

    def delete(self, account_id: str) -> bool:
        self.deleted.append(account_id)
        return True


class FakeGmailClient:
    """Records Gmail calls; raises `fail_with` from every call once set."""

    def __init__(
        self,
        labels: Optional[Dict[str, str]] = None,
        messages: Optional[Dict[str, Dict[str, Any]]] = None,
    ):
        self.calls: List[tuple] = []
        self.labels = dict(labels or {})
        self.messages = dict(messages or {})
        self.fail_with: Optional[BaseException] = None

    def _record(self, *call: Any) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.calls.append(call)

    def modify(self, message_id: str, *, add=(), remove=()) -> None:
        self._record("modify", message_id, list(add), list(remove))

    def mark_as_read(self, message_id: str) -> None:
        self._record("mark_as_read", message_id)

    def archive(self, message_id: str) -> None:
        self._record("archive", message_id)

    def trash(self, message_id: str) -> None:
        self._record("trash", message_id)

    def untrash(self, message_id: str) -> None:
        self._record("untrash", message_id)

    def add_labels(self, message_id: str, label_ids) -> None:
        self._record("add_labels", message_id, list(label_ids))

    def remove_labels(self, message_id: str, label_ids) -> None:
        self._record("remove_labels", message_id, list(label_ids))

    def ensure_label_exists(self, label_name: str) -> str:
        if self.fail_with is not None:
            raise self.fail_with
        for name, label_id in self.labels.items():
            if name.lower() == label_name.lower():
                return label_id
        label_id = f"Label_{len(self.labels) + 1}"
        self.labels[label_name] = label_id
        self.calls.append(("create_label", label_name))
        return label_id

    def list_messages(self, query: str = "", max_results: int = 100) -> List[Dict[str, Any]]:
        if self.fail_with is not None:
            raise self.fail_with
        return [{"id": mid, "threadId": m.get("threadId")} for mid, m in self.messages.items()]

    def get_message(self, message_id: str, fmt: str = "metadata", metadata_headers=None) -> Dict[str, Any]:
        if self.fail_with is not None:
            raise self.fail_with
        return self.messages[message_id]


def http_error(status: int, message: str = "", reason: str = "") -> HttpError:
    """A googleapiclient HttpError with a Gmail-style JSON body."""
    body = json.dumps({"error": {"code": status, "message": message}}).encode("utf-8")
    return HttpError(SimpleNamespace(status=status, reason=reason or message), body)
