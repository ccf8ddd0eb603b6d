from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


def utcnow() -> datetime:
    # SQLite drops tzinfo, so everything is stored and compared as naive UTC.
    return datetime.now(timezone.utc).replace(tzinfo=None)


class ActionKind(str, Enum):
    MARK_READ = "mark_read"
    ARCHIVE = "archive"
    TRASH = "trash"
    LABEL = "label"


@dataclass(frozen=True)
class Email:
    id: str
    account_id: str
    thread_id: str
    sender: str
    sender_domain: str
    received_at: datetime
    recipient: Optional[str] = None
    subject: Optional[str] = None
    snippet: Optional[str] = None
    is_unread: bool = True
    label_ids: List[str] = field(default_factory=list)
    category: Optional[str] = None
    synced_at: Optional[datetime] = None

    def field_value(self, name: str) -> Optional[str]:
        """Value of a rule condition field ("from", "fromDomain", ...)."""
        attr = CONDITION_FIELDS.get(name)
        if attr is None:
            return None
        return getattr(self, attr)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "accountId": self.account_id,
            "threadId": self.thread_id,
            "from": self.sender,
            "fromDomain": self.sender_domain,
            "to": self.recipient,
            "subject": self.subject,
            "snippet": self.snippet,
            "receivedAt": self.received_at.isoformat(),
            "isUnread": self.is_unread,
            "labelIds": list(self.label_ids),
            "category": self.category,
        }


# Rule condition field name -> Email attribute.
CONDITION_FIELDS = {
    "from": "sender",
    "fromDomain": "sender_domain",
    "to": "recipient",
    "subject": "subject",
    "category": "category",
    "snippet": "snippet",
}


@dataclass(frozen=True)
class OriginalState:
    """Snapshot of an email taken before a ledger action ran."""
    is_unread: bool
    label_ids: List[str] = field(default_factory=list)
    added_label_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"isUnread": self.is_unread, "labelIds": list(self.label_ids)}
        if self.added_label_id:
            data["addedLabelId"] = self.added_label_id
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OriginalState":
        return cls(
            is_unread=bool(data.get("isUnread")),
            label_ids=[str(x) for x in (data.get("labelIds") or [])],
            added_label_id=data.get("addedLabelId"),
        )


@dataclass(frozen=True)
class EmailUpdate:
    is_unread: Optional[bool] = None
    label_ids: Optional[List[str]] = None

    def is_empty(self) -> bool:
        return self.is_unread is None and self.label_ids is None


@dataclass(frozen=True)
class ActionResult:
    """What a side effect reports back to the ledger."""
    email_update: Optional[EmailUpdate] = None
    # Label actions remember the label they added so undo removes exactly that one.
    added_label_id: Optional[str] = None
    response: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ActionEntry:
    id: str
    account_id: str
    email_id: str
    kind: ActionKind
    original_state: OriginalState
    created_at: datetime
    expires_at: datetime
    undone: bool = False
    rule_id: Optional[str] = None

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "accountId": self.account_id,
            "emailId": self.email_id,
            "actionType": self.kind.value,
            "originalState": self.original_state.to_dict(),
            "timestamp": self.created_at.isoformat(),
            "expiresAt": self.expires_at.isoformat(),
            "undone": self.undone,
            "ruleId": self.rule_id,
        }


@dataclass(frozen=True)
class PerformResult:
    action_id: str
    response: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Condition:
    field: str
    operator: str
    value: Any
    case_sensitive: bool = False


@dataclass(frozen=True)
class MatchCriteria:
    type: str
    conditions: List[Condition] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "conditions": [
                {
                    "field": c.field,
                    "operator": c.operator,
                    "value": c.value,
                    "caseSensitive": c.case_sensitive,
                }
                for c in self.conditions
            ],
        }


@dataclass(frozen=True)
class CleanupRule:
    id: str
    account_id: str
    name: str
    match_criteria: MatchCriteria
    display_order: int
    enabled: bool = True
    color: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "accountId": self.account_id,
            "name": self.name,
            "matchCriteria": self.match_criteria.to_dict(),
            "displayOrder": self.display_order,
            "enabled": self.enabled,
            "color": self.color,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }


@dataclass(frozen=True)
class TaskMatch:
    rule: CleanupRule
    emails: List[Email]
    total_count: int
    hidden: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rule": self.rule.to_dict(),
            "emails": [e.to_dict() for e in self.emails],
            "totalCount": self.total_count,
            "hidden": self.hidden,
        }


@dataclass(frozen=True)
class StoredToken:
    account_id: str
    access_token: str
    refresh_token: str
    expires_at: datetime
