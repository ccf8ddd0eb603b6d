"""
Repository - account-scoped database operations for MailNick.

Every query filters by account id so concurrent requests for different
accounts never touch each other's rows.
"""
from __future__ import annotations

import json
import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import Session

from mailnick.models import (
    ActionEntry,
    ActionKind,
    CleanupRule,
    Email,
    EmailUpdate,
    MatchCriteria,
    OriginalState,
    StoredToken,
    utcnow,
)
from mailnick.rules.schema import criteria_from_dict
from mailnick.storage.tables import ActionRow, CleanupRuleRow, EmailRow, TokenRow

logger = logging.getLogger(__name__)


def _load_label_ids(raw: Optional[str]) -> List[str]:
    if not raw:
        return []
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Malformed label_ids column: %r", raw)
        return []
    return [str(x) for x in data] if isinstance(data, list) else []


def email_from_row(row: EmailRow) -> Email:
    return Email(
        id=row.id,
        account_id=row.account_id,
        thread_id=row.thread_id,
        sender=row.sender,
        sender_domain=row.sender_domain,
        recipient=row.recipient,
        subject=row.subject,
        snippet=row.snippet,
        received_at=row.received_at,
        is_unread=bool(row.is_unread),
        label_ids=_load_label_ids(row.label_ids),
        category=row.category,
        synced_at=row.synced_at,
    )


def action_from_row(row: ActionRow) -> ActionEntry:
    return ActionEntry(
        id=row.id,
        account_id=row.account_id,
        email_id=row.email_id,
        kind=ActionKind(row.action_type),
        original_state=OriginalState.from_dict(json.loads(row.original_state)),
        created_at=row.timestamp,
        expires_at=row.expires_at,
        undone=bool(row.undone),
        rule_id=row.rule_id,
    )


def rule_from_row(row: CleanupRuleRow) -> CleanupRule:
    return CleanupRule(
        id=row.id,
        account_id=row.account_id,
        name=row.name,
        match_criteria=criteria_from_dict(json.loads(row.match_criteria)),
        display_order=row.display_order,
        enabled=bool(row.enabled),
        color=row.color,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class Repository:
    """
    Thin mapping layer between ORM rows and domain dataclasses.

    Bound to one session; the caller owns the transaction
    (see Database.session()).
    """

    def __init__(self, session: Session):
        self.session = session

    # --- Emails ---

    def _email_row(self, account_id: str, email_id: str) -> Optional[EmailRow]:
        return self.session.get(EmailRow, {"id": email_id, "account_id": account_id})

    def get_email(self, account_id: str, email_id: str) -> Optional[Email]:
        row = self._email_row(account_id, email_id)
        return email_from_row(row) if row else None

    def email_ids(self, account_id: str) -> Set[str]:
        stmt = select(EmailRow.id).where(EmailRow.account_id == account_id)
        return set(self.session.scalars(stmt))

    def list_emails(
        self,
        account_id: str,
        *,
        unread_only: bool = False,
        category: Optional[str] = None,
        limit: Optional[int] = 100,
    ) -> List[Email]:
        stmt = select(EmailRow).where(EmailRow.account_id == account_id)
        if unread_only:
            stmt = stmt.where(EmailRow.is_unread.is_(True))
        if category:
            stmt = stmt.where(EmailRow.category == category)
        stmt = stmt.order_by(EmailRow.received_at.desc())
        if limit:
            stmt = stmt.limit(limit)
        return [email_from_row(r) for r in self.session.scalars(stmt)]

    def add_email(self, email: Email, raw_headers: Optional[Sequence[Dict[str, Any]]] = None) -> None:
        self.session.add(
            EmailRow(
                id=email.id,
                account_id=email.account_id,
                thread_id=email.thread_id,
                sender=email.sender,
                sender_domain=email.sender_domain,
                recipient=email.recipient,
                subject=email.subject,
                snippet=email.snippet,
                received_at=email.received_at,
                is_unread=email.is_unread,
                label_ids=json.dumps(list(email.label_ids)),
                category=email.category,
                raw_headers=json.dumps(list(raw_headers)) if raw_headers is not None else None,
                synced_at=email.synced_at or utcnow(),
            )
        )

    def update_email(self, account_id: str, email_id: str, changes: EmailUpdate) -> bool:
        """Apply the set fields of `changes`; False when the email is gone."""
        row = self._email_row(account_id, email_id)
        if row is None:
            return False
        if changes.is_unread is not None:
            row.is_unread = changes.is_unread
        if changes.label_ids is not None:
            row.label_ids = json.dumps(list(changes.label_ids))
        return True

    # --- Action ledger ---

    def add_action(self, entry: ActionEntry) -> None:
        self.session.add(
            ActionRow(
                id=entry.id,
                account_id=entry.account_id,
                email_id=entry.email_id,
                action_type=entry.kind.value,
                original_state=json.dumps(entry.original_state.to_dict()),
                timestamp=entry.created_at,
                undone=entry.undone,
                expires_at=entry.expires_at,
                rule_id=entry.rule_id,
            )
        )

    def get_action(self, account_id: str, action_id: str) -> Optional[ActionEntry]:
        stmt = select(ActionRow).where(ActionRow.id == action_id, ActionRow.account_id == account_id)
        row = self.session.scalars(stmt).first()
        return action_from_row(row) if row else None

    def mark_action_undone(self, account_id: str, action_id: str) -> None:
        self.session.execute(
            update(ActionRow)
            .where(ActionRow.id == action_id, ActionRow.account_id == account_id)
            .values(undone=True)
        )

    def live_actions(self, account_id: str) -> List[Tuple[Email, ActionEntry]]:
        """Not-undone entries joined with their emails, newest action first."""
        stmt = (
            select(EmailRow, ActionRow)
            .join(
                ActionRow,
                (ActionRow.email_id == EmailRow.id) & (ActionRow.account_id == EmailRow.account_id),
            )
            .where(ActionRow.account_id == account_id, ActionRow.undone.is_(False))
            .order_by(ActionRow.timestamp.desc())
        )
        return [(email_from_row(e), action_from_row(a)) for e, a in self.session.execute(stmt)]

    def delete_actions_before(self, cutoff: datetime) -> int:
        result = self.session.execute(delete(ActionRow).where(ActionRow.timestamp < cutoff))
        return result.rowcount or 0

    def rule_stats(self, account_id: str) -> Dict[str, Dict[str, int]]:
        """{rule_id: {action_type: count}} over not-undone entries."""
        stmt = (
            select(ActionRow.rule_id, ActionRow.action_type, func.count())
            .where(
                ActionRow.account_id == account_id,
                ActionRow.rule_id.is_not(None),
                ActionRow.undone.is_(False),
            )
            .group_by(ActionRow.rule_id, ActionRow.action_type)
        )
        stats: Dict[str, Dict[str, int]] = {}
        for rule_id, action_type, count in self.session.execute(stmt):
            stats.setdefault(rule_id, {})[action_type] = int(count)
        return stats

    # --- Cleanup rules ---

    def _rule_row(self, account_id: str, rule_id: str) -> Optional[CleanupRuleRow]:
        stmt = select(CleanupRuleRow).where(
            CleanupRuleRow.id == rule_id, CleanupRuleRow.account_id == account_id
        )
        return self.session.scalars(stmt).first()

    def list_rules(self, account_id: str) -> List[CleanupRule]:
        stmt = (
            select(CleanupRuleRow)
            .where(CleanupRuleRow.account_id == account_id)
            .order_by(CleanupRuleRow.display_order, CleanupRuleRow.created_at)
        )
        return [rule_from_row(r) for r in self.session.scalars(stmt)]

    def get_rule(self, account_id: str, rule_id: str) -> Optional[CleanupRule]:
        row = self._rule_row(account_id, rule_id)
        return rule_from_row(row) if row else None

    def add_rule(
        self,
        account_id: str,
        name: str,
        criteria: MatchCriteria,
        color: Optional[str] = None,
    ) -> CleanupRule:
        # New rules go to the end of the list.
        max_order = self.session.scalar(
            select(func.max(CleanupRuleRow.display_order)).where(CleanupRuleRow.account_id == account_id)
        )
        now = utcnow()
        row = CleanupRuleRow(
            id=str(uuid.uuid4()),
            account_id=account_id,
            name=name,
            match_criteria=json.dumps(criteria.to_dict()),
            display_order=(max_order if max_order is not None else -1) + 1,
            enabled=True,
            created_at=now,
            updated_at=now,
            color=color or None,
        )
        self.session.add(row)
        self.session.flush()
        return rule_from_row(row)

    def update_rule(
        self,
        account_id: str,
        rule_id: str,
        *,
        name: Optional[str] = None,
        criteria: Optional[MatchCriteria] = None,
        color: Optional[str] = None,
        enabled: Optional[bool] = None,
    ) -> Optional[CleanupRule]:
        row = self._rule_row(account_id, rule_id)
        if row is None:
            return None
        if name is not None:
            row.name = name
        if criteria is not None:
            row.match_criteria = json.dumps(criteria.to_dict())
        if color is not None:
            row.color = color
        if enabled is not None:
            row.enabled = enabled
        row.updated_at = utcnow()
        self.session.flush()
        return rule_from_row(row)

    def delete_rule(self, account_id: str, rule_id: str) -> bool:
        result = self.session.execute(
            delete(CleanupRuleRow).where(
                CleanupRuleRow.id == rule_id, CleanupRuleRow.account_id == account_id
            )
        )
        return bool(result.rowcount)

    def reorder_rules(self, account_id: str, rule_ids: Sequence[str]) -> None:
        """Position in `rule_ids` becomes the new display order."""
        now = utcnow()
        for position, rule_id in enumerate(rule_ids):
            self.session.execute(
                update(CleanupRuleRow)
                .where(CleanupRuleRow.id == rule_id, CleanupRuleRow.account_id == account_id)
                .values(display_order=position, updated_at=now)
            )

    # --- Accounts & tokens ---

    def list_accounts(self) -> List[str]:
        return list(self.session.scalars(select(TokenRow.id).order_by(TokenRow.id)))

    def get_token(self, account_id: str) -> Optional[StoredToken]:
        row = self.session.get(TokenRow, account_id)
        if row is None:
            return None
        return StoredToken(
            account_id=row.id,
            access_token=row.access_token,
            refresh_token=row.refresh_token,
            expires_at=row.expires_at,
        )

    def save_token(self, token: StoredToken) -> None:
        row = self.session.get(TokenRow, token.account_id)
        if row is None:
            self.session.add(
                TokenRow(
                    id=token.account_id,
                    access_token=token.access_token,
                    refresh_token=token.refresh_token,
                    expires_at=token.expires_at,
                )
            )
            return
        row.access_token = token.access_token
        # Google omits the refresh token on some re-consents; keep the old one.
        if token.refresh_token:
            row.refresh_token = token.refresh_token
        row.expires_at = token.expires_at

    def delete_token(self, account_id: str) -> bool:
        result = self.session.execute(delete(TokenRow).where(TokenRow.id == account_id))
        return bool(result.rowcount)

    def delete_account(self, account_id: str) -> bool:
        """Remove all data for an account; False when no token existed."""
        self.session.execute(delete(ActionRow).where(ActionRow.account_id == account_id))
        self.session.execute(delete(EmailRow).where(EmailRow.account_id == account_id))
        self.session.execute(delete(CleanupRuleRow).where(CleanupRuleRow.account_id == account_id))
        return self.delete_token(account_id)
