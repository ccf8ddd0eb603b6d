from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Dict, Optional

from mailnick.gmail.client import INBOX, UNREAD, GmailClient
from mailnick.models import ActionKind, ActionResult, Email, EmailUpdate, OriginalState


class ActionHandler(ABC):
    """One reversible Gmail mutation: how to apply it and how to take it back."""

    @abstractmethod
    def apply(self, client: GmailClient, email: Email, label_name: Optional[str] = None) -> ActionResult:
        """Run the mutation; report local field changes and extra state."""
        ...

    @abstractmethod
    def revert(
        self,
        client: GmailClient,
        email_id: str,
        state: OriginalState,
        current: Optional[Email],
    ) -> Optional[EmailUpdate]:
        """Run the inverse mutation; return the local fields to restore, if any."""
        ...


class MarkReadHandler(ActionHandler):
    def apply(self, client: GmailClient, email: Email, label_name: Optional[str] = None) -> ActionResult:
        client.mark_as_read(email.id)
        return ActionResult(email_update=EmailUpdate(is_unread=False))

    def revert(self, client, email_id, state, current):
        # Already read before the action: nothing to put back.
        if not state.is_unread:
            return None
        client.add_labels(email_id, [UNREAD])
        return EmailUpdate(is_unread=True)


class ArchiveHandler(ActionHandler):
    def apply(self, client: GmailClient, email: Email, label_name: Optional[str] = None) -> ActionResult:
        # Archiving also marks read, so undo has to restore both.
        client.modify(email.id, remove=[UNREAD, INBOX])
        return ActionResult(email_update=EmailUpdate(is_unread=False))

    def revert(self, client, email_id, state, current):
        labels = [INBOX]
        if state.is_unread:
            labels.append(UNREAD)
        client.add_labels(email_id, labels)
        return EmailUpdate(is_unread=state.is_unread)


class TrashHandler(ActionHandler):
    def apply(self, client: GmailClient, email: Email, label_name: Optional[str] = None) -> ActionResult:
        client.trash(email.id)
        return ActionResult()

    def revert(self, client, email_id, state, current):
        client.untrash(email_id)
        return None


class LabelHandler(ActionHandler):
    def apply(self, client: GmailClient, email: Email, label_name: Optional[str] = None) -> ActionResult:
        if not label_name:
            raise ValueError("label action requires label_name")

        label_id = client.ensure_label_exists(label_name)
        client.add_labels(email.id, [label_id])

        label_ids = list(email.label_ids)
        if label_id not in label_ids:
            label_ids.append(label_id)
        return ActionResult(
            email_update=EmailUpdate(label_ids=label_ids),
            added_label_id=label_id,
            response={"labelId": label_id},
        )

    def revert(self, client, email_id, state, current):
        if not state.added_label_id:
            return None
        client.remove_labels(email_id, [state.added_label_id])
        if current is None:
            return None
        return EmailUpdate(label_ids=[x for x in current.label_ids if x != state.added_label_id])


def default_handlers() -> Dict[ActionKind, ActionHandler]:
    return {
        ActionKind.MARK_READ: MarkReadHandler(),
        ActionKind.ARCHIVE: ArchiveHandler(),
        ActionKind.TRASH: TrashHandler(),
        ActionKind.LABEL: LabelHandler(),
    }
