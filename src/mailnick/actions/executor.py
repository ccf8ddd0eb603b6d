from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional

from mailnick.actions.ledger import ActionLedger
from mailnick.errors import MailNickError, ReauthRequiredError
from mailnick.models import ActionKind

logger = logging.getLogger(__name__)


@dataclass
class BulkOutcome:
    # email_id (or action_id for undo) -> action_id / error message
    succeeded: Dict[str, str] = field(default_factory=dict)
    failed: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {"succeeded": dict(self.succeeded), "failed": dict(self.failed)}


@dataclass
class ActionExecutor:
    """Applies one action to a batch of emails, e.g. every email of a task group."""

    ledger: ActionLedger
    continue_on_error: bool = True

    def run(
        self,
        account_id: str,
        kind: ActionKind,
        email_ids: Iterable[str],
        *,
        rule_id: Optional[str] = None,
        label_name: Optional[str] = None,
    ) -> BulkOutcome:
        outcome = BulkOutcome()
        for email_id in email_ids:
            try:
                result = self.ledger.apply(
                    account_id, email_id, kind, label_name=label_name, rule_id=rule_id
                )
            except ReauthRequiredError:
                # Every remaining call would fail the same way.
                raise
            except MailNickError as exc:
                logger.warning("Bulk %s failed for %s: %s", kind.value, email_id, exc)
                outcome.failed[email_id] = str(exc)
                if not self.continue_on_error:
                    raise
                continue
            outcome.succeeded[email_id] = result.action_id
        return outcome

    def undo_many(self, account_id: str, action_ids: Iterable[str]) -> BulkOutcome:
        outcome = BulkOutcome()
        for action_id in action_ids:
            try:
                self.ledger.undo(account_id, action_id)
            except ReauthRequiredError:
                raise
            except MailNickError as exc:
                logger.warning("Bulk undo failed for %s: %s", action_id, exc)
                outcome.failed[action_id] = str(exc)
                if not self.continue_on_error:
                    raise
                continue
            outcome.succeeded[action_id] = action_id
        return outcome
