from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Callable, Dict, Optional

from mailnick.config.settings import MAX_EMAIL_RESULTS
from mailnick.gmail.client import UNREAD, GmailClient
from mailnick.gmail.errors import is_reauth_error
from mailnick.models import Email, utcnow
from mailnick.storage.database import Database
from mailnick.storage.repository import Repository

logger = logging.getLogger(__name__)

METADATA_HEADERS = ["From", "To", "Subject", "Date"]
_ANGLE_ADDRESS = re.compile(r"<(.+@(.+))>")


@dataclass
class SyncSummary:
    synced_count: int
    total_unread: int
    errors: int = 0


def extract_domain(sender: str) -> str:
    """Domain part of a From header ("Name <a@b.com>" or "a@b.com")."""
    match = _ANGLE_ADDRESS.search(sender)
    if match:
        return match.group(2)
    parts = sender.split("@")
    return parts[1] if len(parts) > 1 else sender


def _received_at(date_header: Optional[str], internal_date_ms: Any) -> datetime:
    if date_header:
        try:
            parsed = parsedate_to_datetime(date_header)
        except (TypeError, ValueError):
            parsed = None
        if parsed is not None:
            if parsed.tzinfo is not None:
                parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
            return parsed
    # Gmail internalDate is epoch milliseconds.
    ms = int(internal_date_ms or 0)
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).replace(tzinfo=None)


def build_email(account_id: str, stub: Dict[str, Any], msg: Dict[str, Any]) -> tuple[Email, list]:
    headers_list = (msg.get("payload") or {}).get("headers", []) or []
    headers = {h["name"]: h["value"] for h in headers_list}

    sender = headers.get("From", "")
    label_ids = [str(x) for x in (msg.get("labelIds") or [])]

    email = Email(
        id=stub["id"],
        account_id=account_id,
        thread_id=msg.get("threadId") or stub.get("threadId") or "",
        sender=sender,
        sender_domain=extract_domain(sender),
        recipient=headers.get("To", ""),
        subject=headers.get("Subject", ""),
        snippet=msg.get("snippet", ""),
        received_at=_received_at(headers.get("Date"), msg.get("internalDate")),
        is_unread=UNREAD in label_ids if msg.get("labelIds") is not None else True,
        label_ids=label_ids,
        synced_at=utcnow(),
    )
    return email, headers_list


def sync_unread_emails(
    account_id: str,
    client: GmailClient,
    database: Database,
    *,
    max_results: int = MAX_EMAIL_RESULTS,
    progress_cb: Optional[Callable[[str, Dict[str, Any]], None]] = None,
) -> SyncSummary:
    """
    Pull unread messages that are not stored yet into the local database.

    A message that fails to load is counted and skipped; the rest continue.
    """
    def report(step: str, detail: str, **extra: Any) -> None:
        if progress_cb:
            progress_cb(step, {"detail": detail, **extra})

    report("list_messages", "Listing unread messages")
    stubs = [s for s in client.list_messages(query="is:unread", max_results=max_results) if s.get("id")]

    with database.session() as session:
        known = Repository(session).email_ids(account_id)

    new_stubs = [s for s in stubs if s["id"] not in known]
    summary = SyncSummary(synced_count=0, total_unread=len(stubs))
    logger.info("Sync %s: %d unread, %d new", account_id, len(stubs), len(new_stubs))

    for index, stub in enumerate(new_stubs, start=1):
        try:
            msg = client.get_message(stub["id"], fmt="metadata", metadata_headers=METADATA_HEADERS)
            email, raw_headers = build_email(account_id, stub, msg)
            with database.session() as session:
                Repository(session).add_email(email, raw_headers=raw_headers)
            summary.synced_count += 1
        except Exception as exc:
            summary.errors += 1
            logger.warning("Failed to sync message %s: %s: %s", stub["id"], type(exc).__name__, exc)
            report(
                "error",
                f"{type(exc).__name__}: {exc}",
                error={"message_id": stub["id"], "error": f"{type(exc).__name__}: {exc}"},
            )
            # Credential problems affect every remaining message; let the caller handle them.
            if is_reauth_error(exc):
                raise
        finally:
            report("sync", f"Synced {index}/{len(new_stubs)}", metrics={"synced": summary.synced_count})

    return summary