#!/usr/bin/env python3
"""Delete ledger entries past the retention period (cron-friendly)."""
import argparse
import logging
from datetime import timedelta

from mailnick.actions.ledger import ActionLedger
from mailnick.config.settings import load_settings
from mailnick.storage.credentials import CredentialStore
from mailnick.storage.database import init_database


def _no_client(account_id: str):
    raise RuntimeError("purge does not talk to Gmail")


def main() -> None:
    settings = load_settings()
    parser = argparse.ArgumentParser(description="Purge old MailNick action history")
    parser.add_argument(
        "--retention-days",
        type=int,
        default=settings.action_retention_days,
        help="Delete entries created more than this many days ago",
    )
    parser.add_argument("--verbose", action="store_true", help="Log at INFO level")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING)

    database = init_database(settings.database_url)
    ledger = ActionLedger(
        database,
        _no_client,
        CredentialStore(database),
        retention=timedelta(days=args.retention_days),
    )
    deleted = ledger.purge_expired()
    print(f"Purged {deleted} action entries older than {args.retention_days} day(s).")


if __name__ == "__main__":
    main()
