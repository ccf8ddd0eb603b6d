from __future__ import annotations

from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from mailnick.errors import ReauthRequiredError
from mailnick.gmail.client import GmailClient, GmailClientConfig, GmailClientFactory
from mailnick.models import StoredToken, utcnow
from mailnick.storage.credentials import CredentialStore
from tests.helpers import ACCOUNT


def test_ensure_label_exists_matches_case_insensitively() -> None:
    service = MagicMock()
    labels = service.users.return_value.labels.return_value
    labels.list.return_value.execute.return_value = {"labels": [{"name": "Receipts", "id": "Label_7"}]}

    assert GmailClient(service).ensure_label_exists("receipts") == "Label_7"
    labels.create.assert_not_called()


def test_ensure_label_exists_creates_missing_label() -> None:
    service = MagicMock()
    labels = service.users.return_value.labels.return_value
    labels.list.return_value.execute.return_value = {"labels": []}
    labels.create.return_value.execute.return_value = {"id": "Label_9"}

    assert GmailClient(service).ensure_label_exists("Travel") == "Label_9"
    assert labels.create.call_args.kwargs["body"]["name"] == "Travel"


def test_modify_sends_only_non_empty_label_lists() -> None:
    service = MagicMock()
    messages = service.users.return_value.messages.return_value

    GmailClient(service).mark_as_read("m1")

    messages.modify.assert_called_once_with(userId="me", id="m1", body={"removeLabelIds": ["UNREAD"]})


def test_factory_requires_stored_token(database) -> None:
    factory = GmailClientFactory(GmailClientConfig("id", "secret"), CredentialStore(database))

    with pytest.raises(ReauthRequiredError):
        factory(ACCOUNT)


def test_factory_builds_client_from_valid_token(database) -> None:
    store = CredentialStore(database)
    store.save(StoredToken(ACCOUNT, "access", "refresh", utcnow() + timedelta(hours=1)))
    built = []

    def service_builder(creds):
        built.append(creds)
        return MagicMock()

    client = GmailClientFactory(GmailClientConfig("id", "secret"), store, service_builder)(ACCOUNT)

    assert isinstance(client, GmailClient)
    assert built[0].token == "access"
    assert built[0].refresh_token == "refresh"
