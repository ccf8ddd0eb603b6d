from __future__ import annotations

from pathlib import Path

import pytest

from mailnick.actions.ledger import ActionLedger
from mailnick.storage.database import Database
from tests.helpers import FakeClock, FakeCredentialStore, FakeGmailClient


@pytest.fixture
def database(tmp_path: Path):
    db = Database(f"sqlite:///{tmp_path / 'mailnick.db'}")
    db.create_schema()
    yield db
    db.dispose()


@pytest.fixture
def gmail() -> FakeGmailClient:
    return FakeGmailClient(labels={"B": "B", "Newsletters": "Label_42"})


@pytest.fixture
def credentials() -> FakeCredentialStore:
    return FakeCredentialStore()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def ledger(database, gmail, credentials, clock) -> ActionLedger:
    return ActionLedger(database, lambda account_id: gmail, credentials, clock=clock)
