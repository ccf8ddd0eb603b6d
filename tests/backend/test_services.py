from __future__ import annotations

from datetime import timedelta
from pathlib import Path

import pytest

from backend.app.services import build_services
from mailnick.config.settings import Settings
from mailnick.models import ActionKind
from mailnick.storage.database import reset_database
from mailnick.storage.repository import Repository
from tests.helpers import ACCOUNT, make_email, store_email


@pytest.fixture
def services(tmp_path: Path):
    settings = Settings(
        data_dir=tmp_path,
        database_path=tmp_path / "emails.db",
        google_client_id="1234.apps.googleusercontent.com",
        google_client_secret="s3cret",
        google_redirect_uri="http://localhost:8000/auth/callback",
        action_expiry_hours=1,
        action_retention_days=5,
    )
    yield build_services(settings)
    reset_database()


def test_ledger_uses_configured_undo_window_and_retention(services) -> None:
    store_email(services.database, make_email("m1"))

    result = services.ledger.perform(ACCOUNT, "m1", ActionKind.MARK_READ, lambda email: None)
    with services.database.session() as session:
        entry = Repository(session).get_action(ACCOUNT, result.action_id)

    assert entry.expires_at - entry.created_at == timedelta(hours=1)
    assert services.ledger.purge_expired(now=entry.created_at + timedelta(days=4)) == 0
    assert services.ledger.purge_expired(now=entry.created_at + timedelta(days=5, minutes=1)) == 1
