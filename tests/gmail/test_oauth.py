from __future__ import annotations

from urllib.parse import parse_qs, urlparse

from mailnick.gmail.oauth import PENDING_FLOW_TTL_SECONDS, OAuthManager


class _Clock:
    def __init__(self) -> None:
        self.now = 1_000.0

    def __call__(self) -> float:
        return self.now


def _manager(clock: _Clock) -> OAuthManager:
    return OAuthManager(
        "1234.apps.googleusercontent.com",
        "s3cret",
        "http://localhost:8000/auth/callback",
        clock=clock,
    )


def test_authorization_url_requests_offline_consent() -> None:
    manager = _manager(_Clock())

    query = parse_qs(urlparse(manager.authorization_url()).query)

    assert query["access_type"] == ["offline"]
    assert query["prompt"] == ["consent"]
    assert query["redirect_uri"] == ["http://localhost:8000/auth/callback"]
    assert manager.pending_count == 1


def test_abandoned_flows_are_dropped_after_ttl() -> None:
    clock = _Clock()
    manager = _manager(clock)
    manager.authorization_url()
    manager.authorization_url()

    clock.now += PENDING_FLOW_TTL_SECONDS - 1
    manager.authorization_url()
    assert manager.pending_count == 3

    clock.now += 2
    manager.authorization_url()

    assert manager.pending_count == 2
