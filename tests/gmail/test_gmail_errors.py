from __future__ import annotations

from google.auth.exceptions import RefreshError

from mailnick.errors import ReauthRequiredError
from mailnick.gmail.errors import is_reauth_error
from tests.helpers import http_error


def test_http_401_is_reauth() -> None:
    assert is_reauth_error(http_error(401, "Request had invalid authentication credentials."))


def test_http_403_depends_on_message() -> None:
    assert is_reauth_error(http_error(403, "Invalid Credentials"))
    assert not is_reauth_error(http_error(403, "Insufficient Permission"))


def test_server_errors_are_not_reauth() -> None:
    assert not is_reauth_error(http_error(500, "Backend Error"))
    assert not is_reauth_error(http_error(429, "Rate Limit Exceeded"))


def test_refresh_error_with_invalid_grant_body() -> None:
    exc = RefreshError(
        "invalid_grant: Token has been expired or revoked.",
        {"error": "invalid_grant", "error_description": "Token has been expired or revoked."},
    )

    assert is_reauth_error(exc)


def test_refresh_error_message_only() -> None:
    assert is_reauth_error(RefreshError("invalid_token: bad token"))


def test_tagged_and_plain_errors() -> None:
    assert is_reauth_error(ReauthRequiredError())
    assert is_reauth_error(RuntimeError("Please authenticate again"))
    assert not is_reauth_error(ValueError("boom"))
