from __future__ import annotations

import json
from typing import Any, Optional, Tuple

from google.auth.exceptions import RefreshError
from googleapiclient.errors import HttpError

from mailnick.errors import REAUTH_REQUIRED_CODE

OAUTH_REAUTH_ERRORS = ("invalid_grant", "invalid_token")


def _response(exc: BaseException) -> Tuple[Optional[int], Any]:
    """(HTTP status, decoded error body) for the Google error types we know."""
    if isinstance(exc, HttpError):
        try:
            data = json.loads(exc.content.decode("utf-8"))
        except (ValueError, UnicodeDecodeError):
            data = None
        return int(exc.resp.status), data
    if isinstance(exc, RefreshError):
        # google-auth passes the token endpoint's JSON body as the second arg.
        data = exc.args[1] if len(exc.args) > 1 and isinstance(exc.args[1], dict) else None
        return None, data
    return None, None


def is_reauth_error(exc: BaseException) -> bool:
    """
    True when the error means stored credentials are no longer usable.

    Matches our own reauth code, OAuth invalid_grant / invalid_token, messages
    asking to authenticate, HTTP 401, and HTTP 403 with an auth-flavored message.
    """
    if getattr(exc, "code", None) == REAUTH_REQUIRED_CODE:
        return True

    status, data = _response(exc)
    error = data.get("error") if isinstance(data, dict) else None

    if isinstance(error, str) and error in OAUTH_REAUTH_ERRORS:
        return True

    message = None
    if isinstance(data, dict):
        message = data.get("error_description")
        if not message and isinstance(error, dict):
            message = error.get("message")
    if not message and isinstance(exc, HttpError):
        message = exc.reason
    if not message:
        message = exc.args[0] if exc.args and isinstance(exc.args[0], str) else str(exc)

    lower = message.lower() if isinstance(message, str) else ""
    if any(code in lower for code in OAUTH_REAUTH_ERRORS):
        return True
    if "authenticate" in lower:
        return True

    if status == 401:
        return True
    if status == 403 and ("invalid" in lower or "authentication" in lower):
        return True

    return False
