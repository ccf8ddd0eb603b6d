from __future__ import annotations

REAUTH_REQUIRED_CODE = "reauth_required"


class MailNickError(Exception):
    """Base class for errors the route layer turns into responses."""


class NotFoundError(MailNickError):
    """Email or action entry does not exist under the given account."""


class AlreadyUndoneError(MailNickError):
    def __init__(self, action_id: str):
        super().__init__(f"Action already undone: {action_id}")
        self.action_id = action_id


class ExpiredError(MailNickError):
    def __init__(self, action_id: str):
        super().__init__(f"Action expired: {action_id}")
        self.action_id = action_id


class ReauthRequiredError(MailNickError):
    """Stored credentials were rejected; the user must authorize again."""

    code = REAUTH_REQUIRED_CODE

    def __init__(self, message: str = "Re-authentication required"):
        super().__init__(message)


class ActionFailedError(MailNickError):
    def __init__(self, kind: str, cause: BaseException | None = None):
        super().__init__(f"Failed to perform action: {kind}")
        self.kind = kind
        self.cause = cause


class UndoFailedError(MailNickError):
    def __init__(self, action_id: str, cause: BaseException | None = None):
        super().__init__(f"Failed to undo action: {action_id}")
        self.action_id = action_id
        self.cause = cause
