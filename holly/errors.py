"""
Holly Transportation - Error Taxonomy

Every failure the identity authority can raise. Each error carries the
HTTP status it maps to and the message shown to the caller; the app's
exception handler renders them as {"detail": ...}.

User-facing messages are deliberately generic: a missing account, a wrong
password, an expired session and a forged token must not be told apart.
"""

from typing import Optional


REAUTHENTICATE = "Please re-authenticate"


class AuthorityError(Exception):
    """Base class for identity and authorization failures."""

    status_code: int = 500
    detail: str = "Internal server error"

    def __init__(self, message: Optional[str] = None, detail: Optional[str] = None):
        super().__init__(message or self.detail)
        if detail is not None:
            self.detail = detail


class InvalidCredentialFormat(AuthorityError):
    """A stored password hash cannot be parsed. Indicates data corruption."""
    status_code = 500
    detail = "Authentication failed"


class InvalidCredentials(AuthorityError):
    """Wrong username or password (same response either way)."""
    status_code = 401
    detail = "Invalid credentials"


class InvalidToken(AuthorityError):
    """External bearer token is malformed, expired, or badly signed."""
    status_code = 401
    detail = REAUTHENTICATE

    def __init__(self, message: str, code: str = "invalid_token"):
        super().__init__(message)
        self.code = code


class Unauthorized(AuthorityError):
    """No valid identity on the request."""
    status_code = 401
    detail = REAUTHENTICATE


class Forbidden(AuthorityError):
    """Valid identity without the required privilege."""
    status_code = 403
    detail = "Admin access required"


class AccountConflict(AuthorityError):
    """Username or email already belongs to another account."""
    status_code = 409
    detail = "Account already exists"


class ReconciliationError(AuthorityError):
    """A verified external identity cannot be mapped onto a local record."""
    status_code = 401
    detail = REAUTHENTICATE


class AuditWriteFailure(Exception):
    """An audit record could not be persisted."""

    def __init__(self, action: str, cause: Exception):
        super().__init__(f"Audit write failed for {action}: {cause}")
        self.action = action
        self.cause = cause
