"""
Holly Transportation - Authentication Package

Identity resolution under two trust modes:
- Local: scrypt password hashes + server-side sessions
- External: identity-provider RS256 tokens verified against JWKS
Admin privilege always comes from the stored user record.
"""

from holly.auth.models import User, Session
from holly.auth.dependencies import AuthContext, get_auth_context, require_authenticated, require_admin

__all__ = [
    "User",
    "Session",
    "AuthContext",
    "get_auth_context",
    "require_authenticated",
    "require_admin",
]
