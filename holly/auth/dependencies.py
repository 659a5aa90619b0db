"""
Holly Transportation - Authorization Gate

FastAPI dependencies for authentication and authorization.
Every request resolves to an AuthContext through the IdentityResolver
chosen at startup; routes then demand what they need.

Usage:
    @router.get("/protected")
    async def protected_route(auth: AuthContext = Depends(require_authenticated)):
        ...

    @router.delete("/admin-only")
    async def admin_route(auth: AuthContext = Depends(require_admin)):
        ...

Security:
- The trust mode is fixed per process; it is read from app state, never
  from the request
- Anonymous requests fail require_authenticated with 401
- Authenticated non-admins fail require_admin with 403
- Expired and absent credentials look the same to the caller
"""

from dataclasses import dataclass
from typing import Generator, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlmodel import Session as DBSession

from holly.auth.models import User
from holly.auth.resolvers import IdentityResolver, RequestCredentials
from holly.config import TrustMode
from holly.errors import Forbidden, Unauthorized


# HTTP Bearer scheme for token extraction
security = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class AuthContext:
    """
    Outcome of identity resolution for one request.

    user is set when Authenticated and None when Anonymous.
    """
    trust_mode: TrustMode
    user: Optional[User] = None
    session_id: Optional[str] = None

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None

    @property
    def is_admin(self) -> bool:
        return self.user is not None and bool(self.user.is_admin)

    @property
    def user_id(self) -> Optional[str]:
        return self.user.id if self.user is not None else None


def ensure_authenticated(ctx: AuthContext) -> User:
    """Return the authenticated user or raise Unauthorized."""
    if ctx.user is None:
        raise Unauthorized("Anonymous request to a protected operation")
    return ctx.user


def ensure_admin(ctx: AuthContext) -> User:
    """Return the authenticated admin or raise Unauthorized/Forbidden."""
    user = ensure_authenticated(ctx)
    if not user.is_admin:
        raise Forbidden(f"User {user.id} is not an admin")
    return user


def get_db(request: Request) -> Generator[DBSession, None, None]:
    """Database session from app state, closed after the request."""
    db = request.app.state.db_session_factory()
    try:
        yield db
    finally:
        db.close()


def get_client_ip(request: Request) -> str:
    """
    Extract client IP from request.

    X-Forwarded-For is honoured only behind TRUSTED_PROXY_COUNT proxies;
    each proxy appends one hop, so the client is that many entries from
    the right. Entries further left are client-supplied.
    """
    proxy_count = request.app.state.settings.TRUSTED_PROXY_COUNT
    forwarded = request.headers.get("X-Forwarded-For")
    if proxy_count > 0 and forwarded:
        hops = [h.strip() for h in forwarded.split(",") if h.strip()]
        if hops:
            return hops[-min(proxy_count, len(hops))]
    return request.client.host if request.client else "unknown"


def get_user_agent(request: Request) -> str:
    """Extract user agent from request."""
    return request.headers.get("User-Agent", "unknown")[:512]


async def get_auth_context(
    request: Request,
    db: DBSession = Depends(get_db),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> AuthContext:
    """
    Resolve the caller's identity. Never fails; may be anonymous.

    Extracts the session cookie and the bearer token, then hands both to
    the process-wide resolver, which looks only at the credential of its
    own trust mode.
    """
    resolver: IdentityResolver = request.app.state.identity_resolver
    cookie_name = request.app.state.settings.SESSION_COOKIE_NAME

    raw = RequestCredentials(
        session_id=request.cookies.get(cookie_name),
        bearer_token=credentials.credentials if credentials else None,
    )
    user = await resolver.resolve(db, raw)

    return AuthContext(
        trust_mode=resolver.trust_mode,
        user=user,
        session_id=raw.session_id if user is not None and resolver.trust_mode == TrustMode.LOCAL else None,
    )


async def require_authenticated(ctx: AuthContext = Depends(get_auth_context)) -> AuthContext:
    """Dependency: 401 unless the request carries a valid identity."""
    ensure_authenticated(ctx)
    return ctx


async def require_admin(ctx: AuthContext = Depends(require_authenticated)) -> AuthContext:
    """Dependency: 401 when anonymous, 403 when not an admin."""
    ensure_admin(ctx)
    return ctx
