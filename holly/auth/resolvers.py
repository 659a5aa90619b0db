"""
Holly Transportation - Identity Resolvers

One IdentityResolver is built at startup for the configured trust mode and
used for every request. Each resolver reads only its own credential:

- LocalSessionResolver: the session cookie; bearer headers are ignored
- ExternalTokenResolver: the bearer token; session cookies are ignored

Resolution never raises for bad credentials. Anything that does not yield
a verified user resolves to None (anonymous).
"""

from dataclasses import dataclass
from typing import Optional, Protocol

from sqlmodel import Session as DBSession

from holly.auth import sessions
from holly.auth.jwks import JWKSKeyCache, KeyProvider, StaticKeySet
from holly.auth.models import User
from holly.auth.reconciler import reconcile
from holly.auth.tokens import ExternalTokenVerifier
from holly.config import Settings, TrustMode
from holly.errors import InvalidToken, ReconciliationError
from holly.logging_utils import get_logger


logger = get_logger(__name__)


@dataclass(frozen=True)
class RequestCredentials:
    """Raw credentials extracted from one HTTP request."""
    session_id: Optional[str] = None
    bearer_token: Optional[str] = None


class IdentityResolver(Protocol):
    trust_mode: TrustMode

    async def resolve(self, db: DBSession, credentials: RequestCredentials) -> Optional[User]: ...


class LocalSessionResolver:
    """Resolves identity from a server-side session."""

    trust_mode = TrustMode.LOCAL

    async def resolve(self, db: DBSession, credentials: RequestCredentials) -> Optional[User]:
        return await sessions.resolve_session(db, credentials.session_id)


class ExternalTokenResolver:
    """Resolves identity from an identity-provider bearer token."""

    trust_mode = TrustMode.EXTERNAL

    def __init__(self, verifier: ExternalTokenVerifier):
        self.verifier = verifier

    async def resolve(self, db: DBSession, credentials: RequestCredentials) -> Optional[User]:
        if not credentials.bearer_token:
            return None
        try:
            identity = await self.verifier.verify(credentials.bearer_token)
        except InvalidToken as e:
            logger.info("Rejected bearer token (%s)", e.code)
            return None
        try:
            return await reconcile(db, identity)
        except ReconciliationError as e:
            logger.warning("Reconciliation failed: %s", e)
            return None


def build_key_provider(settings: Settings) -> KeyProvider:
    if settings.EXTERNAL_JWKS_JSON:
        return StaticKeySet.from_json(settings.EXTERNAL_JWKS_JSON)
    return JWKSKeyCache(
        settings.EXTERNAL_JWKS_URL,
        ttl_seconds=settings.EXTERNAL_JWKS_TTL_SECONDS,
        failure_backoff_seconds=settings.EXTERNAL_JWKS_FAILURE_BACKOFF_SECONDS,
        timeout_seconds=settings.EXTERNAL_JWKS_TIMEOUT_SECONDS,
        min_refresh_seconds=settings.EXTERNAL_JWKS_MIN_REFRESH_SECONDS,
    )


def build_identity_resolver(
    settings: Settings,
    key_provider: Optional[KeyProvider] = None,
) -> IdentityResolver:
    """
    Build the process-wide resolver for the configured trust mode.

    Raises:
        ValueError: External mode without a project id or issuer
    """
    if settings.AUTH_TRUST_MODE == TrustMode.LOCAL:
        logger.info("Trust mode: local sessions")
        return LocalSessionResolver()

    if not settings.EXTERNAL_PROJECT_ID and not settings.EXTERNAL_ISSUER:
        raise ValueError("AUTH_TRUST_MODE=external requires EXTERNAL_PROJECT_ID or EXTERNAL_ISSUER")

    verifier = ExternalTokenVerifier(
        issuer=settings.external_issuer,
        audience=settings.external_audience,
        key_provider=key_provider or build_key_provider(settings),
        algorithms=settings.EXTERNAL_TOKEN_ALGORITHMS,
        leeway_seconds=settings.EXTERNAL_CLOCK_SKEW_SECONDS,
    )
    logger.info("Trust mode: external tokens from %s", verifier.issuer)
    return ExternalTokenResolver(verifier)
