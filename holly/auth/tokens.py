"""
Holly Transportation - External Token Verification

Validates identity-provider ID tokens (Firebase-style RS256 JWTs) and
extracts the canonical subject identity.

Checks:
- Signature against the provider's published keys (see holly.auth.jwks)
- Algorithm allowlist (alg=none and HMAC confusion are rejected)
- Issuer and audience match the configured project
- exp / iat with a small clock-skew allowance
- Non-empty subject of at most 128 characters

Security:
- Only subject, email, display name and picture leave this module.
  Any admin/role claims in the token are ignored; privilege is decided
  from the local user record by the reconciler.
"""

from datetime import datetime, timezone
from typing import Optional, Sequence

from jose import jwt, JWTError, ExpiredSignatureError
from jose.exceptions import JOSEError, JWTClaimsError
from pydantic import BaseModel, Field

from holly.auth.jwks import KeyProvider
from holly.errors import InvalidToken
from holly.logging_utils import get_logger


logger = get_logger(__name__)

MAX_SUBJECT_LENGTH = 128
MAX_TOKEN_LENGTH = 16 * 1024


class VerifiedExternalIdentity(BaseModel):
    """
    Identity asserted by a verified external token.

    Transient: re-derived on every request and never stored.

    Attributes:
        subject: Provider-issued stable user id (sub)
        email: Asserted email, if any
        display_name: Asserted full name, if any
        picture_url: Asserted profile image, if any
        issued_at: Token issue time (UTC)
        expires_at: Token expiry time (UTC)
    """
    subject: str = Field(..., description="Provider subject identifier")
    email: Optional[str] = None
    display_name: Optional[str] = None
    picture_url: Optional[str] = None
    issued_at: datetime
    expires_at: datetime

    class Config:
        frozen = True


class ExternalTokenVerifier:
    """
    Verifies bearer tokens issued by one identity-provider project.

    Usage:
        verifier = ExternalTokenVerifier(issuer, audience, JWKSKeyCache(url))
        identity = await verifier.verify(token)
    """

    def __init__(
        self,
        issuer: str,
        audience: str,
        key_provider: KeyProvider,
        algorithms: Sequence[str] = ("RS256",),
        leeway_seconds: int = 30,
    ):
        if not issuer or not audience:
            raise ValueError("External token verification requires an issuer and an audience")
        self.issuer = issuer.rstrip("/")
        self.audience = audience
        self.key_provider = key_provider
        self.algorithms = [a for a in algorithms if not a.upper().startswith(("HS", "NONE"))]
        if not self.algorithms:
            raise ValueError("No asymmetric signing algorithm allowed")
        self.leeway_seconds = leeway_seconds

    async def verify(self, token: Optional[str]) -> VerifiedExternalIdentity:
        """
        Verify a bearer token and return the asserted identity.

        Raises:
            InvalidToken: malformed, expired, wrongly signed, wrong issuer
                or audience, or signing keys unavailable
        """
        if not token or not isinstance(token, str) or len(token) > MAX_TOKEN_LENGTH:
            raise InvalidToken("Missing or oversized token", "malformed")
        token = token.strip()

        try:
            header = jwt.get_unverified_header(token)
        except JWTError as e:
            raise InvalidToken(f"Malformed token: {e}", "malformed") from e

        alg = header.get("alg")
        if alg not in self.algorithms:
            raise InvalidToken(f"Disallowed signing algorithm: {alg}", "bad_algorithm")

        key = await self.key_provider.get_key(header.get("kid"))

        try:
            claims = jwt.decode(
                token,
                key,
                algorithms=self.algorithms,
                audience=self.audience,
                issuer=self.issuer,
                options={
                    "leeway": self.leeway_seconds,
                    "require_exp": True,
                    "require_iat": True,
                    "require_sub": True,
                    "require_iss": True,
                    "require_aud": True,
                },
            )
        except ExpiredSignatureError as e:
            raise InvalidToken("Token expired", "token_expired") from e
        except JWTClaimsError as e:
            raise InvalidToken(f"Invalid claims: {e}", "invalid_claims") from e
        except JOSEError as e:
            # Also covers JWKError when the key type does not match alg
            raise InvalidToken(f"Invalid token: {e}", "invalid_signature") from e

        return self._identity_from_claims(claims)

    def _identity_from_claims(self, claims: dict) -> VerifiedExternalIdentity:
        subject = claims.get("sub")
        if not isinstance(subject, str) or not subject or len(subject) > MAX_SUBJECT_LENGTH:
            raise InvalidToken("Invalid subject claim", "invalid_claims")

        now = datetime.now(timezone.utc).timestamp()
        iat = claims.get("iat")
        if not isinstance(iat, (int, float)) or iat > now + self.leeway_seconds:
            raise InvalidToken("Token issued in the future", "invalid_claims")

        return VerifiedExternalIdentity(
            subject=subject,
            email=_optional_str(claims.get("email")),
            display_name=_optional_str(claims.get("name")),
            picture_url=_optional_str(claims.get("picture")),
            issued_at=datetime.fromtimestamp(iat, tz=timezone.utc),
            expires_at=datetime.fromtimestamp(claims["exp"], tz=timezone.utc),
        )


def _optional_str(value) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None
