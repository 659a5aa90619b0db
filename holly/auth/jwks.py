"""
Holly Transportation - Identity Provider Key Material

Signing keys used to verify external bearer tokens.

JWKSKeyCache fetches the provider's published JSON Web Key Set, keeps it
for a TTL, refetches once when a token names an unknown key id (rotation),
and backs off after failed fetches. Refetches forced by unknown key ids
happen at most once per min_refresh_seconds; other unknown kids fail with
key_not_found until then. Any failure to obtain a key surfaces as
InvalidToken so verification fails closed; the fetch timeout bounds how long
a request can wait.
"""

import asyncio
import json
import time
from typing import Any, Dict, Optional, Protocol

import httpx

from holly.errors import InvalidToken
from holly.logging_utils import get_logger


logger = get_logger(__name__)


class KeyProvider(Protocol):
    async def get_key(self, kid: Optional[str]) -> Dict[str, Any]: ...


def _select_key(jwks: Dict[str, Any], kid: Optional[str]) -> Optional[Dict[str, Any]]:
    keys = jwks.get("keys") or []
    if kid is None:
        # Only an unambiguous single-key set may be used without a kid
        return keys[0] if len(keys) == 1 else None
    for key in keys:
        if key.get("kid") == kid:
            return key
    return None


class StaticKeySet:
    """Keys supplied up front (inline configuration, tests)."""

    def __init__(self, jwks: Dict[str, Any]):
        if "keys" not in jwks:
            raise ValueError("JWKS document must contain a 'keys' list")
        self._jwks = jwks

    @classmethod
    def from_json(cls, raw: str) -> "StaticKeySet":
        return cls(json.loads(raw))

    async def get_key(self, kid: Optional[str]) -> Dict[str, Any]:
        key = _select_key(self._jwks, kid)
        if key is None:
            raise InvalidToken("Signing key not found", "key_not_found")
        return key


class JWKSKeyCache:
    """JWKS client with caching and failure backoff."""

    def __init__(
        self,
        jwks_url: str,
        ttl_seconds: int = 3600,
        failure_backoff_seconds: int = 30,
        timeout_seconds: float = 5.0,
        min_refresh_seconds: int = 60,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.jwks_url = jwks_url
        self.ttl_seconds = ttl_seconds
        self.failure_backoff_seconds = failure_backoff_seconds
        self.timeout_seconds = timeout_seconds
        self.min_refresh_seconds = min_refresh_seconds
        self._transport = transport
        self._jwks: Optional[Dict[str, Any]] = None
        self._fetched_at: Optional[float] = None
        self._failed_at: Optional[float] = None
        self._forced_at: Optional[float] = None
        self._lock = asyncio.Lock()

    async def get_key(self, kid: Optional[str]) -> Dict[str, Any]:
        """Get the signing key for a kid, refreshing the set if needed."""
        async with self._lock:
            if self._is_stale():
                await self._refresh()

            key = _select_key(self._jwks or {}, kid)
            if key is None and kid is not None and self._can_force():
                # Unknown kid: the provider may have rotated its keys
                self._forced_at = time.monotonic()
                await self._refresh()
                key = _select_key(self._jwks or {}, kid)

        if self._jwks is None:
            raise InvalidToken("Signing keys unavailable", "jwks_unavailable")
        if key is None:
            raise InvalidToken("Signing key not found", "key_not_found")
        return key

    def _is_stale(self) -> bool:
        if self._jwks is None or self._fetched_at is None:
            return self._can_retry()
        return time.monotonic() - self._fetched_at >= self.ttl_seconds and self._can_retry()

    def _can_retry(self) -> bool:
        if self._failed_at is None:
            return True
        return time.monotonic() - self._failed_at >= self.failure_backoff_seconds

    def _can_force(self) -> bool:
        if not self._can_retry():
            return False
        if self._forced_at is None:
            return True
        return time.monotonic() - self._forced_at >= self.min_refresh_seconds

    async def _refresh(self) -> None:
        try:
            async with httpx.AsyncClient(
                transport=self._transport,
                timeout=self.timeout_seconds,
            ) as client:
                resp = await client.get(self.jwks_url)
                resp.raise_for_status()
                data = resp.json()
            if not isinstance(data, dict) or not isinstance(data.get("keys"), list):
                raise ValueError("response is not a JWKS document")
        except (httpx.HTTPError, ValueError) as e:
            self._failed_at = time.monotonic()
            # Keep serving the previous key set, if any, until it is replaced
            logger.warning("JWKS fetch from %s failed: %s", self.jwks_url, e)
            return

        self._jwks = data
        self._fetched_at = time.monotonic()
        self._failed_at = None
        logger.info("JWKS refreshed from %s (%d keys)", self.jwks_url, len(data["keys"]))
