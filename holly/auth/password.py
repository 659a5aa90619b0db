"""
Holly Transportation - Credential Vault

Password hashing using scrypt, a memory- and CPU-hard key derivation
function. Cost parameters are fixed and recorded in every stored hash.

Stored form:
    scrypt$<n>$<r>$<p>$<salt hex>$<key hex>

Security:
- Never log or expose plaintext passwords
- 16 random salt bytes per credential
- 64-byte derived key, compared in constant time
- Hashes written by the previous Node.js service ("<key hex>.<salt hex>")
  still verify and are upgraded on the next successful login
"""

import secrets

from cryptography.hazmat.primitives import constant_time
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from holly.errors import InvalidCredentialFormat


# scrypt cost: N=2^14 (16 MiB with r=8), r=8, p=1
SCRYPT_N = 2 ** 14
SCRYPT_R = 8
SCRYPT_P = 1
KEY_LENGTH = 64
SALT_BYTES = 16

SCHEME = "scrypt"


def _derive(password: str, salt: bytes, n: int, r: int, p: int) -> bytes:
    kdf = Scrypt(salt=salt, length=KEY_LENGTH, n=n, r=r, p=p)
    return kdf.derive(password.encode("utf-8"))


def hash_password(password: str) -> str:
    """
    Hash a password with a fresh random salt.

    Args:
        password: Plaintext password

    Returns:
        Stored form string (includes salt and cost parameters)

    Example:
        >>> hashed = hash_password("pw123456")
        >>> hashed.startswith("scrypt$16384$8$1$")
        True
    """
    salt = secrets.token_bytes(SALT_BYTES)
    key = _derive(password, salt, SCRYPT_N, SCRYPT_R, SCRYPT_P)
    return f"{SCHEME}${SCRYPT_N}${SCRYPT_R}${SCRYPT_P}${salt.hex()}${key.hex()}"


def _parse(stored: str) -> tuple[bytes, bytes, int, int, int]:
    """Split a stored hash into (salt, key, n, r, p)."""
    if not stored or not isinstance(stored, str):
        raise InvalidCredentialFormat("Stored credential is empty")

    try:
        if stored.startswith(SCHEME + "$"):
            _, n, r, p, salt_hex, key_hex = stored.split("$")
            salt = bytes.fromhex(salt_hex)
            key = bytes.fromhex(key_hex)
            n, r, p = int(n), int(r), int(p)
        else:
            # Legacy "<key hex>.<salt hex>"; the salt text itself was fed to scrypt
            key_hex, salt_text = stored.split(".")
            key = bytes.fromhex(key_hex)
            salt = salt_text.encode("ascii")
            bytes.fromhex(salt_text)
            n, r, p = SCRYPT_N, SCRYPT_R, SCRYPT_P
    except (ValueError, UnicodeEncodeError) as e:
        raise InvalidCredentialFormat(f"Unparseable stored credential: {e}") from e

    if len(key) != KEY_LENGTH or len(salt) < SALT_BYTES:
        raise InvalidCredentialFormat("Stored credential has wrong salt or key length")
    if n < 2 or n & (n - 1) or r < 1 or p < 1:
        raise InvalidCredentialFormat("Stored credential has invalid cost parameters")

    return salt, key, n, r, p


def verify_password(plain_password: str, stored: str) -> bool:
    """
    Verify a password against a stored hash.

    Uses constant-time comparison to prevent timing attacks.

    Args:
        plain_password: Plaintext password to verify
        stored: Stored form produced by hash_password

    Returns:
        True if password matches, False otherwise

    Raises:
        InvalidCredentialFormat: If the stored form cannot be parsed

    Example:
        >>> hashed = hash_password("pw123456")
        >>> verify_password("pw123456", hashed)
        True
        >>> verify_password("wrongpw", hashed)
        False
    """
    salt, key, n, r, p = _parse(stored)
    candidate = _derive(plain_password, salt, n, r, p)
    return constant_time.bytes_eq(candidate, key)


def needs_rehash(stored: str) -> bool:
    """
    Check if a stored hash should be regenerated.

    True for legacy-format hashes and for hashes made with cost
    parameters other than the current ones.
    """
    if not stored or not stored.startswith(SCHEME + "$"):
        return True
    try:
        _, n, r, p, _, _ = stored.split("$")
        return (int(n), int(r), int(p)) != (SCRYPT_N, SCRYPT_R, SCRYPT_P)
    except ValueError:
        return True
