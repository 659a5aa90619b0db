"""
Holly Transportation - Account Operations

Registration and login for local trust mode, profile edits for both
modes, and the single trusted path that changes a user's admin flag.

Security:
- Login failures are indistinguishable: unknown username, account
  without a password, and wrong password all raise InvalidCredentials
  after the same amount of scrypt work
- Outdated password hashes are upgraded on successful login
"""

from typing import Any, Dict, Optional

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session as DBSession, select

from holly.auth.models import User, new_local_user_id, utcnow
from holly.auth.password import hash_password, verify_password, needs_rehash
from holly.errors import AccountConflict, InvalidCredentials
from holly.logging_utils import get_logger


logger = get_logger(__name__)

PROFILE_FIELDS = ("first_name", "last_name", "email", "phone", "notes")

_dummy_hash: Optional[str] = None


def _timing_dummy_hash() -> str:
    global _dummy_hash
    if _dummy_hash is None:
        _dummy_hash = hash_password("holly-timing-equalizer")
    return _dummy_hash


def get_user_by_username(db: DBSession, username: str) -> Optional[User]:
    return db.exec(select(User).where(User.username == username)).first()


def get_user_by_email(db: DBSession, email: str) -> Optional[User]:
    return db.exec(select(User).where(User.email == email.lower())).first()


async def register_local_user(
    db: DBSession,
    username: str,
    email: str,
    password: str,
    first_name: Optional[str] = None,
    last_name: Optional[str] = None,
    phone: Optional[str] = None,
    is_admin: bool = False,
) -> User:
    """
    Create a local account.

    is_admin is only ever True when called from bootstrap; the
    registration route always leaves it False.

    Raises:
        AccountConflict: Username or email already registered
    """
    if get_user_by_username(db, username):
        raise AccountConflict(f"Username {username} taken", detail="Username already exists")
    if get_user_by_email(db, email):
        raise AccountConflict("Email taken", detail="Email already exists")

    now = utcnow()
    user = User(
        id=new_local_user_id(),
        username=username,
        email=email.lower(),
        password_hash=hash_password(password),
        first_name=first_name,
        last_name=last_name,
        phone=phone,
        is_admin=is_admin,
        created_at=now,
        updated_at=now,
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise AccountConflict("Concurrent registration", detail="Account already exists") from e

    db.refresh(user)
    logger.info("Registered local user %s", user.id)
    return user


async def authenticate_local(db: DBSession, username: str, password: str) -> User:
    """
    Check a username/password pair.

    Returns:
        The matching User

    Raises:
        InvalidCredentials: For any mismatch, without saying which
        InvalidCredentialFormat: The stored hash is corrupt
    """
    user = get_user_by_username(db, username)

    if user is None or not user.password_hash:
        # Burn the same scrypt work so response time does not leak existence
        verify_password(password, _timing_dummy_hash())
        raise InvalidCredentials(f"Login failed for {username!r}")

    if not verify_password(password, user.password_hash):
        raise InvalidCredentials(f"Login failed for {username!r}")

    if needs_rehash(user.password_hash):
        user.password_hash = hash_password(password)
        user.updated_at = utcnow()
        db.add(user)
        db.commit()
        db.refresh(user)
        logger.info("Upgraded password hash for %s", user.id)

    return user


async def update_profile(
    db: DBSession,
    user: User,
    changes: Dict[str, Any],
) -> tuple[User, list[str], Dict[str, Any], Dict[str, Any]]:
    """
    Apply a user's own profile edit.

    Marks the profile as explicitly edited, which stops the reconciler
    from overwriting it with identity-provider data.

    Returns:
        (user, changed field names, old values, new values)

    Raises:
        AccountConflict: New email belongs to another account
    """
    changed: list[str] = []
    old_values: Dict[str, Any] = {}
    new_values: Dict[str, Any] = {}

    if changes.get("email"):
        owner = get_user_by_email(db, changes["email"])
        if owner is not None and owner.id != user.id:
            raise AccountConflict("Email taken", detail="Email already exists")

    for field in PROFILE_FIELDS:
        if field not in changes:
            continue
        value = changes[field]
        if field == "email" and value:
            value = value.lower()
        if getattr(user, field) != value:
            changed.append(field)
            old_values[field] = getattr(user, field)
            new_values[field] = value
            setattr(user, field, value)

    if not changed:
        return user, changed, old_values, new_values

    now = utcnow()
    user.profile_edited_at = now
    user.updated_at = now
    db.add(user)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise AccountConflict("Email taken", detail="Email already exists") from e
    db.refresh(user)
    return user, changed, old_values, new_values


async def set_admin_status(db: DBSession, user_id: str, is_admin: bool) -> Optional[User]:
    """
    Grant or revoke admin privilege.

    This is the only code path, besides bootstrap, that writes is_admin.

    Returns:
        Updated User, or None if no such user
    """
    user = db.get(User, user_id)
    if user is None:
        return None
    if user.is_admin != is_admin:
        user.is_admin = is_admin
        user.updated_at = utcnow()
        db.add(user)
        db.commit()
        db.refresh(user)
        logger.info("Admin flag of %s set to %s", user.id, is_admin)
    return user
