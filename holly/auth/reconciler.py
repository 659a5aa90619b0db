"""
Holly Transportation - Identity Reconciliation

Maps a verified external identity onto the local user record that is
authoritative for it.

Merge policy (local wins once edited):
- Unknown subject: create a user with id = subject, email/name/picture
  from the token, is_admin = False.
- Known subject, profile never edited by the user: refresh email, names
  and picture from the token.
- Known subject, profile edited (profile_edited_at set): the stored
  profile is returned untouched.

is_admin is always whatever the stored record says.
"""

from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session as DBSession, select

from holly.auth.models import User, utcnow
from holly.auth.tokens import VerifiedExternalIdentity
from holly.errors import ReconciliationError
from holly.logging_utils import get_logger


logger = get_logger(__name__)


def split_display_name(display_name: Optional[str]) -> tuple[Optional[str], Optional[str]]:
    """Split "First Middle Last" into ("First", "Middle Last")."""
    if not display_name:
        return None, None
    parts = display_name.split()
    if not parts:
        return None, None
    return parts[0], (" ".join(parts[1:]) or None)


def _email_taken(db: DBSession, email: str, subject: str) -> bool:
    owner = db.exec(select(User).where(User.email == email)).first()
    return owner is not None and owner.id != subject


async def reconcile(db: DBSession, identity: VerifiedExternalIdentity) -> User:
    """
    Produce the authoritative user view for a verified external identity.

    Args:
        db: Database session
        identity: Output of ExternalTokenVerifier.verify

    Returns:
        Persisted User (created on first sight of the subject)

    Raises:
        ReconciliationError: The identity cannot be mapped without
            clobbering another account
    """
    email = identity.email.lower() if identity.email else None
    first_name, last_name = split_display_name(identity.display_name)

    user = db.get(User, identity.subject)

    if user is None:
        return _create_from_identity(db, identity, email, first_name, last_name)

    if user.profile_edited_at is not None:
        return user

    changed = False
    if email and email != user.email:
        if _email_taken(db, email, user.id):
            logger.warning(
                "Not refreshing email for %s: address belongs to another account",
                user.id,
            )
        else:
            user.email = email
            changed = True
    for field, value in (
        ("first_name", first_name),
        ("last_name", last_name),
        ("profile_image_url", identity.picture_url),
    ):
        if value and getattr(user, field) != value:
            setattr(user, field, value)
            changed = True

    if changed:
        user.updated_at = utcnow()
        db.add(user)
        db.commit()
        db.refresh(user)
        logger.info("Refreshed profile of %s from identity provider", user.id)

    return user


def _create_from_identity(
    db: DBSession,
    identity: VerifiedExternalIdentity,
    email: Optional[str],
    first_name: Optional[str],
    last_name: Optional[str],
) -> User:
    if email and _email_taken(db, email, identity.subject):
        # A different account (e.g. a local one) already owns this address
        raise ReconciliationError(f"Email of subject {identity.subject} belongs to another account")

    now = utcnow()
    user = User(
        id=identity.subject,
        email=email,
        first_name=first_name,
        last_name=last_name,
        profile_image_url=identity.picture_url,
        is_admin=False,
        password_hash=None,
        created_at=now,
        updated_at=now,
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        # A concurrent request may have created the same subject first
        existing = db.get(User, identity.subject)
        if existing is not None:
            return existing
        raise ReconciliationError(f"Could not create user for subject {identity.subject}") from e

    db.refresh(user)
    logger.info("Created user %s on first external sign-in", user.id)
    return user
