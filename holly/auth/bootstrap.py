"""
Holly Transportation - Administrator Bootstrap

Seeds administrator identities on first run so a fresh deployment has
someone who can reach the admin surface.

Seed entries come from SEED_ADMINS (JSON list in the environment) and
SEED_ADMINS_FILE (YAML list). Each entry is a mapping:

    # local trust mode
    - username: admin
      password: admin123
      email: admin@example.com

    # external trust mode
    - subject: hV3kQ9...           # identity-provider subject id
      email: ops@example.com

Security:
- External admins are identified by subject, never by email: an email
  claim alone can be asserted by any provider account
- A local account that already holds a seed username is promoted only
  when it also holds the seed password; anyone can register a username
  before the operator seeds it
- Entries that collide with another account are logged and skipped
- Seeding is idempotent; existing accounts are promoted, never recreated
"""

from pathlib import Path
from typing import Any, Dict, List

import yaml
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session as DBSession

from holly.auth.accounts import get_user_by_email, get_user_by_username, register_local_user, set_admin_status
from holly.auth.models import User, utcnow
from holly.auth.password import verify_password
from holly.config import Settings, TrustMode
from holly.errors import AccountConflict, InvalidCredentialFormat
from holly.logging_utils import get_logger


logger = get_logger(__name__)


def load_seed_entries(settings: Settings) -> List[Dict[str, Any]]:
    """
    Collect seed entries from settings and the optional YAML file.

    Raises:
        ValueError: The YAML file is not a list of mappings
    """
    entries: List[Dict[str, Any]] = list(settings.SEED_ADMINS or [])

    if settings.SEED_ADMINS_FILE:
        path = Path(settings.SEED_ADMINS_FILE)
        if not path.exists():
            logger.warning("Seed admins file %s not found", path)
        else:
            with open(path, "r", encoding="utf-8") as f:
                loaded = yaml.safe_load(f) or []
            if not isinstance(loaded, list) or not all(isinstance(e, dict) for e in loaded):
                raise ValueError(f"{path} must contain a list of mappings")
            entries.extend(loaded)

    return entries


def _holds_password(user: User, password: str) -> bool:
    if not user.password_hash:
        return False
    try:
        return verify_password(password, user.password_hash)
    except InvalidCredentialFormat:
        return False


async def _seed_local(db: DBSession, entry: Dict[str, Any]) -> bool:
    username = entry.get("username")
    password = entry.get("password")
    if not username or not password:
        logger.warning("Skipping local seed entry without username/password")
        return False

    existing = get_user_by_username(db, username)
    if existing is not None:
        if existing.is_admin:
            return False
        if not _holds_password(existing, str(password)):
            logger.warning(
                "Not promoting existing user %s: seed password does not match account %s",
                username, existing.id,
            )
            return False
        await set_admin_status(db, existing.id, True)
        logger.info("Promoted existing user %s to admin", existing.id)
        return True

    email = entry.get("email") or f"{username}@localhost"
    try:
        user = await register_local_user(
            db,
            username=username,
            email=email,
            password=str(password),
            first_name=entry.get("first_name"),
            last_name=entry.get("last_name"),
            is_admin=True,
        )
    except AccountConflict as e:
        logger.warning("Skipping local seed entry %s: %s", username, e.detail)
        return False
    logger.info("Seeded local admin %s (%s)", username, user.id)
    return True


async def _seed_external(db: DBSession, entry: Dict[str, Any]) -> bool:
    subject = entry.get("subject")
    if not subject:
        logger.warning("Skipping external seed entry without subject")
        return False

    existing = db.get(User, subject)
    if existing is not None:
        if existing.is_admin:
            return False
        await set_admin_status(db, subject, True)
        logger.info("Promoted external subject %s to admin", subject)
        return True

    now = utcnow()
    email = entry.get("email")
    if email and get_user_by_email(db, email) is not None:
        logger.warning("Seed subject %s: email already in use, provisioning without it", subject)
        email = None
    user = User(
        id=subject,
        email=email.lower() if email else None,
        first_name=entry.get("first_name"),
        last_name=entry.get("last_name"),
        is_admin=True,
        created_at=now,
        updated_at=now,
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        logger.warning("Skipping external seed entry %s: %s", subject, e.orig)
        return False
    logger.info("Pre-provisioned external admin %s", subject)
    return True


async def seed_administrators(db: DBSession, settings: Settings) -> int:
    """
    Ensure every configured administrator exists with is_admin set.

    Args:
        db: Database session
        settings: Settings holding the trust mode and seed entries

    Returns:
        Number of accounts created or promoted by this call
    """
    entries = load_seed_entries(settings)
    if not entries:
        return 0

    seed = _seed_local if settings.AUTH_TRUST_MODE == TrustMode.LOCAL else _seed_external

    changed = 0
    for entry in entries:
        if await seed(db, entry):
            changed += 1
    return changed
