"""
Holly Transportation - Session Store

Server-side session management for local trust mode.
The session id travels in an HTTP-only cookie set by the route layer.

Security:
- Session ids are 256-bit random tokens (secrets.token_urlsafe)
- Logout immediately deletes the session row
- Expiry is checked on every resolution; rows past expires_at are
  ignored even before the sweep removes them
- Session rows are never updated after creation
"""

import secrets
from datetime import timedelta
from typing import Optional

from sqlalchemy import delete
from sqlmodel import Session as DBSession, select

from holly.auth.models import Session, User, utcnow
from holly.config import settings
from holly.logging_utils import get_logger


logger = get_logger(__name__)

SESSION_ID_BYTES = 32


def new_session_id() -> str:
    return secrets.token_urlsafe(SESSION_ID_BYTES)


async def create_session(
    db: DBSession,
    user_id: str,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
    ttl: Optional[timedelta] = None,
) -> Session:
    """
    Create a new server-side session.

    Args:
        db: Database session
        user_id: Owning user's identifier
        ip_address: Client IP for audit
        user_agent: Client user-agent for audit
        ttl: Override for the configured session lifetime

    Returns:
        Created Session object; its id is the cookie value
    """
    now = utcnow()
    lifetime = ttl if ttl is not None else timedelta(days=settings.SESSION_TTL_DAYS)

    session = Session(
        id=new_session_id(),
        user_id=user_id,
        created_at=now,
        expires_at=now + lifetime,
        ip_address=ip_address[:64] if ip_address else None,
        user_agent=user_agent[:512] if user_agent else None,
    )

    db.add(session)
    db.commit()
    db.refresh(session)

    logger.info("Session created for user %s (expires %s)", user_id, session.expires_at.isoformat())
    return session


async def resolve_session(db: DBSession, session_id: Optional[str]) -> Optional[User]:
    """
    Resolve a session id to its owning user.

    Returns:
        The User if the session exists, has not expired, and its owner
        still exists; None otherwise. Never raises for bad input.
    """
    if not session_id or len(session_id) > 128:
        return None

    session = db.get(Session, session_id)
    if session is None:
        return None

    if utcnow() >= session.expires_at:
        logger.debug("Session for user %s has expired", session.user_id)
        return None

    return db.get(User, session.user_id)


async def destroy_session(db: DBSession, session_id: Optional[str]) -> bool:
    """
    Delete a session (logout).

    Idempotent: destroying an absent session is not an error.

    Returns:
        True if a row was removed, False if it was already gone
    """
    if not session_id:
        return False

    result = db.exec(delete(Session).where(Session.id == session_id))
    db.commit()
    return (result.rowcount or 0) > 0


async def destroy_user_sessions(db: DBSession, user_id: str) -> int:
    """
    Delete every session belonging to a user (force logout everywhere).

    Returns:
        Number of sessions removed
    """
    result = db.exec(delete(Session).where(Session.user_id == user_id))
    db.commit()
    count = result.rowcount or 0
    logger.info("Destroyed %d session(s) for user %s", count, user_id)
    return count


async def get_active_sessions(db: DBSession, user_id: str) -> list[Session]:
    """List a user's non-expired sessions, newest first."""
    statement = (
        select(Session)
        .where(Session.user_id == user_id, Session.expires_at > utcnow())
        .order_by(Session.created_at.desc())
    )
    return list(db.exec(statement).all())


async def purge_expired_sessions(db: DBSession) -> int:
    """
    Delete all expired sessions.

    Should be run periodically (e.g., daily cron job).

    Returns:
        Number of sessions purged
    """
    result = db.exec(delete(Session).where(Session.expires_at <= utcnow()))
    db.commit()
    count = result.rowcount or 0
    if count:
        logger.info("Purged %d expired session(s)", count)
    return count
