"""
Holly Transportation - Audit Recorder

Append-only log of privileged actions.

The recorder never updates rows. The only removal is bulk_delete, which is
itself an admin-gated, audited operation.

Failure semantics:
- record() raises AuditWriteFailure when the write cannot be persisted
- record_safely() is what routes call after a successful privileged
  action: a failed audit write is reported on the dedicated failure
  logger and does not undo or fail the action
"""

import enum
import math
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from sqlalchemy import delete, func
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session as DBSession, select

from holly.audit.models import AuditAction, AuditActor, AuditLog, AuditLogView
from holly.auth.models import User, utcnow
from holly.errors import AuditWriteFailure
from holly.logging_utils import AUDIT_FAILURE_LOGGER, get_logger


logger = get_logger(__name__)
failure_logger = get_logger(AUDIT_FAILURE_LOGGER)

# Column limits (match model)
_ENTITY_TYPE_LEN = 64
_ENTITY_ID_LEN = 128
_IP_LEN = 64
_USER_AGENT_LEN = 512

MAX_PAGE_SIZE = 100


def _sanitize_value(v: Any) -> Any:
    """Convert to a JSON-serializable value so details never fail on INSERT."""
    if v is None or isinstance(v, (str, int, float, bool)):
        return v
    if isinstance(v, (datetime, date)):
        return v.isoformat()
    if isinstance(v, enum.Enum):
        return v.value
    if isinstance(v, dict):
        return {str(k): _sanitize_value(x) for k, x in v.items()}
    if isinstance(v, (list, tuple, set)):
        return [_sanitize_value(x) for x in v]
    return str(v)


def sanitize_details(details: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    if not details:
        return {}
    return {str(k): _sanitize_value(v) for k, v in details.items()}


def _truncate(value: Optional[str], limit: int) -> Optional[str]:
    if not value:
        return None
    return str(value)[:limit]


async def record(
    db: DBSession,
    user_id: str,
    action: Union[AuditAction, str],
    entity_type: str,
    entity_id: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> AuditLog:
    """
    Append one audit record and commit it.

    Raises:
        ValueError: action is outside the audit vocabulary
        AuditWriteFailure: The record could not be persisted
    """
    action_value = AuditAction(action).value

    entry = AuditLog(
        user_id=user_id,
        action=action_value,
        entity_type=_truncate(entity_type, _ENTITY_TYPE_LEN) or "unknown",
        entity_id=_truncate(entity_id, _ENTITY_ID_LEN),
        details=sanitize_details(details),
        ip_address=_truncate(ip_address, _IP_LEN),
        user_agent=_truncate(user_agent, _USER_AGENT_LEN),
        created_at=utcnow(),
    )
    try:
        db.add(entry)
        db.commit()
        db.refresh(entry)
    except SQLAlchemyError as e:
        db.rollback()
        raise AuditWriteFailure(action_value, e) from e

    logger.debug("Audit %s by %s on %s/%s", action_value, user_id, entity_type, entity_id)
    return entry


async def record_safely(db: DBSession, user_id: str, action: Union[AuditAction, str], entity_type: str, **kwargs) -> Optional[AuditLog]:
    """
    record() for use after a privileged action has already succeeded.

    Returns:
        The AuditLog, or None if the write failed (failure is logged)
    """
    try:
        return await record(db, user_id, action, entity_type, **kwargs)
    except AuditWriteFailure as e:
        failure_logger.error(
            "Audit write failed: action=%s user=%s entity=%s/%s cause=%s",
            e.action, user_id, entity_type, kwargs.get("entity_id"), e.cause,
        )
        return None


def _to_view(entry: AuditLog, actor: Optional[User]) -> AuditLogView:
    return AuditLogView(
        id=entry.id,
        user_id=entry.user_id,
        action=entry.action,
        entity_type=entry.entity_type,
        entity_id=entry.entity_id,
        details=entry.details or {},
        ip_address=entry.ip_address,
        user_agent=entry.user_agent,
        created_at=entry.created_at,
        actor=AuditActor(
            id=actor.id,
            username=actor.username,
            first_name=actor.first_name,
            last_name=actor.last_name,
            email=actor.email,
        ) if actor is not None else None,
    )


async def list_logs(db: DBSession, limit: int = 50, offset: int = 0) -> Tuple[List[AuditLogView], int]:
    """
    Page through audit records, newest first.

    Records whose actor has since been removed are still listed, with
    actor set to None.

    Returns:
        (views for the requested page, total record count)
    """
    limit = max(1, min(limit, MAX_PAGE_SIZE))
    offset = max(0, offset)

    total = db.exec(select(func.count()).select_from(AuditLog)).one()

    statement = (
        select(AuditLog, User)
        .join(User, User.id == AuditLog.user_id, isouter=True)
        .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        .offset(offset)
        .limit(limit)
    )
    rows = db.exec(statement).all()
    return [_to_view(entry, actor) for entry, actor in rows], total


def total_pages(total: int, limit: int) -> int:
    return math.ceil(total / limit) if limit > 0 else 0


async def bulk_delete(db: DBSession, log_ids: Iterable[int]) -> int:
    """
    Delete the given audit records.

    Unknown ids are ignored.

    Returns:
        Number of records actually deleted
    """
    ids = sorted({int(i) for i in log_ids})
    if not ids:
        return 0
    result = db.exec(delete(AuditLog).where(AuditLog.id.in_(ids)))
    db.commit()
    deleted = result.rowcount or 0
    logger.info("Deleted %d audit records", deleted)
    return deleted
