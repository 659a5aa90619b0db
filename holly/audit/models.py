"""
Holly Transportation - Audit Models

The audit_log table and the typed views served to the admin log viewer.
Rows are append-only: nothing updates them, and only the explicit bulk
delete removes them.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field as PydanticField
from sqlalchemy import Column, DateTime, Integer, JSON, String
from sqlmodel import SQLModel, Field

from holly.auth.models import utcnow


class AuditAction(str, Enum):
    """Closed vocabulary of audited privileged actions."""
    BOOKING_DELETED = "booking_deleted"
    BOOKING_STATUS_UPDATED = "booking_status_updated"
    PROFILE_UPDATED = "profile_updated"
    USER_ADMIN_GRANTED = "user_admin_granted"
    USER_ADMIN_REVOKED = "user_admin_revoked"
    USER_SESSIONS_REVOKED = "user_sessions_revoked"
    AUDIT_LOGS_DELETED = "audit_logs_deleted"


class AuditLog(SQLModel, table=True):
    """
    One immutable record of a privileged action.

    Attributes:
        id: Insertion-ordered identifier
        user_id: Acting user
        action: AuditAction value
        entity_type: Kind of entity acted on ("booking", "profile", ...)
        entity_id: Entity acted on, if any
        details: Structured, JSON-safe payload
        ip_address: Requester IP
        user_agent: Requester user-agent
        created_at: When the action was accepted (UTC)
    """
    __tablename__ = "audit_log"

    id: Optional[int] = Field(
        default=None,
        sa_column=Column(Integer, primary_key=True, autoincrement=True),
    )
    user_id: str = Field(foreign_key="users.id", nullable=False, index=True)
    action: str = Field(sa_column=Column(String(64), nullable=False, index=True))
    entity_type: str = Field(sa_column=Column(String(64), nullable=False))
    entity_id: Optional[str] = Field(default=None, sa_column=Column(String(128), nullable=True))
    details: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    ip_address: Optional[str] = Field(default=None, sa_column=Column(String(64), nullable=True))
    user_agent: Optional[str] = Field(default=None, sa_column=Column(String(512), nullable=True))
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime, nullable=False, index=True, default=utcnow),
    )


class AuditActor(BaseModel):
    """Minimal projection of the acting user for display."""
    id: str
    username: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None


class AuditLogView(BaseModel):
    """Audit record joined with its actor."""
    id: int
    user_id: str
    action: str
    entity_type: str
    entity_id: Optional[str] = None
    details: Dict[str, Any] = PydanticField(default_factory=dict)
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: datetime
    actor: Optional[AuditActor] = None


class AuditPage(BaseModel):
    """Paginated audit log response."""
    logs: List[AuditLogView]
    page: int
    limit: int
    total: int
    total_pages: int
