"""
Holly Transportation - Authentication Database Models

SQLModel-based models for user accounts and local sessions.
Uses PostgreSQL for production, SQLite for local development.

Security:
- Passwords stored as scrypt hashes only (local trust mode)
- Sessions are server-controlled for immediate revocation
- is_admin is written only by trusted internal code paths
- All timestamps are naive UTC
"""

from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from sqlmodel import SQLModel, Field
from sqlalchemy import Column, String, Boolean, DateTime, Text


def utcnow() -> datetime:
    """Current time as naive UTC, matching how timestamps are stored."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_local_user_id() -> str:
    return f"local-{uuid4().hex}"


class User(SQLModel, table=True):
    """
    One account, local or external.

    Attributes:
        id: Stable identifier; "local-<hex>" or the external subject id
        username: Login name (local trust mode only)
        email: Contact email, unique when present
        password_hash: scrypt stored form (local trust mode only)
        is_admin: Admin privilege, never derived from token claims
        profile_edited_at: Set when the user edits their own profile
        created_at: Account creation timestamp (UTC)
        updated_at: Last modification timestamp (UTC)
    """
    __tablename__ = "users"

    id: str = Field(
        default_factory=new_local_user_id,
        sa_column=Column(String(128), primary_key=True),
        description="Stable user identifier"
    )
    username: Optional[str] = Field(
        default=None,
        sa_column=Column(String(64), unique=True, index=True, nullable=True),
        description="Local login name"
    )
    email: Optional[str] = Field(
        default=None,
        sa_column=Column(String(255), unique=True, index=True, nullable=True),
        description="User email address"
    )
    first_name: Optional[str] = Field(default=None, sa_column=Column(String(128), nullable=True))
    last_name: Optional[str] = Field(default=None, sa_column=Column(String(128), nullable=True))
    phone: Optional[str] = Field(default=None, sa_column=Column(String(32), nullable=True))
    notes: Optional[str] = Field(
        default=None,
        sa_column=Column(Text, nullable=True),
        description="Free-text notes (mobility needs etc.)"
    )
    profile_image_url: Optional[str] = Field(default=None, sa_column=Column(String(1024), nullable=True))
    is_admin: bool = Field(
        default=False,
        sa_column=Column(Boolean, nullable=False, default=False),
        description="Whether the user may perform privileged actions"
    )
    password_hash: Optional[str] = Field(
        default=None,
        sa_column=Column(String(255), nullable=True),
        description="scrypt password hash"
    )
    profile_edited_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime, nullable=True),
        description="Last explicit profile edit by the user"
    )
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime, nullable=False, default=utcnow),
        description="Account creation timestamp"
    )
    updated_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow),
        description="Last update timestamp"
    )


class Session(SQLModel, table=True):
    """
    Server-side session for local trust mode.

    A session id that does not resolve to a non-expired row is treated
    exactly like a request without a session.

    Attributes:
        id: Opaque, unguessable session identifier
        user_id: Foreign key to user
        created_at: Session creation timestamp
        expires_at: Session expiration timestamp
        ip_address: Client IP at login
        user_agent: Client user-agent at login
    """
    __tablename__ = "sessions"

    id: str = Field(
        sa_column=Column(String(64), primary_key=True),
        description="Opaque session identifier"
    )
    user_id: str = Field(
        foreign_key="users.id",
        nullable=False,
        index=True,
        description="Reference to user"
    )
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime, nullable=False, default=utcnow),
        description="Session creation timestamp"
    )
    expires_at: datetime = Field(
        sa_column=Column(DateTime, nullable=False, index=True),
        description="Session expiration timestamp"
    )
    ip_address: Optional[str] = Field(
        default=None,
        sa_column=Column(String(64), nullable=True),
        description="Client IP address"
    )
    user_agent: Optional[str] = Field(
        default=None,
        sa_column=Column(String(512), nullable=True),
        description="Client user-agent string"
    )
