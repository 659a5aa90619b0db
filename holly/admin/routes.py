"""
Holly Transportation - Admin API Routes

Admin-only endpoints for system management:
- Audit log viewing and bulk deletion
- User listing and admin grant/revoke
- Session listing and revocation

All routes require an admin; every mutation here is itself audited.
"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Depends, Query, Path, Request
from pydantic import BaseModel, Field
from sqlmodel import Session as DBSession, select

from holly.audit import recorder
from holly.audit.models import AuditAction, AuditPage
from holly.auth import accounts
from holly.auth import sessions as session_service
from holly.auth.dependencies import (
    AuthContext,
    get_client_ip,
    get_db,
    get_user_agent,
    require_admin,
)
from holly.auth.models import User


router = APIRouter(prefix="/admin", tags=["admin"])


# =============================================================================
# Request/Response Models
# =============================================================================

class BulkDeleteRequest(BaseModel):
    """Audit record ids to delete."""
    log_ids: List[int] = Field(default_factory=list, max_length=1000)


class BulkDeleteResponse(BaseModel):
    message: str
    deleted: int


class UserListItem(BaseModel):
    """User item for admin list."""
    id: str
    username: Optional[str] = None
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    is_admin: bool
    created_at: datetime


class SessionListItem(BaseModel):
    """Active session summary; the session id itself is never returned."""
    created_at: datetime
    expires_at: datetime
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


class UserListResponse(BaseModel):
    """User list response."""
    users: List[UserListItem]
    total: int


class AdminStatusRequest(BaseModel):
    is_admin: bool


# =============================================================================
# Audit Log Endpoints
# =============================================================================

@router.get("/audit-logs", response_model=AuditPage, summary="Get Audit Logs")
async def get_audit_logs(
    page: int = Query(1, ge=1, description="Page number"),
    limit: int = Query(50, ge=1, le=recorder.MAX_PAGE_SIZE, description="Items per page"),
    admin: AuthContext = Depends(require_admin),
    db: DBSession = Depends(get_db),
):
    """
    Retrieve audit logs, newest first, with the acting user attached.

    Admin only.
    """
    logs, total = await recorder.list_logs(db, limit=limit, offset=(page - 1) * limit)
    return AuditPage(
        logs=logs,
        page=page,
        limit=limit,
        total=total,
        total_pages=recorder.total_pages(total, limit),
    )


@router.delete("/audit-logs/bulk", response_model=BulkDeleteResponse, summary="Bulk Delete Audit Logs")
async def bulk_delete_audit_logs(
    request: Request,
    body: BulkDeleteRequest,
    admin: AuthContext = Depends(require_admin),
    db: DBSession = Depends(get_db),
):
    """
    Delete the given audit records.

    Admin only. The deletion leaves its own audit record behind.
    """
    if not body.log_ids:
        raise HTTPException(status_code=400, detail="Invalid log IDs provided")

    deleted = await recorder.bulk_delete(db, body.log_ids)

    await recorder.record_safely(
        db,
        admin.user_id,
        AuditAction.AUDIT_LOGS_DELETED,
        "audit_log",
        details={"requested": len(set(body.log_ids)), "deleted": deleted, "log_ids": sorted(set(body.log_ids))},
        ip_address=get_client_ip(request),
        user_agent=get_user_agent(request),
    )
    return BulkDeleteResponse(message=f"Successfully deleted {deleted} audit logs", deleted=deleted)


# =============================================================================
# User Management Endpoints
# =============================================================================

@router.get("/users", response_model=UserListResponse, summary="List All Users")
async def list_users(
    admin: AuthContext = Depends(require_admin),
    db: DBSession = Depends(get_db),
):
    """
    List all users in the system.

    Admin only.
    """
    users = db.exec(select(User).order_by(User.created_at)).all()
    user_list = [
        UserListItem(
            id=user.id,
            username=user.username,
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            is_admin=user.is_admin,
            created_at=user.created_at,
        )
        for user in users
    ]
    return UserListResponse(users=user_list, total=len(user_list))


@router.put("/users/{target_user_id}/admin", response_model=UserListItem, summary="Grant or Revoke Admin")
async def set_user_admin(
    request: Request,
    body: AdminStatusRequest,
    target_user_id: str = Path(..., max_length=128, description="User ID to update"),
    admin: AuthContext = Depends(require_admin),
    db: DBSession = Depends(get_db),
):
    """
    Change a user's admin flag.

    Admin only. Admins cannot demote themselves.
    """
    if target_user_id == admin.user_id and not body.is_admin:
        raise HTTPException(status_code=400, detail="Cannot revoke your own admin access")

    existing = db.get(User, target_user_id)
    if existing is None:
        raise HTTPException(status_code=404, detail="User not found")
    was_admin = existing.is_admin

    user = await accounts.set_admin_status(db, target_user_id, body.is_admin)

    if was_admin != user.is_admin:
        await recorder.record_safely(
            db,
            admin.user_id,
            AuditAction.USER_ADMIN_GRANTED if user.is_admin else AuditAction.USER_ADMIN_REVOKED,
            "user",
            entity_id=user.id,
            details={"is_admin": user.is_admin},
            ip_address=get_client_ip(request),
            user_agent=get_user_agent(request),
        )

    return UserListItem(
        id=user.id,
        username=user.username,
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
        is_admin=user.is_admin,
        created_at=user.created_at,
    )


@router.get("/users/{target_user_id}/sessions", summary="List User Sessions")
async def list_user_sessions(
    target_user_id: str = Path(..., max_length=128, description="User ID to list sessions for"),
    admin: AuthContext = Depends(require_admin),
    db: DBSession = Depends(get_db),
):
    """
    List a user's active sessions, newest first.

    Admin only. Used to decide whether to revoke sessions.
    """
    if db.get(User, target_user_id) is None:
        raise HTTPException(status_code=404, detail="User not found")

    active = await session_service.get_active_sessions(db, target_user_id)
    return {
        "user_id": target_user_id,
        "sessions": [
            SessionListItem(
                created_at=s.created_at,
                expires_at=s.expires_at,
                ip_address=s.ip_address,
                user_agent=s.user_agent,
            )
            for s in active
        ],
    }


@router.post("/users/{target_user_id}/revoke-sessions", summary="Revoke User Sessions")
async def revoke_user_sessions(
    request: Request,
    target_user_id: str = Path(..., max_length=128, description="User ID to revoke sessions for"),
    admin: AuthContext = Depends(require_admin),
    db: DBSession = Depends(get_db),
):
    """
    Revoke all active sessions for a user.

    Admin only. Forces user to re-login.
    """
    if db.get(User, target_user_id) is None:
        raise HTTPException(status_code=404, detail="User not found")

    count = await session_service.destroy_user_sessions(db, target_user_id)

    await recorder.record_safely(
        db,
        admin.user_id,
        AuditAction.USER_SESSIONS_REVOKED,
        "user",
        entity_id=target_user_id,
        details={"sessions_revoked": count},
        ip_address=get_client_ip(request),
        user_agent=get_user_agent(request),
    )
    return {"message": f"Revoked {count} sessions", "user_id": target_user_id}
