"""
Holly Transportation - Authentication Routes

Local trust mode only (local_router):
- POST /register     - Create account and start a session
- POST /login        - Check password and start a session
- POST /logout       - Destroy the session and clear the cookie

Both trust modes (router):
- GET  /auth/user    - Current user view
- PUT  /profile      - Edit own profile (audited)

Sessions travel in an HttpOnly cookie; the session id is never returned in
a response body.
"""

from datetime import timedelta

from fastapi import APIRouter, Depends, Request, Response, status
from sqlmodel import Session as DBSession

from holly.audit import recorder
from holly.audit.models import AuditAction
from holly.auth import accounts
from holly.auth import sessions as session_service
from holly.auth.dependencies import (
    AuthContext,
    get_client_ip,
    get_db,
    get_user_agent,
    require_authenticated,
)
from holly.auth.models import User
from holly.auth.schemas import (
    ErrorResponse,
    LoginRequest,
    MessageResponse,
    ProfileUpdateRequest,
    RegisterRequest,
    UserResponse,
)
from holly.logging_utils import get_logger


logger = get_logger(__name__)

local_router = APIRouter(tags=["authentication"])
router = APIRouter(tags=["authentication"])


async def _start_session(request: Request, response: Response, db: DBSession, user: User) -> None:
    """Create a server-side session and hand its id to the client as a cookie."""
    settings = request.app.state.settings
    ttl = timedelta(days=settings.SESSION_TTL_DAYS)

    session = await session_service.create_session(
        db,
        user_id=user.id,
        ip_address=get_client_ip(request),
        user_agent=get_user_agent(request),
        ttl=ttl,
    )
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=session.id,
        max_age=int(ttl.total_seconds()),
        httponly=True,
        secure=settings.SESSION_COOKIE_SECURE,
        samesite="lax",
        path="/",
    )


@local_router.post(
    "/register",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    responses={409: {"model": ErrorResponse}},
    summary="Register a local account",
)
async def register(
    request: Request,
    response: Response,
    body: RegisterRequest,
    db: DBSession = Depends(get_db),
):
    """
    Create a local account and log it in.

    New accounts are never admins.

    Raises:
        409: Username or email already exists
    """
    user = await accounts.register_local_user(
        db,
        username=body.username,
        email=body.email,
        password=body.password,
        first_name=body.first_name,
        last_name=body.last_name,
        phone=body.phone,
    )
    await _start_session(request, response, db, user)
    return UserResponse.model_validate(user)


@local_router.post(
    "/login",
    response_model=UserResponse,
    responses={401: {"model": ErrorResponse}},
    summary="Authenticate user and create session",
)
async def login(
    request: Request,
    response: Response,
    body: LoginRequest,
    db: DBSession = Depends(get_db),
):
    """
    Authenticate with username and password.

    The response is identical for an unknown username and a wrong
    password.

    Raises:
        401: Invalid credentials
    """
    user = await accounts.authenticate_local(db, body.username, body.password)
    await _start_session(request, response, db, user)
    logger.info("User %s logged in from %s", user.id, get_client_ip(request))
    return UserResponse.model_validate(user)


@local_router.post(
    "/logout",
    response_model=MessageResponse,
    summary="Invalidate current session",
)
async def logout(
    request: Request,
    response: Response,
    db: DBSession = Depends(get_db),
):
    """
    Destroy the current session. Succeeds even without one.

    After logout the old session id resolves to no user, even if the
    client keeps sending it.
    """
    cookie_name = request.app.state.settings.SESSION_COOKIE_NAME
    session_id = request.cookies.get(cookie_name)
    if session_id:
        await session_service.destroy_session(db, session_id)
    response.delete_cookie(cookie_name, path="/")
    return MessageResponse(message="Logged out successfully")


@router.get(
    "/auth/user",
    response_model=UserResponse,
    responses={401: {"model": ErrorResponse}},
    summary="Get current user information",
)
async def get_current_user(auth: AuthContext = Depends(require_authenticated)):
    return UserResponse.model_validate(auth.user)


@router.put(
    "/profile",
    response_model=UserResponse,
    responses={401: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    summary="Update own profile",
)
async def update_profile(
    request: Request,
    body: ProfileUpdateRequest,
    auth: AuthContext = Depends(require_authenticated),
    db: DBSession = Depends(get_db),
):
    """
    Edit the caller's own profile.

    Once edited, the profile is no longer refreshed from identity-provider
    tokens. Only actual changes are audited.
    """
    user, changed, old_values, new_values = await accounts.update_profile(
        db, auth.user, body.model_dump(exclude_unset=True)
    )

    if changed:
        await recorder.record_safely(
            db,
            user.id,
            AuditAction.PROFILE_UPDATED,
            "profile",
            entity_id=user.id,
            details={
                "changes": changed,
                "old_values": old_values,
                "new_values": new_values,
            },
            ip_address=get_client_ip(request),
            user_agent=get_user_agent(request),
        )

    return UserResponse.model_validate(user)
