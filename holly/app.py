"""
Holly Transportation - FastAPI Application Entrypoint

This module initializes the FastAPI application with:
- CORS and security middleware
- The identity resolver for the configured trust mode
- Authentication, admin and booking routes
- Database lifecycle management and administrator bootstrap

Security: The trust mode is chosen once here. Register/login/logout exist
only in local mode; in external mode identity comes solely from bearer
tokens issued by the configured identity provider.
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.engine import Engine

from holly.config import Settings, TrustMode, settings as default_settings
from holly.errors import AuthorityError
from holly.gateway.middleware import SecurityMiddleware
from holly.auth.database import get_engine, init_db, get_session_factory
from holly.auth.bootstrap import seed_administrators
from holly.auth.jwks import KeyProvider
from holly.auth.resolvers import build_identity_resolver
from holly.auth.routes import local_router as local_auth_router, router as auth_router
from holly.auth.sessions import purge_expired_sessions
from holly.admin.routes import router as admin_router
from holly.bookings.routes import router as bookings_router
from holly.logging_utils import configure_logging, get_logger


VERSION = "0.1.0"

logger = get_logger(__name__)


async def authority_error_handler(request: Request, exc: AuthorityError) -> JSONResponse:
    """Render identity/authorization failures as {"detail": ...}."""
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc)
    elif exc.status_code == 403:
        logger.warning("Forbidden %s %s: %s", request.method, request.url.path, exc)
    else:
        logger.info("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc)

    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
        headers=headers,
    )


def create_app(
    settings: Optional[Settings] = None,
    key_provider: Optional[KeyProvider] = None,
    engine: Optional[Engine] = None,
) -> FastAPI:
    """
    Build the application.

    Args:
        settings: Configuration; defaults to the environment
        key_provider: Signing-key source for external mode; defaults to
            the JWKS endpoint (or inline JWKS) from settings
        engine: Pre-built database engine; defaults to DATABASE_URL

    Raises:
        ValueError: External trust mode without a project id or issuer
    """
    settings = settings or default_settings
    configure_logging(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Application lifespan manager.

        Startup:
            - Initialize SQLModel database (users, sessions, audit log)
            - Sweep expired sessions
            - Seed configured administrators

        Shutdown:
            - Dispose the engine if this app created it
        """
        db_engine = engine or get_engine(settings.DATABASE_URL)
        init_db(db_engine)
        app.state.db_engine = db_engine
        app.state.db_session_factory = get_session_factory(db_engine)

        db = app.state.db_session_factory()
        try:
            if settings.AUTH_TRUST_MODE == TrustMode.LOCAL:
                purged = await purge_expired_sessions(db)
                if purged:
                    logger.info("Purged %d expired sessions", purged)
            seeded = await seed_administrators(db, settings)
            if seeded:
                logger.info("Seeded %d administrator(s)", seeded)
        finally:
            db.close()

        yield

        if engine is None:
            db_engine.dispose()

    app = FastAPI(
        title="Holly Transportation",
        description="Ride booking backend with local or identity-provider authentication",
        version=VERSION,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.identity_resolver = build_identity_resolver(settings, key_provider=key_provider)

    app.add_exception_handler(AuthorityError, authority_error_handler)

    # CORS - cookies are sent cross-origin only to listed origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "PUT", "PATCH"],
        allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
    )

    app.add_middleware(SecurityMiddleware)

    if settings.AUTH_TRUST_MODE == TrustMode.LOCAL:
        app.include_router(local_auth_router, prefix="/api")
    app.include_router(auth_router, prefix="/api")
    app.include_router(admin_router, prefix="/api")
    app.include_router(bookings_router, prefix="/api")

    @app.get("/health")
    async def health_check():
        """Health check endpoint for local dev tooling."""
        return {
            "status": "healthy",
            "version": VERSION,
            "trust_mode": settings.AUTH_TRUST_MODE.value,
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("holly.app:app", host="127.0.0.1", port=8000, reload=False)
