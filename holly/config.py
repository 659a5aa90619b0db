"""
Holly Transportation - Configuration Management

Centralized configuration using Pydantic Settings.
All secrets and connection strings are loaded from environment variables.

Security: No secrets are hardcoded. Use .env for local development.
The trust mode is read once at startup and never re-read per request.
"""

import json
from enum import Enum
from typing import Annotated, Any, Dict, List, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode


class TrustMode(str, Enum):
    """Which authority vouches for a request's identity."""
    LOCAL = "local"         # Server-side sessions + password hashes
    EXTERNAL = "external"   # Identity-provider signed bearer tokens


FIREBASE_JWKS_URL = (
    "https://www.googleapis.com/service_accounts/v1/jwk/"
    "securetoken@system.gserviceaccount.com"
)


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Attributes:
        DATABASE_URL: SQLAlchemy URL for users, sessions and audit log
        AUTH_TRUST_MODE: "local" or "external", fixed for the process
        SESSION_TTL_DAYS: Lifetime of a local session from creation
        EXTERNAL_PROJECT_ID: Identity-provider project identifier
        EXTERNAL_JWKS_URL: Where the provider publishes its signing keys
        SEED_ADMINS: Administrator identities created on first run
        ALLOWED_ORIGINS: CORS allowed origins for the web client
        TRUSTED_PROXY_COUNT: Proxies whose X-Forwarded-For entries are trusted
    """

    # Database (PostgreSQL for production, SQLite for development)
    DATABASE_URL: str = "sqlite:///./holly.db"

    # Trust model
    AUTH_TRUST_MODE: TrustMode = TrustMode.LOCAL

    # Local sessions
    SESSION_TTL_DAYS: int = 7
    SESSION_COOKIE_NAME: str = "holly_sid"
    SESSION_COOKIE_SECURE: bool = False

    # External identity provider (Firebase-compatible defaults)
    EXTERNAL_PROJECT_ID: str = ""
    EXTERNAL_ISSUER: str = ""  # Defaults to https://securetoken.google.com/<project>
    EXTERNAL_AUDIENCE: str = ""  # Defaults to the project id
    EXTERNAL_JWKS_URL: str = FIREBASE_JWKS_URL
    EXTERNAL_JWKS_JSON: str = ""  # Inline JWKS; skips fetching when set
    EXTERNAL_JWKS_TTL_SECONDS: int = 3600
    EXTERNAL_JWKS_FAILURE_BACKOFF_SECONDS: int = 30
    EXTERNAL_JWKS_TIMEOUT_SECONDS: float = 5.0
    EXTERNAL_JWKS_MIN_REFRESH_SECONDS: int = 60  # Between refetches forced by unknown kids
    EXTERNAL_TOKEN_ALGORITHMS: Annotated[List[str], NoDecode] = ["RS256"]
    EXTERNAL_CLOCK_SKEW_SECONDS: int = 30

    # First-run bootstrap
    SEED_ADMINS: List[Dict[str, Any]] = []
    SEED_ADMINS_FILE: Optional[str] = None

    # CORS
    ALLOWED_ORIGINS: Annotated[List[str], NoDecode] = ["http://localhost:5173"]

    # Reverse proxies in front of the app; 0 ignores X-Forwarded-For
    TRUSTED_PROXY_COUNT: int = 0

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: Optional[str] = None

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "ignore"

    @field_validator("ALLOWED_ORIGINS", "EXTERNAL_TOKEN_ALGORITHMS", mode="before")
    @classmethod
    def parse_list(cls, v: Any) -> Any:
        """Accept a JSON list or a comma-separated string."""
        if isinstance(v, str):
            v = v.strip()
            if v.startswith("["):
                return json.loads(v)
            return [item.strip() for item in v.split(",") if item.strip()]
        return v

    @property
    def external_issuer(self) -> str:
        if self.EXTERNAL_ISSUER:
            return self.EXTERNAL_ISSUER.rstrip("/")
        return f"https://securetoken.google.com/{self.EXTERNAL_PROJECT_ID}"

    @property
    def external_audience(self) -> str:
        return self.EXTERNAL_AUDIENCE or self.EXTERNAL_PROJECT_ID


settings = Settings()
