"""
Holly Transportation - Test Configuration

Pytest fixtures for authentication testing.
Provides test database, clients for both trust modes, signing keys for
external tokens, and user fixtures.
"""

import time
from typing import Callable, Generator

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from fastapi.testclient import TestClient
from jose import jwk, jwt
from sqlmodel import Session, SQLModel

from holly.app import create_app
from holly.auth.database import get_engine, get_session_factory, init_db
from holly.auth.jwks import StaticKeySet
from holly.auth.models import User, new_local_user_id, utcnow
from holly.auth.password import hash_password
from holly.config import Settings, TrustMode


# Test database URL (in-memory SQLite)
TEST_DATABASE_URL = "sqlite:///:memory:"

TEST_PROJECT_ID = "holly-test"
TEST_ISSUER = f"https://securetoken.google.com/{TEST_PROJECT_ID}"
TEST_KID = "test-key-1"

ADMIN_USERNAME = "admin"
ADMIN_PASSWORD = "admin123"
SEED_ADMIN_SUBJECT = "seed-admin-subject"


@pytest.fixture(scope="function")
def test_engine():
    """Create a fresh test database engine for each test."""
    engine = get_engine(TEST_DATABASE_URL)
    init_db(engine)

    yield engine

    SQLModel.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db_session(test_engine) -> Generator[Session, None, None]:
    """Create a database session for testing."""
    session = get_session_factory(test_engine)()
    try:
        yield session
    finally:
        session.close()


# =============================================================================
# Settings and clients
# =============================================================================

@pytest.fixture
def local_settings() -> Settings:
    return Settings(
        DATABASE_URL=TEST_DATABASE_URL,
        AUTH_TRUST_MODE=TrustMode.LOCAL,
        SEED_ADMINS=[{
            "username": ADMIN_USERNAME,
            "password": ADMIN_PASSWORD,
            "email": "admin@hollytransportation.com",
            "first_name": "Holly",
            "last_name": "Admin",
        }],
        SEED_ADMINS_FILE=None,
        LOG_FILE=None,
    )


@pytest.fixture
def external_settings() -> Settings:
    return Settings(
        DATABASE_URL=TEST_DATABASE_URL,
        AUTH_TRUST_MODE=TrustMode.EXTERNAL,
        EXTERNAL_PROJECT_ID=TEST_PROJECT_ID,
        SEED_ADMINS=[{"subject": SEED_ADMIN_SUBJECT, "email": "ops@hollytransportation.com"}],
        SEED_ADMINS_FILE=None,
        LOG_FILE=None,
    )


@pytest.fixture(scope="function")
def client(test_engine, local_settings) -> Generator[TestClient, None, None]:
    """Test client in local trust mode with the seeded admin."""
    app = create_app(local_settings, engine=test_engine)
    with TestClient(app) as c:
        yield c


@pytest.fixture(scope="function")
def external_client(test_engine, external_settings, key_set) -> Generator[TestClient, None, None]:
    """Test client in external trust mode trusting the test signing key."""
    app = create_app(external_settings, key_provider=key_set, engine=test_engine)
    with TestClient(app) as c:
        yield c


# =============================================================================
# Signing keys and tokens
# =============================================================================

@pytest.fixture(scope="session")
def rsa_private_pem() -> bytes:
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )


@pytest.fixture(scope="session")
def other_private_pem() -> bytes:
    """A key the server does not trust."""
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )


def public_jwk(private_pem: bytes, kid: str) -> dict:
    private_key = serialization.load_pem_private_key(private_pem, password=None)
    public_pem = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    data = jwk.construct(public_pem, "RS256").to_dict()
    data["kid"] = kid
    data["use"] = "sig"
    return data


@pytest.fixture(scope="session")
def jwks_document(rsa_private_pem) -> dict:
    return {"keys": [public_jwk(rsa_private_pem, TEST_KID)]}


@pytest.fixture
def key_set(jwks_document) -> StaticKeySet:
    return StaticKeySet(jwks_document)


@pytest.fixture
def mint_token(rsa_private_pem) -> Callable[..., str]:
    """
    Sign an identity-provider style token.

    Keyword arguments override claims; pass a claim as None to drop it.
    """
    def _mint(
        subject: str = "ext-user-1",
        private_pem: bytes = None,
        kid: str = TEST_KID,
        algorithm: str = "RS256",
        **overrides,
    ) -> str:
        now = int(time.time())
        claims = {
            "iss": TEST_ISSUER,
            "aud": TEST_PROJECT_ID,
            "sub": subject,
            "iat": now,
            "exp": now + 3600,
            "email": f"{subject}@example.com",
            "name": "Erin External",
            "picture": "https://img.example.com/erin.png",
        }
        claims.update(overrides)
        claims = {k: v for k, v in claims.items() if v is not None}
        return jwt.encode(
            claims,
            private_pem or rsa_private_pem,
            algorithm=algorithm,
            headers={"kid": kid} if kid else None,
        )

    return _mint


def bearer(token: str) -> dict:
    """Authorization header for an external token."""
    return {"Authorization": f"Bearer {token}"}


# =============================================================================
# Users
# =============================================================================

def make_local_user(db: Session, username: str, password: str, is_admin: bool = False) -> User:
    now = utcnow()
    user = User(
        id=new_local_user_id(),
        username=username,
        email=f"{username}@example.com",
        password_hash=hash_password(password),
        first_name=username.capitalize(),
        is_admin=is_admin,
        created_at=now,
        updated_at=now,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture(scope="function")
def alice(db_session) -> User:
    """A regular local user."""
    return make_local_user(db_session, "alice", "pw123456")


def login_user(client: TestClient, username: str, password: str):
    """Helper function to login; the session cookie stays on the client."""
    return client.post(
        "/api/login",
        json={"username": username, "password": password},
    )


def register_user(client: TestClient, username: str, password: str, email: str = None):
    return client.post(
        "/api/register",
        json={
            "username": username,
            "password": password,
            "email": email or f"{username}@example.com",
            "first_name": username.capitalize(),
            "last_name": "Tester",
        },
    )


BOOKING_PAYLOAD = {
    "pickup_address": "12 Elm St",
    "destination_address": "Mercy Hospital",
    "appointment_date": "2026-11-02T00:00:00",
    "appointment_time": "09:30",
    "service_type": "dialysis",
}
