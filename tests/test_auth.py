"""
Holly Transportation - Authentication Test Suite

Tests for:
- Password hashing (credential vault)
- Session lifecycle
- Local accounts: register, login, profile
- Local trust mode HTTP flow

Run with: pytest tests/test_auth.py -v
"""

import pytest
from datetime import timedelta

from holly.auth import accounts
from holly.auth import sessions as session_service
from holly.auth.models import Session, User, utcnow
from holly.auth.password import (
    KEY_LENGTH,
    SALT_BYTES,
    _derive,
    hash_password,
    needs_rehash,
    verify_password,
)
from holly.errors import AccountConflict, InvalidCredentialFormat, InvalidCredentials
from tests.conftest import ADMIN_PASSWORD, ADMIN_USERNAME, login_user, make_local_user, register_user


# =============================================================================
# PASSWORD HASHING TESTS
# =============================================================================

class TestPasswordHashing:
    """Unit tests for scrypt password utilities."""

    def test_hash_password_format(self):
        """Stored form records scheme, cost, salt and a 64-byte key."""
        hashed = hash_password("pw123456")
        scheme, n, r, p, salt_hex, key_hex = hashed.split("$")

        assert scheme == "scrypt"
        assert (int(n), int(r), int(p)) == (16384, 8, 1)
        assert len(bytes.fromhex(salt_hex)) == SALT_BYTES
        assert len(bytes.fromhex(key_hex)) == KEY_LENGTH

    def test_verify_password_correct(self):
        hashed = hash_password("pw123456")

        assert verify_password("pw123456", hashed) is True

    def test_verify_password_incorrect(self):
        hashed = hash_password("pw123456")

        assert verify_password("wrongpw", hashed) is False

    def test_verify_password_empty_string(self):
        hashed = hash_password("pw123456")

        assert verify_password("", hashed) is False

    def test_different_passwords_different_hashes(self):
        """Same password generates different hashes (salted)."""
        hash1 = hash_password("pw123456")
        hash2 = hash_password("pw123456")

        assert hash1 != hash2
        assert verify_password("pw123456", hash1) is True
        assert verify_password("pw123456", hash2) is True

    def test_unicode_password(self):
        hashed = hash_password("pässwörd-ключ")

        assert verify_password("pässwörd-ключ", hashed) is True
        assert verify_password("passwortd-kljuch", hashed) is False

    def test_legacy_hash_verifies_and_needs_rehash(self):
        """Hashes in the previous "<key hex>.<salt hex>" form still work."""
        salt_text = "0f" * SALT_BYTES
        key = _derive("pw123456", salt_text.encode("ascii"), 16384, 8, 1)
        legacy = f"{key.hex()}.{salt_text}"

        assert verify_password("pw123456", legacy) is True
        assert verify_password("nope", legacy) is False
        assert needs_rehash(legacy) is True

    def test_current_hash_does_not_need_rehash(self):
        assert needs_rehash(hash_password("pw123456")) is False

    def test_weaker_cost_needs_rehash(self):
        assert needs_rehash("scrypt$1024$8$1$" + "00" * 16 + "$" + "00" * 64) is True

    @pytest.mark.parametrize("stored", [
        "",
        "garbage",
        "scrypt$16384$8$1$zz$zz",
        "scrypt$16384$8$1$" + "00" * 16 + "$" + "00" * 10,
        "scrypt$1000$8$1$" + "00" * 16 + "$" + "00" * 64,
        "abcd.ef",
    ])
    def test_corrupt_hash_raises_format_error(self, stored):
        with pytest.raises(InvalidCredentialFormat):
            verify_password("pw123456", stored)


# =============================================================================
# SESSION TESTS
# =============================================================================

class TestSessionStore:
    """Server-side session lifecycle."""

    @pytest.mark.asyncio
    async def test_create_and_resolve(self, db_session, alice):
        session = await session_service.create_session(db_session, alice.id)

        resolved = await session_service.resolve_session(db_session, session.id)

        assert resolved is not None
        assert resolved.id == alice.id
        assert resolved.is_admin is False

    @pytest.mark.asyncio
    async def test_session_ids_are_unique_and_opaque(self, db_session, alice):
        s1 = await session_service.create_session(db_session, alice.id)
        s2 = await session_service.create_session(db_session, alice.id)

        assert s1.id != s2.id
        assert alice.id not in s1.id
        assert len(s1.id) >= 40

    @pytest.mark.asyncio
    async def test_unknown_session_is_anonymous(self, db_session):
        assert await session_service.resolve_session(db_session, "no-such-session") is None
        assert await session_service.resolve_session(db_session, None) is None
        assert await session_service.resolve_session(db_session, "") is None
        assert await session_service.resolve_session(db_session, "x" * 1000) is None

    @pytest.mark.asyncio
    async def test_expired_session_is_anonymous(self, db_session, alice):
        session = await session_service.create_session(db_session, alice.id, ttl=timedelta(seconds=-1))

        assert await session_service.resolve_session(db_session, session.id) is None

    @pytest.mark.asyncio
    async def test_destroy_is_idempotent(self, db_session, alice):
        session = await session_service.create_session(db_session, alice.id)

        assert await session_service.destroy_session(db_session, session.id) is True
        assert await session_service.destroy_session(db_session, session.id) is False
        assert await session_service.resolve_session(db_session, session.id) is None

    @pytest.mark.asyncio
    async def test_destroy_user_sessions(self, db_session, alice):
        for _ in range(3):
            await session_service.create_session(db_session, alice.id)

        assert await session_service.destroy_user_sessions(db_session, alice.id) == 3
        assert await session_service.get_active_sessions(db_session, alice.id) == []

    @pytest.mark.asyncio
    async def test_purge_expired_sessions(self, db_session, alice):
        live = await session_service.create_session(db_session, alice.id)
        await session_service.create_session(db_session, alice.id, ttl=timedelta(seconds=-5))

        assert await session_service.purge_expired_sessions(db_session) == 1
        remaining = await session_service.get_active_sessions(db_session, alice.id)
        assert [s.id for s in remaining] == [live.id]


# =============================================================================
# ACCOUNT TESTS
# =============================================================================

class TestAccounts:
    """Registration, login and profile edits at the service layer."""

    @pytest.mark.asyncio
    async def test_register_never_admin(self, db_session):
        user = await accounts.register_local_user(db_session, "bob", "Bob@Example.com", "pw123456")

        assert user.id.startswith("local-")
        assert user.is_admin is False
        assert user.email == "bob@example.com"
        assert user.password_hash != "pw123456"

    @pytest.mark.asyncio
    async def test_register_duplicate_username(self, db_session, alice):
        with pytest.raises(AccountConflict) as exc:
            await accounts.register_local_user(db_session, "alice", "other@example.com", "pw123456")
        assert exc.value.detail == "Username already exists"

    @pytest.mark.asyncio
    async def test_register_duplicate_email(self, db_session, alice):
        with pytest.raises(AccountConflict) as exc:
            await accounts.register_local_user(db_session, "alice2", "ALICE@example.com", "pw123456")
        assert exc.value.detail == "Email already exists"

    @pytest.mark.asyncio
    async def test_authenticate_success(self, db_session, alice):
        user = await accounts.authenticate_local(db_session, "alice", "pw123456")

        assert user.id == alice.id

    @pytest.mark.asyncio
    async def test_authenticate_failures_look_the_same(self, db_session, alice):
        passwordless = User(username="nopass", email="nopass@example.com")
        db_session.add(passwordless)
        db_session.commit()

        errors = []
        for username, password in [("alice", "wrongpw"), ("ghost", "pw123456"), ("nopass", "")]:
            with pytest.raises(InvalidCredentials) as exc:
                await accounts.authenticate_local(db_session, username, password)
            errors.append((exc.value.status_code, exc.value.detail))

        assert errors == [(401, "Invalid credentials")] * 3

    @pytest.mark.asyncio
    async def test_login_upgrades_legacy_hash(self, db_session, alice):
        salt_text = "ab" * SALT_BYTES
        key = _derive("pw123456", salt_text.encode("ascii"), 16384, 8, 1)
        alice.password_hash = f"{key.hex()}.{salt_text}"
        db_session.add(alice)
        db_session.commit()

        user = await accounts.authenticate_local(db_session, "alice", "pw123456")

        assert user.password_hash.startswith("scrypt$")
        assert verify_password("pw123456", user.password_hash)

    @pytest.mark.asyncio
    async def test_update_profile_tracks_changes(self, db_session, alice):
        user, changed, old, new = await accounts.update_profile(
            db_session, alice, {"phone": "555-0100", "first_name": alice.first_name}
        )

        assert changed == ["phone"]
        assert old == {"phone": None}
        assert new == {"phone": "555-0100"}
        assert user.profile_edited_at is not None

    @pytest.mark.asyncio
    async def test_update_profile_no_changes(self, db_session, alice):
        _, changed, _, _ = await accounts.update_profile(db_session, alice, {"first_name": alice.first_name})

        assert changed == []
        assert alice.profile_edited_at is None

    @pytest.mark.asyncio
    async def test_update_profile_email_conflict_leaves_user_untouched(self, db_session, alice):
        make_local_user(db_session, "carol", "pw123456")

        with pytest.raises(AccountConflict):
            await accounts.update_profile(db_session, alice, {"email": "carol@example.com", "phone": "1"})

        assert alice.email == "alice@example.com"
        assert alice.phone is None

    @pytest.mark.asyncio
    async def test_set_admin_status(self, db_session, alice):
        user = await accounts.set_admin_status(db_session, alice.id, True)

        assert user.is_admin is True
        assert await accounts.set_admin_status(db_session, "missing", True) is None


# =============================================================================
# LOCAL HTTP FLOW
# =============================================================================

class TestLocalLoginFlow:
    """Register, login, resolve and logout over HTTP."""

    def test_alice_scenario(self, client):
        """Register alice, fail with a wrong password, then log in."""
        assert register_user(client, "alice", "pw123456").status_code == 201
        client.cookies.clear()

        bad = login_user(client, "alice", "wrongpw")
        assert bad.status_code == 401
        assert bad.json() == {"detail": "Invalid credentials"}
        assert "holly_sid" not in client.cookies

        good = login_user(client, "alice", "pw123456")
        assert good.status_code == 200
        assert "holly_sid" in client.cookies
        assert "holly_sid" not in good.text

        me = client.get("/api/auth/user")
        assert me.status_code == 200
        assert me.json()["username"] == "alice"
        assert me.json()["is_admin"] is False

    def test_unknown_user_and_wrong_password_same_response(self, client):
        register_user(client, "alice", "pw123456")
        client.cookies.clear()

        unknown = login_user(client, "nobody", "pw123456")
        wrong = login_user(client, "alice", "wrongpw")

        assert unknown.status_code == wrong.status_code == 401
        assert unknown.json() == wrong.json()

    def test_session_cookie_attributes(self, client):
        response = login_user(client, ADMIN_USERNAME, ADMIN_PASSWORD)
        cookie = response.headers["set-cookie"].lower()

        assert "httponly" in cookie
        assert "samesite=lax" in cookie
        assert "max-age=604800" in cookie

    def test_register_conflict(self, client):
        register_user(client, "alice", "pw123456")

        response = register_user(client, "alice", "pw123456", email="different@example.com")

        assert response.status_code == 409
        assert response.json() == {"detail": "Username already exists"}

    def test_register_validation(self, client):
        response = register_user(client, "al", "pw123456")

        assert response.status_code == 422

    def test_anonymous_request_rejected(self, client):
        response = client.get("/api/auth/user")

        assert response.status_code == 401
        assert response.json() == {"detail": "Please re-authenticate"}
        assert response.headers["www-authenticate"] == "Bearer"

    def test_logout_kills_session(self, client):
        login_user(client, ADMIN_USERNAME, ADMIN_PASSWORD)
        old_sid = client.cookies["holly_sid"]

        response = client.post("/api/logout")
        assert response.status_code == 200

        # Replaying the old session id must not work
        client.cookies.set("holly_sid", old_sid)
        assert client.get("/api/auth/user").status_code == 401

    def test_logout_without_session(self, client):
        assert client.post("/api/logout").status_code == 200

    def test_bearer_header_ignored_in_local_mode(self, client, mint_token):
        response = client.get("/api/auth/user", headers={"Authorization": f"Bearer {mint_token()}"})

        assert response.status_code == 401

    def test_forged_session_cookie(self, client):
        client.cookies.set("holly_sid", "forged-session-id")

        assert client.get("/api/auth/user").status_code == 401

    def test_expired_session_rejected(self, client, db_session):
        login_user(client, ADMIN_USERNAME, ADMIN_PASSWORD)
        sid = client.cookies["holly_sid"]

        session = db_session.get(Session, sid)
        session.expires_at = utcnow() - timedelta(minutes=1)
        db_session.add(session)
        db_session.commit()

        assert client.get("/api/auth/user").status_code == 401

    def test_profile_update_is_audited(self, client):
        register_user(client, "alice", "pw123456")

        response = client.put("/api/profile", json={"phone": "555-0100", "notes": "Wheelchair"})
        assert response.status_code == 200
        assert response.json()["phone"] == "555-0100"

        client.cookies.clear()
        login_user(client, ADMIN_USERNAME, ADMIN_PASSWORD)
        logs = client.get("/api/admin/audit-logs").json()["logs"]

        assert logs[0]["action"] == "profile_updated"
        assert logs[0]["entity_type"] == "profile"
        assert sorted(logs[0]["details"]["changes"]) == ["notes", "phone"]

    def test_profile_cannot_grant_admin(self, client):
        register_user(client, "alice", "pw123456")

        response = client.put("/api/profile", json={"is_admin": True, "first_name": "Al"})

        assert response.status_code == 200
        assert response.json()["is_admin"] is False
        assert client.get("/api/auth/user").json()["is_admin"] is False

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["trust_mode"] == "local"
        assert "X-Request-ID" in response.headers
