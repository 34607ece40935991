"""
Authentication route tests.

Verifies:
- Signup creates CUSTOMER accounts only and logs them in
- Login failures never reveal which part was wrong
- Tokens stop working after logout, expiry or deactivation
- Changing the password revokes every other session
"""

from datetime import timedelta

import pytest

from branchpos.extensions import db
from branchpos.models import SessionToken, User
from branchpos.services import auth_service, session_service
from branchpos.time_utils import utcnow
from conftest import TEST_PASSWORD, auth_headers


def _login(client, email, password=TEST_PASSWORD):
    return client.post("/api/auth/login", json={"email": email, "password": password})


# =============================================================================
# SIGNUP
# =============================================================================


class TestSignup:

    def test_creates_customer_and_session(self, client, db_session):
        resp = client.post(
            "/api/auth/signup",
            json={"email": "Jane@Example.com", "password": "secret123", "firstName": "Jane", "lastName": "Doe"},
        )

        assert resp.status_code == 201, resp.get_json()
        body = resp.get_json()
        assert body["user"]["email"] == "jane@example.com"
        assert body["user"]["role"] == "CUSTOMER"
        assert body["user"]["first_name"] == "Jane"
        assert len(body["token"]) == 64

        me = client.get("/api/auth/me", headers=auth_headers(body["token"]))
        assert me.status_code == 200
        assert me.get_json()["user"]["email"] == "jane@example.com"

    def test_role_in_body_is_ignored(self, client, db_session):
        resp = client.post(
            "/api/auth/signup",
            json={"email": "sneaky@example.com", "password": "secret123", "role": "ADMIN"},
        )
        assert resp.status_code == 201
        assert resp.get_json()["user"]["role"] == "CUSTOMER"

    def test_duplicate_email(self, client, customer_user):
        resp = client.post(
            "/api/auth/signup",
            json={"email": "CUSTOMER@branchpos.test", "password": "secret123"},
        )
        assert resp.status_code == 400
        assert "already exists" in resp.get_json()["error"]

    @pytest.mark.parametrize(
        "payload",
        [
            {},
            {"email": "a@b.co"},
            {"password": "secret123"},
            {"email": "not-an-email", "password": "secret123"},
            {"email": "a@b.co", "password": "short1"},
            {"email": "a@b.co", "password": "lettersonly"},
            {"email": "a@b.co", "password": "12345678"},
        ],
    )
    def test_invalid_input(self, client, db_session, payload):
        resp = client.post("/api/auth/signup", json=payload)
        assert resp.status_code == 400
        assert db.session.query(User).count() == 0


# =============================================================================
# LOGIN / LOGOUT
# =============================================================================


class TestLogin:

    def test_login(self, client, admin_user):
        resp = _login(client, "admin@branchpos.test")

        assert resp.status_code == 200
        body = resp.get_json()
        assert body["user"]["role"] == "ADMIN"
        db.session.expire_all()
        assert db.session.get(User, admin_user.id).last_login_at is not None

    def test_email_is_case_insensitive(self, client, admin_user):
        assert _login(client, "  ADMIN@BranchPOS.test ").status_code == 200

    @pytest.mark.parametrize(
        "email,password",
        [
            ("admin@branchpos.test", "WrongPassword1"),
            ("nobody@branchpos.test", TEST_PASSWORD),
        ],
    )
    def test_bad_credentials(self, client, admin_user, email, password):
        resp = _login(client, email, password)
        assert resp.status_code == 401
        assert resp.get_json()["error"] == "Invalid email or password"

    def test_missing_fields(self, client, db_session):
        assert client.post("/api/auth/login", json={"email": "x@y.z"}).status_code == 400

    def test_deactivated_user_cannot_login(self, client, admin_user):
        admin_user.is_active = False
        db.session.commit()

        assert _login(client, "admin@branchpos.test").status_code == 401

    def test_logout_revokes_token(self, client, admin_user):
        token = _login(client, "admin@branchpos.test").get_json()["token"]

        assert client.post("/api/auth/logout", headers=auth_headers(token)).status_code == 200
        assert client.get("/api/auth/me", headers=auth_headers(token)).status_code == 401


class TestSessionValidation:

    def test_missing_header(self, client, db_session):
        resp = client.get("/api/auth/me")
        assert resp.status_code == 401
        assert resp.get_json()["error"] == "Authentication required"

    def test_unknown_token(self, client, db_session):
        resp = client.get("/api/auth/me", headers=auth_headers("f" * 64))
        assert resp.status_code == 401
        assert resp.get_json()["error"] == "Invalid or expired token"

    def test_expired_token(self, client, admin_user):
        session, token = session_service.create_session(admin_user.id)
        session.expires_at = utcnow() - timedelta(minutes=1)
        db.session.commit()

        assert client.get("/api/auth/me", headers=auth_headers(token)).status_code == 401

    def test_deactivated_user_token_revoked(self, client, admin_user, admin_headers):
        admin_user.is_active = False
        db.session.commit()

        assert client.get("/api/auth/me", headers=admin_headers).status_code == 401
        db.session.expire_all()
        session = db.session.query(SessionToken).filter_by(user_id=admin_user.id).one()
        assert session.is_revoked
        assert session.revoked_reason == "User account deactivated"

    def test_only_token_hash_is_stored(self, client, admin_user):
        session, token = session_service.create_session(admin_user.id)
        db.session.commit()

        assert session.token_hash != token
        assert session.token_hash == session_service.hash_token(token)


# =============================================================================
# CHANGE PASSWORD
# =============================================================================


class TestChangePassword:

    def test_revokes_other_sessions(self, client, admin_user):
        current = _login(client, "admin@branchpos.test").get_json()["token"]
        other = _login(client, "admin@branchpos.test").get_json()["token"]

        resp = client.post(
            "/api/auth/change-password",
            json={"currentPassword": TEST_PASSWORD, "newPassword": "NewPassword456"},
            headers=auth_headers(current),
        )

        assert resp.status_code == 200
        assert resp.get_json()["sessions_revoked"] == 1
        assert client.get("/api/auth/me", headers=auth_headers(current)).status_code == 200
        assert client.get("/api/auth/me", headers=auth_headers(other)).status_code == 401
        assert _login(client, "admin@branchpos.test", "NewPassword456").status_code == 200
        assert _login(client, "admin@branchpos.test").status_code == 401

    def test_wrong_current_password(self, client, admin_user, admin_headers):
        resp = client.post(
            "/api/auth/change-password",
            json={"currentPassword": "Nope12345", "newPassword": "NewPassword456"},
            headers=admin_headers,
        )
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "Current password is incorrect"

    def test_weak_new_password(self, client, admin_user, admin_headers):
        resp = client.post(
            "/api/auth/change-password",
            json={"currentPassword": TEST_PASSWORD, "newPassword": "weak"},
            headers=admin_headers,
        )
        assert resp.status_code == 400


# =============================================================================
# PASSWORD HASHING
# =============================================================================


class TestPasswordHashing:

    def test_hash_and_verify(self):
        hashed = auth_service.hash_password("Password123")

        assert hashed.startswith("$2b$12$")
        assert auth_service.verify_password("Password123", hashed)
        assert not auth_service.verify_password("Password124", hashed)

    def test_malformed_hash_never_matches(self):
        assert not auth_service.verify_password("Password123", "not-a-bcrypt-hash")
