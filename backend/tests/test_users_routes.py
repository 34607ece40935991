"""
User administration tests.

Verifies:
- Promotion records who promoted whom
- Demotion refuses self-demotion and removing the last admin
- Role changes apply on the affected user's next request, without re-login
"""

import pytest

from branchpos.extensions import db
from branchpos.models import User, ROLE_ADMIN
from branchpos.services import user_service
from branchpos.validation import ConflictError, NotFoundError, ValidationError
from conftest import headers_for, make_user


class TestListUsers:

    def test_list_and_filter(self, client, admin_user, customer_user, admin_headers):
        resp = client.get("/api/users", headers=admin_headers)
        assert resp.status_code == 200
        assert {u["email"] for u in resp.get_json()} == {"admin@branchpos.test", "customer@branchpos.test"}

        resp = client.get("/api/users?role=customer", headers=admin_headers)
        assert [u["email"] for u in resp.get_json()] == ["customer@branchpos.test"]

        resp = client.get("/api/users?search=ADA", headers=admin_headers)
        assert [u["email"] for u in resp.get_json()] == ["admin@branchpos.test"]

    def test_unknown_role_filter(self, client, admin_headers):
        assert client.get("/api/users?role=CASHIER", headers=admin_headers).status_code == 400

    def test_stats(self, client, admin_user, customer_user, admin_headers):
        resp = client.get("/api/users/stats", headers=admin_headers)

        assert resp.status_code == 200
        stats = resp.get_json()
        assert stats["total_users"] == 2
        assert stats["admin_count"] == 1
        assert stats["customer_count"] == 1


class TestPromote:

    def test_promote_customer(self, client, admin_user, customer_user, admin_headers):
        resp = client.post(f"/api/users/{customer_user.id}/promote", headers=admin_headers)

        assert resp.status_code == 200
        user = resp.get_json()["user"]
        assert user["role"] == "ADMIN"
        assert user["promoted_by_user_id"] == admin_user.id
        assert user["promoted_at"] is not None

    def test_promoted_user_gains_access_immediately(self, client, admin_user, customer_user, admin_headers,
                                                    customer_headers):
        assert client.get("/api/users", headers=customer_headers).status_code == 403

        client.post(f"/api/users/{customer_user.id}/promote", headers=admin_headers)

        assert client.get("/api/users", headers=customer_headers).status_code == 200

    def test_already_admin(self, client, admin_user, admin_headers):
        resp = client.post(f"/api/users/{admin_user.id}/promote", headers=admin_headers)
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "User is already an admin"

    def test_unknown_user(self, client, admin_headers):
        resp = client.post("/api/users/9999/promote", headers=admin_headers)
        assert resp.status_code == 404
        assert resp.get_json()["error"] == "User not found"


class TestDemote:

    def test_demote_admin(self, client, admin_user, admin_headers):
        other = make_user("second@branchpos.test", role=ROLE_ADMIN)

        resp = client.post(f"/api/users/{other.id}/demote", headers=admin_headers)

        assert resp.status_code == 200
        user = resp.get_json()["user"]
        assert user["role"] == "CUSTOMER"
        assert user["promoted_by_user_id"] is None

    def test_demoted_admin_loses_access_on_next_request(self, client, admin_user, admin_headers):
        other = make_user("second@branchpos.test", role=ROLE_ADMIN)
        other_headers = headers_for(other)
        assert client.get("/api/users", headers=other_headers).status_code == 200

        client.post(f"/api/users/{other.id}/demote", headers=admin_headers)

        # Same token, no re-login
        assert client.get("/api/users", headers=other_headers).status_code == 403
        assert client.get("/api/auth/me", headers=other_headers).get_json()["user"]["role"] == "CUSTOMER"

    def test_cannot_demote_self(self, client, admin_user, admin_headers):
        make_user("second@branchpos.test", role=ROLE_ADMIN)

        resp = client.post(f"/api/users/{admin_user.id}/demote", headers=admin_headers)

        assert resp.status_code == 400
        assert resp.get_json()["error"] == "You cannot demote yourself"

    def test_not_an_admin(self, client, admin_user, customer_user, admin_headers):
        resp = client.post(f"/api/users/{customer_user.id}/demote", headers=admin_headers)
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "User is not an admin"


class TestUserServiceRules:

    def test_last_admin_cannot_be_demoted(self, db_session, admin_user):
        # Only reachable when the actor is not an admin row themselves
        with pytest.raises(ConflictError, match="Cannot demote the last admin"):
            user_service.demote_user(admin_user.id, actor_user_id=None)
        db_session.rollback()
        assert db.session.get(User, admin_user.id).role == ROLE_ADMIN

    def test_demote_unknown_user(self, db_session):
        with pytest.raises(NotFoundError):
            user_service.demote_user(9999, actor_user_id=None)

    def test_invalid_role_filter(self, db_session):
        with pytest.raises(ValidationError):
            user_service.list_users(role="OWNER")
