"""
Authorization tests.

Verifies:
- Unauthenticated requests to back-office endpoints return 401
- CUSTOMER role is denied every back-office endpoint (403)
- ADMIN role can use them
- POS and health endpoints stay public
"""

import pytest


ADMIN_ENDPOINTS = [
    ("GET", "/api/dashboard/metrics"),
    ("GET", "/api/dashboard/sales-timeline"),
    ("GET", "/api/dashboard/recent-transactions"),
    ("GET", "/api/inventory"),
    ("GET", "/api/inventory/branches"),
    ("GET", "/api/inventory/products"),
    ("GET", "/api/inventory/low-stock"),
    ("GET", "/api/inventory/restock-logs"),
    ("POST", "/api/inventory/restock"),
    ("POST", "/api/inventory/restockhq"),
    ("GET", "/api/sales/reports"),
    ("GET", "/api/sales/detailed"),
    ("GET", "/api/sales/analytics"),
    ("GET", "/api/users"),
    ("GET", "/api/users/stats"),
    ("POST", "/api/users/1/promote"),
    ("POST", "/api/users/1/demote"),
]


# =============================================================================
# UNAUTHENTICATED ACCESS (401)
# =============================================================================


class TestUnauthenticatedAccess:
    """All protected endpoints return 401 without a token."""

    @pytest.mark.parametrize("method,path", ADMIN_ENDPOINTS + [
        ("GET", "/api/auth/me"),
        ("POST", "/api/auth/logout"),
        ("POST", "/api/auth/change-password"),
    ])
    def test_requires_auth(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path, json={})
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    def test_malformed_header(self, client, db_session):
        resp = client.get("/api/dashboard/metrics", headers={"Authorization": "Token abc"})
        assert resp.status_code == 401


# =============================================================================
# CUSTOMER DENIED BACK OFFICE (403)
# =============================================================================


class TestCustomerDenied:
    """CUSTOMER role cannot reach any back-office endpoint."""

    @pytest.mark.parametrize("method,path", ADMIN_ENDPOINTS)
    def test_forbidden(self, client, customer_headers, method, path):
        resp = getattr(client, method.lower())(path, json={}, headers=customer_headers)
        assert resp.status_code == 403, f"{method} {path} returned {resp.status_code}"
        assert resp.get_json()["error"] == "Access denied"


# =============================================================================
# ADMIN ACCESS
# =============================================================================


class TestAdminAccess:

    @pytest.mark.parametrize("method,path", [(m, p) for m, p in ADMIN_ENDPOINTS if m == "GET"])
    def test_can_read(self, client, stocked, admin_headers, method, path):
        resp = client.get(path, headers=admin_headers)
        assert resp.status_code == 200, f"{method} {path} returned {resp.status_code}"


# =============================================================================
# PUBLIC ENDPOINTS
# =============================================================================


class TestPublicEndpoints:

    def test_health(self, client, stocked):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["status"] == "OK"
        assert body["checks"]["database"]["details"]["branches"] == 2

    def test_health_degraded_without_hq(self, client, branch):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.get_json()["status"] == "degraded"

    def test_pos_catalog(self, client, stocked, branch):
        assert client.get("/api/pos/branches").status_code == 200
        assert client.get(f"/api/pos/branches/{branch.id}/products").status_code == 200

    def test_unknown_route_is_json_404(self, client, db_session):
        resp = client.get("/api/nope")
        assert resp.status_code == 404
        assert resp.get_json() == {"error": "Route not found"}

    def test_cors_for_allowed_origin(self, client, db_session, app):
        origin = app.config["CORS_ORIGINS"][0]
        resp = client.get("/api/health", headers={"Origin": origin})
        assert resp.headers["Access-Control-Allow-Origin"] == origin

        resp = client.get("/api/health", headers={"Origin": "https://evil.example"})
        assert "Access-Control-Allow-Origin" not in resp.headers
