"""
Inventory route tests: request formats, status codes and role checks.
"""

import pytest

from branchpos.extensions import db
from branchpos.models import RestockLog
from conftest import stock_of


# =============================================================================
# POST /api/inventory/restock
# =============================================================================


class TestRestockRoute:

    def test_products_list(self, client, stocked, admin_headers, hq, branch, coke, fanta, admin_user):
        resp = client.post(
            "/api/inventory/restock",
            json={
                "branchId": branch.id,
                "products": [
                    {"productId": coke.id, "quantity": 30},
                    {"productId": fanta.id, "quantity": 20},
                ],
                "notes": "Weekend rush",
            },
            headers=admin_headers,
        )

        assert resp.status_code == 200, resp.get_json()
        body = resp.get_json()
        assert body["message"] == "Restock completed successfully"
        log = body["restock_log"]
        assert log["from_branch_id"] == hq.id
        assert log["to_branch_id"] == branch.id
        assert log["performed_by_user_id"] == admin_user.id
        assert log["notes"] == "Weekend rush"
        assert len(log["items"]) == 2

        assert stock_of(hq, coke) == 470
        assert stock_of(branch, coke) == 50
        assert stock_of(hq, fanta) == 280
        assert stock_of(branch, fanta) == 30

    def test_single_product_pair(self, client, stocked, admin_headers, hq, branch, coke):
        resp = client.post(
            "/api/inventory/restock",
            json={"toBranchId": branch.id, "productId": coke.id, "quantity": 5},
            headers=admin_headers,
        )

        assert resp.status_code == 200, resp.get_json()
        assert stock_of(hq, coke) == 495
        assert stock_of(branch, coke) == 25

    def test_insufficient_stock_is_400_and_writes_nothing(self, client, stocked, admin_headers, hq, branch, coke, fanta):
        resp = client.post(
            "/api/inventory/restock",
            json={
                "branchId": branch.id,
                "products": [
                    {"productId": coke.id, "quantity": 10},
                    {"productId": fanta.id, "quantity": 1000},
                ],
            },
            headers=admin_headers,
        )

        assert resp.status_code == 400
        assert "Insufficient stock in HQ for Fanta" in resp.get_json()["error"]
        assert stock_of(hq, coke) == 500
        assert stock_of(branch, coke) == 20
        db.session.expire_all()
        assert db.session.query(RestockLog).count() == 0

    @pytest.mark.parametrize(
        "payload,message",
        [
            ({"products": [{"productId": 1, "quantity": 1}]}, "Branch ID is required"),
            ({"branchId": "BRANCH"}, "No products provided to restock"),
            ({"branchId": "BRANCH", "products": []}, "products must be a non-empty list"),
            ({"branchId": "BRANCH", "productId": "COKE", "quantity": 0}, "must be a positive integer"),
            ({"branchId": "BRANCH", "productId": "COKE", "quantity": -5}, "must be a positive integer"),
            ({"branchId": "BRANCH", "productId": "COKE", "quantity": 2.5}, "must be an integer"),
            ({"branchId": "BRANCH", "productId": "COKE"}, "quantity is required"),
        ],
    )
    def test_invalid_input(self, client, stocked, admin_headers, branch, coke, payload, message):
        payload = {
            key: branch.id if value == "BRANCH" else coke.id if value == "COKE" else value
            for key, value in payload.items()
        }
        resp = client.post("/api/inventory/restock", json=payload, headers=admin_headers)

        assert resp.status_code == 400
        assert message in resp.get_json()["error"]

    def test_duplicate_product_lines_rejected(self, client, stocked, admin_headers, branch, coke):
        resp = client.post(
            "/api/inventory/restock",
            json={
                "branchId": branch.id,
                "products": [
                    {"productId": coke.id, "quantity": 1},
                    {"productId": coke.id, "quantity": 2},
                ],
            },
            headers=admin_headers,
        )
        assert resp.status_code == 400

    def test_hq_target_rejected(self, client, stocked, admin_headers, hq, coke):
        resp = client.post(
            "/api/inventory/restock",
            json={"branchId": hq.id, "productId": coke.id, "quantity": 1},
            headers=admin_headers,
        )
        assert resp.status_code == 400

    def test_unknown_branch_is_404(self, client, stocked, admin_headers, coke):
        resp = client.post(
            "/api/inventory/restock",
            json={"branchId": 9999, "productId": coke.id, "quantity": 1},
            headers=admin_headers,
        )
        assert resp.status_code == 404

    def test_unknown_product_is_404(self, client, stocked, admin_headers, branch):
        resp = client.post(
            "/api/inventory/restock",
            json={"branchId": branch.id, "productId": 9999, "quantity": 1},
            headers=admin_headers,
        )
        assert resp.status_code == 404
        assert resp.get_json()["error"] == "Product not found: 9999"

    def test_requires_auth(self, client, stocked, branch, coke):
        resp = client.post(
            "/api/inventory/restock",
            json={"branchId": branch.id, "productId": coke.id, "quantity": 1},
        )
        assert resp.status_code == 401

    def test_customer_denied(self, client, stocked, customer_headers, hq, branch, coke):
        resp = client.post(
            "/api/inventory/restock",
            json={"branchId": branch.id, "productId": coke.id, "quantity": 1},
            headers=customer_headers,
        )
        assert resp.status_code == 403
        assert stock_of(hq, coke) == 500


# =============================================================================
# POST /api/inventory/restockhq
# =============================================================================


class TestRestockHqRoute:

    def test_supplier_delivery(self, client, stocked, admin_headers, hq, coke):
        resp = client.post(
            "/api/inventory/restockhq",
            json={
                "products": [{"productId": coke.id, "quantity": 200, "unitCostCents": 6000}],
                "supplierName": "Coca-Cola Beverages Africa",
                "referenceNo": "INV-1042",
            },
            headers=admin_headers,
        )

        assert resp.status_code == 200, resp.get_json()
        log = resp.get_json()["restock_log"]
        assert log["hq_branch_id"] == hq.id
        assert log["supplier_name"] == "Coca-Cola Beverages Africa"
        assert log["items"][0]["unit_cost_cents"] == 6000
        assert stock_of(hq, coke) == 700

    def test_products_required(self, client, stocked, admin_headers):
        resp = client.post("/api/inventory/restockhq", json={}, headers=admin_headers)
        assert resp.status_code == 400

    def test_negative_unit_cost_rejected(self, client, stocked, admin_headers, hq, coke):
        resp = client.post(
            "/api/inventory/restockhq",
            json={"products": [{"productId": coke.id, "quantity": 1, "unitCostCents": -1}]},
            headers=admin_headers,
        )
        assert resp.status_code == 400
        assert stock_of(hq, coke) == 500

    def test_customer_denied(self, client, stocked, customer_headers, coke):
        resp = client.post(
            "/api/inventory/restockhq",
            json={"products": [{"productId": coke.id, "quantity": 1}]},
            headers=customer_headers,
        )
        assert resp.status_code == 403


# =============================================================================
# READ ROUTES
# =============================================================================


class TestInventoryReadRoutes:

    def test_list_inventory(self, client, stocked, admin_headers, branch):
        resp = client.get("/api/inventory", headers=admin_headers)
        assert resp.status_code == 200
        assert len(resp.get_json()) == 4

        resp = client.get(f"/api/inventory?branchId={branch.id}", headers=admin_headers)
        rows = resp.get_json()
        assert {row["branch_id"] for row in rows} == {branch.id}
        assert all(row["is_low_stock"] for row in rows)

    def test_low_stock(self, client, stocked, admin_headers, branch):
        resp = client.get("/api/inventory/low-stock", headers=admin_headers)
        assert resp.status_code == 200
        assert {row["branch_id"] for row in resp.get_json()} == {branch.id}

    def test_restock_logs_limit_validated(self, client, stocked, admin_headers):
        resp = client.get("/api/inventory/restock-logs?limit=0", headers=admin_headers)
        assert resp.status_code == 400

    def test_branches_and_products(self, client, stocked, admin_headers):
        branches = client.get("/api/inventory/branches", headers=admin_headers).get_json()
        products = client.get("/api/inventory/products", headers=admin_headers).get_json()

        assert {b["name"] for b in branches} == {"Nairobi HQ", "Kisumu Branch"}
        assert {p["name"]: p["price_cents"] for p in products} == {"Coke": 8000, "Fanta": 7500}
