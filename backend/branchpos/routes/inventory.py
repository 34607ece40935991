# Overview: Flask API routes for inventory operations; parses input and returns JSON responses.

# backend/branchpos/routes/inventory.py
"""
Inventory management routes.

SECURITY: All routes require an authenticated ADMIN.

Stock movement:
- POST /restock moves stock HQ -> branch in one transaction; an insufficient
  line rejects the whole request and nothing is written.
- POST /restockhq receives supplier stock into HQ.
"""
from flask import Blueprint, request, jsonify, current_app, g

from ..extensions import db
from ..services import inventory_service
from ..services.inventory_service import InsufficientStockError
from ..services.concurrency import commit_session
from ..validation import (
    LineItem,
    NotFoundError,
    ValidationError,
    coerce_cents,
    coerce_int,
    coerce_positive_int,
    get_field,
    parse_line_items,
    MAX_LINE_QUANTITY,
)
from ..decorators import require_auth, require_admin


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


def _restock_lines(data: dict) -> list[LineItem]:
    """Accept a `products`/`items` list or a single productId/quantity pair."""
    raw = get_field(data, "products", "items")
    if raw is not None:
        return parse_line_items(raw, field="products")

    product_id = get_field(data, "productId", "product_id")
    quantity = data.get("quantity")
    if product_id is None and quantity is None:
        raise ValidationError("No products provided to restock")
    if product_id is None:
        raise ValidationError("productId is required")
    if quantity is None:
        raise ValidationError("quantity is required")
    return [LineItem(
        product_id=coerce_int(product_id, "productId"),
        quantity=coerce_positive_int(quantity, "quantity", maximum=MAX_LINE_QUANTITY),
    )]


@inventory_bp.get("")
@require_auth
@require_admin
def list_inventory_route():
    """
    Query params:
        branchId: restrict to one branch
        lowStock: "true" for rows below their threshold
    """
    branch_id = get_field(request.args, "branchId", "branch_id")
    low_stock = (get_field(request.args, "lowStock", "low_stock") or "").lower() == "true"

    try:
        if branch_id is not None:
            branch_id = coerce_int(branch_id, "branchId")
        rows = inventory_service.list_inventory(branch_id=branch_id, low_stock=low_stock)
        return jsonify([row.to_dict() for row in rows]), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to fetch inventory")
        return jsonify({"error": "Failed to fetch inventory"}), 500


@inventory_bp.get("/branches")
@require_auth
@require_admin
def list_branches_route():
    try:
        return jsonify([b.to_dict() for b in inventory_service.list_branches()]), 200
    except Exception:
        current_app.logger.exception("Failed to fetch branches")
        return jsonify({"error": "Failed to fetch branches"}), 500


@inventory_bp.get("/products")
@require_auth
@require_admin
def list_products_route():
    try:
        return jsonify([p.to_dict() for p in inventory_service.list_products()]), 200
    except Exception:
        current_app.logger.exception("Failed to fetch products")
        return jsonify({"error": "Failed to fetch products"}), 500


@inventory_bp.get("/low-stock")
@require_auth
@require_admin
def low_stock_route():
    try:
        return jsonify(inventory_service.list_low_stock()), 200
    except Exception:
        current_app.logger.exception("Failed to fetch low stock items")
        return jsonify({"error": "Failed to fetch low stock items"}), 500


@inventory_bp.get("/restock-logs")
@require_auth
@require_admin
def restock_logs_route():
    limit = request.args.get("limit", 50, type=int)
    if limit < 1 or limit > 500:
        return jsonify({"error": "limit must be between 1 and 500"}), 400

    try:
        logs = inventory_service.list_restock_logs(limit=limit)
        return jsonify([log.to_dict() for log in logs]), 200
    except Exception:
        current_app.logger.exception("Failed to fetch restock logs")
        return jsonify({"error": "Failed to fetch restock logs"}), 500


@inventory_bp.post("/restock")
@require_auth
@require_admin
def restock_route():
    """
    Transfer stock from HQ to a branch.

    Request body:
    {
        "branchId": 2,
        "products": [{"productId": 1, "quantity": 50}],
        "notes": "Weekly top-up"
    }

    A single "productId"/"quantity" pair is accepted instead of "products".

    Returns:
        200: restock log
        400: invalid input, target is HQ, or insufficient HQ stock
        404: branch, HQ or product not found
    """
    try:
        data = request.get_json(silent=True) or {}

        target = get_field(data, "branchId", "toBranchId", "branch_id", "to_branch_id")
        if target is None:
            return jsonify({"error": "Branch ID is required"}), 400

        log = inventory_service.restock_branch(
            target_branch_id=coerce_int(target, "branchId"),
            items=_restock_lines(data),
            performed_by_user_id=g.current_user.id,
            notes=data.get("notes"),
        )
        commit_session()

        current_app.logger.info(
            "Restocked branch %s from HQ (log %s, %s line(s)) by user %s",
            log.to_branch_id, log.id, len(log.items), g.current_user.id,
        )
        return jsonify({
            "message": "Restock completed successfully",
            "restock_log": log.to_dict(),
        }), 200

    except (ValidationError, InsufficientStockError) as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 404
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to restock branch")
        return jsonify({"error": "Failed to complete restock"}), 500


@inventory_bp.post("/restockhq")
@require_auth
@require_admin
def restock_hq_route():
    """
    Receive supplier stock into HQ.

    Request body:
    {
        "products": [{"productId": 1, "quantity": 500, "unitCostCents": 6000}],
        "supplierName": "Coca-Cola Beverages Africa",
        "referenceNo": "INV-1042",
        "notes": "Monthly delivery"
    }
    """
    try:
        data = request.get_json(silent=True) or {}

        raw = get_field(data, "products", "items")
        if not raw:
            return jsonify({"error": "Products are required"}), 400
        items = parse_line_items(raw, field="products")

        unit_costs = {}
        for line, entry in zip(items, raw):
            cost = get_field(entry, "unitCostCents", "unit_cost_cents")
            if cost is not None:
                unit_costs[line.product_id] = coerce_cents(cost, "unitCostCents")

        log = inventory_service.restock_hq(
            items,
            g.current_user.id,
            supplier_name=get_field(data, "supplierName", "supplier_name"),
            reference_no=get_field(data, "referenceNo", "reference_no"),
            notes=data.get("notes"),
            unit_costs=unit_costs,
        )
        commit_session()

        current_app.logger.info(
            "Restocked HQ from supplier %r (log %s, %s line(s)) by user %s",
            log.supplier_name, log.id, len(log.items), g.current_user.id,
        )
        return jsonify({
            "message": "HQ restocked successfully",
            "restock_log": log.to_dict(),
        }), 200

    except ValidationError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 404
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to restock HQ")
        return jsonify({"error": "Failed to restock HQ"}), 500
