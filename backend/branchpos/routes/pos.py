# Overview: Flask API routes for the POS checkout; parses input and returns JSON responses.

# backend/branchpos/routes/pos.py
"""
Point-of-sale API Routes

FLOW:
1. GET  /branches, /branches/<id>/products   pick a branch and products
2. POST /order/preview                       price the cart against stock
3. POST /payment/initiate                    send the STK push
4. POST /payment/callback                    gateway reports the outcome
5. POST /payment/confirm                     client polls; reconciles if no callback yet
6. GET  /receipt/<ref>                       receipt of the recorded sale

SECURITY:
- Catalog, confirmation and receipts are public (walk-in customers).
- Preview and initiate attach the customer when a valid token is sent.
- The callback requires ?token=<MPESA_CALLBACK_TOKEN> when that is configured.
"""

import hmac

from flask import Blueprint, request, jsonify, current_app, g

from ..services import pos_service
from ..services.inventory_service import InsufficientStockError
from ..services.mpesa_service import PaymentGatewayError
from ..validation import NotFoundError, ValidationError, coerce_cents, coerce_int, get_field, parse_line_items
from ..decorators import optional_auth


pos_bp = Blueprint("pos", __name__, url_prefix="/api/pos")

# HTTP status per attempt state on /payment/confirm
CONFIRM_STATUS_CODES = {
    pos_service.ATTEMPT_CONFIRMED: 200,
    pos_service.ATTEMPT_PENDING: 202,
    pos_service.ATTEMPT_INITIATED: 202,
    pos_service.ATTEMPT_FAILED: 400,
    pos_service.ATTEMPT_TIMED_OUT: 408,
}


def _cart_from(data: dict):
    branch_id = get_field(data, "branchId", "branch_id")
    items = data.get("items")
    if branch_id is None or not items:
        raise ValidationError("Branch ID and items are required")
    return coerce_int(branch_id, "branchId"), parse_line_items(items)


def _attempt_response(attempt) -> dict:
    body = {
        "success": attempt.status == pos_service.ATTEMPT_CONFIRMED,
        "status": attempt.status,
        "checkoutRequestId": attempt.checkout_request_id,
        "transactionRef": attempt.transaction_ref,
        "totalAmountCents": attempt.total_amount_cents,
        "saleId": attempt.sale_id,
        "mpesaReference": attempt.mpesa_receipt_number,
    }
    if attempt.status == pos_service.ATTEMPT_CONFIRMED:
        body["message"] = "Payment confirmed and sale recorded"
    elif attempt.status in (pos_service.ATTEMPT_PENDING, pos_service.ATTEMPT_INITIATED):
        body["message"] = "Waiting for the customer to complete payment"
    elif attempt.status == pos_service.ATTEMPT_TIMED_OUT:
        body["error"] = attempt.result_desc or "Timed out waiting for payment confirmation"
    else:
        body["error"] = attempt.result_desc or "Payment not confirmed"
    return body


# =============================================================================
# CATALOG
# =============================================================================

@pos_bp.get("/branches")
def branches_route():
    try:
        branches = pos_service.list_pos_branches()
        return jsonify([
            {"id": b.id, "name": b.name, "location": b.location}
            for b in branches
        ]), 200
    except Exception:
        current_app.logger.exception("Failed to fetch POS branches")
        return jsonify({"error": "Failed to fetch branches"}), 500


@pos_bp.get("/branches/<int:branch_id>/products")
def branch_products_route(branch_id: int):
    try:
        return jsonify(pos_service.branch_products(branch_id)), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to fetch branch products")
        return jsonify({"error": "Failed to fetch products"}), 500


# =============================================================================
# CHECKOUT
# =============================================================================

@pos_bp.post("/order/preview")
@optional_auth
def preview_order_route():
    """
    Request body:
    {
        "branchId": 2,
        "items": [{"productId": 1, "quantity": 2}]
    }

    Returns priced lines and total_cents. Nothing is reserved.
    """
    try:
        data = request.get_json(silent=True) or {}
        branch_id, items = _cart_from(data)
        preview = pos_service.preview_order(branch_id, items)
        return jsonify(preview.to_dict()), 200

    except (ValidationError, InsufficientStockError) as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to preview order")
        return jsonify({"error": "Failed to preview order"}), 500


@pos_bp.post("/payment/initiate")
@optional_auth
def initiate_payment_route():
    """
    Request body:
    {
        "branchId": 2,
        "phoneNumber": "0712345678",
        "items": [{"productId": 1, "quantity": 2}],
        "totalAmountCents": 16000        (optional; rejected if the cart re-prices differently)
    }

    Returns:
        200: checkoutRequestId to poll with
        400: invalid input, insufficient stock, or cart total changed
        404: branch or product not found
        502: gateway refused or unreachable
    """
    try:
        data = request.get_json(silent=True) or {}
        phone_number = get_field(data, "phoneNumber", "phone_number")
        if not phone_number:
            return jsonify({"error": "Missing required fields"}), 400
        branch_id, items = _cart_from(data)

        total = get_field(data, "totalAmountCents", "total_amount_cents")
        if total is not None:
            total = coerce_cents(total, "totalAmountCents")

        attempt = pos_service.initiate_payment(
            branch_id=branch_id,
            phone_number=phone_number,
            items=items,
            total_amount_cents=total,
            customer_id=g.current_user.id if g.current_user else None,
        )
        return jsonify({
            "success": True,
            "status": attempt.status,
            "transactionRef": attempt.transaction_ref,
            "checkoutRequestId": attempt.checkout_request_id,
            "merchantRequestId": attempt.merchant_request_id,
            "totalAmountCents": attempt.total_amount_cents,
            "message": "Payment request sent. Please enter your M-Pesa PIN on your phone.",
        }), 200

    except (ValidationError, InsufficientStockError) as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except PaymentGatewayError as e:
        return jsonify({"error": str(e) or "Failed to initiate payment"}), 502
    except Exception:
        current_app.logger.exception("Failed to initiate payment")
        return jsonify({"error": "Failed to initiate payment"}), 500


@pos_bp.post("/payment/callback")
def payment_callback_route():
    """Gateway webhook. Valid payloads are always acknowledged."""
    expected = current_app.config.get("MPESA_CALLBACK_TOKEN")
    if expected and not hmac.compare_digest(request.args.get("token", ""), expected):
        current_app.logger.warning("Rejected payment callback with bad token from %s", request.remote_addr)
        return jsonify({"error": "Forbidden"}), 403

    try:
        ack = pos_service.handle_callback(request.get_json(silent=True))
        return jsonify(ack), 200

    except ValidationError as e:
        current_app.logger.warning("Invalid payment callback: %s", e)
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to process payment callback")
        return jsonify({"error": "Callback processing failed"}), 500


@pos_bp.post("/payment/confirm")
def confirm_payment_route():
    """
    Request body:
    {
        "checkoutRequestId": "ws_CO_..."
    }

    Returns:
        200: CONFIRMED (sale recorded)
        202: still pending, poll again
        400: FAILED
        404: unknown checkout id
        408: TIMED_OUT (stopped waiting; a late payment can still confirm)
    """
    try:
        data = request.get_json(silent=True) or {}
        checkout_id = get_field(data, "checkoutRequestId", "checkout_request_id")
        if not checkout_id:
            return jsonify({"error": "checkoutRequestId is required"}), 400

        attempt = pos_service.confirm_payment(checkout_id)
        return jsonify(_attempt_response(attempt)), CONFIRM_STATUS_CODES.get(attempt.status, 200)

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to confirm payment")
        return jsonify({"success": False, "error": "Failed to confirm payment"}), 500


@pos_bp.get("/payment/status/<checkout_id>")
def payment_status_route(checkout_id: str):
    """Current attempt state; never contacts the gateway."""
    try:
        attempt = pos_service.get_payment_status(checkout_id)
        return jsonify(_attempt_response(attempt)), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to load payment status")
        return jsonify({"error": "Failed to load payment status"}), 500


@pos_bp.get("/receipt/<reference>")
def receipt_route(reference: str):
    """Receipt by M-Pesa receipt number or POS transaction reference."""
    try:
        return jsonify(pos_service.get_receipt(reference)), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to fetch receipt")
        return jsonify({"error": "Failed to fetch receipt"}), 500
