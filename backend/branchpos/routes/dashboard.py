# Overview: Flask API routes for the admin dashboard; read-only aggregates.

from flask import Blueprint, request, jsonify, current_app

from ..services import dashboard_service
from ..decorators import require_auth, require_admin


dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api/dashboard")


@dashboard_bp.get("/metrics")
@require_auth
@require_admin
def metrics_route():
    """Revenue, sales counts, per-product and per-branch breakdowns, low-stock alerts."""
    try:
        return jsonify(dashboard_service.dashboard_metrics()), 200
    except Exception:
        current_app.logger.exception("Failed to fetch dashboard metrics")
        return jsonify({"error": "Failed to fetch dashboard metrics"}), 500


@dashboard_bp.get("/sales-timeline")
@require_auth
@require_admin
def sales_timeline_route():
    days = request.args.get("days", 30, type=int)
    if days < 1 or days > 366:
        return jsonify({"error": "days must be between 1 and 366"}), 400

    try:
        return jsonify(dashboard_service.sales_timeline(days=days)), 200
    except Exception:
        current_app.logger.exception("Failed to fetch sales timeline")
        return jsonify({"error": "Failed to fetch sales timeline"}), 500


@dashboard_bp.get("/recent-transactions")
@require_auth
@require_admin
def recent_transactions_route():
    limit = request.args.get("limit", 10, type=int)
    if limit < 1 or limit > 100:
        return jsonify({"error": "limit must be between 1 and 100"}), 400

    try:
        return jsonify(dashboard_service.recent_transactions(limit=limit)), 200
    except Exception:
        current_app.logger.exception("Failed to fetch recent transactions")
        return jsonify({"error": "Failed to fetch recent transactions"}), 500
