# Overview: Flask API routes for sales reports; parses filters and returns JSON responses.

# backend/branchpos/routes/sales.py
"""
Sales Reporting API Routes

SECURITY: All routes require an authenticated ADMIN.

Time semantics:
- startDate / endDate accept ISO-8601 dates or datetimes (Z/offsets allowed).
- A bare date as endDate covers that whole day (inclusive).
"""

from flask import Blueprint, request, jsonify, current_app

from ..services import reporting_service
from ..validation import ValidationError, coerce_int, get_field
from ..decorators import require_auth, require_admin
from branchpos.time_utils import parse_iso_datetime


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


def _report_filters():
    args = request.args
    try:
        start = parse_iso_datetime(get_field(args, "startDate", "start_date"))
        end = parse_iso_datetime(get_field(args, "endDate", "end_date"), end_of_day=True)
    except ValueError:
        raise ValidationError("startDate and endDate must be ISO-8601 dates")
    if start and end and start > end:
        raise ValidationError("startDate must be before endDate")

    branch_id = get_field(args, "branchId", "branch_id")
    if branch_id is not None:
        branch_id = coerce_int(branch_id, "branchId")
    return start, end, branch_id


@sales_bp.get("/reports")
@require_auth
@require_admin
def sales_reports_route():
    """
    Consolidated sales report.

    Query params: startDate, endDate, branchId, productId (all optional)
    """
    try:
        start, end, branch_id = _report_filters()
        product_id = get_field(request.args, "productId", "product_id")
        if product_id is not None:
            product_id = coerce_int(product_id, "productId")

        report = reporting_service.sales_reports(
            start=start,
            end=end,
            branch_id=branch_id,
            product_id=product_id,
        )
        return jsonify(report), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to generate sales reports")
        return jsonify({"error": "Failed to generate sales reports"}), 500


@sales_bp.get("/detailed")
@require_auth
@require_admin
def detailed_sales_route():
    """
    Paginated sales with line items, newest first.

    Query params: page (default 1), limit (default 50), branchId, startDate, endDate
    """
    try:
        start, end, branch_id = _report_filters()
        page = coerce_int(request.args.get("page", "1"), "page")
        limit = coerce_int(request.args.get("limit", "50"), "limit")

        result = reporting_service.detailed_sales(
            page=page,
            limit=limit,
            branch_id=branch_id,
            start=start,
            end=end,
        )
        return jsonify(result), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to fetch detailed sales")
        return jsonify({"error": "Failed to fetch detailed sales"}), 500


@sales_bp.get("/analytics")
@require_auth
@require_admin
def sales_analytics_route():
    try:
        return jsonify(reporting_service.sales_analytics()), 200
    except Exception:
        current_app.logger.exception("Failed to fetch sales analytics")
        return jsonify({"error": "Failed to fetch sales analytics"}), 500
