# Overview: Flask API routes for user administration; parses input and returns JSON responses.

# backend/branchpos/routes/users.py
"""
User administration routes.

SECURITY: All routes require an authenticated ADMIN.

Promotion and demotion change the persisted role only. Sessions are left
alone: the next request of the affected user reloads the role.
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..extensions import db
from ..services import user_service
from ..services.concurrency import commit_session
from ..validation import ConflictError, NotFoundError, ValidationError
from ..decorators import require_auth, require_admin


users_bp = Blueprint("users", __name__, url_prefix="/api/users")


@users_bp.get("")
@require_auth
@require_admin
def list_users_route():
    """
    Query params:
        role: ADMIN or CUSTOMER
        search: substring of email, first or last name
    """
    try:
        users = user_service.list_users(
            role=request.args.get("role"),
            search=request.args.get("search"),
        )
        return jsonify([user.to_dict() for user in users]), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to fetch users")
        return jsonify({"error": "Failed to fetch users"}), 500


@users_bp.get("/stats")
@require_auth
@require_admin
def user_stats_route():
    try:
        return jsonify(user_service.user_stats()), 200
    except Exception:
        current_app.logger.exception("Failed to fetch user statistics")
        return jsonify({"error": "Failed to fetch user statistics"}), 500


@users_bp.post("/<int:user_id>/promote")
@require_auth
@require_admin
def promote_user_route(user_id: int):
    """
    Returns:
        200: promoted user
        400: already an admin
        404: user not found
    """
    try:
        user = user_service.promote_user(user_id, actor_user_id=g.current_user.id)
        commit_session()
        current_app.logger.info("User %s promoted to ADMIN by %s", user.id, g.current_user.id)
        return jsonify({
            "message": f"{user.email} has been promoted to admin",
            "user": user.to_dict(),
        }), 200

    except ConflictError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 404
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to promote user")
        return jsonify({"error": "Failed to promote user"}), 500


@users_bp.post("/<int:user_id>/demote")
@require_auth
@require_admin
def demote_user_route(user_id: int):
    """
    Returns:
        200: demoted user
        400: not an admin, self-demotion, or last remaining admin
        404: user not found
    """
    try:
        user = user_service.demote_user(user_id, actor_user_id=g.current_user.id)
        commit_session()
        current_app.logger.info("User %s demoted to CUSTOMER by %s", user.id, g.current_user.id)
        return jsonify({
            "message": f"{user.email} has been demoted to customer",
            "user": user.to_dict(),
        }), 200

    except ConflictError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 404
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to demote user")
        return jsonify({"error": "Failed to demote user"}), 500
