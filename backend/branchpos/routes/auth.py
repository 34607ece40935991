# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

# backend/branchpos/routes/auth.py
"""
Authentication API routes

- Self-service signup always creates a CUSTOMER account
- Session management with opaque bearer tokens
- Password change revokes every other session of the user
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..extensions import db
from ..services import auth_service
from ..services import session_service
from ..services.concurrency import commit_session
from ..validation import ConflictError, ValidationError, get_field
from ..decorators import require_auth


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/signup")
def signup_route():
    """
    Register a customer account and log it in.

    Request body:
    {
        "email": "jane@example.com",
        "password": "secret123",
        "firstName": "Jane",
        "lastName": "Doe"
    }

    Returns:
        201: user and session token
        400: invalid input, weak password, or email already registered
    """
    try:
        data = request.get_json(silent=True) or {}
        email = data.get("email")
        password = data.get("password")

        if not all([email, password]):
            return jsonify({"error": "Email and password are required"}), 400

        user = auth_service.signup(
            email=email,
            password=password,
            first_name=get_field(data, "firstName", "first_name"),
            last_name=get_field(data, "lastName", "last_name"),
        )
        session, token = session_service.create_session(
            user_id=user.id,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )
        commit_session()

        return jsonify({
            "user": user.to_dict(),
            "token": token,
            "session": session.to_dict(),
            "message": "Account created successfully",
        }), 201

    except (ValidationError, ConflictError) as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to sign up user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Token must be included in the Authorization header for protected routes.
    """
    try:
        data = request.get_json(silent=True) or {}
        email = data.get("email")
        password = data.get("password")

        if not all([email, password]):
            return jsonify({"error": "Email and password are required"}), 400

        user = auth_service.authenticate(email, password)
        if not user:
            return jsonify({"error": "Invalid email or password"}), 401

        session, token = session_service.create_session(
            user_id=user.id,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )
        commit_session()

        return jsonify({
            "user": user.to_dict(),
            "token": token,
            "session": session.to_dict(),
            "message": "Login successful",
        }), 200

    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.get("/me")
@require_auth
def me_route():
    """Current user, with the role as persisted right now."""
    return jsonify({"user": g.current_user.to_dict()}), 200


@auth_bp.post("/logout")
@require_auth
def logout_route():
    try:
        token = request.headers.get("Authorization", "").split(" ", 1)[1]
        session_service.revoke_session(token, reason="User logout")
        commit_session()
        return jsonify({"message": "Logged out successfully"}), 200
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to logout user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/change-password")
@require_auth
def change_password_route():
    """
    Request body:
    {
        "currentPassword": "old-secret1",
        "newPassword": "new-secret2"
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        auth_service.change_password(
            g.current_user,
            get_field(data, "currentPassword", "current_password"),
            get_field(data, "newPassword", "new_password"),
        )
        revoked = session_service.revoke_all_user_sessions(
            g.current_user.id,
            reason="Password changed",
            except_session_id=g.session_context.session.id,
        )
        commit_session()
        return jsonify({
            "message": "Password changed successfully",
            "sessions_revoked": revoked,
        }), 200

    except ValidationError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to change password")
        return jsonify({"error": "Internal server error"}), 500
