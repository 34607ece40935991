# Overview: Request authentication and role decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .services import session_service


def _bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1].strip() or None


def _is_authenticated() -> bool:
    return getattr(g, "current_user", None) is not None


def require_auth(f):
    """
    Require a valid session token.

    Sets the following Flask g attributes:
    - g.current_user: The authenticated User, loaded fresh from the database
    - g.session_context: The full SessionContext object

    Returns 401 if the header is missing, the token is unknown, revoked or
    expired, or the user account is deactivated.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = _bearer_token()
        if not token:
            return jsonify({"error": "Authentication required"}), 401

        context = session_service.validate_session(token)
        if not context:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.current_user = context.user
        g.session_context = context
        return f(*args, **kwargs)

    return decorated_function


def require_admin(f):
    """
    Require the persisted ADMIN role. Must be stacked under @require_auth.

    The role is read from the user row loaded for this request, so a demotion
    takes effect on the demoted user's next call.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not _is_authenticated():
            return jsonify({"error": "Authentication required"}), 401

        if not g.current_user.is_admin:
            return jsonify({
                "error": "Access denied",
                "message": "This action requires ADMIN role",
            }), 403

        return f(*args, **kwargs)

    return decorated_function


def optional_auth(f):
    """
    Attach the user when a valid token is present; never rejects.

    g.current_user is None for anonymous callers (walk-in POS customers).
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        g.current_user = None
        g.session_context = None

        token = _bearer_token()
        if token:
            context = session_service.validate_session(token)
            if context:
                g.current_user = context.user
                g.session_context = context

        return f(*args, **kwargs)

    return decorated_function
