# backend/branchpos/routes/system.py
"""
System health endpoint.

Reports database reachability for load balancers and deployment checks.
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import Branch, SessionToken
from branchpos.time_utils import utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        branch_count = db.session.query(Branch).count()
        hq_count = db.session.query(Branch).filter_by(is_hq=True).count()
        active_sessions = db.session.query(SessionToken).filter(
            SessionToken.is_revoked == False,  # noqa: E712
            SessionToken.expires_at >= utcnow(),
        ).count()

        elapsed_ms = (time.time() - start_time) * 1000
        result = {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "branches": branch_count,
                "active_sessions": active_sessions,
            }
        }
        if hq_count == 0:
            # Restocks cannot run without an HQ branch
            result["status"] = "degraded"
            result["warning"] = "No HQ branch configured"
        return result
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy or degraded (still operational)
    - 503: database unreachable
    """
    database_health = check_database_health()

    if database_health["status"] == "unhealthy":
        http_status = 503
    else:
        http_status = 200

    response = {
        "status": "OK" if database_health["status"] == "healthy" else database_health["status"],
        "message": "Multi-branch retail API is running",
        "timestamp": utcnow().isoformat() + "Z",
        "checks": {
            "database": database_health,
        }
    }

    return response, http_status
