# backend/retailpos/routes/system.py
"""
System health endpoint.

Reports database connectivity and whether an active admin exists, so a
fresh deployment that skipped `flask system init` shows up as degraded.
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import Product, SessionToken, User
from ..models.auth import ROLE_ADMIN
from ..time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        product_count = db.session.query(Product).count()
        user_count = db.session.query(User).count()
        active_sessions = db.session.query(SessionToken).filter_by(is_revoked=False).count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "products": product_count,
                "users": user_count,
                "active_sessions": active_sessions,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


def check_auth_health() -> dict:
    """An installation without an active admin cannot manage users."""
    try:
        admins = db.session.query(User).filter_by(role=ROLE_ADMIN, is_active=True).count()
    except Exception:
        current_app.logger.exception("Auth health check failed")
        return {"status": "unhealthy", "error": "Auth service error"}

    if not admins:
        return {"status": "degraded", "warning": "No active admin user; run `flask system init`"}
    return {"status": "healthy", "details": {"active_admins": admins}}


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy or degraded
    - 503: database unreachable
    """
    start_time = time.time()

    database_health = check_database_health()
    auth_health = (
        check_auth_health() if database_health["status"] == "healthy"
        else {"status": "unhealthy", "error": "Database unavailable"}
    )

    all_checks = [database_health, auth_health]
    if any(check["status"] == "unhealthy" for check in all_checks):
        overall_status, http_status = "unhealthy", 503
    elif any(check["status"] == "degraded" for check in all_checks):
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    return {
        "status": overall_status,
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": {
            "database": database_health,
            "auth": auth_health,
        }
    }, http_status
