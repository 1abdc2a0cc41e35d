# backend/livemart/routes/system.py
"""
System health endpoint.

Checks the two external dependencies a request can touch: the SQL database
and the Redis token store.
"""

import time
from flask import Blueprint, current_app, jsonify
from sqlalchemy import text

from ..extensions import db, get_token_service
from livemart.time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database_health() -> dict:
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        elapsed_ms = (time.time() - start_time) * 1000
        return {"status": "healthy", "latency_ms": round(elapsed_ms, 2)}
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {"status": "unhealthy", "latency_ms": round(elapsed_ms, 2), "error": "Database error"}


def check_token_store_health() -> dict:
    start_time = time.time()
    try:
        get_token_service().store.ping()
        elapsed_ms = (time.time() - start_time) * 1000
        return {"status": "healthy", "latency_ms": round(elapsed_ms, 2)}
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Token store health check failed")
        return {"status": "unhealthy", "latency_ms": round(elapsed_ms, 2), "error": "Redis error"}


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: all dependencies healthy
    - 503: at least one dependency unhealthy
    """
    checks = {
        "database": check_database_health(),
        "token_store": check_token_store_health(),
    }
    healthy = all(c["status"] == "healthy" for c in checks.values())
    status_code = 200 if healthy else 503
    return jsonify({
        "success": healthy,
        "message": "Server is running" if healthy else "Server is degraded",
        "data": {
            "status": "healthy" if healthy else "unhealthy",
            "timestamp": to_utc_z(utcnow()),
            "checks": checks,
        },
    }), status_code
