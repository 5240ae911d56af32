# backend/storefront/routes/system.py
"""
Health endpoint for load balancers and deploy checks.

Two checks: the database itself, and the session store (how many
sessions are guest vs signed-in, and how many are already due for the
cleanup sweep). Either check failing turns the whole response into 503.
"""

import time
from datetime import timedelta

from flask import Blueprint, current_app
from sqlalchemy import text

from ..extensions import db
from ..models import Session
from storefront.time_utils import utcnow

system_bp = Blueprint("system", __name__)


def _elapsed_ms(start: float) -> float:
    return round((time.time() - start) * 1000, 2)


def _failed(name: str, start: float) -> dict:
    db.session.rollback()
    current_app.logger.exception("%s health check failed", name)
    return {"status": "unhealthy", "latency_ms": _elapsed_ms(start), "error": f"{name} error"}


def check_database_health() -> dict:
    start = time.time()
    try:
        db.session.execute(text("SELECT 1"))
    except Exception:
        return _failed("Database", start)
    return {"status": "healthy", "latency_ms": _elapsed_ms(start)}


def check_session_store_health() -> dict:
    """
    Count sessions by owner and report the guest sessions the next
    `flask maintenance cleanup-sessions` run would delete.
    """
    start = time.time()
    retention_days = current_app.config.get("SESSION_RETENTION_DAYS", 90)
    cutoff = utcnow() - timedelta(days=retention_days)
    try:
        guests = db.session.query(Session).filter(Session.user_id.is_(None)).count()
        signed_in = db.session.query(Session).filter(Session.user_id.isnot(None)).count()
        sweepable = db.session.query(Session).filter(
            Session.user_id.is_(None),
            Session.last_activity < cutoff,
        ).count()
    except Exception:
        return _failed("Session store", start)

    return {
        "status": "healthy",
        "latency_ms": _elapsed_ms(start),
        "details": {
            "guest_sessions": guests,
            "user_sessions": signed_in,
            "due_for_cleanup": sweepable,
            "retention_days": retention_days,
        },
    }


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: every check healthy
    - 503: at least one check failed
    """
    start = time.time()
    checks = {
        "database": check_database_health(),
        "session_store": check_session_store_health(),
    }
    healthy = all(c["status"] == "healthy" for c in checks.values())

    response = {
        "status": "healthy" if healthy else "unhealthy",
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": _elapsed_ms(start),
        "checks": checks,
    }
    return response, 200 if healthy else 503
