# backend/itemtracker/routes/system.py
"""
System health and version endpoints.
"""

import sys
import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import User, SessionToken, JobLease
from ..services.snapshot_scheduler import LEASE_NAME
from ..time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        user_count = db.session.query(User).count()
        active_sessions = db.session.query(SessionToken).filter_by(is_revoked=False).count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
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


def check_snapshot_job_health() -> dict:
    """Report the daily snapshot lease; a lease past its expiry means a crashed run."""
    try:
        lease = db.session.get(JobLease, LEASE_NAME)
        details = {
            "scheduler_enabled": bool(current_app.config.get("SNAPSHOT_SCHEDULER_ENABLED")),
            "lease": lease.to_dict() if lease else None,
        }
        if lease and lease.holder and lease.expires_at and lease.expires_at < utcnow():
            return {"status": "degraded", "warning": "Snapshot lease expired while held", "details": details}
        return {"status": "healthy", "details": details}
    except Exception:
        current_app.logger.exception("Snapshot job health check failed")
        return {"status": "unhealthy", "error": "Snapshot job error"}


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: healthy or degraded
    - 503: database unreachable
    """
    start_time = time.time()

    database_health = check_database_health()
    snapshot_health = check_snapshot_job_health()

    all_checks = [database_health, snapshot_health]
    if any(check["status"] == "unhealthy" for check in all_checks):
        overall_status, http_status = "unhealthy", 503
    elif any(check["status"] == "degraded" for check in all_checks):
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    response = {
        "status": overall_status,
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": {
            "database": database_health,
            "snapshot_job": snapshot_health,
        }
    }

    return response, http_status


@system_bp.get("/version")
def version():
    env = "production" if not current_app.debug else "development"

    return {
        "api_version": "1.0.0",
        "environment": env,
        "python_version": sys.version.split()[0],
        "server_time": to_utc_z(utcnow()),
    }
