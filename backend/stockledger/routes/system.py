# backend/stockledger/routes/system.py
"""
System health and settings endpoints.

Checks database connectivity and that every series scope has an active
series, so misconfiguration shows up before the first sale fails.
"""

import time

from flask import Blueprint, current_app, jsonify
from sqlalchemy import func

from ..config import current_settings
from ..extensions import db
from ..models import DocumentSeries, Location
from ..time_utils import utcnow
from ..validation import SERIES_SCOPES

system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database_health() -> dict:
    start_time = time.time()
    try:
        location_count = db.session.query(func.count(Location.id)).scalar()
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {"locations": location_count},
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


def check_series_health() -> dict:
    """Degraded when a scope has no active series (allocations would fail)."""
    try:
        configured = {
            scope for (scope,) in db.session.query(DocumentSeries.scope)
            .filter(DocumentSeries.is_active.is_(True))
            .distinct()
        }
        missing = [scope for scope in SERIES_SCOPES if scope not in configured]
        if missing:
            return {"status": "degraded", "warning": f"No active series for: {', '.join(missing)}"}
        return {"status": "healthy"}
    except Exception:
        current_app.logger.exception("Series health check failed")
        return {"status": "unhealthy", "error": "Series check failed"}


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy or degraded
    - 503: database unreachable
    """
    database_health = check_database_health()
    series_health = check_series_health()

    checks = [database_health, series_health]
    if any(c["status"] == "unhealthy" for c in checks):
        overall_status, http_status = "unhealthy", 503
    elif any(c["status"] == "degraded" for c in checks):
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    return {
        "status": overall_status,
        "timestamp": utcnow().isoformat() + "Z",
        "checks": {"database": database_health, "series": series_health},
    }, http_status


@system_bp.get("/settings")
def settings():
    """Read-only ledger policy and issuer data for document generators."""
    return jsonify({"settings": current_settings().to_dict()}), 200
