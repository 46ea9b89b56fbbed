# backend/posledger/routes/system.py
"""
System health endpoint.

Reports database connectivity and row counts for the ledger tables.
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import Product, Warehouse, StockMovement, Sale
from ..time_utils import utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        details = {
            "products": db.session.query(Product).count(),
            "warehouses": db.session.query(Warehouse).count(),
            "stock_movements": db.session.query(StockMovement).count(),
            "sales": db.session.query(Sale).count(),
        }
        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": details,
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        db.session.rollback()
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


def check_warehouse_health() -> dict:
    """Sales need at least one active warehouse to fall back on."""
    active = db.session.query(Warehouse).filter_by(is_active=True).count()
    if active == 0:
        return {"status": "degraded", "warning": "No active warehouse configured"}
    return {"status": "healthy", "details": {"active_warehouses": active}}


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: healthy or degraded (still operational)
    - 503: database unreachable
    """
    start_time = time.time()

    database_health = check_database_health()
    checks = {"database": database_health}
    if database_health["status"] != "unhealthy":
        checks["warehouses"] = check_warehouse_health()

    statuses = {check["status"] for check in checks.values()}
    if "unhealthy" in statuses:
        overall_status, http_status = "unhealthy", 503
    elif "degraded" in statuses:
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    return {
        "status": overall_status,
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": checks,
    }, http_status
