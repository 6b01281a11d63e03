# backend/propartner/routes/system.py
"""
System health and version endpoints.

Health is not tenant-scoped: it reports on the database and on the size of
the ledgers only.
"""

import sys
import time

from flask import Blueprint, current_app
from sqlalchemy import text

from ..extensions import db
from ..models import Document, LoyaltyMovement, Organization, StockMovement
from ..time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api")

API_VERSION = "1.0.0"


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 2)


def check_database_health() -> dict:
    """Probe the connection, then count rows in each ledger."""
    start = time.perf_counter()
    try:
        db.session.execute(text("SELECT 1"))
        counts = {
            "organizations": db.session.query(Organization).count(),
            "documents": db.session.query(Document).count(),
            "stock_movements": db.session.query(StockMovement).count(),
            "loyalty_movements": db.session.query(LoyaltyMovement).count(),
        }
    except Exception:
        current_app.logger.exception("Database health check failed")
        db.session.rollback()
        return {"status": "unhealthy", "latency_ms": _elapsed_ms(start), "error": "Database error"}

    return {"status": "healthy", "latency_ms": _elapsed_ms(start), "details": counts}


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: Database reachable
    - 503: Database unreachable
    """
    database = check_database_health()
    healthy = database["status"] == "healthy"

    return {
        "status": "healthy" if healthy else "unhealthy",
        "timestamp": to_utc_z(utcnow()),
        "checks": {"database": database},
    }, 200 if healthy else 503


@system_bp.get("/version")
def version():
    """Non-sensitive deployment information."""
    cfg = current_app.config
    return {
        "api_version": API_VERSION,
        "environment": "development" if current_app.debug else "production",
        "python_version": sys.version.split()[0],
        "default_currency": cfg.get("DEFAULT_CURRENCY", "EUR"),
        "loyalty_expiration_days": cfg.get("LOYALTY_DEFAULT_EXPIRATION_DAYS", 365),
        "server_time": to_utc_z(utcnow()),
    }
