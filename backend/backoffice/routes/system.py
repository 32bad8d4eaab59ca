"""
Liveness and version endpoints.
"""

import sys
from time import perf_counter

from flask import Blueprint, current_app
from sqlalchemy import func, select

from ..extensions import db
from ..models import Inventory, InventoryMovement, Purchase, Sale
from ..time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)

API_VERSION = "1.0.0"

# Row counts reported by /health, keyed by label
LEDGER_TABLES = (
    ("inventories", Inventory),
    ("movements", InventoryMovement),
    ("purchases", Purchase),
    ("sales", Sale),
)


def _elapsed_ms(started: float) -> float:
    return round((perf_counter() - started) * 1000, 2)


def database_check() -> dict:
    """Count ledger rows; any database error marks the service unhealthy."""
    started = perf_counter()
    try:
        counts = {
            label: db.session.scalar(select(func.count()).select_from(model))
            for label, model in LEDGER_TABLES
        }
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Database health check failed")
        return {"status": "unhealthy", "latency_ms": _elapsed_ms(started), "error": "Database error"}
    return {"status": "healthy", "latency_ms": _elapsed_ms(started), "details": counts}


@system_bp.get("/health")
def health():
    """200 when the database answers, 503 otherwise."""
    database = database_check()
    body = {
        "status": database["status"],
        "timestamp": to_utc_z(utcnow()),
        "checks": {"database": database},
    }
    return body, (200 if database["status"] == "healthy" else 503)


@system_bp.get("/version")
def version():
    return {
        "api_version": API_VERSION,
        "environment": "development" if current_app.debug else "production",
        "python_version": sys.version.split()[0],
        "server_time": to_utc_z(utcnow()),
    }
