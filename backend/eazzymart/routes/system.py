# backend/eazzymart/routes/system.py
"""
System health endpoints.
"""

import time
from flask import Blueprint, current_app, jsonify

from ..extensions import db
from ..models import Order, Product
from ..time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        product_count = db.session.query(Product).count()
        order_count = db.session.query(Order).count()
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {"products": product_count, "orders": order_count},
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        db.session.rollback()
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


@system_bp.get("/api/ping")
def ping():
    return jsonify({"success": True, "message": "pong"})


@system_bp.get("/health")
def health():
    database = check_database_health()
    sweeper = current_app.extensions.get("delivery_sweeper")
    healthy = database["status"] == "healthy"
    body = {
        "success": healthy,
        "status": "healthy" if healthy else "unhealthy",
        "timestamp": to_utc_z(utcnow()),
        "checks": {
            "database": database,
            "delivery_sweeper": {"running": bool(sweeper and sweeper.running)},
        },
    }
    return jsonify(body), 200 if healthy else 503
