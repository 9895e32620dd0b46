# backend/deliveryhub/routes/system.py
"""
System health and version endpoints.

Reports database connectivity and whether the outbound providers (dispatch,
payments) are configured. Used by the diagnostics page and load balancers.
"""

import time
from flask import Blueprint, current_app, jsonify
from ..extensions import db
from ..models import Account, Order
from ..models.orders import ORDER_STATUS_DISPATCH_ERROR
from ..time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        account_count = db.session.query(Account).count()
        order_count = db.session.query(Order).count()
        dispatch_errors = db.session.query(Order).filter_by(status=ORDER_STATUS_DISPATCH_ERROR).count()

        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "accounts": account_count,
                "orders": order_count,
                "orders_in_dispatch_error": dispatch_errors,
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


def check_provider_configuration() -> dict:
    dispatch_client = current_app.extensions["dispatch_client"]
    payment_gateway = current_app.extensions["payment_gateway"]
    return {
        "dispatch": {
            "status": "configured" if dispatch_client.is_configured else "not_configured",
            "base_url": dispatch_client.base_url,
        },
        "payments": {
            "status": "configured" if payment_gateway.is_configured else "not_configured",
        },
    }


@system_bp.get("/health")
def health():
    database = check_database_health()
    healthy = database["status"] == "healthy"
    return jsonify({
        "status": "healthy" if healthy else "unhealthy",
        "checked_at": to_utc_z(utcnow()),
        "database": database,
        "providers": check_provider_configuration(),
    }), 200 if healthy else 503


@system_bp.get("/version")
def version():
    return jsonify({
        "name": "deliveryhub",
        "version": current_app.config.get("APP_VERSION"),
    }), 200
