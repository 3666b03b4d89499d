# backend/bookmarket/routes/system.py
"""
System health endpoint.

Reports database reachability plus the state of the purchase pipeline:
pending checkouts and reconciler outcomes that need an operator.
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import Purchase, WebhookDelivery
from ..models.purchases import PURCHASE_PENDING
from ..models.webhooks import DELIVERY_NEEDS_ATTENTION
from bookmarket.time_utils import utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api/system")


def check_database_health() -> dict:
    start_time = time.time()
    try:
        pending = db.session.query(Purchase).filter_by(status=PURCHASE_PENDING).count()
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {"pending_purchases": pending},
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


def check_reconciler_health() -> dict:
    """
    Degraded when webhook deliveries were rejected or failed; those purchases
    need a look (see `flask purchases deliveries`).
    """
    start_time = time.time()
    try:
        problems = db.session.query(WebhookDelivery).filter(
            WebhookDelivery.outcome.in_(DELIVERY_NEEDS_ATTENTION)
        ).count()
        elapsed_ms = (time.time() - start_time) * 1000
        result = {
            "status": "degraded" if problems else "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {"rejected_or_failed_deliveries": problems},
        }
        if not current_app.config.get("STRIPE_WEBHOOK_SECRET"):
            result["status"] = "degraded"
            result["warning"] = "STRIPE_WEBHOOK_SECRET is not configured"
        return result
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Reconciler health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Reconciler check error"
        }


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy or degraded (still operational)
    - 503: database unreachable
    """
    start_time = time.time()

    database_health = check_database_health()
    reconciler_health = check_reconciler_health()

    all_checks = [database_health, reconciler_health]
    if any(check["status"] == "unhealthy" for check in all_checks):
        overall_status, http_status = "unhealthy", 503
    elif any(check["status"] == "degraded" for check in all_checks):
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    total_elapsed_ms = (time.time() - start_time) * 1000

    return {
        "status": overall_status,
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round(total_elapsed_ms, 2),
        "checks": {
            "database": database_health,
            "reconciler": reconciler_health,
        }
    }, http_status
