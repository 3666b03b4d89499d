# Overview: Payment provider webhook endpoint.

# backend/bookmarket/routes/webhooks.py
"""
Stripe webhook receiver.

Only an unverifiable or unreadable body is refused (400). Anything that
verifies is acknowledged with 200 whatever the reconciler decides, so the
provider does not keep redelivering an event that can never apply.
"""

from flask import Blueprint, request, jsonify, current_app

from ..services.payment_events import (
    IgnoredEvent,
    InvalidSignatureError,
    MalformedEventError,
    verify_and_parse,
)
from ..services.reconciliation_service import acknowledge_ignored, apply_payment_event


webhooks_bp = Blueprint("webhooks", __name__, url_prefix="/webhooks")


@webhooks_bp.post("/stripe")
def stripe_webhook_route():
    config = current_app.config
    try:
        event = verify_and_parse(
            request.get_data(),
            request.headers.get("Stripe-Signature"),
            config.get("STRIPE_WEBHOOK_SECRET", ""),
            tolerance=config.get("STRIPE_WEBHOOK_TOLERANCE", 300),
        )
    except InvalidSignatureError as e:
        current_app.logger.warning("Rejected webhook with invalid signature: %s", e)
        return jsonify({"error": "Invalid signature"}), 400
    except MalformedEventError as e:
        current_app.logger.warning("Rejected malformed webhook payload: %s", e)
        return jsonify({"error": "Invalid payload"}), 400

    if isinstance(event, IgnoredEvent):
        acknowledge_ignored(event.event_type, event.event_id)
        return jsonify({"received": True}), 200

    result = apply_payment_event(event)
    return jsonify({"received": True, "outcome": result.outcome}), 200
