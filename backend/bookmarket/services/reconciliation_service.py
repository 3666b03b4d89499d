# Overview: Applies parsed payment events to purchases; every delivery is acknowledged and recorded.

"""
Payment Event Reconciler

WHY: Provider notifications arrive at least once, possibly duplicated and in
any order. The purchase lifecycle's terminal-state no-ops make re-delivery
safe; this module only finds the purchase and picks the transition.

ACKNOWLEDGEMENT POLICY:
- No matching purchase (stale, test or deleted data): MISS, logged, not retried.
- A failing transition is logged with the full event and never re-raised,
  so one bad event cannot wedge the webhook endpoint or cause endless
  provider retries. Operators find these via WebhookDelivery rows with
  outcome REJECTED/FAILED.
"""

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app

from ..extensions import db
from ..models import WebhookDelivery
from ..models.webhooks import (
    DELIVERY_APPLIED as OUTCOME_APPLIED,
    DELIVERY_DUPLICATE as OUTCOME_DUPLICATE,
    DELIVERY_FAILED as OUTCOME_FAILED,
    DELIVERY_IGNORED as OUTCOME_IGNORED,
    DELIVERY_MISS as OUTCOME_MISS,
    DELIVERY_REJECTED as OUTCOME_REJECTED,
)
from ..validation import ValidationError
from .payment_events import CheckoutCompleted, CheckoutExpired, PaymentFailed
from .purchase_service import (
    cancel_purchase,
    complete_purchase,
    find_by_checkout_session,
    find_by_payment_intent,
)


@dataclass(frozen=True)
class ReconciliationResult:
    outcome: str
    purchase_id: int | None = None
    detail: str | None = None


def _lookup_key(event) -> str:
    """Provider reference a settled event type is matched on."""
    if isinstance(event, (CheckoutCompleted, CheckoutExpired)):
        return event.session_id
    if isinstance(event, PaymentFailed):
        return event.payment_intent_id
    raise TypeError(f"Unsupported payment event: {event!r}")


def _find_purchase(event, lookup_key: str):
    if isinstance(event, PaymentFailed):
        return find_by_payment_intent(lookup_key)
    return find_by_checkout_session(lookup_key)


def _transition(event, purchase_id: int):
    if isinstance(event, CheckoutCompleted):
        return complete_purchase(purchase_id, event.payment_intent_id, event.shipping)
    if isinstance(event, (CheckoutExpired, PaymentFailed)):
        return cancel_purchase(purchase_id)
    raise TypeError(f"Unsupported payment event: {event!r}")


def record_delivery(
    *,
    event_type: str,
    outcome: str,
    provider_event_id: str | None = None,
    lookup_key: str | None = None,
    purchase_id: int | None = None,
    detail: str | None = None,
) -> WebhookDelivery:
    """Append a delivery record in its own commit."""
    delivery = WebhookDelivery(
        provider_event_id=provider_event_id,
        event_type=event_type,
        lookup_key=lookup_key,
        purchase_id=purchase_id,
        outcome=outcome,
        detail=detail,
    )
    db.session.add(delivery)
    db.session.commit()
    return delivery


def _settle(event, purchase, context: dict) -> ReconciliationResult:
    logger = current_app.logger
    if purchase is None:
        logger.info("Payment event matched no purchase; acknowledged: %s", context)
        return ReconciliationResult(outcome=OUTCOME_MISS)

    purchase_id = purchase.id
    context["purchase_id"] = purchase_id
    try:
        transition = _transition(event, purchase_id)
    except ValidationError as exc:
        logger.error(
            "Payment event rejected by purchase lifecycle (%s: %s); purchase left as is: %s event=%r",
            exc.code, exc, context, event,
        )
        return ReconciliationResult(
            outcome=OUTCOME_REJECTED,
            purchase_id=purchase_id,
            detail=f"{exc.code}: {exc}",
        )
    except Exception as exc:
        logger.exception("Payment event failed to apply: %s event=%r", context, event)
        return ReconciliationResult(
            outcome=OUTCOME_FAILED,
            purchase_id=purchase_id,
            detail=f"{type(exc).__name__}: {exc}",
        )

    if transition.changed:
        logger.info("Payment event applied; purchase now %s: %s", transition.purchase.status, context)
        return ReconciliationResult(outcome=OUTCOME_APPLIED, purchase_id=purchase_id)
    logger.info("Payment event already applied; no change: %s", context)
    return ReconciliationResult(outcome=OUTCOME_DUPLICATE, purchase_id=purchase_id)


def apply_payment_event(event) -> ReconciliationResult:
    """
    Drive the purchase lifecycle from one parsed payment event.

    Never raises for provider-side or storage problems; the outcome says what
    happened. Unknown event objects raise TypeError (a caller bug, not
    provider input).
    """
    logger = current_app.logger
    lookup_key = _lookup_key(event)
    context = {
        "event_id": event.event_id,
        "event_type": event.event_type,
        "lookup_key": lookup_key,
    }

    try:
        purchase = _find_purchase(event, lookup_key)
    except Exception as exc:
        db.session.rollback()
        logger.exception("Payment event lookup failed: %s event=%r", context, event)
        result = ReconciliationResult(outcome=OUTCOME_FAILED, detail=f"{type(exc).__name__}: {exc}")
    else:
        result = _settle(event, purchase, context)

    try:
        record_delivery(
            event_type=event.event_type,
            outcome=result.outcome,
            provider_event_id=event.event_id,
            lookup_key=lookup_key,
            purchase_id=result.purchase_id,
            detail=result.detail,
        )
    except Exception:
        db.session.rollback()
        logger.exception("Failed to record webhook delivery: %s", context)

    return result


def acknowledge_ignored(event_type: str, provider_event_id: str | None = None) -> None:
    """Record an event type the marketplace does not act on."""
    current_app.logger.debug("Ignoring payment event type %s (%s)", event_type, provider_event_id)
    try:
        record_delivery(event_type=event_type, outcome=OUTCOME_IGNORED, provider_event_id=provider_event_id)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to record ignored webhook delivery %s", provider_event_id)
