# Overview: Verifies and parses payment provider webhooks into a closed set of event types.

"""
Payment event boundary.

Provider payloads are loosely shaped JSON. This module is the only place
that looks at them: it checks the signature, decodes the body and turns the
three event types the marketplace settles on into small frozen records.
Everything downstream dispatches on the record type.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Union

import stripe

from .purchase_service import ShippingAddress


EVENT_CHECKOUT_COMPLETED = "checkout.session.completed"
EVENT_CHECKOUT_EXPIRED = "checkout.session.expired"
EVENT_PAYMENT_FAILED = "payment_intent.payment_failed"


class InvalidSignatureError(Exception):
    """Webhook signature missing or does not match the shared secret."""


class MalformedEventError(ValueError):
    """Webhook body is not a usable event."""


@dataclass(frozen=True)
class CheckoutCompleted:
    event_id: str | None
    session_id: str
    payment_intent_id: str | None
    shipping: ShippingAddress | None

    event_type = EVENT_CHECKOUT_COMPLETED


@dataclass(frozen=True)
class CheckoutExpired:
    event_id: str | None
    session_id: str

    event_type = EVENT_CHECKOUT_EXPIRED


@dataclass(frozen=True)
class PaymentFailed:
    event_id: str | None
    payment_intent_id: str

    event_type = EVENT_PAYMENT_FAILED


@dataclass(frozen=True)
class IgnoredEvent:
    """A well-formed event of a type the marketplace does not act on."""
    event_id: str | None
    event_type: str


PaymentEvent = Union[CheckoutCompleted, CheckoutExpired, PaymentFailed]


def _require_id(obj: dict, key: str, event_type: str) -> str:
    value = obj.get(key)
    if isinstance(value, dict):
        # expanded objects carry their id inside
        value = value.get("id")
    if not isinstance(value, str) or not value:
        raise MalformedEventError(f"{event_type} event missing {key}")
    return value


def _optional_id(obj: dict, key: str) -> str | None:
    value = obj.get(key)
    if isinstance(value, dict):
        value = value.get("id")
    return value if isinstance(value, str) and value else None


def _extract_shipping(session: dict) -> ShippingAddress | None:
    collected = session.get("collected_information") or {}
    details = None
    if isinstance(collected, dict):
        details = collected.get("shipping_details")
    if not details:
        # older API versions put it on the session itself
        details = session.get("shipping_details")
    if not isinstance(details, dict):
        return None

    address = details.get("address") or {}
    if not isinstance(address, dict):
        address = {}
    return ShippingAddress(
        name=details.get("name"),
        line1=address.get("line1"),
        line2=address.get("line2"),
        city=address.get("city"),
        state=address.get("state"),
        postal_code=address.get("postal_code"),
        country=address.get("country"),
    )


def parse_event(data) -> PaymentEvent | IgnoredEvent:
    """
    Map a decoded provider event onto one of the settled event types.

    Other event types come back as IgnoredEvent.
    Raises MalformedEventError if a relevant event lacks the fields needed
    to find its purchase.
    """
    if not isinstance(data, dict):
        raise MalformedEventError("Event payload must be a JSON object")

    event_type = data.get("type")
    if not isinstance(event_type, str) or not event_type:
        raise MalformedEventError("Event payload missing type")

    event_id = data.get("id") if isinstance(data.get("id"), str) else None
    if event_type not in (EVENT_CHECKOUT_COMPLETED, EVENT_CHECKOUT_EXPIRED, EVENT_PAYMENT_FAILED):
        return IgnoredEvent(event_id=event_id, event_type=event_type)

    payload = data.get("data")
    obj = payload.get("object") if isinstance(payload, dict) else None
    if not isinstance(obj, dict):
        raise MalformedEventError(f"{event_type} event missing data.object")

    if event_type == EVENT_CHECKOUT_COMPLETED:
        return CheckoutCompleted(
            event_id=event_id,
            session_id=_require_id(obj, "id", event_type),
            payment_intent_id=_optional_id(obj, "payment_intent"),
            shipping=_extract_shipping(obj),
        )
    if event_type == EVENT_CHECKOUT_EXPIRED:
        return CheckoutExpired(
            event_id=event_id,
            session_id=_require_id(obj, "id", event_type),
        )
    return PaymentFailed(
        event_id=event_id,
        payment_intent_id=_require_id(obj, "id", event_type),
    )


def verify_and_parse(
    payload: bytes,
    signature: str | None,
    secret: str,
    tolerance: int = 300,
) -> PaymentEvent | IgnoredEvent:
    """
    Check the provider signature over the raw body, then parse it.

    Raises:
        InvalidSignatureError: missing/invalid signature or no secret configured
        MalformedEventError: body is not JSON or not a usable event
    """
    if not secret:
        raise InvalidSignatureError("Webhook secret is not configured")
    if not signature:
        raise InvalidSignatureError("Missing signature header")

    if isinstance(payload, bytes):
        try:
            body = payload.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise MalformedEventError("Payload is not UTF-8") from exc
    else:
        body = payload

    try:
        stripe.WebhookSignature.verify_header(body, signature, secret, tolerance)
    except stripe.SignatureVerificationError as exc:
        raise InvalidSignatureError(str(exc)) from exc

    try:
        data = json.loads(body)
    except ValueError as exc:
        raise MalformedEventError("Payload is not valid JSON") from exc

    return parse_event(data)
