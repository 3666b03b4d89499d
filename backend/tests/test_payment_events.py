# Overview: Pytest coverage for webhook signature checks and event parsing.

import json

import pytest

from bookmarket.services.payment_events import (
    CheckoutCompleted,
    CheckoutExpired,
    IgnoredEvent,
    InvalidSignatureError,
    MalformedEventError,
    PaymentFailed,
    parse_event,
    verify_and_parse,
)

from conftest import WEBHOOK_SECRET, SHIPPING_DETAILS, checkout_event, completed_event, sign_payload


class TestParseEvent:
    def test_checkout_completed_with_collected_shipping(self):
        event = parse_event(completed_event("cs_1", event_id="evt_9", payment_intent="pi_9"))

        assert isinstance(event, CheckoutCompleted)
        assert event.event_id == "evt_9"
        assert event.session_id == "cs_1"
        assert event.payment_intent_id == "pi_9"
        assert event.shipping.name == "Ada Buyer"
        assert event.shipping.city == "Springfield"
        assert event.shipping.missing_fields() == []

    def test_checkout_completed_with_legacy_shipping_details(self):
        data = checkout_event("checkout.session.completed", "cs_1", shipping_details=SHIPPING_DETAILS)
        event = parse_event(data)
        assert event.shipping.postal_code == "62701"

    def test_checkout_completed_without_shipping(self):
        event = parse_event(completed_event("cs_1", shipping=False))
        assert event.shipping is None

    def test_expanded_payment_intent(self):
        data = checkout_event("checkout.session.completed", "cs_1", payment_intent={"id": "pi_exp"})
        assert parse_event(data).payment_intent_id == "pi_exp"

    def test_checkout_expired(self):
        event = parse_event(checkout_event("checkout.session.expired", "cs_2", event_id="evt_2"))
        assert event == CheckoutExpired(event_id="evt_2", session_id="cs_2")

    def test_payment_failed_uses_intent_id(self):
        data = {"id": "evt_3", "type": "payment_intent.payment_failed", "data": {"object": {"id": "pi_3"}}}
        assert parse_event(data) == PaymentFailed(event_id="evt_3", payment_intent_id="pi_3")

    def test_other_types_are_ignored(self):
        data = {"id": "evt_4", "type": "charge.refunded", "data": {"object": {}}}
        assert parse_event(data) == IgnoredEvent(event_id="evt_4", event_type="charge.refunded")

    @pytest.mark.parametrize("data", [
        [],
        {"id": "evt"},
        {"type": "checkout.session.completed"},
        {"type": "checkout.session.completed", "data": {"object": {"object": "checkout.session"}}},
        {"type": "payment_intent.payment_failed", "data": {"object": "pi_1"}},
    ])
    def test_malformed_events(self, data):
        with pytest.raises(MalformedEventError):
            parse_event(data)


class TestVerifyAndParse:
    def test_valid_signature(self):
        payload = json.dumps(checkout_event("checkout.session.expired", "cs_1"))
        event = verify_and_parse(payload.encode("utf-8"), sign_payload(payload), WEBHOOK_SECRET)
        assert isinstance(event, CheckoutExpired)

    def test_wrong_secret(self):
        payload = json.dumps(checkout_event("checkout.session.expired", "cs_1"))
        with pytest.raises(InvalidSignatureError):
            verify_and_parse(payload.encode("utf-8"), sign_payload(payload, "whsec_other"), WEBHOOK_SECRET)

    def test_tampered_body(self):
        payload = json.dumps(checkout_event("checkout.session.expired", "cs_1"))
        header = sign_payload(payload)
        tampered = payload.replace("cs_1", "cs_2")
        with pytest.raises(InvalidSignatureError):
            verify_and_parse(tampered.encode("utf-8"), header, WEBHOOK_SECRET)

    def test_stale_timestamp(self):
        payload = json.dumps(checkout_event("checkout.session.expired", "cs_1"))
        with pytest.raises(InvalidSignatureError):
            verify_and_parse(payload.encode("utf-8"), sign_payload(payload, timestamp=1), WEBHOOK_SECRET)

    def test_missing_header_or_secret(self):
        with pytest.raises(InvalidSignatureError):
            verify_and_parse(b"{}", None, WEBHOOK_SECRET)
        with pytest.raises(InvalidSignatureError):
            verify_and_parse(b"{}", "t=1,v1=abc", "")

    def test_signed_garbage_is_malformed(self):
        payload = "not json"
        with pytest.raises(MalformedEventError):
            verify_and_parse(payload.encode("utf-8"), sign_payload(payload), WEBHOOK_SECRET)
