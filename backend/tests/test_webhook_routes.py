# Overview: Pytest coverage for the Stripe webhook endpoint.

import json

from bookmarket.extensions import db
from bookmarket.models import Book, Purchase, WebhookDelivery
from bookmarket.services import reconciliation_service
from bookmarket.services.purchase_service import attach_checkout_session, create_purchase

from conftest import checkout_event, completed_event, post_webhook, sign_payload


def _pending(book, buyer, session_id="cs_hook"):
    purchase = create_purchase(book.id, buyer.id)
    return attach_checkout_session(purchase.id, session_id)


class TestStripeWebhook:
    def test_completed_event_settles_purchase(self, client, book, buyer):
        purchase = _pending(book, buyer)

        response = post_webhook(client, completed_event("cs_hook"))

        assert response.status_code == 200
        assert response.json == {"received": True, "outcome": "APPLIED"}
        db.session.expire_all()
        assert db.session.get(Purchase, purchase.id).status == "completed"
        assert db.session.get(Book, book.id).sold is True

    def test_redelivery_still_acknowledged(self, client, book, buyer):
        _pending(book, buyer)
        event = completed_event("cs_hook")

        post_webhook(client, event)
        response = post_webhook(client, event)

        assert response.status_code == 200
        assert response.json["outcome"] == "DUPLICATE"

    def test_expired_event_releases_book(self, client, book, buyer):
        purchase = _pending(book, buyer)

        response = post_webhook(client, checkout_event("checkout.session.expired", "cs_hook"))

        assert response.status_code == 200
        db.session.expire_all()
        assert db.session.get(Purchase, purchase.id).status == "cancelled"

    def test_unknown_purchase_acknowledged(self, client):
        response = post_webhook(client, completed_event("cs_nobody"))
        assert response.status_code == 200
        assert response.json["outcome"] == "MISS"

    def test_rejected_transition_acknowledged(self, client, book, buyer):
        purchase = _pending(book, buyer)

        response = post_webhook(client, completed_event("cs_hook", shipping=False))

        assert response.status_code == 200
        assert response.json["outcome"] == "REJECTED"
        db.session.expire_all()
        assert db.session.get(Purchase, purchase.id).status == "pending"

    def test_irrelevant_event_type_acknowledged(self, client):
        response = post_webhook(client, {"id": "evt_x", "type": "customer.created", "data": {"object": {}}})

        assert response.status_code == 200
        assert response.json == {"received": True}
        assert db.session.query(WebhookDelivery).one().outcome == "IGNORED"

    def test_bad_signature_rejected(self, client, book, buyer):
        purchase = _pending(book, buyer)

        response = post_webhook(client, completed_event("cs_hook"), secret="whsec_wrong")

        assert response.status_code == 400
        db.session.expire_all()
        assert db.session.get(Purchase, purchase.id).status == "pending"
        assert db.session.query(WebhookDelivery).count() == 0

    def test_missing_signature_rejected(self, client):
        response = client.post(
            '/webhooks/stripe',
            data=json.dumps(completed_event("cs_hook")),
            content_type='application/json',
        )
        assert response.status_code == 400

    def test_malformed_payload_rejected(self, client):
        payload = "{not json"
        response = client.post(
            '/webhooks/stripe',
            data=payload,
            content_type='application/json',
            headers={'Stripe-Signature': sign_payload(payload)},
        )
        assert response.status_code == 400
        assert response.json["error"] == "Invalid payload"

    def test_lookup_failure_still_acknowledged(self, monkeypatch, client, book, buyer):
        _pending(book, buyer)

        def _boom(session_id):
            raise RuntimeError("connection reset")

        monkeypatch.setattr(reconciliation_service, "find_by_checkout_session", _boom)

        response = post_webhook(client, completed_event("cs_hook"))

        assert response.status_code == 200
        assert response.json == {"received": True, "outcome": "FAILED"}
        assert db.session.query(WebhookDelivery).one().outcome == "FAILED"
