"""
Pytest fixtures for bookmarket backend tests.

Provides an in-memory app per test, marketplace users and a book, a fake
checkout gateway, and helpers for bearer tokens and signed webhooks.
"""

import hashlib
import hmac
import json
import time
from decimal import Decimal

import pytest

from bookmarket import create_app
from bookmarket.extensions import db
from bookmarket.models import Book, User
from bookmarket.services import session_service
from bookmarket.services.payment_gateway import CheckoutSession, ProviderError


WEBHOOK_SECRET = "whsec_test_secret"


class FakeGateway:
    """Records checkout requests; returns deterministic sessions or fails on demand."""

    def __init__(self):
        self.requests = []
        self.fail_with = None

    def create_session(self, request):
        self.requests.append(request)
        if self.fail_with is not None:
            raise self.fail_with
        return CheckoutSession(
            session_id=f"cs_test_{request.purchase_id}",
            redirect_url=f"https://checkout.example.test/pay/cs_test_{request.purchase_id}",
        )


@pytest.fixture(scope='function')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'PLATFORM_FEE_PERCENTAGE': 10,
        'STRIPE_SECRET_KEY': 'sk_test_dummy',
        'STRIPE_WEBHOOK_SECRET': WEBHOOK_SECRET,
        'APP_BASE_URL': 'http://bookmarket.test',
    })

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    yield db.session
    db.session.rollback()


@pytest.fixture(scope='function')
def gateway(app):
    """Fake checkout gateway registered on the app."""
    fake = FakeGateway()
    app.extensions['payment_gateway'] = fake
    return fake


def make_user(username: str, stripe_account_id: str | None = None) -> User:
    user = User(
        username=username,
        email=f"{username}@bookmarket.test",
        password_hash="x",
        stripe_account_id=stripe_account_id,
        is_active=True,
    )
    db.session.add(user)
    db.session.commit()
    return user


def make_book(owner: User, price: str = "12.50", title: str = "Dune") -> Book:
    book = Book(owner_id=owner.id, title=title, author="Frank Herbert", price=Decimal(price))
    db.session.add(book)
    db.session.commit()
    return book


@pytest.fixture(scope='function')
def seller(db_session):
    return make_user("seller", stripe_account_id="acct_seller")


@pytest.fixture(scope='function')
def buyer(db_session):
    return make_user("buyer")


@pytest.fixture(scope='function')
def other_buyer(db_session):
    return make_user("other_buyer")


@pytest.fixture(scope='function')
def book(db_session, seller):
    return make_book(seller)


def auth_headers_for(user: User) -> dict:
    """Open a session for a user and return the Authorization header."""
    _, token = session_service.create_session(user.id)
    return {'Authorization': f'Bearer {token}'}


def failing_provider():
    return ProviderError("Checkout session creation failed: timeout")


def checkout_event(event_type: str, session_id: str, event_id: str = "evt_1", **fields) -> dict:
    obj = {"id": session_id, "object": "checkout.session"}
    obj.update(fields)
    return {"id": event_id, "type": event_type, "data": {"object": obj}}


SHIPPING_DETAILS = {
    "name": "Ada Buyer",
    "address": {
        "line1": "1 Main St",
        "line2": None,
        "city": "Springfield",
        "state": "IL",
        "postal_code": "62701",
        "country": "us",
    },
}


def completed_event(session_id: str, event_id: str = "evt_completed", payment_intent: str = "pi_1", shipping=True) -> dict:
    fields = {"payment_intent": payment_intent}
    if shipping:
        fields["collected_information"] = {"shipping_details": SHIPPING_DETAILS}
    return checkout_event("checkout.session.completed", session_id, event_id, **fields)


def sign_payload(payload: str, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    """Stripe-Signature header for a raw body."""
    timestamp = int(time.time()) if timestamp is None else timestamp
    signed = f"{timestamp}.{payload}".encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def post_webhook(client, event: dict, secret: str = WEBHOOK_SECRET):
    payload = json.dumps(event)
    return client.post(
        '/webhooks/stripe',
        data=payload,
        content_type='application/json',
        headers={'Stripe-Signature': sign_payload(payload, secret)},
    )
