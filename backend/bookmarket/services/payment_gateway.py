# Overview: Hosted checkout sessions with the payment provider (Stripe Checkout).

"""
Payment Session Gateway

WHY: The marketplace never handles card data. A pending purchase is paid on
the provider's hosted checkout page; the outcome comes back later as a
webhook (see payment_events / reconciliation_service).

DESIGN:
- Gateways expose one call, create_session(CheckoutRequest) -> CheckoutSession.
- Every failure surfaces as ProviderError so callers can roll back the
  pending purchase.
- Network time is bounded by STRIPE_TIMEOUT_SECONDS with SDK retries off;
  configure_stripe() sets this once per app, not per gateway.
- When the seller has a connected account, the platform fee is taken as an
  application fee and the remainder is transferred to the seller.
"""

from __future__ import annotations

from dataclasses import dataclass

import stripe
from flask import current_app


class ProviderError(Exception):
    """Payment provider call failed. Retryable from the buyer's point of view."""

    def __init__(self, message: str, retryable: bool = True):
        super().__init__(message)
        self.retryable = retryable


@dataclass(frozen=True)
class CheckoutRequest:
    purchase_id: int
    amount_cents: int
    book_title: str
    book_author: str
    success_url: str
    cancel_url: str
    platform_fee_cents: int = 0
    seller_account_id: str | None = None


@dataclass(frozen=True)
class CheckoutSession:
    session_id: str
    redirect_url: str


class StripeCheckoutGateway:
    def __init__(
        self,
        api_key: str,
        *,
        currency: str = "usd",
        shipping_countries: list[str] | None = None,
    ):
        self.api_key = api_key
        self.currency = currency
        self.shipping_countries = list(shipping_countries or ["US"])

    def _session_params(self, request: CheckoutRequest) -> dict:
        params = {
            "mode": "payment",
            "line_items": [{
                "price_data": {
                    "currency": self.currency,
                    "unit_amount": request.amount_cents,
                    "product_data": {
                        "name": request.book_title,
                        "description": f"by {request.book_author}",
                    },
                },
                "quantity": 1,
            }],
            "shipping_address_collection": {"allowed_countries": self.shipping_countries},
            "success_url": request.success_url,
            "cancel_url": request.cancel_url,
            "client_reference_id": str(request.purchase_id),
            "metadata": {"purchase_id": str(request.purchase_id)},
        }
        if request.seller_account_id:
            params["payment_intent_data"] = {
                "application_fee_amount": request.platform_fee_cents,
                "transfer_data": {"destination": request.seller_account_id},
                "metadata": {"purchase_id": str(request.purchase_id)},
            }
        else:
            params["payment_intent_data"] = {
                "metadata": {"purchase_id": str(request.purchase_id)},
            }
        return params

    def create_session(self, request: CheckoutRequest) -> CheckoutSession:
        if not self.api_key:
            raise ProviderError("Payment provider is not configured", retryable=False)

        try:
            session = stripe.checkout.Session.create(
                api_key=self.api_key,
                idempotency_key=f"purchase-{request.purchase_id}-checkout",
                **self._session_params(request),
            )
        except stripe.StripeError as exc:
            message = getattr(exc, "user_message", None) or str(exc)
            raise ProviderError(f"Checkout session creation failed: {message}") from exc

        session_id = session["id"]
        redirect_url = session["url"]
        if not session_id or not redirect_url:
            raise ProviderError("Checkout session response missing id or url")
        return CheckoutSession(session_id=session_id, redirect_url=redirect_url)


def configure_stripe(app) -> None:
    """Process-wide Stripe SDK settings, applied once from the app factory."""
    stripe.default_http_client = stripe.RequestsClient(
        timeout=app.config.get("STRIPE_TIMEOUT_SECONDS", 10.0)
    )
    # Bounded network time; no silent retries behind the timeout
    stripe.max_network_retries = 0


def gateway_from_config():
    """
    Gateway for the current app.

    An app (or a test) may register its own object under
    app.extensions["payment_gateway"]; otherwise Stripe is built from config.
    """
    registered = current_app.extensions.get("payment_gateway")
    if registered is not None:
        return registered
    config = current_app.config
    return StripeCheckoutGateway(
        config.get("STRIPE_SECRET_KEY", ""),
        currency=config.get("CURRENCY", "usd"),
        shipping_countries=config.get("SHIPPING_COUNTRIES"),
    )
