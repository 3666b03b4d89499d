# Overview: Starts a purchase: pending row, hosted checkout session, rollback on provider failure.

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app

from ..models import Book, Purchase, User
from ..extensions import db
from .payment_gateway import CheckoutRequest, ProviderError, gateway_from_config
from .purchase_service import attach_checkout_session, create_purchase, discard_pending_purchase


@dataclass(frozen=True)
class CheckoutStart:
    purchase: Purchase
    redirect_url: str


def default_redirect_urls(book_id: int) -> tuple[str, str]:
    base = current_app.config.get("APP_BASE_URL", "").rstrip("/")
    success_url = f"{base}/books/{book_id}?checkout=success"
    cancel_url = f"{base}/books/{book_id}/purchase?checkout=cancelled"
    return success_url, cancel_url


def begin_checkout(
    book_id: int,
    buyer_id: int,
    success_url: str | None = None,
    cancel_url: str | None = None,
    gateway=None,
) -> CheckoutStart:
    """
    Create a pending purchase and a hosted checkout session for it.

    The provider call happens after the purchase transaction has committed,
    so no database lock is held across the network. If the provider fails,
    or the returned session cannot be stored, the pending purchase is deleted
    again so it does not keep the book unavailable.

    Raises:
        EligibilityError / PurchaseValidationError: from create_purchase
        ProviderError: provider failure; nothing is left behind
    """
    gateway = gateway or gateway_from_config()
    default_success, default_cancel = default_redirect_urls(book_id)

    purchase = create_purchase(book_id, buyer_id)

    book = db.session.get(Book, purchase.book_id)
    seller = db.session.get(User, purchase.seller_id)
    request = CheckoutRequest(
        purchase_id=purchase.id,
        amount_cents=purchase.amount_cents,
        book_title=book.title,
        book_author=book.author,
        success_url=success_url or default_success,
        cancel_url=cancel_url or default_cancel,
        platform_fee_cents=purchase.platform_fee_cents,
        seller_account_id=seller.stripe_account_id if seller else None,
    )

    try:
        session = gateway.create_session(request)
    except ProviderError:
        current_app.logger.exception("Checkout session creation failed for purchase %s", purchase.id)
        discard_pending_purchase(purchase.id)
        raise
    except Exception as exc:
        current_app.logger.exception("Unexpected checkout gateway failure for purchase %s", purchase.id)
        discard_pending_purchase(purchase.id)
        raise ProviderError("Checkout session creation failed") from exc

    # A pending row without a session id can never be matched by a webhook
    try:
        purchase = attach_checkout_session(purchase.id, session.session_id)
    except Exception as exc:
        current_app.logger.exception(
            "Recording checkout session %s failed for purchase %s", session.session_id, purchase.id
        )
        discard_pending_purchase(purchase.id)
        raise ProviderError("Checkout session could not be recorded") from exc
    return CheckoutStart(purchase=purchase, redirect_url=session.redirect_url)
