# Overview: Flask API routes for purchases; parses input and returns JSON responses.

# backend/bookmarket/routes/purchases.py
"""
Purchase API routes

Starting a purchase creates a pending row and returns the hosted checkout
URL. The purchase only completes (or cancels) through provider webhooks.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..models import Book, Purchase
from ..services import checkout_service, purchase_service
from ..services.eligibility_service import EligibilityError, check_eligibility
from ..services.fee_service import fee_calculator_from_config
from ..services.payment_gateway import ProviderError
from ..validation import ValidationError
from ..decorators import require_auth


purchases_bp = Blueprint("purchases", __name__, url_prefix="/api")

# Rejections the buyer can't fix by changing the request
CONFLICT_CODES = {"duplicate_purchase", "invalid_transition"}


def _visible_to(purchase: Purchase, user_id: int) -> bool:
    return user_id in (purchase.buyer_id, purchase.seller_id)


@purchases_bp.get("/books/<int:book_id>/purchase")
@require_auth
def purchase_preview_route(book_id: int):
    """
    Eligibility preview for the purchase page.

    Shows whether the current user may buy the book and the fee split the
    purchase would be created with.
    """
    book = db.session.get(Book, book_id)
    if not book:
        return jsonify({"error": "Book not found"}), 404

    result = check_eligibility(book, g.current_user)
    fees = fee_calculator_from_config().calculate_fees(book.price_cents)

    return jsonify({
        "book": book.to_dict(),
        "eligible": result.ok,
        "reason": result.reason,
        "message": result.message,
        "amount_cents": fees.amount_cents,
        "platform_fee_cents": fees.platform_fee_cents,
        "seller_amount_cents": fees.seller_amount_cents,
    }), 200


@purchases_bp.post("/books/<int:book_id>/purchases")
@require_auth
def create_purchase_route(book_id: int):
    """
    Start buying a book.

    Returns 201 {purchase, checkout_url}. 409 when the buyer may not buy it
    (with a `reason`), 502 when the payment provider failed and the buyer
    can retry.
    """
    if not db.session.get(Book, book_id):
        return jsonify({"error": "Book not found"}), 404

    try:
        start = checkout_service.begin_checkout(book_id, g.current_user.id)
        return jsonify({
            "purchase": start.purchase.to_dict(),
            "checkout_url": start.redirect_url,
        }), 201

    except EligibilityError as e:
        return jsonify({"error": str(e), "reason": e.reason}), 409
    except ValidationError as e:
        status = 409 if e.code in CONFLICT_CODES else 400
        return jsonify({"error": str(e), "reason": e.code, "details": e.details}), status
    except ProviderError as e:
        return jsonify({
            "error": "Payment provider unavailable. Please try again.",
            "retryable": e.retryable,
        }), 502
    except Exception:
        current_app.logger.exception("Failed to start purchase for book %s", book_id)
        return jsonify({"error": "Internal server error"}), 500


@purchases_bp.get("/purchases")
@require_auth
def list_purchases_route():
    """Purchases the user made (role=buyer), received (role=seller), or both."""
    role = request.args.get("role") or None
    if role not in (None, "buyer", "seller"):
        return jsonify({"error": "role must be 'buyer' or 'seller'"}), 400

    purchases = purchase_service.list_purchases_for_user(g.current_user.id, role=role)
    return jsonify({
        "items": [p.to_dict() for p in purchases],
        "count": len(purchases),
    }), 200


@purchases_bp.get("/purchases/<int:purchase_id>")
@require_auth
def get_purchase_route(purchase_id: int):
    """Buyer or seller only; anyone else gets 404."""
    purchase = purchase_service.get_purchase(purchase_id)
    if not purchase or not _visible_to(purchase, g.current_user.id):
        return jsonify({"error": "Purchase not found"}), 404

    data = purchase.to_dict()
    data["book"] = purchase.book.to_dict()
    return jsonify({"purchase": data}), 200
