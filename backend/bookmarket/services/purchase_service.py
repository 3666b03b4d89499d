# Overview: Purchase lifecycle (pending -> completed | cancelled) and its coupling to Book.sold.

"""
Purchase Lifecycle Service

WHY: A purchase row and its book's `sold` flag must always agree. Every
transition here updates both inside one transaction, holding locks on the
rows involved, so callers never set Book.sold themselves.

INVARIANTS:
- A purchase is created `pending` with a frozen fee split.
- `pending` moves exactly once to `completed` or `cancelled`.
- Re-applying the transition a row already made is a no-op (provider
  notifications are delivered at least once, in no particular order).
- Completing requires a shipping address; a failed completion leaves the row
  `pending`.
- Cancelling only frees the book when no other purchase of it completed.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import exists
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Book, Purchase, User
from ..models.purchases import (
    ACTIVE_STATUSES,
    PURCHASE_CANCELLED,
    PURCHASE_COMPLETED,
    PURCHASE_PENDING,
)
from ..validation import ValidationError
from bookmarket.time_utils import utcnow
from .concurrency import begin_write, lock_for_update, run_with_retry
from .eligibility_service import (
    REASON_BOOK_NOT_AVAILABLE,
    EligibilityError,
    require_eligible,
)
from .fee_service import FeeCalculator, fee_calculator_from_config


class PurchaseValidationError(ValidationError):
    """A purchase data invariant would be violated."""


class PurchaseStateError(ValidationError):
    """Transition not allowed from the purchase's current status."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message, code="invalid_transition", details=details)


DUPLICATE_PURCHASE_MESSAGE = "You have already purchased this book."


@dataclass(frozen=True)
class ShippingAddress:
    name: str | None = None
    line1: str | None = None
    line2: str | None = None
    city: str | None = None
    state: str | None = None
    postal_code: str | None = None
    country: str | None = None

    # state and line2 stay optional: many countries have no region field
    REQUIRED_FIELDS = ("name", "line1", "city", "postal_code", "country")

    def missing_fields(self) -> list[str]:
        return [
            field for field in self.REQUIRED_FIELDS
            if not (getattr(self, field) or "").strip()
        ]


@dataclass(frozen=True)
class TransitionResult:
    purchase: Purchase
    changed: bool


# =============================================================================
# LOOKUPS
# =============================================================================

def get_purchase(purchase_id: int) -> Purchase | None:
    return db.session.get(Purchase, purchase_id)


def find_by_checkout_session(session_id: str) -> Purchase | None:
    return db.session.query(Purchase).filter_by(checkout_session_id=session_id).first()


def find_by_payment_intent(payment_intent_id: str) -> Purchase | None:
    return db.session.query(Purchase).filter_by(payment_intent_id=payment_intent_id).first()


def list_purchases_for_user(user_id: int, role: str | None = None) -> list[Purchase]:
    """Purchases where the user is the buyer, the seller, or either (role=None)."""
    query = db.session.query(Purchase)
    if role == "buyer":
        query = query.filter(Purchase.buyer_id == user_id)
    elif role == "seller":
        query = query.filter(Purchase.seller_id == user_id)
    elif role is None:
        query = query.filter(db.or_(Purchase.buyer_id == user_id, Purchase.seller_id == user_id))
    else:
        raise ValueError(f"Unknown role: {role}")
    return query.order_by(Purchase.created_at.desc(), Purchase.id.desc()).all()


def _has_active_purchase(book_id: int, buyer_id: int) -> bool:
    return db.session.query(
        exists().where(
            Purchase.book_id == book_id,
            Purchase.buyer_id == buyer_id,
            Purchase.status.in_(ACTIVE_STATUSES),
        )
    ).scalar()


def _has_other_completed_purchase(book_id: int, purchase_id: int) -> bool:
    return db.session.query(
        exists().where(
            Purchase.book_id == book_id,
            Purchase.status == PURCHASE_COMPLETED,
            Purchase.id != purchase_id,
        )
    ).scalar()


def _lock_purchase(purchase_id: int) -> Purchase:
    purchase = lock_for_update(db.session.query(Purchase).filter_by(id=purchase_id)).first()
    if not purchase:
        raise PurchaseValidationError(f"Purchase {purchase_id} not found", code="purchase_not_found")
    return purchase


def _lock_book(book_id: int) -> Book:
    book = lock_for_update(db.session.query(Book).filter_by(id=book_id)).first()
    if not book:
        raise PurchaseValidationError(f"Book {book_id} not found", code="book_not_found")
    return book


# =============================================================================
# CREATION
# =============================================================================

def create_purchase(
    book_id: int,
    buyer_id: int,
    seller_id: int | None = None,
    fee_calculator: FeeCalculator | None = None,
) -> Purchase:
    """
    Create a pending purchase for a book.

    The eligibility check, the invariant checks and the insert run in one
    locked transaction. The partial unique indexes on purchases are the final
    word: if a concurrent insert wins, the IntegrityError is turned into the
    same rejection the checks would have produced.

    Raises:
        EligibilityError: book unavailable or buyer owns the book
        PurchaseValidationError: duplicate purchase, unknown
            book/buyer, or seller that does not own the book
    """
    calculator = fee_calculator or fee_calculator_from_config()

    def _op():
        begin_write()
        book = _lock_book(book_id)

        buyer = db.session.get(User, buyer_id)
        if not buyer:
            raise PurchaseValidationError(f"Buyer {buyer_id} not found", code="buyer_not_found")

        if seller_id is not None and seller_id != book.owner_id:
            raise PurchaseValidationError(
                "Seller does not own this book",
                code="seller_mismatch",
                details={"seller_id": seller_id, "owner_id": book.owner_id},
            )

        try:
            require_eligible(book, buyer)
        except EligibilityError as exc:
            # The buyer's own pending or completed purchase is what holds the book
            if exc.reason == REASON_BOOK_NOT_AVAILABLE and _has_active_purchase(book.id, buyer.id):
                raise PurchaseValidationError(DUPLICATE_PURCHASE_MESSAGE, code="duplicate_purchase") from exc
            raise

        amount_cents = book.price_cents
        fees = calculator.calculate_fees(amount_cents)

        purchase = Purchase(
            book_id=book.id,
            buyer_id=buyer.id,
            seller_id=book.owner_id,
            amount_cents=amount_cents,
            platform_fee_cents=fees.platform_fee_cents,
            seller_amount_cents=fees.seller_amount_cents,
            status=PURCHASE_PENDING,
        )
        db.session.add(purchase)
        db.session.commit()
        return purchase

    try:
        return run_with_retry(_op)
    except IntegrityError as exc:
        # run_with_retry already rolled back; see who got there first
        if _has_active_purchase(book_id, buyer_id):
            raise PurchaseValidationError(DUPLICATE_PURCHASE_MESSAGE, code="duplicate_purchase") from exc
        raise EligibilityError(REASON_BOOK_NOT_AVAILABLE) from exc


def attach_checkout_session(purchase_id: int, session_id: str) -> Purchase:
    """Record the provider checkout session on a pending purchase."""
    def _op():
        purchase = _lock_purchase(purchase_id)
        if purchase.status != PURCHASE_PENDING:
            raise PurchaseStateError(
                f"Cannot attach a checkout session to a {purchase.status} purchase",
                details={"status": purchase.status},
            )
        purchase.checkout_session_id = session_id
        db.session.commit()
        return purchase

    return run_with_retry(_op)


def discard_pending_purchase(purchase_id: int) -> bool:
    """
    Delete a pending purchase whose checkout never started.

    Compensating action for a failed checkout-session call, so the row does
    not keep the book unavailable. Returns False if the row is gone or has
    already left `pending`.
    """
    def _op():
        purchase = lock_for_update(db.session.query(Purchase).filter_by(id=purchase_id)).first()
        if not purchase or purchase.status != PURCHASE_PENDING:
            db.session.rollback()
            return False
        db.session.delete(purchase)
        db.session.commit()
        return True

    return run_with_retry(_op)


# =============================================================================
# TRANSITIONS
# =============================================================================

def complete_purchase(
    purchase_id: int,
    payment_intent_id: str | None,
    shipping: ShippingAddress | None,
) -> TransitionResult:
    """
    pending -> completed, marking the book sold in the same transaction.

    Already completed: no-op (changed=False). Cancelled: PurchaseStateError.
    Missing shipping data: PurchaseValidationError(code="shipping_required")
    and the purchase stays pending.
    """
    def _op():
        begin_write()
        purchase = _lock_purchase(purchase_id)

        if purchase.status == PURCHASE_COMPLETED:
            db.session.commit()
            return TransitionResult(purchase=purchase, changed=False)

        if purchase.status != PURCHASE_PENDING:
            raise PurchaseStateError(
                f"Cannot complete a {purchase.status} purchase",
                details={"purchase_id": purchase.id, "status": purchase.status},
            )

        missing = shipping.missing_fields() if shipping else list(ShippingAddress.REQUIRED_FIELDS)
        if missing:
            raise PurchaseValidationError(
                "A shipping address is required to complete a purchase",
                code="shipping_required",
                details={"purchase_id": purchase.id, "missing": missing},
            )

        book = _lock_book(purchase.book_id)
        if book.sold:
            raise PurchaseValidationError(
                "This book has already been sold.",
                code="book_sold",
                details={"purchase_id": purchase.id, "book_id": book.id},
            )

        purchase.status = PURCHASE_COMPLETED
        purchase.completed_at = utcnow()
        if payment_intent_id:
            purchase.payment_intent_id = payment_intent_id
        # Stored as the provider supplied them
        purchase.shipping_name = shipping.name
        purchase.shipping_address_line1 = shipping.line1
        purchase.shipping_address_line2 = shipping.line2
        purchase.shipping_city = shipping.city
        purchase.shipping_state = shipping.state
        purchase.shipping_postal_code = shipping.postal_code
        purchase.shipping_country = shipping.country

        book.sold = True

        db.session.commit()
        return TransitionResult(purchase=purchase, changed=True)

    return run_with_retry(_op)


def cancel_purchase(purchase_id: int) -> TransitionResult:
    """
    pending -> cancelled, making the book available again.

    The book is only released when no other purchase of it has completed; a
    stale cancellation for an abandoned checkout must not unsell a book that
    someone else paid for.

    Already cancelled: no-op (changed=False). Completed: PurchaseStateError.
    """
    def _op():
        begin_write()
        purchase = _lock_purchase(purchase_id)

        if purchase.status == PURCHASE_CANCELLED:
            db.session.commit()
            return TransitionResult(purchase=purchase, changed=False)

        if purchase.status != PURCHASE_PENDING:
            raise PurchaseStateError(
                f"Cannot cancel a {purchase.status} purchase",
                details={"purchase_id": purchase.id, "status": purchase.status},
            )

        book = _lock_book(purchase.book_id)

        purchase.status = PURCHASE_CANCELLED
        purchase.cancelled_at = utcnow()

        if book.sold and not _has_other_completed_purchase(book.id, purchase.id):
            book.sold = False

        db.session.commit()
        return TransitionResult(purchase=purchase, changed=True)

    return run_with_retry(_op)
