# Overview: Pytest coverage for book availability and purchase eligibility.

import pytest

from bookmarket.extensions import db
from bookmarket.models import Purchase
from bookmarket.services.availability_service import available_books_query, is_available
from bookmarket.services.eligibility_service import (
    REASON_BOOK_NOT_AVAILABLE,
    REASON_SELF_PURCHASE,
    EligibilityError,
    check_eligibility,
    require_eligible,
)

from conftest import make_book


def _purchase(book, buyer, status="pending"):
    purchase = Purchase(
        book_id=book.id,
        buyer_id=buyer.id,
        seller_id=book.owner_id,
        amount_cents=book.price_cents,
        platform_fee_cents=0,
        seller_amount_cents=book.price_cents,
        status=status,
    )
    db.session.add(purchase)
    db.session.commit()
    return purchase


class TestAvailability:
    def test_unsold_book_without_purchases_is_available(self, book):
        assert is_available(book) is True

    def test_sold_book_is_not_available(self, db_session, book):
        book.sold = True
        db_session.commit()
        assert is_available(book) is False

    def test_pending_purchase_makes_book_unavailable(self, book, buyer):
        _purchase(book, buyer)
        assert is_available(book) is False

    def test_cancelled_purchase_does_not_block(self, book, buyer):
        _purchase(book, buyer, status="cancelled")
        assert is_available(book) is True

    def test_available_query_excludes_sold_and_pending(self, db_session, seller, buyer):
        free = make_book(seller, title="Free")
        held = make_book(seller, title="Held")
        sold = make_book(seller, title="Sold")
        sold.sold = True
        db_session.commit()
        _purchase(held, buyer)

        titles = {b.title for b in available_books_query().all()}
        assert titles == {free.title}


class TestEligibility:
    def test_eligible_buyer(self, book, buyer):
        result = check_eligibility(book, buyer)
        assert result.ok is True
        assert result.reason is None
        assert result.message is None

    def test_owner_cannot_buy_own_book(self, book, seller):
        result = check_eligibility(book, seller)
        assert result.ok is False
        assert result.reason == REASON_SELF_PURCHASE
        assert result.message == "You cannot purchase your own book."

    def test_self_purchase_reported_even_when_unavailable(self, db_session, book, seller):
        book.sold = True
        db_session.commit()
        assert check_eligibility(book, seller).reason == REASON_SELF_PURCHASE

    def test_unavailable_book(self, book, buyer, other_buyer):
        _purchase(book, other_buyer)
        result = check_eligibility(book, buyer)
        assert result.ok is False
        assert result.reason == REASON_BOOK_NOT_AVAILABLE
        assert result.message == "This book is no longer available for purchase."

    def test_require_eligible_raises_with_reason(self, book, seller):
        with pytest.raises(EligibilityError) as exc_info:
            require_eligible(book, seller)
        assert exc_info.value.reason == REASON_SELF_PURCHASE
        assert str(exc_info.value) == "You cannot purchase your own book."
