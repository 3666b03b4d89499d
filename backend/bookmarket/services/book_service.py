# backend/bookmarket/services/book_service.py
"""
Book listings.

Listing fields are set here; `sold` is not a listing field and is never
taken from input (the purchase lifecycle owns it).
"""
from __future__ import annotations

import re

from ..extensions import db
from ..models import Book, User
from ..validation import ValidationError, optional_int, optional_text, parse_price, require_text
from .availability_service import available_books_query, is_available

IDENTIFIED_BY_VALUES = {"barcode", "photo", "manual"}


def _digits(value: str | None, length: int, field: str) -> str | None:
    if value is None:
        return None
    cleaned = re.sub(r"[\s-]", "", value).upper()
    # ISBN-10 may end in an X check digit
    pattern = r"^\d{9}[\dX]$" if length == 10 else rf"^\d{{{length}}}$"
    if not re.match(pattern, cleaned):
        raise ValidationError(f"{field} must be {length} digits", details={"field": field})
    return cleaned


def build_book_fields(payload: dict) -> dict:
    """Validate listing input. Unknown keys (including `sold`) are ignored."""
    fields = {
        "title": require_text(payload, "title"),
        "author": require_text(payload, "author"),
        "price": parse_price(payload.get("price")),
        "isbn_10": _digits(optional_text(payload, "isbn_10", max_length=20), 10, "isbn_10"),
        "isbn_13": _digits(optional_text(payload, "isbn_13", max_length=20), 13, "isbn_13"),
        "description": optional_text(payload, "description", max_length=10000),
        "cover_image_url": optional_text(payload, "cover_image_url", max_length=1024),
        "publisher": optional_text(payload, "publisher"),
        "publication_year": optional_int(payload, "publication_year"),
        "page_count": optional_int(payload, "page_count"),
        "identified_by": optional_text(payload, "identified_by", max_length=32),
    }
    if fields["page_count"] is not None and fields["page_count"] <= 0:
        raise ValidationError("page_count must be positive", details={"field": "page_count"})
    if fields["identified_by"] and fields["identified_by"] not in IDENTIFIED_BY_VALUES:
        raise ValidationError(
            f"identified_by must be one of {sorted(IDENTIFIED_BY_VALUES)}",
            details={"field": "identified_by"},
        )
    return fields


def create_book(owner_id: int, payload: dict) -> Book:
    """
    List a book for sale.

    Raises:
        ValidationError: bad input, unknown owner, or owner without a payout account
    """
    owner = db.session.get(User, owner_id)
    if not owner:
        raise ValidationError(f"User {owner_id} not found", code="user_not_found")
    if not owner.can_sell:
        raise ValidationError(
            "Connect a payout account before listing books",
            code="payout_account_required",
        )

    book = Book(owner_id=owner.id, sold=False, **build_book_fields(payload))
    db.session.add(book)
    db.session.commit()
    return book


def get_book(book_id: int) -> Book | None:
    return db.session.get(Book, book_id)


def book_to_dict(book: Book) -> dict:
    data = book.to_dict()
    data["available"] = is_available(book)
    return data


def list_available_books(
    owner_id: int | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """Available listings, newest first, optionally for one seller and paginated."""
    base_query = available_books_query()
    if owner_id is not None:
        base_query = base_query.filter(Book.owner_id == owner_id)
    base_query = base_query.order_by(Book.created_at.desc(), Book.id.desc())

    if page is None:
        books = base_query.all()
        return {
            "items": [dict(b.to_dict(), available=True) for b in books],
            "count": len(books),
        }

    per_page = min(per_page or 20, 100)
    page = max(page, 1)

    total = base_query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    books = base_query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [dict(b.to_dict(), available=True) for b in books],
        "count": len(books),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }
