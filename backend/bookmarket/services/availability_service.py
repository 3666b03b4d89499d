# Overview: Whether a book can be bought right now.

from __future__ import annotations

from sqlalchemy import exists

from ..extensions import db
from ..models import Book, Purchase
from ..models.purchases import PURCHASE_PENDING


def has_pending_purchase(book_id: int) -> bool:
    return db.session.query(
        exists().where(Purchase.book_id == book_id, Purchase.status == PURCHASE_PENDING)
    ).scalar()


def is_available(book: Book) -> bool:
    """
    A book is available iff it is not sold and no checkout is pending on it.

    Always queried; never cached across a transition.
    """
    if book.sold:
        return False
    return not has_pending_purchase(book.id)


def available_books_query():
    """Listable books: unsold and not held by a pending checkout."""
    pending = exists().where(Purchase.book_id == Book.id, Purchase.status == PURCHASE_PENDING)
    return db.session.query(Book).filter(Book.sold.is_(False), ~pending)
