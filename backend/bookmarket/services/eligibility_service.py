# Overview: Pre-creation checks a buyer must pass before a pending purchase is written.

from __future__ import annotations

from dataclasses import dataclass

from ..models import Book, User
from .availability_service import is_available


REASON_BOOK_NOT_AVAILABLE = "book_not_available"
REASON_SELF_PURCHASE = "self_purchase"

REJECTION_MESSAGES = {
    REASON_BOOK_NOT_AVAILABLE: "This book is no longer available for purchase.",
    REASON_SELF_PURCHASE: "You cannot purchase your own book.",
}


class EligibilityError(Exception):
    """Raised when a buyer may not start a purchase. User-correctable; nothing is written."""

    def __init__(self, reason: str):
        super().__init__(REJECTION_MESSAGES.get(reason, reason))
        self.reason = reason


@dataclass(frozen=True)
class EligibilityResult:
    ok: bool
    reason: str | None = None

    @property
    def message(self) -> str | None:
        return REJECTION_MESSAGES.get(self.reason) if self.reason else None


def check_eligibility(book: Book, buyer: User) -> EligibilityResult:
    # Own-book first: a seller whose listing is pending should still see
    # why they can't buy it.
    if book.owner_id == buyer.id:
        return EligibilityResult(ok=False, reason=REASON_SELF_PURCHASE)
    if not is_available(book):
        return EligibilityResult(ok=False, reason=REASON_BOOK_NOT_AVAILABLE)
    return EligibilityResult(ok=True)


def require_eligible(book: Book, buyer: User) -> None:
    result = check_eligibility(book, buyer)
    if not result.ok:
        raise EligibilityError(result.reason)
