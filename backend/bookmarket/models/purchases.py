from __future__ import annotations

from ..extensions import db
from bookmarket.time_utils import to_utc_z


PURCHASE_PENDING = "pending"
PURCHASE_COMPLETED = "completed"
PURCHASE_CANCELLED = "cancelled"

PURCHASE_STATUSES = (PURCHASE_PENDING, PURCHASE_COMPLETED, PURCHASE_CANCELLED)

# Statuses that block the same buyer from buying the same book again
ACTIVE_STATUSES = (PURCHASE_PENDING, PURCHASE_COMPLETED)


class Purchase(db.Model):
    """
    One buyer's attempt to buy one book.

    Lifecycle: pending -> completed | cancelled. Terminal rows never change
    status again; buying a book again after a cancellation creates a new row.

    Amounts are frozen at creation: amount_cents is the gross book price and
    platform_fee_cents + seller_amount_cents always add up to it.
    """
    __tablename__ = "purchases"
    __table_args__ = (
        db.CheckConstraint(
            "status IN ('pending', 'completed', 'cancelled')",
            name="ck_purchases_status",
        ),
        db.CheckConstraint(
            "amount_cents >= 0 AND platform_fee_cents >= 0 AND seller_amount_cents >= 0",
            name="ck_purchases_amounts_non_negative",
        ),
        db.CheckConstraint(
            "amount_cents = platform_fee_cents + seller_amount_cents",
            name="ck_purchases_fee_split",
        ),
        db.CheckConstraint("buyer_id <> seller_id", name="ck_purchases_buyer_not_seller"),
        # Authoritative duplicate guard: one live purchase per (book, buyer)
        db.Index(
            "uq_purchases_book_buyer_active",
            "book_id",
            "buyer_id",
            unique=True,
            sqlite_where=db.text("status IN ('pending', 'completed')"),
            postgresql_where=db.text("status IN ('pending', 'completed')"),
        ),
        # A book can be held by at most one pending checkout at a time
        db.Index(
            "uq_purchases_book_pending",
            "book_id",
            unique=True,
            sqlite_where=db.text("status = 'pending'"),
            postgresql_where=db.text("status = 'pending'"),
        ),
        db.Index("ix_purchases_book_status", "book_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    book_id = db.Column(db.Integer, db.ForeignKey("books.id"), nullable=False, index=True)
    buyer_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    seller_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    # All amounts in cents
    amount_cents = db.Column(db.Integer, nullable=False)
    platform_fee_cents = db.Column(db.Integer, nullable=False)
    seller_amount_cents = db.Column(db.Integer, nullable=False)

    status = db.Column(db.String(16), nullable=False, default=PURCHASE_PENDING, index=True)

    # Payment provider references
    checkout_session_id = db.Column(db.String(255), nullable=True, unique=True, index=True)
    payment_intent_id = db.Column(db.String(255), nullable=True, index=True)

    # Shipping address (required once completed)
    shipping_name = db.Column(db.String(255), nullable=True)
    shipping_address_line1 = db.Column(db.String(255), nullable=True)
    shipping_address_line2 = db.Column(db.String(255), nullable=True)
    shipping_city = db.Column(db.String(128), nullable=True)
    shipping_state = db.Column(db.String(128), nullable=True)
    shipping_postal_code = db.Column(db.String(32), nullable=True)
    shipping_country = db.Column(db.String(2), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    book = db.relationship("Book", backref=db.backref("purchases", lazy=True))
    buyer = db.relationship("User", foreign_keys=[buyer_id])
    seller = db.relationship("User", foreign_keys=[seller_id])
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Purchase id={self.id} book_id={self.book_id} status={self.status}>"

    def shipping_dict(self) -> dict | None:
        if not self.shipping_name:
            return None
        return {
            "name": self.shipping_name,
            "line1": self.shipping_address_line1,
            "line2": self.shipping_address_line2,
            "city": self.shipping_city,
            "state": self.shipping_state,
            "postal_code": self.shipping_postal_code,
            "country": self.shipping_country,
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "book_id": self.book_id,
            "buyer_id": self.buyer_id,
            "seller_id": self.seller_id,
            "amount_cents": self.amount_cents,
            "platform_fee_cents": self.platform_fee_cents,
            "seller_amount_cents": self.seller_amount_cents,
            "status": self.status,
            "checkout_session_id": self.checkout_session_id,
            "payment_intent_id": self.payment_intent_id,
            "shipping": self.shipping_dict(),
            "created_at": to_utc_z(self.created_at),
            "completed_at": to_utc_z(self.completed_at) if self.completed_at else None,
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
            "version_id": self.version_id,
        }
