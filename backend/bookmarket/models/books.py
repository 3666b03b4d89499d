from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP

from ..extensions import db
from bookmarket.time_utils import to_utc_z


class Book(db.Model):
    """
    A used book listed for sale by its owner.

    `sold` belongs to the purchase lifecycle: it is only ever written by
    purchase_service.complete_purchase / cancel_purchase, never by listing
    edits.
    """
    __tablename__ = "books"
    __table_args__ = (
        db.CheckConstraint("price >= 0", name="ck_books_price_non_negative"),
        db.Index("ix_books_owner_sold", "owner_id", "sold"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    owner_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    title = db.Column(db.String(255), nullable=False)
    author = db.Column(db.String(255), nullable=False)
    price = db.Column(db.Numeric(14, 2), nullable=False)
    sold = db.Column(db.Boolean, nullable=False, default=False, index=True)

    # Identification metadata supplied by the lister (ISBN / photo lookup happens upstream)
    isbn_10 = db.Column(db.String(10), nullable=True, index=True)
    isbn_13 = db.Column(db.String(13), nullable=True, index=True)
    description = db.Column(db.Text, nullable=True)
    cover_image_url = db.Column(db.String(1024), nullable=True)
    publisher = db.Column(db.String(255), nullable=True)
    publication_year = db.Column(db.Integer, nullable=True)
    page_count = db.Column(db.Integer, nullable=True)
    identified_by = db.Column(db.String(32), nullable=True)  # barcode, photo, manual

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    owner = db.relationship("User", backref=db.backref("books", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def price_cents(self) -> int:
        """Gross price in minor units (half-up)."""
        return int((Decimal(self.price) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))

    def __repr__(self) -> str:
        return f"<Book id={self.id} title={self.title!r} sold={self.sold}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "title": self.title,
            "author": self.author,
            "price": str(self.price),
            "price_cents": self.price_cents,
            "sold": self.sold,
            "isbn_10": self.isbn_10,
            "isbn_13": self.isbn_13,
            "description": self.description,
            "cover_image_url": self.cover_image_url,
            "publisher": self.publisher,
            "publication_year": self.publication_year,
            "page_count": self.page_count,
            "identified_by": self.identified_by,
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }
