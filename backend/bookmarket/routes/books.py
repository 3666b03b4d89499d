# Overview: Flask API routes for book listings and public seller profiles.

# backend/bookmarket/routes/books.py
"""Book listing API routes"""

from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..models import User
from ..services import book_service
from ..validation import ValidationError, optional_int
from ..decorators import require_auth, require_seller


books_bp = Blueprint("books", __name__, url_prefix="/api/books")
users_bp = Blueprint("users", __name__, url_prefix="/api/users")


def _pagination_args() -> tuple[int | None, int | None]:
    return optional_int(request.args, "page"), optional_int(request.args, "per_page")


@books_bp.get("/")
def list_books_route():
    """Available listings (unsold, no checkout in progress)."""
    try:
        page, per_page = _pagination_args()
        return jsonify(book_service.list_available_books(page=page, per_page=per_page)), 200
    except ValidationError as e:
        return jsonify({"error": str(e), "details": e.details}), 400


@books_bp.get("/<int:book_id>")
def get_book_route(book_id: int):
    book = book_service.get_book(book_id)
    if not book:
        return jsonify({"error": "Book not found"}), 404
    data = book_service.book_to_dict(book)
    data["seller"] = book.owner.to_public_dict()
    return jsonify({"book": data}), 200


@books_bp.post("/")
@require_auth
@require_seller
def create_book_route():
    """
    List a book for sale.

    Requires a connected payout account. `sold` is not accepted.
    """
    try:
        data = request.get_json(silent=True) or {}
        book = book_service.create_book(g.current_user.id, data)
        return jsonify({"book": book_service.book_to_dict(book)}), 201

    except ValidationError as e:
        return jsonify({"error": str(e), "reason": e.code, "details": e.details}), 400
    except Exception:
        current_app.logger.exception("Failed to create book")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.get("/<username>")
def user_profile_route(username: str):
    """Public seller profile with the seller's available listings."""
    user = db.session.query(User).filter_by(username=username, is_active=True).first()
    if not user:
        return jsonify({"error": "User not found"}), 404

    try:
        page, per_page = _pagination_args()
    except ValidationError as e:
        return jsonify({"error": str(e), "details": e.details}), 400

    listings = book_service.list_available_books(owner_id=user.id, page=page, per_page=per_page)
    return jsonify({"user": user.to_public_dict(), "books": listings}), 200
