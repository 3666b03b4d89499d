# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .services import session_service


def _bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    token = auth_header.split(" ", 1)[1].strip()
    return token or None


def require_auth(f):
    """
    Require a valid bearer session.

    Sets g.current_user to the authenticated User and g.session_token to the
    plaintext token (for logout). Returns 401 when the header is missing or
    the token is invalid, expired, revoked, or its account is deactivated.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = _bearer_token()
        if not token:
            return jsonify({"error": "Authentication required"}), 401

        user = session_service.validate_session(token)
        if not user:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.current_user = user
        g.session_token = token

        return f(*args, **kwargs)

    return decorated_function


def require_seller(f):
    """
    Require a connected payout account. Use after @require_auth.

    Listings need somewhere for the seller's share to go.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user = getattr(g, "current_user", None)
        if user is None:
            return jsonify({"error": "Authentication required"}), 401
        if not user.can_sell:
            return jsonify({
                "error": "Connect a payout account before listing books",
                "reason": "payout_account_required",
            }), 403
        return f(*args, **kwargs)

    return decorated_function
