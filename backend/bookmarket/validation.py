from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any


# Maximum price: $9,999,999.99
# This prevents database overflow issues and nonsensical prices
MAX_PRICE = Decimal("9999999.99")


class ValidationError(ValueError):
    """
    Data-invariant or input problem.

    `code` is a stable machine-readable reason that routes and tests match on;
    the message is safe to show to the user.
    """

    def __init__(self, message: str, code: str = "invalid", details: dict | None = None):
        super().__init__(message)
        self.code = code
        self.details = details or {}


def require_text(payload: dict, key: str, *, max_length: int = 255) -> str:
    value = payload.get(key)
    if value is None or not str(value).strip():
        raise ValidationError(f"{key} is required", code="missing_field", details={"field": key})
    value = str(value).strip()
    if len(value) > max_length:
        raise ValidationError(
            f"{key} must be at most {max_length} characters",
            code="too_long",
            details={"field": key},
        )
    return value


def optional_text(payload: dict, key: str, *, max_length: int = 255) -> str | None:
    value = payload.get(key)
    if value is None or not str(value).strip():
        return None
    value = str(value).strip()
    if len(value) > max_length:
        raise ValidationError(
            f"{key} must be at most {max_length} characters",
            code="too_long",
            details={"field": key},
        )
    return value


def optional_int(payload: dict, key: str) -> int | None:
    """Strict integer coercion: rejects floats, decimals and scientific notation."""
    value: Any = payload.get(key)
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be an integer", details={"field": key})
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if "e" in stripped.lower() or "." in stripped:
            raise ValidationError(f"{key} must be a plain integer", details={"field": key})
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{key} must be an integer", details={"field": key})
    raise ValidationError(f"{key} must be an integer", details={"field": key})


def parse_price(value: Any) -> Decimal:
    """
    Parse a listing price given in major units ("12.99" or 12.99).

    Returns a Decimal with two places. Rejects negatives, more than two
    decimal places, and anything above MAX_PRICE.
    """
    if value is None or isinstance(value, bool) or (isinstance(value, str) and not value.strip()):
        raise ValidationError("price is required", code="missing_field", details={"field": "price"})
    try:
        price = Decimal(str(value).strip())
    except InvalidOperation:
        raise ValidationError("price must be a number", details={"field": "price"})
    if not price.is_finite():
        raise ValidationError("price must be a number", details={"field": "price"})
    if price < 0:
        raise ValidationError("price cannot be negative", details={"field": "price"})
    if price > MAX_PRICE:
        raise ValidationError(f"price cannot exceed {MAX_PRICE}", details={"field": "price"})
    if price != price.quantize(Decimal("0.01")):
        raise ValidationError("price cannot have more than two decimal places", details={"field": "price"})
    return price.quantize(Decimal("0.01"))
