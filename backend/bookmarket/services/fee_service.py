# Overview: Platform/seller fee split for a gross sale amount.

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

from flask import current_app


@dataclass(frozen=True)
class FeeSplit:
    platform_fee_cents: int
    seller_amount_cents: int

    @property
    def amount_cents(self) -> int:
        return self.platform_fee_cents + self.seller_amount_cents


class FeeCalculator:
    """
    Splits a gross amount into the platform fee and the seller's proceeds.

    The platform fee is rounded half-up to whole cents and the seller gets the
    remainder, so the two halves always add back up to the gross amount.
    """

    def __init__(self, fee_percentage):
        pct = Decimal(str(fee_percentage))
        if pct < 0 or pct > 100:
            raise ValueError(f"fee_percentage must be between 0 and 100, got {fee_percentage}")
        self.fee_percentage = pct

    def calculate_fees(self, amount_cents: int) -> FeeSplit:
        if isinstance(amount_cents, bool) or not isinstance(amount_cents, int):
            raise ValueError("amount_cents must be an integer")
        if amount_cents < 0:
            raise ValueError("amount_cents cannot be negative")

        raw_fee = Decimal(amount_cents) * self.fee_percentage / Decimal(100)
        platform_fee_cents = int(raw_fee.quantize(Decimal("1"), rounding=ROUND_HALF_UP))

        return FeeSplit(
            platform_fee_cents=platform_fee_cents,
            seller_amount_cents=amount_cents - platform_fee_cents,
        )


def fee_calculator_from_config() -> FeeCalculator:
    """Build a calculator from the current app's PLATFORM_FEE_PERCENTAGE."""
    return FeeCalculator(current_app.config["PLATFORM_FEE_PERCENTAGE"])
