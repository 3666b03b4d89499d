# Overview: Pytest coverage for the platform/seller fee split.

import pytest

from bookmarket.services.fee_service import FeeCalculator, fee_calculator_from_config


class TestFeeCalculator:
    """Fee split rounding and totals."""

    @pytest.mark.parametrize("amount, fee, seller", [
        (1000, 100, 900),
        (1999, 200, 1799),   # 199.9 rounds up
        (5, 1, 4),           # 0.5 rounds half-up
        (4, 0, 4),           # 0.4 rounds down
        (0, 0, 0),
    ])
    def test_ten_percent_split(self, amount, fee, seller):
        split = FeeCalculator(10).calculate_fees(amount)
        assert split.platform_fee_cents == fee
        assert split.seller_amount_cents == seller

    def test_parts_always_sum_to_amount(self):
        calculator = FeeCalculator("12.5")
        for amount in range(0, 2000, 7):
            split = calculator.calculate_fees(amount)
            assert split.platform_fee_cents + split.seller_amount_cents == amount
            assert split.amount_cents == amount
            assert split.platform_fee_cents >= 0
            assert split.seller_amount_cents >= 0

    def test_zero_percent_gives_seller_everything(self):
        split = FeeCalculator(0).calculate_fees(1234)
        assert split.platform_fee_cents == 0
        assert split.seller_amount_cents == 1234

    def test_hundred_percent_gives_platform_everything(self):
        split = FeeCalculator(100).calculate_fees(1234)
        assert split.platform_fee_cents == 1234
        assert split.seller_amount_cents == 0

    @pytest.mark.parametrize("pct", [-1, 100.01, "150"])
    def test_rejects_out_of_range_percentage(self, pct):
        with pytest.raises(ValueError):
            FeeCalculator(pct)

    @pytest.mark.parametrize("amount", [-1, 10.5, "100", True])
    def test_rejects_bad_amounts(self, amount):
        with pytest.raises(ValueError):
            FeeCalculator(10).calculate_fees(amount)

    def test_from_config(self, app):
        app.config["PLATFORM_FEE_PERCENTAGE"] = 15
        split = fee_calculator_from_config().calculate_fees(1000)
        assert split.platform_fee_cents == 150
