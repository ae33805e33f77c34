"""
Tests for the totals calculator.
"""

import pytest

from rest_api.services.domain.pricing import PricingSettings, compute_totals


class TestComputeTotals:
    """Integer money with half-up rounding."""

    def test_empty_cart_is_all_zero(self):
        totals = compute_totals([], PricingSettings(tax_rate=0.1))

        assert totals.as_dict() == {"subtotal": 0, "tax": 0, "service_charge": 0, "grand_total": 0}

    def test_tax_included(self):
        """Two items summing to 10000 with 10% included tax: tax is carved out."""
        totals = compute_totals([(6000, 1), (4000, 1)], PricingSettings(tax_rate=0.1, tax_included=True))

        assert totals.subtotal == 10000
        assert totals.tax == 909
        assert totals.grand_total == 10000

    def test_tax_excluded(self):
        """Two items summing to 10000 with 10% excluded tax: tax is added on top."""
        totals = compute_totals([(6000, 1), (4000, 1)], PricingSettings(tax_rate=0.1, tax_included=False))

        assert totals.subtotal == 10000
        assert totals.tax == 1000
        assert totals.grand_total == 11000

    def test_service_charge_on_subtotal(self):
        totals = compute_totals(
            [(9000, 2), (3000, 1)],
            PricingSettings(tax_rate=0.1, service_charge_rate=0.05, tax_included=False),
        )

        assert totals.subtotal == 21000
        assert totals.service_charge == 1050
        assert totals.tax == 2100
        assert totals.grand_total == 21000 + 2100 + 1050

    @pytest.mark.parametrize(
        "subtotal,rate,expected",
        [
            (5, 0.1, 1),     # 0.5 rounds up
            (4, 0.1, 0),     # 0.4 rounds down
            (15, 0.1, 2),    # 1.5 rounds up
            (25, 0.1, 3),    # 2.5 rounds up (not banker's rounding)
        ],
    )
    def test_half_up_rounding(self, subtotal, rate, expected):
        totals = compute_totals([(subtotal, 1)], PricingSettings(tax_rate=rate, tax_included=False))

        assert totals.tax == expected

    def test_quantity_multiplies_unit_price(self):
        totals = compute_totals([(1500, 3)], PricingSettings())

        assert totals.subtotal == 4500
        assert totals.grand_total == 4500
