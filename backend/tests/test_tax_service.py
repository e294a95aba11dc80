# Overview: Pytest coverage for ledger arithmetic.

from decimal import Decimal

import pytest

from billing.services import tax_service
from billing.validation import ValidationError


class TestComputeLine:

    def test_basic_line(self):
        figures = tax_service.compute_line(2, Decimal("100"), Decimal("18"))
        assert figures.taxable_amount == Decimal("200.00")
        assert figures.tax_amount == Decimal("36.00")
        assert figures.cgst == Decimal("18.00")
        assert figures.sgst == Decimal("18.00")
        assert figures.line_total == Decimal("236.00")

    @pytest.mark.parametrize("quantity,price,rate,expected", [
        (3, "33.33", "12", "111.99"),     # 111.9888
        (1, "99.50", "5", "104.48"),      # 104.475 rounds half-up
        (7, "0.01", "0", "0.07"),
        (5, "19.99", "28", "127.94"),     # 127.936
    ])
    def test_line_total_identity(self, quantity, price, rate, expected):
        figures = tax_service.compute_line(quantity, Decimal(price), Decimal(rate))
        assert figures.line_total == Decimal(expected)

    def test_zero_quantity_is_zero(self):
        figures = tax_service.compute_line(0, Decimal("250"), Decimal("18"))
        assert figures.line_total == Decimal("0.00")
        assert figures.tax_amount == Decimal("0.00")

    def test_zero_gst_has_no_tax(self):
        figures = tax_service.compute_line(4, Decimal("12.50"), 0)
        assert figures.tax_amount == Decimal("0.00")
        assert figures.cgst == 0
        assert figures.line_total == Decimal("50.00")

    @pytest.mark.parametrize("quantity,price,rate", [
        (-1, "10", "5"),
        (1, "-10", "5"),
        (1, "10", "-5"),
    ])
    def test_negative_inputs_rejected(self, quantity, price, rate):
        with pytest.raises(ValidationError):
            tax_service.compute_line(quantity, Decimal(price), Decimal(rate))

    def test_float_quantity_rejected(self):
        with pytest.raises(ValidationError):
            tax_service.compute_line(1.5, Decimal("10"), Decimal("5"))

    def test_float_price_does_not_drift(self):
        figures = tax_service.compute_line(3, 0.1, 0)
        assert figures.line_total == Decimal("0.30")


class TestComputeLedger:

    def test_basic_invoice_scenario(self):
        totals = tax_service.compute_ledger([
            {"quantity": 2, "unit_price": Decimal("100"), "gst_rate": Decimal("18")},
        ])
        assert totals.subtotal == Decimal("200.00")
        assert totals.tax_amount == Decimal("36.00")
        assert totals.cgst == Decimal("18.00")
        assert totals.sgst == Decimal("18.00")
        assert totals.grand_total == Decimal("236.00")

    def test_aggregates_round_once(self):
        # Each line carries 0.005 of tax; rounding per line would give 0.03
        lines = [{"quantity": 1, "unit_price": Decimal("0.10"), "gst_rate": Decimal("5")}] * 3
        totals = tax_service.compute_ledger(lines)
        assert totals.tax_amount == Decimal("0.02")
        assert sum(f.tax_amount for f in totals.lines) == Decimal("0.03")

    def test_cgst_sgst_split_is_exact(self):
        totals = tax_service.compute_ledger([
            {"quantity": 1, "unit_price": Decimal("0.10"), "gst_rate": Decimal("5")},
        ])
        assert totals.tax_amount == Decimal("0.01")
        assert totals.cgst == totals.sgst
        assert totals.cgst + totals.sgst == totals.tax_amount

    def test_mixed_rates(self):
        totals = tax_service.compute_ledger([
            {"quantity": 2, "unit_price": Decimal("100"), "gst_rate": Decimal("18")},
            {"quantity": 5, "unit_price": Decimal("40"), "gst_rate": Decimal("5")},
            {"quantity": 0, "unit_price": Decimal("999"), "gst_rate": Decimal("28")},
        ])
        assert totals.subtotal == Decimal("400.00")
        assert totals.tax_amount == Decimal("46.00")
        assert len(totals.lines) == 3
        assert totals.lines[2].line_total == 0

    def test_empty_ledger_is_zero(self):
        totals = tax_service.compute_ledger([])
        assert totals.subtotal == 0
        assert totals.tax_amount == 0
        assert totals.lines == ()

    def test_missing_fields_rejected(self):
        with pytest.raises(ValidationError):
            tax_service.compute_ledger([{"quantity": 1}])


class TestRoundOff:

    def test_whole_total_has_no_round_off(self):
        assert tax_service.compute_round_off(Decimal("236"), Decimal("200.00"), Decimal("36.00")) == 0

    def test_round_off_reports_delta(self):
        total = tax_service.round_total(Decimal("104.48"))
        assert total == Decimal("104")
        assert tax_service.compute_round_off(total, Decimal("99.50"), Decimal("4.98")) == Decimal("-0.48")

    def test_round_total_half_up(self):
        assert tax_service.round_total(Decimal("10.50")) == Decimal("11")
        assert tax_service.round_total(Decimal("10.49")) == Decimal("10")

    def test_round_off_bound(self):
        with pytest.raises(ValidationError):
            tax_service.compute_round_off(Decimal("238"), Decimal("200.00"), Decimal("36.00"))

    def test_round_off_always_below_one_rupee(self):
        for paise in range(0, 10000, 37):
            grand = Decimal(paise) / 100
            delta = tax_service.compute_round_off(tax_service.round_total(grand), grand, Decimal("0"))
            assert abs(delta) < 1
