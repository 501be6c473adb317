"""
Unit tests for VAT and discount arithmetic.

Verifies:
- Decimal-only inputs (float prohibition)
- Half-away-from-zero rounding at every step
- Line amounts, discounts and tax-inclusive conversions
- Per-rate tax breakdown and document totals
"""

from decimal import Decimal

import pytest

from invoice_kernel.domain.documents import LineItem
from invoice_kernel.domain.money import (
    CANONICAL_VAT_RATES,
    ZERO,
    amount_excluding_tax,
    amount_including_tax,
    apply_discount,
    compute_line_amounts,
    discount_amount,
    document_totals,
    is_standard_vat_rate,
    round2,
    tax_amount,
    tax_amount_from_total,
    tax_breakdown,
    tax_breakdown_from_bases,
    to_decimal,
    totals_from_breakdown,
    within_tolerance,
)


def _line(base: str, rate: str, quantity: str = "1", discount: str = "0") -> LineItem:
    return LineItem(
        description="line",
        quantity=Decimal(quantity),
        unit_price_excluding_tax=Decimal(base),
        tax_rate=Decimal(rate),
        discount_rate=Decimal(discount),
    )


class TestToDecimal:
    """Boundary conversion of amounts and rates."""

    def test_accepts_decimal_int_and_str(self):
        assert to_decimal(Decimal("1.50")) == Decimal("1.50")
        assert to_decimal(3) == Decimal("3")
        assert to_decimal("19.99") == Decimal("19.99")

    def test_float_rejected(self):
        """Floats cannot represent cents exactly and are refused."""
        with pytest.raises(TypeError):
            to_decimal(0.1)

    def test_bool_rejected(self):
        with pytest.raises(TypeError):
            to_decimal(True)

    def test_non_numeric_string_rejected(self):
        with pytest.raises(ValueError):
            to_decimal("twelve")

    @pytest.mark.parametrize("value", ["NaN", "Infinity", "-Infinity"])
    def test_non_finite_rejected(self, value):
        with pytest.raises(ValueError):
            to_decimal(value)


class TestRounding:
    """round2 rounds half away from zero."""

    @pytest.mark.parametrize(
        "value, expected",
        [
            ("1.005", "1.01"),
            ("1.004", "1.00"),
            ("2.675", "2.68"),
            ("-0.005", "-0.01"),
            ("-1.004", "-1.00"),
            ("10", "10.00"),
        ],
    )
    def test_round2(self, value, expected):
        assert round2(value) == Decimal(expected)

    def test_result_has_two_places(self):
        assert round2("7").as_tuple().exponent == -2


class TestTaxAndDiscount:
    """Single-step amount functions."""

    def test_tax_amount(self):
        assert tax_amount("100.00", "20") == Decimal("20.00")

    def test_tax_amount_rounds_half_up(self):
        """19.99 x 5.5% = 1.09945, rounds to 1.10."""
        assert tax_amount("19.99", "5.5") == Decimal("1.10")

    def test_tax_on_half_cent(self):
        assert tax_amount("0.05", "10") == Decimal("0.01")

    def test_zero_rate(self):
        assert tax_amount("123.45", "0") == ZERO

    def test_discount_amount(self):
        assert discount_amount("200.00", "15") == Decimal("30.00")

    def test_apply_discount(self):
        assert apply_discount("200.00", "15") == Decimal("170.00")

    def test_full_discount(self):
        assert apply_discount("80.00", "100") == ZERO

    def test_amount_including_tax(self):
        assert amount_including_tax("100.00", "20") == Decimal("120.00")

    def test_amount_excluding_tax(self):
        assert amount_excluding_tax("120.00", "20") == Decimal("100.00")
        assert amount_excluding_tax("105.50", "5.5") == Decimal("100.00")

    def test_tax_amount_from_total(self):
        assert tax_amount_from_total("120.00", "20") == Decimal("20.00")

    def test_float_rate_rejected(self):
        with pytest.raises(TypeError):
            tax_amount("100.00", 20.0)


class TestStandardRates:
    """French canonical VAT rates."""

    def test_canonical_rates(self):
        assert CANONICAL_VAT_RATES == (
            Decimal("20.0"),
            Decimal("10.0"),
            Decimal("5.5"),
            Decimal("2.1"),
            Decimal("0.0"),
        )

    @pytest.mark.parametrize("rate", ["20", "10.00", "5.5", "5.50", "2.1", "0"])
    def test_standard(self, rate):
        assert is_standard_vat_rate(rate)

    @pytest.mark.parametrize("rate", ["7", "19.6", "8.5"])
    def test_non_standard(self, rate):
        assert not is_standard_vat_rate(rate)

    def test_custom_rate_table(self):
        assert is_standard_vat_rate("8.5", canonical_rates=(Decimal("8.5"),))


class TestLineAmounts:
    """Line computation rounds at every step."""

    def test_simple_line(self):
        amounts = compute_line_amounts("2", "25.00", "10")
        assert amounts.subtotal_excluding_tax == Decimal("50.00")
        assert amounts.discount_amount == ZERO
        assert amounts.subtotal_after_discount == Decimal("50.00")
        assert amounts.tax_amount == Decimal("5.00")
        assert amounts.total_including_tax == Decimal("55.00")

    def test_discounted_line(self):
        """
        3 x 33.33 = 99.99; 10% discount = 9.999 -> 10.00; base 89.99;
        20% tax = 17.998 -> 18.00; total 107.99.
        """
        amounts = compute_line_amounts("3", "33.33", "20", "10")
        assert amounts.subtotal_excluding_tax == Decimal("99.99")
        assert amounts.discount_amount == Decimal("10.00")
        assert amounts.subtotal_after_discount == Decimal("89.99")
        assert amounts.tax_amount == Decimal("18.00")
        assert amounts.total_including_tax == Decimal("107.99")

    def test_fractional_quantity(self):
        amounts = compute_line_amounts("1.5", "45.00", "20")
        assert amounts.subtotal_excluding_tax == Decimal("67.50")
        assert amounts.tax_amount == Decimal("13.50")

    def test_total_is_base_plus_tax(self):
        amounts = compute_line_amounts("7", "13.37", "5.5", "3")
        assert amounts.total_including_tax == round2(
            amounts.subtotal_after_discount + amounts.tax_amount
        )


class TestTaxBreakdown:
    """Grouping by rate and document totals."""

    def test_two_rates(self):
        breakdown = tax_breakdown([_line("100.00", "20"), _line("50.00", "10")])

        assert [(e.rate, e.taxable_base, e.tax_amount, e.total_including_tax) for e in breakdown] == [
            (Decimal("20"), Decimal("100.00"), Decimal("20.00"), Decimal("120.00")),
            (Decimal("10"), Decimal("50.00"), Decimal("5.00"), Decimal("55.00")),
        ]

    def test_document_totals(self):
        totals = document_totals([_line("100.00", "20"), _line("50.00", "10")])
        assert totals.subtotal_excluding_tax == Decimal("150.00")
        assert totals.total_tax_amount == Decimal("25.00")
        assert totals.total_including_tax == Decimal("175.00")

    def test_equal_rates_share_an_entry(self):
        breakdown = tax_breakdown_from_bases([("10.00", "20"), ("5.00", "20.0")])
        assert len(breakdown) == 1
        assert breakdown[0].taxable_base == Decimal("15.00")
        assert breakdown[0].tax_amount == Decimal("3.00")

    def test_sorted_by_descending_rate(self):
        breakdown = tax_breakdown([
            _line("10.00", "5.5"),
            _line("10.00", "20"),
            _line("10.00", "0"),
            _line("10.00", "10"),
        ])
        assert [e.rate for e in breakdown] == [
            Decimal("20"), Decimal("10"), Decimal("5.5"), Decimal("0"),
        ]

    def test_tax_recomputed_from_summed_base(self):
        """
        Three lines of 0.05 at 10% each carry 0.01 of tax, but the
        breakdown taxes the summed base: 0.15 x 10% = 0.015 -> 0.02.
        """
        lines = [_line("0.05", "10")] * 3
        assert sum((line.amounts().tax_amount for line in lines), ZERO) == Decimal("0.03")

        breakdown = tax_breakdown(lines)
        assert breakdown[0].taxable_base == Decimal("0.15")
        assert breakdown[0].tax_amount == Decimal("0.02")

    def test_discount_applies_before_grouping(self):
        breakdown = tax_breakdown([_line("100.00", "20", discount="10")])
        assert breakdown[0].taxable_base == Decimal("90.00")
        assert breakdown[0].tax_amount == Decimal("18.00")

    def test_empty_lines(self):
        assert tax_breakdown([]) == ()
        totals = document_totals([])
        assert totals.subtotal_excluding_tax == ZERO
        assert totals.total_tax_amount == ZERO
        assert totals.total_including_tax == ZERO

    def test_totals_from_breakdown_sum_entries(self):
        breakdown = tax_breakdown_from_bases([("100.00", "20"), ("50.00", "10")])
        totals = totals_from_breakdown(breakdown)
        assert totals.total_including_tax == Decimal("175.00")


class TestTolerance:

    def test_within(self):
        assert within_tolerance("10.00", "10.01")
        assert within_tolerance("10.01", "10.00")

    def test_outside(self):
        assert not within_tolerance("10.00", "10.02")

    def test_custom_tolerance(self):
        assert within_tolerance("10.00", "10.05", tolerance=Decimal("0.05"))
