"""
Money -- VAT and discount arithmetic with per-step rounding.

Responsibility:
    Computes line amounts, tax amounts, discounts, the per-rate tax
    breakdown of a document and the document totals.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Decimal only.  Floats are rejected at the boundary; binary rounding
      cannot reproduce regulatory cent rounding.
    - Every monetary result is rounded to 2 places, half away from zero,
      at the step that produces it.  Reconciliation checks downstream
      assume intermediate rounding, so rounding is never deferred.
    - Line total == round2(subtotal_after_discount + tax_amount).
    - Breakdown tax per rate is recomputed from the summed taxable base of
      that rate, not summed from per-line tax amounts.
    - Document totals are derived from the breakdown, so the two agree
      by construction.

Failure modes:
    - TypeError when a float (or bool) is supplied as an amount or rate.
    - ValueError for non-numeric strings and non-finite decimals.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Any, Protocol

MONEY_DECIMAL_PLACES = 2
CENT = Decimal("0.01")
HUNDRED = Decimal("100")
ZERO = Decimal("0.00")

#: Reconciliation tolerance between stored and recomputed amounts.
AMOUNT_TOLERANCE = Decimal("0.01")


class StandardVatRate(Enum):
    """French VAT rates (percent)."""

    STANDARD = Decimal("20.0")
    INTERMEDIATE = Decimal("10.0")
    REDUCED = Decimal("5.5")
    SUPER_REDUCED = Decimal("2.1")
    ZERO = Decimal("0.0")


CANONICAL_VAT_RATES: tuple[Decimal, ...] = tuple(r.value for r in StandardVatRate)


def to_decimal(value: Any) -> Decimal:
    """
    Convert an amount or rate to Decimal.

    Accepts Decimal, int and numeric strings.  Floats are refused.
    """
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool) or isinstance(value, float):
        raise TypeError(
            f"Monetary values must be Decimal, int or str, not {type(value).__name__}"
        )
    elif isinstance(value, (int, str)):
        try:
            result = Decimal(value)
        except InvalidOperation as exc:
            raise ValueError(f"Not a number: {value!r}") from exc
    else:
        raise TypeError(
            f"Monetary values must be Decimal, int or str, not {type(value).__name__}"
        )

    if not result.is_finite():
        raise ValueError(f"Monetary values must be finite: {value!r}")
    return result


def round2(value: Any) -> Decimal:
    """Round to 2 decimal places, half away from zero."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def tax_amount(base: Any, rate: Any) -> Decimal:
    """``round2(base * rate / 100)``."""
    return round2(to_decimal(base) * to_decimal(rate) / HUNDRED)


def discount_amount(base: Any, rate: Any) -> Decimal:
    """``round2(base * rate / 100)``."""
    return round2(to_decimal(base) * to_decimal(rate) / HUNDRED)


def apply_discount(base: Any, rate: Any) -> Decimal:
    """``round2(base - discount_amount(base, rate))``."""
    return round2(to_decimal(base) - discount_amount(base, rate))


def amount_including_tax(base: Any, rate: Any) -> Decimal:
    """``round2(base + tax_amount(base, rate))``."""
    return round2(to_decimal(base) + tax_amount(base, rate))


def amount_excluding_tax(amount_incl_tax: Any, rate: Any) -> Decimal:
    """Taxable base contained in a tax-inclusive amount."""
    return round2(to_decimal(amount_incl_tax) * HUNDRED / (HUNDRED + to_decimal(rate)))


def tax_amount_from_total(amount_incl_tax: Any, rate: Any) -> Decimal:
    """Tax contained in a tax-inclusive amount."""
    return round2(to_decimal(amount_incl_tax) - amount_excluding_tax(amount_incl_tax, rate))


def is_standard_vat_rate(
    rate: Any,
    canonical_rates: Iterable[Decimal] = CANONICAL_VAT_RATES,
) -> bool:
    rate = to_decimal(rate)
    return any(rate == canonical for canonical in canonical_rates)


# ---------------------------------------------------------------------------
# Lines
# ---------------------------------------------------------------------------


class PricedLine(Protocol):
    """Anything with the four source fields of a line item."""

    quantity: Decimal
    unit_price_excluding_tax: Decimal
    discount_rate: Decimal
    tax_rate: Decimal


@dataclass(frozen=True, slots=True)
class LineAmounts:
    """Derived amounts of one line, each rounded at its own step."""

    subtotal_excluding_tax: Decimal
    discount_amount: Decimal
    subtotal_after_discount: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    total_including_tax: Decimal


def compute_line_amounts(
    quantity: Any,
    unit_price_excluding_tax: Any,
    tax_rate: Any,
    discount_rate: Any = 0,
) -> LineAmounts:
    subtotal = round2(to_decimal(quantity) * to_decimal(unit_price_excluding_tax))
    discount = discount_amount(subtotal, discount_rate)
    after_discount = round2(subtotal - discount)
    tax = tax_amount(after_discount, tax_rate)
    return LineAmounts(
        subtotal_excluding_tax=subtotal,
        discount_amount=discount,
        subtotal_after_discount=after_discount,
        tax_rate=to_decimal(tax_rate),
        tax_amount=tax,
        total_including_tax=round2(after_discount + tax),
    )


def compute_line(line: PricedLine) -> LineAmounts:
    return compute_line_amounts(
        line.quantity,
        line.unit_price_excluding_tax,
        line.tax_rate,
        line.discount_rate,
    )


# ---------------------------------------------------------------------------
# Breakdown and totals
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class TaxBreakdownEntry:
    """One row of the per-rate VAT breakdown."""

    rate: Decimal
    taxable_base: Decimal
    tax_amount: Decimal
    total_including_tax: Decimal


@dataclass(frozen=True, slots=True)
class DocumentTotals:
    subtotal_excluding_tax: Decimal
    total_tax_amount: Decimal
    total_including_tax: Decimal


def tax_breakdown_from_bases(
    bases: Iterable[tuple[Any, Any]],
) -> tuple[TaxBreakdownEntry, ...]:
    """
    Group ``(taxable_base, rate)`` pairs by rate.

    Returns entries sorted by descending rate.  Rates are grouped by
    numeric value, so ``20`` and ``20.0`` share an entry.
    """
    groups: dict[Decimal, tuple[Decimal, Decimal]] = {}
    for base, rate in bases:
        rate = to_decimal(rate)
        base = round2(base)
        if rate in groups:
            first_rate, summed = groups[rate]
            groups[rate] = (first_rate, round2(summed + base))
        else:
            groups[rate] = (rate, base)

    entries = []
    for rate, summed_base in groups.values():
        tax = tax_amount(summed_base, rate)
        entries.append(
            TaxBreakdownEntry(
                rate=rate,
                taxable_base=summed_base,
                tax_amount=tax,
                total_including_tax=round2(summed_base + tax),
            )
        )
    entries.sort(key=lambda e: e.rate, reverse=True)
    return tuple(entries)


def tax_breakdown(lines: Iterable[PricedLine]) -> tuple[TaxBreakdownEntry, ...]:
    """Per-rate breakdown of line items, based on their after-discount subtotals."""
    amounts = (compute_line(line) for line in lines)
    return tax_breakdown_from_bases(
        (a.subtotal_after_discount, a.tax_rate) for a in amounts
    )


def totals_from_breakdown(entries: Iterable[TaxBreakdownEntry]) -> DocumentTotals:
    subtotal = tax = total = ZERO
    for entry in entries:
        subtotal += entry.taxable_base
        tax += entry.tax_amount
        total += entry.total_including_tax
    return DocumentTotals(
        subtotal_excluding_tax=round2(subtotal),
        total_tax_amount=round2(tax),
        total_including_tax=round2(total),
    )


def document_totals(lines: Iterable[PricedLine]) -> DocumentTotals:
    """Document totals, derived from the tax breakdown of ``lines``."""
    return totals_from_breakdown(tax_breakdown(lines))


def within_tolerance(a: Any, b: Any, tolerance: Decimal = AMOUNT_TOLERANCE) -> bool:
    return abs(to_decimal(a) - to_decimal(b)) <= tolerance
