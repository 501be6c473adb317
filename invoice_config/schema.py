"""
InvoicingConfig schema.

The human-authored configuration of an invoicing regime: currency and
rounding, the canonical VAT rates and the default numbering layout.  YAML
sets are parsed into these types by the loader and checked by the
validator; bridges turn them into kernel inputs.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal


@dataclass(frozen=True)
class MoneyPolicy:
    currency: str
    decimal_places: int
    tolerance: Decimal


@dataclass(frozen=True)
class TaxRateDef:
    """A canonical VAT rate, in percent."""

    rate: Decimal
    label: str


@dataclass(frozen=True)
class NumberingDefaults:
    """
    Numbering layout for newly provisioned counters.

    ``template`` uses ``{prefix}``, ``{year}``, ``{yy}`` and ``{sequence}``.
    """

    template: str
    prefix: str | None = None
    sequence_digits: int = 5


@dataclass(frozen=True)
class InvoicingConfig:
    config_id: str
    version: int
    jurisdiction: str
    money: MoneyPolicy
    tax_rates: tuple[TaxRateDef, ...]
    numbering: NumberingDefaults
    checksum: str = ""

    @property
    def canonical_rates(self) -> tuple[Decimal, ...]:
        return tuple(t.rate for t in self.tax_rates)
